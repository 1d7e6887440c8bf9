"""
Unit tests for model constraints.
"""

import pytest
from sqlalchemy.exc import IntegrityError
from stockroom.models import Product, Sale, Credential, ImportDraft


class TestProduct:

    def test_ids_are_generated(self, session, product, other_product):
        assert len(product.id) == 36
        assert product.id != other_product.id

    def test_negative_stock_rejected_by_store(self, session):
        session.add(Product(name='x', product_no='1', description='d', company='saiwin lights', total_in_store=-1))
        with pytest.raises(IntegrityError):
            session.commit()
        session.rollback()


class TestSale:

    def test_zero_quantity_rejected_by_store(self, session, product):
        session.add(Sale(
            product_id=product.id, name='x', customer_name='c', mob='9876543210',
            location='l', color='c', quantity=0, type='sold'
        ))
        with pytest.raises(IntegrityError):
            session.commit()
        session.rollback()

    def test_created_at_is_set(self, session, sale):
        session.expire_all()
        assert session.get(Sale, sale.id).created_at is not None


class TestImportDraft:

    def test_one_draft_per_user(self, session):
        session.add(ImportDraft(username='alice', rows=[]))
        session.commit()
        session.add(ImportDraft(username='alice', rows=[{'name': 'x'}]))
        with pytest.raises(IntegrityError):
            session.commit()
        session.rollback()

    def test_row_count(self):
        assert ImportDraft(username='a', rows=[{}, {}]).row_count == 2


class TestCredential:

    def test_lookup_by_username(self, session, credential):
        assert session.get(Credential, 'alice').password == 'secret'

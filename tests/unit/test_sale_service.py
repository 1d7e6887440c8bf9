"""
Unit tests for sale validation, stock arithmetic and the commit modes.
"""

import pytest
from stockroom.models import Product, Sale
from stockroom.exceptions import (
    ValidationError, InsufficientStockError, AuthenticationError,
    StoreError, StaleStockError, PartialCommitError
)
from stockroom.services.product_service import list_products
from stockroom.services.sale_service import (
    SaleDraft, TransactionKind, ProductSnapshot, SaleRecorder, RecorderState,
    validate_sale, compute_new_stock, resolve_created_by, record_sale
)


def make_draft(**overrides):
    fields = dict(
        customer_name='Ravi Kumar',
        mob='9876543210',
        location='Kochi',
        color='white',
        quantity=3,
        kind=TransactionKind.INCOMING,
    )
    fields.update(overrides)
    return SaleDraft(**fields)


class TestValidateSale:
    """Validation order and messages."""

    @pytest.mark.parametrize('field', ['customer_name', 'mob', 'location', 'color'])
    def test_missing_field_rejected(self, field):
        with pytest.raises(ValidationError) as exc:
            validate_sale(make_draft(**{field: ''}), 10)
        assert exc.value.message == 'All fields are required and quantity must be > 0.'

    def test_zero_quantity_rejected_before_format_checks(self):
        with pytest.raises(ValidationError) as exc:
            validate_sale(make_draft(quantity=0, mob='123'), 10)
        assert 'quantity must be > 0' in exc.value.message

    @pytest.mark.parametrize('mob', ['987654321', '98765432100', '98765abcde', '98765 4321', '+919876543'])
    def test_mobile_must_be_ten_digits(self, mob):
        with pytest.raises(ValidationError) as exc:
            validate_sale(make_draft(mob=mob), 10)
        assert exc.value.message == 'Mobile must be exactly 10 digits.'
        assert exc.value.field == 'mob'

    def test_mobile_rejects_non_ascii_digits(self):
        with pytest.raises(ValidationError):
            validate_sale(make_draft(mob='٩٨٧٦٥٤٣٢١٠'), 10)

    def test_customer_name_with_digit_rejected(self):
        with pytest.raises(ValidationError) as exc:
            validate_sale(make_draft(customer_name='Ravi 2'), 10)
        assert exc.value.message == 'Customer name must not contain numbers.'

    def test_mobile_checked_before_name(self):
        with pytest.raises(ValidationError) as exc:
            validate_sale(make_draft(customer_name='R2', mob='12'), 10)
        assert exc.value.field == 'mob'

    def test_outgoing_over_stock_rejected(self):
        with pytest.raises(InsufficientStockError) as exc:
            validate_sale(make_draft(kind=TransactionKind.OUTGOING, quantity=6), 5)
        assert exc.value.message == 'Only 5 in stock; cannot sell 6.'

    def test_outgoing_equal_to_stock_allowed(self):
        validate_sale(make_draft(kind=TransactionKind.OUTGOING, quantity=5), 5)

    def test_incoming_ignores_stock(self):
        validate_sale(make_draft(kind=TransactionKind.INCOMING, quantity=500), 0)


class TestStockArithmetic:

    @pytest.mark.parametrize('stock,qty', [(0, 1), (5, 3), (10, 10)])
    def test_incoming_adds(self, stock, qty):
        assert compute_new_stock(stock, qty, TransactionKind.INCOMING) == stock + qty

    @pytest.mark.parametrize('stock,qty', [(1, 1), (5, 3), (10, 10)])
    def test_outgoing_subtracts(self, stock, qty):
        assert compute_new_stock(stock, qty, TransactionKind.OUTGOING) == stock - qty

    def test_kind_maps_to_sale_type(self):
        assert TransactionKind.INCOMING.sale_type.value == 'bought'
        assert TransactionKind.OUTGOING.sale_type.value == 'sold'


class TestCreatedBy:

    def test_explicit_value_wins(self):
        assert resolve_created_by('bob', 'alice') == 'bob'

    def test_falls_back_to_session_user(self):
        assert resolve_created_by('', 'alice') == 'alice'
        assert resolve_created_by(None, 'alice') == 'alice'

    def test_no_identity_rejected(self):
        with pytest.raises(AuthenticationError):
            resolve_created_by(None, None)


class TestSaleDraftFromForm:

    def test_defaults_to_incoming(self):
        draft = SaleDraft.from_form({'customer_name': ' Ravi ', 'quantity': '2'})
        assert draft.kind is TransactionKind.INCOMING
        assert draft.customer_name == 'Ravi'
        assert draft.quantity == 2

    def test_non_numeric_quantity_becomes_zero(self):
        assert SaleDraft.from_form({'quantity': 'abc'}).quantity == 0

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValidationError):
            SaleDraft.from_form({'kind': 'refund'})


class TestRecordSaleAtomic:
    """Default mode: sale + stock in one transaction."""

    def test_outgoing_sale_updates_stock(self, session, product):
        snapshot = ProductSnapshot.from_product(product)
        draft = make_draft(kind=TransactionKind.OUTGOING, quantity=4)

        new_stock = record_sale(session, snapshot, draft, session_username='alice')

        assert new_stock == 6
        session.expire_all()
        assert session.get(Product, product.id).total_in_store == 6
        sale = session.query(Sale).filter_by(product_id=product.id).one()
        assert sale.type == 'sold'
        assert sale.quantity == 4
        assert sale.created_by == 'alice'
        assert sale.name == 'Tracklight'
        assert sale.description == '45W'

    def test_rejected_sale_writes_nothing(self, session, product):
        snapshot = ProductSnapshot.from_product(product)
        draft = make_draft(kind=TransactionKind.OUTGOING, quantity=11)

        with pytest.raises(InsufficientStockError):
            record_sale(session, snapshot, draft, session_username='alice')

        assert session.query(Sale).count() == 0
        session.expire_all()
        assert session.get(Product, product.id).total_in_store == 10

    def test_stale_stock_detected(self, session, product):
        # Someone else sold 3 after this user loaded the page
        snapshot = ProductSnapshot.from_product(product)
        product.total_in_store = 7
        session.commit()

        with pytest.raises(StaleStockError):
            record_sale(session, snapshot, make_draft(quantity=1), session_username='alice')

        assert session.query(Sale).count() == 0
        session.expire_all()
        assert session.get(Product, product.id).total_in_store == 7

    def test_failed_stock_update_rolls_back_sale(self, session, product, fail_stock_updates):
        snapshot = ProductSnapshot.from_product(product)

        with pytest.raises(StoreError) as exc:
            record_sale(session, snapshot, make_draft(), session_username='alice')

        assert 'stock update rejected' in exc.value.message
        assert session.query(Sale).count() == 0
        assert session.get(Product, product.id).total_in_store == 10


class TestRecordSaleSequential:
    """Sequential mode: two independent writes."""

    def test_incoming_sale_updates_stock(self, session, product):
        snapshot = ProductSnapshot.from_product(product)
        new_stock = record_sale(session, snapshot, make_draft(quantity=5), created_by='bob', atomic=False)

        assert new_stock == 15
        session.expire_all()
        assert session.get(Product, product.id).total_in_store == 15
        assert session.query(Sale).one().created_by == 'bob'

    def test_failed_stock_update_leaves_sale_behind(self, session, product, fail_stock_updates):
        snapshot = ProductSnapshot.from_product(product)

        with pytest.raises(PartialCommitError) as exc:
            record_sale(session, snapshot, make_draft(quantity=2), session_username='alice', atomic=False)

        assert exc.value.message.startswith('Stock update failed:')
        sale = session.query(Sale).one()
        assert sale.id == exc.value.sale_id
        assert session.get(Product, product.id).total_in_store == 10

    def test_stale_snapshot_overwrites_stock(self, session, product):
        snapshot = ProductSnapshot.from_product(product)
        product.total_in_store = 7
        session.commit()

        # last write wins: computed from the stale 10, not the stored 7
        new_stock = record_sale(session, snapshot, make_draft(quantity=1), session_username='alice', atomic=False)

        assert new_stock == 11
        session.expire_all()
        assert session.get(Product, product.id).total_in_store == 11


class TestSaleRecorder:
    """State machine over one in-progress transaction."""

    def test_select_opens_fresh_draft(self, session, product):
        recorder = SaleRecorder(session=session, products=list_products(session))
        assert recorder.state is RecorderState.IDLE

        draft = recorder.select(product.id)

        assert recorder.state is RecorderState.DRAFTING
        assert draft.kind is TransactionKind.INCOMING
        assert draft.customer_name == ''
        assert recorder.selected.total_in_store == 10

    def test_successful_submit_patches_list_and_resets(self, session, product, other_product):
        products = list_products(session)
        recorder = SaleRecorder(session=session, products=products)
        recorder.select(product.id)

        new_stock = recorder.submit(make_draft(kind=TransactionKind.OUTGOING, quantity=3), session_username='alice')

        assert new_stock == 7
        assert recorder.state is RecorderState.IDLE
        assert recorder.selected is None
        patched = next(p for p in products if p.id == product.id)
        untouched = next(p for p in products if p.id == other_product.id)
        assert patched.total_in_store == 7
        assert untouched.total_in_store == 4

    def test_failed_submit_returns_to_drafting(self, session, product):
        recorder = SaleRecorder(session=session, products=list_products(session))
        recorder.select(product.id)

        with pytest.raises(ValidationError):
            recorder.submit(make_draft(mob='123'), session_username='alice')

        assert recorder.state is RecorderState.DRAFTING
        assert recorder.error == 'Mobile must be exactly 10 digits.'
        assert recorder.draft.mob == '123'
        assert session.query(Sale).count() == 0

    def test_seen_stock_drives_validation(self, session, product):
        recorder = SaleRecorder(session=session, products=list_products(session))
        recorder.select(product.id, seen_stock=2)

        with pytest.raises(InsufficientStockError) as exc:
            recorder.submit(make_draft(kind=TransactionKind.OUTGOING, quantity=3), session_username='alice')

        assert 'Only 2 in stock' in exc.value.message

    def test_submit_without_selection_rejected(self, session):
        recorder = SaleRecorder(session=session, products=[])
        with pytest.raises(ValidationError):
            recorder.submit(make_draft(), session_username='alice')

    def test_cancel_returns_to_idle(self, session, product):
        recorder = SaleRecorder(session=session, products=list_products(session))
        recorder.select(product.id)
        recorder.cancel()
        assert recorder.state is RecorderState.IDLE
        assert recorder.draft is None

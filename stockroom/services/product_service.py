"""
Product service - catalog queries, form validation and single-record writes.
"""
import logging
from dataclasses import dataclass, asdict
from typing import Dict, Iterable, List, Optional
from sqlalchemy.exc import SQLAlchemyError
from stockroom.models import Product
from stockroom.exceptions import ValidationError, NotFoundError, store_error_from

logger = logging.getLogger(__name__)

ALL_COMPANIES = 'all'


@dataclass
class ProductInput:
    """Validated product fields ready for the store."""
    name: str
    product_no: str
    description: str
    company: str
    total_in_store: Optional[int] = None

    def to_row(self) -> Dict:
        row = asdict(self)
        if row['total_in_store'] is None:
            row.pop('total_in_store')
        return row


def _clean(form, key: str) -> str:
    return str(form.get(key) or '').strip()


def _validate_company(company: str, companies: Iterable[str]) -> str:
    normalized = company.lower()
    if normalized not in companies:
        raise ValidationError(f'Unknown company "{company}".', field='company')
    return normalized


def validate_new_product(form, companies: Iterable[str]) -> ProductInput:
    """
    Validate the single-create form.

    Order: name, product number, description and company required, then
    total in store required and a whole number >= 0.
    """
    name = _clean(form, 'name')
    product_no = _clean(form, 'product_no')
    description = _clean(form, 'description')
    company = _clean(form, 'company')
    total_raw = _clean(form, 'total_in_store')

    for field, value in (('name', name), ('product_no', product_no),
                         ('description', description), ('company', company),
                         ('total_in_store', total_raw)):
        if not value:
            raise ValidationError('All fields are required.', field=field)

    try:
        total = int(total_raw)
    except ValueError:
        raise ValidationError('Total in store must be a whole number.', field='total_in_store')

    if total < 0:
        raise ValidationError('Total in store cannot be negative.', field='total_in_store')

    return ProductInput(
        name=name,
        product_no=product_no,
        description=description,
        company=_validate_company(company, companies),
        total_in_store=total,
    )


def validate_product_edit(form, companies: Iterable[str]) -> ProductInput:
    """Validate the edit form. Stock is not editable from this surface."""
    name = _clean(form, 'name')
    product_no = _clean(form, 'product_no')
    description = _clean(form, 'description')
    company = _clean(form, 'company')

    for field, value in (('name', name), ('product_no', product_no),
                         ('description', description), ('company', company)):
        if not value:
            raise ValidationError('All fields are required.', field=field)

    return ProductInput(
        name=name,
        product_no=product_no,
        description=description,
        company=_validate_company(company, companies),
    )


def list_products(session) -> List[Product]:
    """All products ordered by name."""
    try:
        return session.query(Product).order_by(Product.name).all()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Error listing products: {e}", exc_info=True)
        raise store_error_from(e)


def get_product(session, product_id: str) -> Product:
    try:
        product = session.get(Product, product_id)
    except SQLAlchemyError as e:
        session.rollback()
        raise store_error_from(e)
    if product is None:
        raise NotFoundError('Product not found')
    return product


def filter_by_company(products: List[Product], company: Optional[str]) -> List[Product]:
    """
    Derived view of the product list for one company.

    The full list stays the source of truth; this is recomputed whenever the
    list or the selected company changes.
    """
    if not company or company.lower() == ALL_COMPANIES:
        return list(products)
    wanted = company.lower()
    return [p for p in products if (p.company or '').lower() == wanted]


def create_product(session, data: ProductInput) -> Product:
    """Insert one product. Store errors are surfaced verbatim."""
    product = Product(**data.to_row())
    try:
        session.add(product)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Error creating product {data.product_no!r}: {e}", exc_info=True)
        raise store_error_from(e)

    logger.info(f"Created product {product.id} ({product.name})")
    return product


def update_product(session, product_id: str, data: ProductInput) -> Dict:
    """
    Update name/product_no/description/company of one product, keyed by id.

    Returns the changed fields so callers can patch their in-memory list.
    """
    changes = data.to_row()
    changes.pop('total_in_store', None)
    try:
        updated = session.query(Product).filter(Product.id == product_id).update(
            changes, synchronize_session='fetch'
        )
        if not updated:
            session.rollback()
            raise NotFoundError('Product not found')
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Error updating product {product_id}: {e}", exc_info=True)
        raise store_error_from(e)

    logger.info(f"Updated product {product_id}")
    return changes


def delete_product(session, product_id: str) -> None:
    """
    Delete one product permanently.

    Sales that reference the product are not touched.
    """
    try:
        deleted = session.query(Product).filter(Product.id == product_id).delete(
            synchronize_session='fetch'
        )
        if not deleted:
            session.rollback()
            raise NotFoundError('Product not found')
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Error deleting product {product_id}: {e}", exc_info=True)
        raise store_error_from(e)

    logger.info(f"Deleted product {product_id}")


def patch_product_in_list(products: List[Product], product_id: str, changes: Dict) -> List[Product]:
    """Apply changes to the matching entry of an already loaded list."""
    for product in products:
        if product.id == product_id:
            for key, value in changes.items():
                setattr(product, key, value)
    return products


def remove_product_from_list(products: List[Product], product_id: str) -> List[Product]:
    return [p for p in products if p.id != product_id]

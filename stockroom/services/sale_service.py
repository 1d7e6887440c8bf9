"""
Sale recording - validation, stock arithmetic and the two store writes.

A transaction (incoming or outgoing) against one product inserts a Sale row
and writes the product's new total_in_store. The new total is computed from
the stock the user was shown, not re-read from the store.

Commit modes:
    atomic      both writes in one transaction; the stock write only matches
                if the row still holds the stock the user saw.
    sequential  two independent commits, last write wins. If the stock write
                fails the sale row stays behind and PartialCommitError says so.
"""
import enum
import logging
import re
from dataclasses import dataclass, replace
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from stockroom.models import Product, Sale, SaleType
from stockroom.exceptions import (
    StockroomError, ValidationError, InsufficientStockError, AuthenticationError,
    NotFoundError, StaleStockError, PartialCommitError, store_error_from
)

logger = logging.getLogger(__name__)

MOBILE_PATTERN = re.compile(r'[0-9]{10}')
DIGIT_PATTERN = re.compile(r'[0-9]')


class TransactionKind(str, enum.Enum):
    INCOMING = 'incoming'
    OUTGOING = 'outgoing'

    @property
    def sale_type(self) -> SaleType:
        return SaleType.BOUGHT if self is TransactionKind.INCOMING else SaleType.SOLD


class RecorderState(enum.Enum):
    IDLE = 'idle'
    DRAFTING = 'drafting'
    VALIDATING = 'validating'
    COMMITTING = 'committing'


@dataclass
class SaleDraft:
    """Form fields of one in-progress transaction."""
    customer_name: str = ''
    mob: str = ''
    location: str = ''
    color: str = ''
    quantity: int = 1
    kind: TransactionKind = TransactionKind.INCOMING

    @classmethod
    def from_form(cls, form) -> 'SaleDraft':
        try:
            quantity = int(str(form.get('quantity', '')).strip())
        except ValueError:
            quantity = 0
        try:
            kind = TransactionKind(form.get('kind') or TransactionKind.INCOMING.value)
        except ValueError:
            raise ValidationError('Unknown transaction type.', field='kind')
        return cls(
            customer_name=(form.get('customer_name') or '').strip(),
            mob=(form.get('mob') or '').strip(),
            location=(form.get('location') or '').strip(),
            color=(form.get('color') or '').strip(),
            quantity=quantity,
            kind=kind,
        )


@dataclass
class ProductSnapshot:
    """The product as the user saw it when drafting."""
    id: str
    name: str
    description: str
    total_in_store: int

    @classmethod
    def from_product(cls, product: Product) -> 'ProductSnapshot':
        return cls(
            id=product.id,
            name=product.name,
            description=product.description or '',
            total_in_store=product.total_in_store,
        )


def validate_sale(draft: SaleDraft, current_stock: int) -> None:
    """
    Check a draft, stopping at the first failure.

    1. all fields present and quantity >= 1
    2. mobile is exactly 10 digits
    3. customer name has no digits
    4. outgoing quantity does not exceed current stock
    """
    if (not draft.customer_name or not draft.mob or not draft.location
            or not draft.color or draft.quantity < 1):
        raise ValidationError('All fields are required and quantity must be > 0.')

    if not MOBILE_PATTERN.fullmatch(draft.mob):
        raise ValidationError('Mobile must be exactly 10 digits.', field='mob')

    if DIGIT_PATTERN.search(draft.customer_name):
        raise ValidationError('Customer name must not contain numbers.', field='customer_name')

    if draft.kind is TransactionKind.OUTGOING and draft.quantity > current_stock:
        raise InsufficientStockError(current_stock, draft.quantity)


def compute_new_stock(current: int, quantity: int, kind: TransactionKind) -> int:
    if kind is TransactionKind.INCOMING:
        return current + quantity
    return current - quantity


def resolve_created_by(explicit: Optional[str], session_username: Optional[str]) -> str:
    """Explicit attribution wins; otherwise the logged-in user."""
    username = (explicit or '').strip() or (session_username or '').strip()
    if not username:
        raise AuthenticationError('Not authenticated (no username cookie)')
    return username


def _build_sale(product: ProductSnapshot, draft: SaleDraft, created_by: str) -> Sale:
    return Sale(
        product_id=product.id,
        name=product.name,
        description=product.description,
        customer_name=draft.customer_name,
        mob=draft.mob,
        location=draft.location,
        color=draft.color,
        quantity=draft.quantity,
        type=draft.kind.sale_type.value,
        created_by=created_by,
    )


def _commit_atomic(session, product: ProductSnapshot, sale: Sale, new_stock: int) -> Sale:
    try:
        session.add(sale)
        session.flush()
        matched = session.query(Product).filter(
            Product.id == product.id,
            Product.total_in_store == product.total_in_store
        ).update({'total_in_store': new_stock}, synchronize_session='fetch')
        if matched != 1:
            session.rollback()
            exists = session.query(Product.id).filter(Product.id == product.id).first()
            if exists is None:
                raise NotFoundError('Product not found')
            logger.warning(
                f"Stale stock for product {product.id}: expected {product.total_in_store}"
            )
            raise StaleStockError(product.name)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Sale commit failed for product {product.id}: {e}", exc_info=True)
        raise store_error_from(e)
    return sale


def _commit_sequential(session, product: ProductSnapshot, sale: Sale, new_stock: int) -> Sale:
    try:
        session.add(sale)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Sale insert failed for product {product.id}: {e}", exc_info=True)
        raise store_error_from(e)

    try:
        session.query(Product).filter(Product.id == product.id).update(
            {'total_in_store': new_stock}, synchronize_session='fetch'
        )
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        message = str(store_error_from(e))
        # Sale row is already committed; stock still shows the old figure.
        logger.error(
            f"Stock update failed after sale {sale.id} was recorded; "
            f"product {product.id} still shows {product.total_in_store}, expected {new_stock}: {message}"
        )
        raise PartialCommitError(f'Stock update failed: {message}', sale.id, product.id)
    return sale


def commit_sale(session, product: ProductSnapshot, draft: SaleDraft, created_by: str,
                atomic: bool = True) -> int:
    """
    Write the sale and the new stock level.

    Returns:
        int: the new total_in_store
    """
    new_stock = compute_new_stock(product.total_in_store, draft.quantity, draft.kind)
    sale = _build_sale(product, draft, created_by)

    if atomic:
        _commit_atomic(session, product, sale, new_stock)
    else:
        _commit_sequential(session, product, sale, new_stock)

    logger.info(
        f"Recorded {sale.type} x{sale.quantity} for product {product.id} by {created_by!r}; "
        f"stock {product.total_in_store} -> {new_stock}"
    )
    return new_stock


def record_sale(session, product: ProductSnapshot, draft: SaleDraft, created_by: Optional[str] = None,
                session_username: Optional[str] = None, atomic: bool = True) -> int:
    """Validate, resolve attribution and commit one transaction."""
    validate_sale(draft, product.total_in_store)
    username = resolve_created_by(created_by, session_username)
    return commit_sale(session, product, draft, username, atomic=atomic)


@dataclass
class SaleRecorder:
    """
    One in-progress transaction over an already loaded product list.

    IDLE -> select() -> DRAFTING -> submit() -> VALIDATING -> COMMITTING -> IDLE.
    Any failure returns to DRAFTING with `error` set.
    """
    session: object
    products: List[Product]
    atomic: bool = True
    state: RecorderState = RecorderState.IDLE
    selected: Optional[ProductSnapshot] = None
    draft: Optional[SaleDraft] = None
    error: Optional[str] = None

    def _find(self, product_id: str) -> Product:
        for product in self.products:
            if product.id == product_id:
                return product
        raise NotFoundError('Product not found')

    def select(self, product_id: str, seen_stock: Optional[int] = None) -> SaleDraft:
        """Open a fresh draft for one product."""
        snapshot = ProductSnapshot.from_product(self._find(product_id))
        if seen_stock is not None:
            snapshot = replace(snapshot, total_in_store=seen_stock)
        self.selected = snapshot
        self.draft = SaleDraft()
        self.error = None
        self.state = RecorderState.DRAFTING
        return self.draft

    def cancel(self) -> None:
        self.selected = None
        self.draft = None
        self.error = None
        self.state = RecorderState.IDLE

    def submit(self, draft: SaleDraft, created_by: Optional[str] = None,
               session_username: Optional[str] = None) -> int:
        if self.state is not RecorderState.DRAFTING or self.selected is None:
            raise ValidationError('No product selected.')

        self.draft = draft
        try:
            self.state = RecorderState.VALIDATING
            validate_sale(draft, self.selected.total_in_store)
            username = resolve_created_by(created_by, session_username)

            self.state = RecorderState.COMMITTING
            new_stock = commit_sale(self.session, self.selected, draft, username, atomic=self.atomic)
        except StockroomError as e:
            self.state = RecorderState.DRAFTING
            self.error = e.message
            raise

        self._find(self.selected.id).total_in_store = new_stock
        self.cancel()
        return new_stock

"""Models package - exports all SQLAlchemy models."""
from stockroom.models.product import Product
from stockroom.models.sale import Sale, SaleType
from stockroom.models.credential import Credential
from stockroom.models.import_draft import ImportDraft

__all__ = [
    'Product', 'Sale', 'SaleType', 'Credential', 'ImportDraft',
]

"""Product model."""
import uuid
from sqlalchemy import Column, String, Integer, Text, DateTime, CheckConstraint
from sqlalchemy.sql import func
from stockroom.database import Base


def new_id():
    """Opaque identifier for new rows."""
    return str(uuid.uuid4())


class Product(Base):
    """Product in the catalog. total_in_store is never negative."""

    __tablename__ = 'products'
    __table_args__ = (
        CheckConstraint('total_in_store >= 0', name='ck_products_total_in_store'),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(200), nullable=False)
    product_no = Column(String(100), nullable=False)
    description = Column(Text, nullable=False, default='')
    company = Column(String(100), nullable=False)
    total_in_store = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', product_no='{self.product_no}')>"

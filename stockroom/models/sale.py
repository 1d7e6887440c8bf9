"""Sale model."""
import enum
from sqlalchemy import Column, String, Integer, Text, DateTime, CheckConstraint
from sqlalchemy.sql import func
from stockroom.database import Base
from stockroom.models.product import new_id


class SaleType(str, enum.Enum):
    """Direction of a stock transaction."""
    BOUGHT = 'bought'  # stock increase
    SOLD = 'sold'      # stock decrease


class Sale(Base):
    """
    One recorded stock transaction.

    name/description/color are copies of the product attributes at the time
    of the transaction. product_id is a plain reference: deleting a product
    leaves its sales in place.
    """

    __tablename__ = 'sales'
    __table_args__ = (
        CheckConstraint('quantity >= 1', name='ck_sales_quantity'),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    product_id = Column(String(36), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    customer_name = Column(String(200), nullable=False)
    mob = Column(String(10), nullable=False)
    location = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default='')
    color = Column(String(100), nullable=False)
    quantity = Column(Integer, nullable=False)
    type = Column(String(10), nullable=False)
    created_by = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<Sale(id={self.id}, product_id={self.product_id}, type={self.type}, quantity={self.quantity})>"

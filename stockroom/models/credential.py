"""Login credential model."""
from sqlalchemy import Column, String
from stockroom.database import Base


class Credential(Base):
    """Row of the `login` table. Read-only for the web flows."""

    __tablename__ = 'login'

    username = Column(String(100), primary_key=True)
    password = Column(String(255), nullable=False)

    def __repr__(self):
        return f"<Credential(username='{self.username}')>"

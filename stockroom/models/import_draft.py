"""Import Draft model - validated spreadsheet rows waiting for commit."""
from sqlalchemy import Column, String, DateTime, JSON
from sqlalchemy.sql import func
from stockroom.database import Base
from stockroom.models.product import new_id


class ImportDraft(Base):
    """
    Held bulk-import rows.

    Parsing and committing are two separate user actions; the parsed rows
    survive between them here. One draft per username.
    """

    __tablename__ = 'import_drafts'

    id = Column(String(36), primary_key=True, default=new_id)
    username = Column(String(100), nullable=False, unique=True)
    rows = Column(JSON, nullable=False)
    filename = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    @property
    def row_count(self):
        return len(self.rows or [])

    def __repr__(self):
        return f"<ImportDraft(id={self.id}, username='{self.username}', rows={self.row_count})>"

"""Sales listing and spreadsheet/PDF export."""
import logging
from datetime import datetime
from io import BytesIO
from typing import List
from xml.sax.saxutils import escape

from openpyxl import Workbook
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph
from sqlalchemy.exc import SQLAlchemyError

from stockroom.models import Sale
from stockroom.exceptions import store_error_from

logger = logging.getLogger(__name__)

MISSING_USER = '—'

PDF_HEADERS = ['S.No', 'Name', 'Mob', 'Location', 'Description', 'Color', 'Qty', 'Type', 'Added By']


def list_sales_for_product(session, product_id: str) -> List[Sale]:
    """Every sale recorded against one product, oldest first."""
    try:
        return session.query(Sale).filter(
            Sale.product_id == product_id
        ).order_by(Sale.created_at, Sale.id).all()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Error listing sales for product {product_id}: {e}", exc_info=True)
        raise store_error_from(e)


def sale_export_columns() -> List[str]:
    """All Sale columns except id, in declaration order."""
    return [column.key for column in Sale.__table__.columns if column.key != 'id']


def _cell(value):
    if isinstance(value, datetime) and value.tzinfo is not None:
        # Excel cannot store timezone-aware datetimes
        return value.replace(tzinfo=None)
    return value


def sales_to_xlsx(sales: List[Sale]) -> BytesIO:
    """Workbook with one "Sales" sheet: a header row, then one row per sale."""
    columns = sale_export_columns()

    workbook = Workbook()
    sheet = workbook.active
    sheet.title = 'Sales'
    sheet.append(columns)
    for sale in sales:
        sheet.append([_cell(getattr(sale, column)) for column in columns])

    buffer = BytesIO()
    workbook.save(buffer)
    buffer.seek(0)
    return buffer


def sale_pdf_rows(sales: List[Sale]) -> List[list]:
    """Body rows of the PDF table, numbered from 1."""
    return [
        [
            index,
            sale.name,
            sale.mob,
            sale.location,
            sale.description,
            sale.color,
            sale.quantity,
            sale.type,
            sale.created_by or MISSING_USER,
        ]
        for index, sale in enumerate(sales, start=1)
    ]


def sales_to_pdf(sales: List[Sale], title: str = None) -> BytesIO:
    """Landscape A4 table of sales with the fixed nine columns."""
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=landscape(A4),
        topMargin=40,
        bottomMargin=30,
        leftMargin=30,
        rightMargin=30,
        title=title or 'Sales',
    )

    styles = getSampleStyleSheet()
    cell_style = ParagraphStyle('Cell', parent=styles['Normal'], fontSize=8, leading=10)

    elements = []
    if title:
        elements.append(Paragraph(escape(title), styles['Heading2']))

    # Long free-text columns wrap inside Paragraphs; Paragraph parses markup
    body = []
    for row in sale_pdf_rows(sales):
        row[4] = Paragraph(escape(str(row[4] or '')), cell_style)
        body.append(row)

    table = Table([PDF_HEADERS] + body, repeatRows=1)
    table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#2980B9')),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 8),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#BDC3C7')),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#F5F5F5')]),
    ]))
    elements.append(table)

    doc.build(elements)
    buffer.seek(0)
    return buffer

"""
Bulk product import from spreadsheets.

Two user actions: upload (parse + validate + hold) and commit (one batched
insert). Parsing is fail-fast: the first bad row rejects the whole file.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence
from zipfile import BadZipFile

import xlrd
from xlrd import XLRDError
from xlrd.compdoc import CompDocError
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from sqlalchemy.exc import SQLAlchemyError

from stockroom.models import Product, ImportDraft
from stockroom.exceptions import ImportParseError, ValidationError, StoreError, store_error_from

logger = logging.getLogger(__name__)

EXPECTED_COLUMNS = ('name', 'product_no', 'description', 'total_in_store', 'company')


@dataclass
class ImportRowResult:
    """Outcome of coercing one spreadsheet row."""
    ok: bool
    row: Optional[Dict[str, Any]] = None
    errors: List[str] = field(default_factory=list)


def _records(rows: Iterator[Sequence[Any]]) -> List[Dict[str, Any]]:
    """
    Turn raw sheet rows into dicts keyed by the header row.

    Missing cells become ''. Completely blank rows are skipped.
    """
    header = next(rows, None)
    if header is None:
        return []
    keys = [str(cell).strip() if cell is not None else '' for cell in header]

    records = []
    for values in rows:
        if values is None or all(v is None or str(v).strip() == '' for v in values):
            continue
        record = {}
        for index, key in enumerate(keys):
            if not key:
                continue
            value = values[index] if index < len(values) else None
            record[key] = '' if value is None else value
        records.append(record)
    return records


def read_workbook_rows(stream) -> List[Dict[str, Any]]:
    """Read the first sheet of an .xlsx workbook."""
    try:
        workbook = load_workbook(stream, read_only=True, data_only=True)
    except (InvalidFileException, BadZipFile, KeyError, OSError, ValueError) as e:
        raise ImportParseError(f'Could not read file: {e}')

    try:
        return _records(workbook.worksheets[0].iter_rows(values_only=True))
    finally:
        workbook.close()


def read_xls_rows(stream) -> List[Dict[str, Any]]:
    """Read the first sheet of a legacy binary .xls workbook."""
    try:
        book = xlrd.open_workbook(file_contents=stream.read())
    except (XLRDError, CompDocError, OSError, ValueError, IndexError) as e:
        raise ImportParseError(f'Could not read file: {e}')

    try:
        if book.nsheets == 0:
            return []
        sheet = book.sheet_by_index(0)
        return _records(sheet.row_values(index) for index in range(sheet.nrows))
    finally:
        book.release_resources()


READERS = {
    'xlsx': read_workbook_rows,
    'xls': read_xls_rows,
}


# Field coercion -------------------------------------------------------------

def coerce_text(value: Any) -> str:
    if value is None:
        return ''
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def coerce_quantity(value: Any) -> Optional[float]:
    """Numeric reading of a raw cell. Blank is 0; unreadable is None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = coerce_text(value)
    if text == '':
        return 0.0
    try:
        return float(text)
    except ValueError:
        return None


def coerce_company(value: Any) -> str:
    return coerce_text(value).lower()


def coerce_product_row(raw: Dict[str, Any], companies: Iterable[str]) -> ImportRowResult:
    """Turn one loosely typed spreadsheet record into a product row."""
    row = {
        'name': coerce_text(raw.get('name')),
        'product_no': coerce_text(raw.get('product_no')),
        'description': coerce_text(raw.get('description')),
        'company': coerce_company(raw.get('company')),
    }
    quantity = coerce_quantity(raw.get('total_in_store'))

    errors = []
    for key in ('name', 'product_no', 'description'):
        if not row[key]:
            errors.append(f'{key} is required')
    if quantity is None or quantity != quantity:
        errors.append('total_in_store must be a number')
    elif quantity < 0:
        errors.append('total_in_store cannot be negative')
    elif not quantity.is_integer():
        errors.append('total_in_store must be a whole number')
    if row['company'] not in companies:
        errors.append(f'company must be one of: {", ".join(companies)}')

    if errors:
        return ImportRowResult(ok=False, errors=errors)

    row['total_in_store'] = int(quantity)
    return ImportRowResult(ok=True, row=row)


def parse_product_rows(raw_rows: List[Dict[str, Any]], companies: Iterable[str],
                       header_offset: int = 2) -> List[Dict[str, Any]]:
    """
    Validate every row or none.

    Raises:
        ImportParseError: for the first invalid row, numbered as in the
            spreadsheet (index + header_offset)
    """
    companies = tuple(companies)
    if not raw_rows:
        raise ImportParseError('The spreadsheet has no data rows.')

    parsed = []
    for index, raw in enumerate(raw_rows):
        result = coerce_product_row(raw, companies)
        if not result.ok:
            row_number = index + header_offset
            logger.info(f"Import rejected at row {row_number}: {result.errors}")
            raise ImportParseError(
                f'Invalid data in Excel row {row_number}: {"; ".join(result.errors)}',
                row=row_number
            )
        parsed.append(result.row)
    return parsed


def parse_product_workbook(stream, companies: Iterable[str], header_offset: int = 2,
                           extension: str = 'xlsx') -> List[Dict[str, Any]]:
    """Read and validate an uploaded workbook; the extension picks the reader."""
    reader = READERS.get(extension.lower())
    if reader is None:
        raise ValidationError('Only .xlsx and .xls files are accepted.', field='file')
    return parse_product_rows(reader(stream), companies, header_offset)


# Held rows ------------------------------------------------------------------

def get_held_import(session, username: str) -> Optional[ImportDraft]:
    return session.query(ImportDraft).filter_by(username=username).first()


def hold_import(session, username: str, rows: List[Dict[str, Any]], filename: str = None) -> ImportDraft:
    """Keep validated rows until the user confirms. Replaces any earlier draft."""
    try:
        session.query(ImportDraft).filter_by(username=username).delete()
        draft = ImportDraft(username=username, rows=rows, filename=filename)
        session.add(draft)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Error holding import for {username!r}: {e}", exc_info=True)
        raise store_error_from(e)
    return draft


def discard_import(session, username: str) -> None:
    try:
        session.query(ImportDraft).filter_by(username=username).delete()
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        raise store_error_from(e)


def commit_import(session, username: str) -> int:
    """
    Insert all held rows in one transaction.

    All-or-nothing: on failure nothing is inserted, the held rows are dropped
    and the user has to upload again.

    Returns:
        int: number of products inserted
    """
    draft = get_held_import(session, username)
    if draft is None or not draft.rows:
        raise ValidationError('No rows loaded. Upload a spreadsheet first.', field='file')

    rows = list(draft.rows)
    try:
        session.add_all([Product(**row) for row in rows])
        session.delete(draft)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        message = str(store_error_from(e))
        logger.error(f"Bulk import by {username!r} failed: {message}")
        discard_import(session, username)
        raise StoreError(f'Upload failed: {message}')

    logger.info(f"Bulk import by {username!r}: {len(rows)} product(s) added")
    return len(rows)

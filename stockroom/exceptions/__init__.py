"""Custom exceptions for the Stockroom application."""


class StockroomError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv


class ValidationError(StockroomError):
    """Raised when form input fails validation; nothing reaches the store."""
    def __init__(self, message, field=None, status_code=400):
        super().__init__(message, status_code, {'field': field} if field else None)
        self.field = field


class InsufficientStockError(ValidationError):
    """Raised when an outgoing transaction asks for more than is in store."""
    def __init__(self, available, requested):
        message = f"Only {available} in stock; cannot sell {requested}."
        super().__init__(message, field='quantity')
        self.available = available
        self.requested = requested


class ImportParseError(ValidationError):
    """Raised when an uploaded spreadsheet cannot be turned into product rows."""
    def __init__(self, message, row=None):
        super().__init__(message, field='file')
        self.row = row
        if row is not None:
            self.payload = {'field': 'file', 'row': row}


class AuthenticationError(StockroomError):
    """Raised for any failed login; never says which half was wrong."""
    def __init__(self, message="Wrong username or password"):
        super().__init__(message, 401)


class NotFoundError(StockroomError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class StoreError(StockroomError):
    """Raised when the data store reports a failure. Message is the store's own."""
    def __init__(self, message, status_code=502, payload=None):
        super().__init__(message, status_code, payload)


class StaleStockError(StoreError):
    """Raised when stock changed between being shown and being written."""
    def __init__(self, product_name):
        super().__init__(
            f'Stock for "{product_name}" changed while you were editing. Reload and try again.',
            status_code=409
        )


class PartialCommitError(StoreError):
    """Sale row was written but the stock update was not."""
    def __init__(self, message, sale_id, product_id):
        super().__init__(message, payload={'sale_id': sale_id, 'product_id': product_id})
        self.sale_id = sale_id
        self.product_id = product_id


def store_error_from(exc):
    """Wrap a SQLAlchemy error, keeping the driver's message verbatim."""
    orig = getattr(exc, 'orig', None)
    return StoreError(str(orig) if orig is not None else str(exc))

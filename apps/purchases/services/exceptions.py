"""
Domain-specific exceptions for the café purchase engine.

Expected business outcomes (limit reached, overdraft, sugar policy) are
returned as structured results. These exceptions cover failures the
engine cannot turn into a decision, and are caught in views and
converted to appropriate HTTP responses.
"""


class CafeServiceError(Exception):
    """Base exception for all café service errors."""
    pass


class DataSourceError(CafeServiceError):
    """Raised when the data source cannot answer a read or write."""
    pass


class SaleCommitError(DataSourceError):
    """Raised when the ledger rejects a sale commit or undo."""
    pass


class CustomerNotFoundError(CafeServiceError):
    """Raised when a customer does not exist or belongs to another institution."""
    pass


class InvalidAmountError(CafeServiceError):
    """Raised when a deposit or balance amount is not a usable number."""
    pass

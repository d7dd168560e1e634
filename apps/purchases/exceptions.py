"""
API exceptions for the purchases app.

Service-layer errors live in services/exceptions.py; views translate
them into these APIException subclasses.
"""
from rest_framework.exceptions import APIException


class CustomerNotInInstitutionError(APIException):
    """Customer missing or outside the operator's institution."""
    status_code = 404
    default_detail = 'Customer not found.'
    default_code = 'customer_not_found'


class ProductNotInInstitutionError(APIException):
    """Product missing or outside the operator's institution."""
    status_code = 404
    default_detail = 'Product not found.'
    default_code = 'product_not_found'


class InvalidAmountAPIError(APIException):
    status_code = 400
    default_detail = 'Invalid amount.'
    default_code = 'invalid_amount'


class LedgerUnavailableError(APIException):
    """The data source failed; the message is passed through verbatim."""
    status_code = 502
    default_detail = 'The café ledger is unavailable.'
    default_code = 'ledger_unavailable'

"""
Domain errors shared by the catalog, checkout and assistant layers.

Each error carries the HTTP status and error code the API answers with, so
views can turn any of them into a response with ``error_response``.
"""
from rest_framework import status


class POSError(Exception):
    """Base class for every domain error raised by this project"""
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = 'error'
    default_message = 'Request could not be completed'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(POSError):
    """Bad input shape or size, rejected before any store call"""
    error_code = 'validation_error'
    default_message = 'Invalid request data'


class AuthenticationError(POSError):
    """Missing or invalid caller identity"""
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = 'authentication_error'
    default_message = 'Authentication required'


class NotFoundError(POSError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = 'not_found'
    default_message = 'Product not found'

    def __init__(self, message=None, product_id=None):
        self.product_id = product_id
        super().__init__(message)


class InsufficientStockError(POSError):
    """Advisory, client-side stock check failed while editing a bill"""
    status_code = status.HTTP_409_CONFLICT
    error_code = 'insufficient_stock'

    def __init__(self, product_id, requested, available, name=None, unit=None):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        label = name or f'Product {product_id}'
        super().__init__(f'Only {available} {unit or "units"} of {label} available in stock')


class OutOfStockAtSettlementError(POSError):
    """Conditional decrement rejected because stock changed since the bill was built"""
    status_code = status.HTTP_409_CONFLICT
    error_code = 'out_of_stock'

    def __init__(self, product_id, requested, available=None):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f'Product {product_id} has {available if available is not None else "too few"} '
            f'units left, cannot remove {requested}'
        )


class PaymentMethodUnavailableError(POSError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = 'payment_method_unavailable'
    default_message = 'UPI payments need a UPI ID in shop settings'


class StoreUnavailableError(POSError):
    """Transport or database failure against the catalog or ledger tables"""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = 'store_unavailable'
    default_message = 'Storage is temporarily unavailable'


class SettlementFailedError(POSError):
    """The sale could not be recorded; nothing was changed"""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = 'settlement_failed'
    default_message = 'Payment could not be recorded, nothing changed.'


class PartialStockSyncWarning(POSError):
    """
    Attached to a successful settlement when at least one stock row was not
    decremented. Returned as a value, never raised.
    """
    status_code = status.HTTP_201_CREATED
    error_code = 'partial_stock_sync'

    def __init__(self, failures):
        self.failures = list(failures)
        names = ', '.join(f.name for f in self.failures)
        super().__init__(f'Payment recorded, but stock may be out of date for: {names}')


class ConfigurationError(POSError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code = 'configuration_error'
    default_message = 'Service configuration error'


class UpstreamError(POSError):
    """The LLM gateway answered with an error or could not be reached"""
    status_code = status.HTTP_502_BAD_GATEWAY
    error_code = 'upstream_error'
    default_message = 'AI service request failed'


class UpstreamRateLimitError(UpstreamError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    error_code = 'rate_limited'
    default_message = 'Rate limit exceeded. Please try again later.'


class UpstreamPaymentRequiredError(UpstreamError):
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    error_code = 'payment_required'
    default_message = 'Payment required. Please add credits to your workspace.'


class UpstreamParseError(UpstreamError):
    """The model's answer did not contain the data we asked for"""
    error_code = 'upstream_parse_error'
    default_message = 'Could not understand the AI response'

"""
Error taxonomy and common error messages.

Every failure in the checkout/payment pipeline is classified into one of the
exception types below. Routers translate them into HTTP responses; the
Billing Backend client carries them inside its result envelope instead of
raising.
"""

# Checkout errors
ERROR_CUSTOMER_RESOLUTION = "Customer could not be resolved"
ERROR_NO_ORDERS_CREATED = "No orders were created successfully"
ERROR_UNKNOWN_PRODUCT = "Unknown product"

# Payment errors
ERROR_METHOD_DISABLED = "Payment method is not enabled"
ERROR_METHOD_UNSUPPORTED = "Unsupported payment method"
ERROR_INVALID_AMOUNT = "Amount must be a positive number"
ERROR_PAYMENT_NOT_FOUND = "Payment not found"
ERROR_IDENTIFIER_REQUIRED = "At least one identifier required: paymentId, invoiceId or orderId"

# Billing backend errors
ERROR_BILLING_UNAVAILABLE = "Billing backend unavailable"
ERROR_BILLING_MALFORMED = "Billing backend returned a malformed response"
ERROR_BILLING_REJECTED = "Billing backend rejected the request"

# Generic errors
ERROR_INVALID_REQUEST = "Invalid request"
ERROR_INTERNAL = "Internal server error"


class StorefrontError(Exception):
    """Base class for classified pipeline errors."""

    status_code = 500
    code = "internal_error"
    retryable = False

    def __init__(self, message: str = ERROR_INTERNAL, *, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {
            "success": False,
            "error": self.message,
            "code": self.code,
            "retryable": self.retryable,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(StorefrontError):
    """Caller-supplied data was rejected. Never retried automatically."""

    status_code = 422
    code = "validation_error"


class UnknownProductError(ValidationError):
    """Internal product id has no Billing Backend counterpart."""

    code = "unknown_product"


class RemoteRejection(StorefrontError):
    """The Billing Backend explicitly refused the operation.

    Needs a different follow-up call, not a blind retry.
    """

    status_code = 502
    code = "remote_rejection"


class TransientError(StorefrontError):
    """Network failure, timeout or malformed response. Safe to retry later."""

    status_code = 503
    code = "transient_error"
    retryable = True


class NotFound(StorefrontError):
    """Identifier does not resolve."""

    status_code = 404
    code = "not_found"


class ConfigurationError(StorefrontError):
    """Missing credentials or mapping data."""

    status_code = 500
    code = "configuration_error"

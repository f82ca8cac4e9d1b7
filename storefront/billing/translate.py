"""
Translation of Billing Backend rejection messages.

The backend reports duplicates only as free text, so every message heuristic
lives here and nowhere else.
"""
from storefront.errors import ERROR_BILLING_REJECTED, RemoteRejection, StorefrontError

DUPLICATE_CUSTOMER_MARKERS = (
    "already exists",
    "already registered",
    "already in use",
    "email address you entered is already",
    "duplicate email",
)


def is_duplicate_customer(error: StorefrontError | None) -> bool:
    """True when a rejection means "a customer with this email exists"."""
    if not isinstance(error, RemoteRejection):
        return False
    message = (error.message or "").lower()
    return any(marker in message for marker in DUPLICATE_CUSTOMER_MARKERS)


def remote_error_message(body: dict) -> str:
    """Extract the human-readable error from a `success: false` body."""
    error = body.get("error") or body.get("message") or body.get("errors")
    if isinstance(error, (list, tuple)):
        return "; ".join(str(e) for e in error if e) or ERROR_BILLING_REJECTED
    if isinstance(error, dict):
        return "; ".join(f"{k}: {v}" for k, v in error.items()) or ERROR_BILLING_REJECTED
    return str(error) if error else ERROR_BILLING_REJECTED

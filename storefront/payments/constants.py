"""Payment constants, enums, and aliases."""
from enum import Enum
from typing import Set


class PaymentMethod(str, Enum):
    """Payment methods offered at checkout."""
    CARD = "card"
    PAYPAL = "paypal"
    BANKTRANSFER = "banktransfer"
    CRYPTO = "crypto"
    PAYU = "payu"


class PaymentType(str, Enum):
    """How the customer completes a payment."""
    REDIRECT = "redirect"
    MANUAL = "manual"


class PaymentStatus(str, Enum):
    """
    PaymentIntent lifecycle.

    Flow:
        initialized -> pendingRedirect            -> pendingConfirmation -> succeeded
                    -> awaitingManualInstructions                        -> failed
                                                                         -> cancelled

    - initialized: Intent recorded, gateway not yet prepared
    - pendingRedirect: Customer must be sent to the hosted checkout
    - awaitingManualInstructions: Bank transfer instructions issued
    - pendingConfirmation: Gateway reports the payment is in progress
    - succeeded / failed / cancelled: Final
    """
    INITIALIZED = "initialized"
    PENDING_REDIRECT = "pendingRedirect"
    AWAITING_MANUAL_INSTRUCTIONS = "awaitingManualInstructions"
    PENDING_CONFIRMATION = "pendingConfirmation"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Gateway(str, Enum):
    """Origin of an inbound payment signal."""
    STRIPE = "stripe"
    PAYPAL = "paypal"
    BILLING = "billing"
    GENERIC = "generic"


class EventChannel(str, Enum):
    """Channel a payment signal arrived through."""
    WEBHOOK = "webhook"
    RETURN = "return"
    POLL = "poll"


class EventOutcome(str, Enum):
    """Canonical meaning of a gateway event."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    PENDING = "pending"
    IGNORED = "ignored"


# Method name aliases (input -> canonical)
METHOD_ALIASES: dict[str, str] = {
    "card": PaymentMethod.CARD.value,
    "credit_card": PaymentMethod.CARD.value,
    "creditcard": PaymentMethod.CARD.value,
    "paypal": PaymentMethod.PAYPAL.value,
    "pay_pal": PaymentMethod.PAYPAL.value,
    "banktransfer": PaymentMethod.BANKTRANSFER.value,
    "bank_transfer": PaymentMethod.BANKTRANSFER.value,
    "bank-transfer": PaymentMethod.BANKTRANSFER.value,
    "bank": PaymentMethod.BANKTRANSFER.value,
    "crypto": PaymentMethod.CRYPTO.value,
    "cryptocurrency": PaymentMethod.CRYPTO.value,
    "bitcoin": PaymentMethod.CRYPTO.value,
    "payu": PaymentMethod.PAYU.value,
}

# Default Billing Backend gateway ids (overridable via PAYMENT_GATEWAY_<METHOD>)
DEFAULT_GATEWAY_IDS: dict[str, str] = {
    PaymentMethod.CARD.value: "1",
    PaymentMethod.PAYPAL.value: "2",
    PaymentMethod.BANKTRANSFER.value: "3",
    PaymentMethod.CRYPTO.value: "4",
    PaymentMethod.PAYU.value: "5",
}

METHOD_TYPES: dict[str, PaymentType] = {
    PaymentMethod.CARD.value: PaymentType.REDIRECT,
    PaymentMethod.PAYPAL.value: PaymentType.REDIRECT,
    PaymentMethod.BANKTRANSFER.value: PaymentType.MANUAL,
    PaymentMethod.CRYPTO.value: PaymentType.REDIRECT,
    PaymentMethod.PAYU.value: PaymentType.REDIRECT,
}

# Human-readable method names
METHOD_NAMES: dict[str, str] = {
    PaymentMethod.CARD.value: "Credit Card",
    PaymentMethod.PAYPAL.value: "PayPal",
    PaymentMethod.BANKTRANSFER.value: "Bank Transfer",
    PaymentMethod.CRYPTO.value: "Cryptocurrency",
    PaymentMethod.PAYU.value: "PayU",
}

# Installed Billing Backend module ids that do not match our gateway ids
MODULE_ID_METHODS: dict[str, str] = {
    "10": PaymentMethod.PAYU.value,
    "112": PaymentMethod.PAYPAL.value,
    "121": PaymentMethod.CARD.value,
}

# Module name fragments (lowercase) -> method
MODULE_NAME_HINTS: dict[str, str] = {
    "payu": PaymentMethod.PAYU.value,
    "paypal": PaymentMethod.PAYPAL.value,
    "stripe": PaymentMethod.CARD.value,
    "card": PaymentMethod.CARD.value,
    "bank": PaymentMethod.BANKTRANSFER.value,
    "wire": PaymentMethod.BANKTRANSFER.value,
    "coin": PaymentMethod.CRYPTO.value,
    "crypto": PaymentMethod.CRYPTO.value,
}

# Forward-only ordering; a transition must strictly increase the rank
STATUS_RANK: dict[str, int] = {
    PaymentStatus.INITIALIZED.value: 0,
    PaymentStatus.PENDING_REDIRECT.value: 1,
    PaymentStatus.AWAITING_MANUAL_INSTRUCTIONS.value: 1,
    PaymentStatus.PENDING_CONFIRMATION.value: 2,
    PaymentStatus.SUCCEEDED.value: 3,
    PaymentStatus.FAILED.value: 3,
    PaymentStatus.CANCELLED.value: 3,
}

# Final statuses (no further transitions)
TERMINAL_STATES: Set[str] = {
    PaymentStatus.SUCCEEDED.value,
    PaymentStatus.FAILED.value,
    PaymentStatus.CANCELLED.value,
}

# Raw status words used by generic callbacks and the browser return
STATUS_SYNONYMS: dict[str, EventOutcome] = {
    "succeeded": EventOutcome.SUCCEEDED,
    "success": EventOutcome.SUCCEEDED,
    "successful": EventOutcome.SUCCEEDED,
    "completed": EventOutcome.SUCCEEDED,
    "complete": EventOutcome.SUCCEEDED,
    "paid": EventOutcome.SUCCEEDED,
    "failed": EventOutcome.FAILED,
    "failure": EventOutcome.FAILED,
    "error": EventOutcome.FAILED,
    "declined": EventOutcome.FAILED,
    "cancelled": EventOutcome.CANCELLED,
    "canceled": EventOutcome.CANCELLED,
    "cancel": EventOutcome.CANCELLED,
    "pending": EventOutcome.PENDING,
    "processing": EventOutcome.PENDING,
}

OUTCOME_STATUS: dict[EventOutcome, PaymentStatus] = {
    EventOutcome.SUCCEEDED: PaymentStatus.SUCCEEDED,
    EventOutcome.FAILED: PaymentStatus.FAILED,
    EventOutcome.CANCELLED: PaymentStatus.CANCELLED,
    EventOutcome.PENDING: PaymentStatus.PENDING_CONFIRMATION,
}


def normalize_method(method: str | None) -> str:
    """
    Normalize method name to canonical form.

    Example:
        normalize_method("Bank_Transfer") -> "banktransfer"
        normalize_method("PayPal") -> "paypal"
    """
    if not method:
        return ""
    normalized = method.lower().strip()
    return METHOD_ALIASES.get(normalized, normalized)


def map_status_word(value: str | None) -> EventOutcome:
    """Map a free-form status word to an outcome; unknown words are ignored."""
    if not value:
        return EventOutcome.IGNORED
    return STATUS_SYNONYMS.get(str(value).strip().lower(), EventOutcome.IGNORED)

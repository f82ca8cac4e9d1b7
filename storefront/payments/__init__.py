"""Payment method selection, initialization and outcome reconciliation."""
from .config import MethodConfig, PaymentMethodRegistry
from .constants import (
    TERMINAL_STATES,
    EventChannel,
    EventOutcome,
    Gateway,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    normalize_method,
)
from .initializer import PaymentInitializer, variable_symbol
from .models import NormalizedPaymentEvent, PaymentInitRequest, PaymentInitResult, PaymentIntent
from .normalize import classify_gateway, normalize_event, verify_stripe_signature
from .reconciler import PaymentReconciler
from .store import PaymentIntentStore

__all__ = [
    "EventChannel",
    "EventOutcome",
    "Gateway",
    "MethodConfig",
    "NormalizedPaymentEvent",
    "PaymentInitRequest",
    "PaymentInitResult",
    "PaymentInitializer",
    "PaymentIntent",
    "PaymentIntentStore",
    "PaymentMethod",
    "PaymentMethodRegistry",
    "PaymentReconciler",
    "PaymentStatus",
    "PaymentType",
    "TERMINAL_STATES",
    "classify_gateway",
    "normalize_event",
    "normalize_method",
    "variable_symbol",
    "verify_stripe_signature",
]

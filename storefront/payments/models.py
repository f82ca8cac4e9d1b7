"""
Pydantic Models - Payment Data Schemas

- PaymentIntent: local record of one payment attempt
- NormalizedPaymentEvent: gateway signal after normalization
- PaymentInitRequest / PaymentInitResult: initialization API
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from storefront.money import to_float

from .constants import (
    STATUS_RANK,
    TERMINAL_STATES,
    EventChannel,
    EventOutcome,
    Gateway,
    PaymentStatus,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentIntent(BaseModel):
    """
    One payment attempt. Instances are immutable; the store swaps in
    a new copy (with version + 1) on every accepted change.
    """
    model_config = ConfigDict(frozen=True)

    payment_id: str
    order_id: str
    invoice_id: str
    method: str
    amount: Decimal
    currency: str
    status: PaymentStatus = PaymentStatus.INITIALIZED
    gateway_metadata: dict[str, Any] = Field(default_factory=dict)
    transaction_id: Optional[str] = None
    processed_events: frozenset[str] = frozenset()
    last_error: Optional[str] = None
    version: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status.value in TERMINAL_STATES

    def can_transition_to(self, target: PaymentStatus) -> bool:
        if self.is_terminal:
            return False
        return STATUS_RANK[target.value] > STATUS_RANK[self.status.value]

    def to_status_payload(self) -> dict:
        return {
            "success": True,
            "paymentId": self.payment_id,
            "orderId": self.order_id,
            "invoiceId": self.invoice_id,
            "method": self.method,
            "status": self.status.value,
            "terminal": self.is_terminal,
            "amount": to_float(self.amount),
            "currency": self.currency,
            "transactionId": self.transaction_id,
            "lastError": self.last_error,
            "updatedAt": self.updated_at.isoformat(),
        }


class NormalizedPaymentEvent(BaseModel):
    """Gateway-independent view of one inbound payment signal."""
    model_config = ConfigDict(frozen=True)

    gateway: Gateway
    channel: EventChannel = EventChannel.WEBHOOK
    outcome: EventOutcome
    event_id: Optional[str] = None
    payment_id: Optional[str] = None
    invoice_id: Optional[str] = None
    order_id: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    transaction_id: Optional[str] = None
    raw_status: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)

    @property
    def has_identifier(self) -> bool:
        return bool(self.payment_id or self.invoice_id or self.order_id)

    def dedupe_key(self, payment_id: str) -> str:
        """(gateway, paymentId, eventId) tuple; falls back to outcome + transaction."""
        event_id = self.event_id or f"{self.outcome.value}:{self.transaction_id or ''}"
        return f"{self.gateway.value}|{payment_id}|{event_id}"


class PaymentInitRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    order_id: str = Field(default="", validation_alias=AliasChoices("orderId", "order_id"))
    invoice_id: str = Field(default="", validation_alias=AliasChoices("invoiceId", "invoice_id"))
    method: str = Field(default="", validation_alias=AliasChoices("method", "paymentMethod"))
    # Parsed by the initializer so bad values classify as ValidationError
    amount: Any = None
    currency: Optional[str] = None
    customer_data: Optional[dict[str, Any]] = Field(
        default=None, validation_alias=AliasChoices("customerData", "customer_data")
    )
    return_url: Optional[str] = Field(default=None, validation_alias=AliasChoices("returnUrl", "return_url"))
    cancel_url: Optional[str] = Field(default=None, validation_alias=AliasChoices("cancelUrl", "cancel_url"))


class PaymentInitResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    payment_id: str
    order_id: str
    invoice_id: str
    method: str
    status: PaymentStatus
    amount: Decimal
    currency: str
    redirect_required: bool
    payment_url: Optional[str] = None
    instructions: Optional[dict[str, Any]] = None
    test_mode: bool = False

    def to_response(self) -> dict:
        payload = {
            "success": True,
            "paymentId": self.payment_id,
            "orderId": self.order_id,
            "invoiceId": self.invoice_id,
            "method": self.method,
            "status": self.status.value,
            "amount": to_float(self.amount),
            "currency": self.currency,
            "redirectRequired": self.redirect_required,
        }
        if self.payment_url:
            payload["paymentUrl"] = self.payment_url
        if self.instructions is not None:
            payload["instructions"] = self.instructions
        if self.test_mode:
            payload["testMode"] = True
        return payload

"""
Gateway classification and payload normalization.

Every inbound signal is first attributed to a gateway by its headers or
body shape, then mapped onto the canonical outcome vocabulary.
"""
import hashlib
import hmac
import time
from collections.abc import Mapping
from typing import Any, Optional

from storefront.logging import get_logger
from storefront.money import from_minor_units, parse_amount

from .constants import EventChannel, EventOutcome, Gateway, map_status_word
from .models import NormalizedPaymentEvent

logger = get_logger(__name__)

STRIPE_EVENTS: dict[str, EventOutcome] = {
    "payment_intent.succeeded": EventOutcome.SUCCEEDED,
    "payment_intent.payment_failed": EventOutcome.FAILED,
    "payment_intent.canceled": EventOutcome.CANCELLED,
    "payment_intent.processing": EventOutcome.PENDING,
}

PAYPAL_EVENTS: dict[str, EventOutcome] = {
    "PAYMENT.CAPTURE.COMPLETED": EventOutcome.SUCCEEDED,
    "PAYMENT.CAPTURE.DENIED": EventOutcome.FAILED,
    "PAYMENT.CAPTURE.DECLINED": EventOutcome.FAILED,
    "PAYMENT.CAPTURE.PENDING": EventOutcome.PENDING,
    "CHECKOUT.ORDER.VOIDED": EventOutcome.CANCELLED,
}

STRIPE_SIGNATURE_TOLERANCE = 300


def _lower_headers(headers: Mapping[str, str] | None) -> dict[str, str]:
    return {str(k).lower(): str(v) for k, v in (headers or {}).items()}


def _first(body: Mapping[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = body.get(key)
        if value not in (None, ""):
            return str(value)
    return None


def classify_gateway(headers: Mapping[str, str] | None, body: Mapping[str, Any]) -> Gateway:
    h = _lower_headers(headers)
    if "stripe-signature" in h or (body.get("type") and body.get("object") == "event"):
        return Gateway.STRIPE
    if "paypal-transmission-id" in h or (body.get("event_type") and isinstance(body.get("resource"), dict)):
        return Gateway.PAYPAL
    if "hostbill" in h.get("user-agent", "").lower() or "hostbill_notification" in body:
        return Gateway.BILLING
    return Gateway.GENERIC


def _normalize_stripe(body: Mapping[str, Any]) -> NormalizedPaymentEvent:
    event_type = str(body.get("type", ""))
    obj = (body.get("data") or {}).get("object") or {}
    metadata = obj.get("metadata") or {}

    minor = obj.get("amount_received") or obj.get("amount")
    return NormalizedPaymentEvent(
        gateway=Gateway.STRIPE,
        outcome=STRIPE_EVENTS.get(event_type, EventOutcome.IGNORED),
        event_id=_first(body, "id"),
        payment_id=_first(metadata, "paymentId", "payment_id"),
        invoice_id=_first(metadata, "invoiceId", "invoice_id"),
        order_id=_first(metadata, "orderId", "order_id"),
        amount=from_minor_units(minor) if minor is not None else None,
        currency=str(obj["currency"]).upper() if obj.get("currency") else None,
        transaction_id=_first(obj, "id"),
        raw_status=event_type,
    )


def _normalize_paypal(body: Mapping[str, Any]) -> NormalizedPaymentEvent:
    event_type = str(body.get("event_type", ""))
    resource = body.get("resource") or {}
    amount = resource.get("amount") or {}
    return NormalizedPaymentEvent(
        gateway=Gateway.PAYPAL,
        outcome=PAYPAL_EVENTS.get(event_type.upper(), EventOutcome.IGNORED),
        event_id=_first(body, "id"),
        payment_id=_first(resource, "custom_id"),
        invoice_id=_first(resource, "invoice_id"),
        amount=parse_amount(amount.get("value")),
        currency=amount.get("currency_code"),
        transaction_id=_first(resource, "id"),
        raw_status=event_type,
    )


def _normalize_billing(body: Mapping[str, Any]) -> NormalizedPaymentEvent:
    status = _first(body, "status")
    transaction_id = _first(body, "transaction_id", "transnumber")
    return NormalizedPaymentEvent(
        gateway=Gateway.BILLING,
        outcome=map_status_word(status),
        event_id=_first(body, "notification_id", "event_id"),
        payment_id=_first(body, "payment_id"),
        invoice_id=_first(body, "invoice_id"),
        order_id=_first(body, "order_id"),
        amount=parse_amount(body.get("amount")),
        currency=_first(body, "currency"),
        transaction_id=transaction_id,
        raw_status=status,
    )


def _normalize_generic(body: Mapping[str, Any], channel: EventChannel) -> NormalizedPaymentEvent:
    status = _first(body, "status", "paymentStatus", "payment_status")
    return NormalizedPaymentEvent(
        gateway=Gateway.GENERIC,
        channel=channel,
        outcome=map_status_word(status),
        event_id=_first(body, "eventId", "event_id"),
        payment_id=_first(body, "paymentId", "payment_id"),
        invoice_id=_first(body, "invoiceId", "invoice_id"),
        order_id=_first(body, "orderId", "order_id"),
        amount=parse_amount(body.get("amount")),
        currency=_first(body, "currency"),
        transaction_id=_first(body, "transactionId", "transaction_id"),
        raw_status=status,
    )


def normalize_event(
    gateway: Gateway,
    body: Mapping[str, Any],
    channel: EventChannel = EventChannel.WEBHOOK,
) -> NormalizedPaymentEvent:
    if gateway == Gateway.STRIPE:
        return _normalize_stripe(body)
    if gateway == Gateway.PAYPAL:
        return _normalize_paypal(body)
    if gateway == Gateway.BILLING:
        return _normalize_billing(body)
    return _normalize_generic(body, channel)


def verify_stripe_signature(
    payload: bytes,
    header: str | None,
    secret: str,
    tolerance: int = STRIPE_SIGNATURE_TOLERANCE,
    now: float | None = None,
) -> bool:
    """
    Check a `t=<ts>,v1=<hex>` header: HMAC-SHA256 over "<ts>.<payload>".
    """
    if not header or not secret:
        return False

    timestamp = None
    signatures = []
    for part in header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            timestamp = value
        elif key == "v1":
            signatures.append(value)
    if not timestamp or not signatures:
        return False

    try:
        age = abs((now if now is not None else time.time()) - int(timestamp))
    except ValueError:
        return False
    if age > tolerance:
        logger.warning("Stripe signature timestamp outside tolerance (%ds)", int(age))
        return False

    signed = timestamp.encode("utf-8") + b"." + payload
    expected = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return any(hmac.compare_digest(expected, candidate) for candidate in signatures)

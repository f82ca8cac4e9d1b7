"""
Payment Outcome Reconciler

Folds browser returns, gateway webhooks and explicit polling into one
PaymentIntent status. Events are applied at most once per
(gateway, paymentId, eventId); terminal intents acknowledge and ignore
anything that arrives later.
"""
import json
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import parse_qsl

from storefront.billing.base import BillingBackend
from storefront.config import Settings
from storefront.errors import (
    ERROR_IDENTIFIER_REQUIRED,
    ERROR_PAYMENT_NOT_FOUND,
    NotFound,
    StorefrontError,
    TransientError,
    ValidationError,
)
from storefront.logging import get_logger, sanitize_id_for_logging, sanitize_string_for_logging

from .config import PaymentMethodRegistry
from .constants import (
    OUTCOME_STATUS,
    EventChannel,
    EventOutcome,
    Gateway,
    PaymentStatus,
    map_status_word,
)
from .models import NormalizedPaymentEvent, PaymentIntent, utcnow
from .normalize import classify_gateway, normalize_event, verify_stripe_signature
from .store import PaymentIntentStore

logger = get_logger(__name__)

FAILURE_LOG_SIZE = 100

# Billing Backend invoice statuses -> outcome (Unpaid carries no news)
INVOICE_OUTCOMES: dict[str, EventOutcome] = {
    "paid": EventOutcome.SUCCEEDED,
    "cancelled": EventOutcome.CANCELLED,
    "canceled": EventOutcome.CANCELLED,
}


@dataclass(frozen=True)
class ApplyResult:
    intent: PaymentIntent
    changed: bool
    duplicate: bool = False
    previous_status: Optional[PaymentStatus] = None


def parse_webhook_body(raw: bytes, content_type: str | None = None) -> dict[str, Any]:
    """JSON object, or form fields for gateways that post urlencoded bodies."""
    if not raw:
        return {}
    text = raw.decode("utf-8", errors="replace")
    if content_type and "application/x-www-form-urlencoded" in content_type:
        return dict(parse_qsl(text, keep_blank_values=True))
    try:
        body = json.loads(text)
    except json.JSONDecodeError:
        return dict(parse_qsl(text, keep_blank_values=True))
    return body if isinstance(body, dict) else {}


class PaymentReconciler:
    def __init__(
        self,
        settings: Settings,
        store: PaymentIntentStore,
        backend: BillingBackend,
        registry: PaymentMethodRegistry,
    ):
        self.settings = settings
        self.store = store
        self.backend = backend
        self.registry = registry
        self._failures: deque[dict] = deque(maxlen=FAILURE_LOG_SIZE)

    # ==================== LOOKUP ====================

    async def _resolve(
        self,
        payment_id: Optional[str] = None,
        invoice_id: Optional[str] = None,
        order_id: Optional[str] = None,
    ) -> PaymentIntent:
        """
        Raises:
            ValidationError: if no identifier was supplied
            NotFound: if none of the identifiers resolve
            TransientError: if the store lookup itself fails
        """
        if not (payment_id or invoice_id or order_id):
            raise ValidationError(ERROR_IDENTIFIER_REQUIRED)
        try:
            intent = await self.store.find(payment_id=payment_id, invoice_id=invoice_id, order_id=order_id)
        except StorefrontError:
            raise
        except Exception as e:
            logger.error("Payment store lookup failed: %s", type(e).__name__, exc_info=True)
            raise TransientError("Payment status lookup failed") from e
        if intent is None:
            raise NotFound(
                ERROR_PAYMENT_NOT_FOUND,
                details={"paymentId": payment_id, "invoiceId": invoice_id, "orderId": order_id},
            )
        return intent

    async def get_status(
        self,
        payment_id: Optional[str] = None,
        invoice_id: Optional[str] = None,
        order_id: Optional[str] = None,
    ) -> dict:
        intent = await self._resolve(payment_id, invoice_id, order_id)
        return intent.to_status_payload()

    # ==================== STATE MACHINE ====================

    async def apply(self, event: NormalizedPaymentEvent) -> ApplyResult:
        """
        Fold one normalized event into its intent.

        Raises:
            ValidationError / NotFound: if the event does not identify an intent
        """
        intent = await self._resolve(event.payment_id, event.invoice_id, event.order_id)
        key = event.dedupe_key(intent.payment_id)
        flags = {"duplicate": False}

        def mutate(current: PaymentIntent) -> Optional[PaymentIntent]:
            if key in current.processed_events:
                flags["duplicate"] = True
                return None
            if current.is_terminal:
                return None

            update: dict[str, Any] = {"processed_events": current.processed_events | {key}}
            target = OUTCOME_STATUS.get(event.outcome)
            if target is not None and current.can_transition_to(target):
                update["status"] = target
                update["last_error"] = None
                if event.transaction_id:
                    update["transaction_id"] = event.transaction_id
                if event.amount is not None:
                    update["amount"] = event.amount
                if event.currency:
                    update["currency"] = event.currency.upper()
                update["gateway_metadata"] = {
                    **current.gateway_metadata,
                    "lastGateway": event.gateway.value,
                    "lastChannel": event.channel.value,
                    "lastRawStatus": event.raw_status,
                }
            return current.model_copy(update=update)

        before, after = await self.store.update(intent.payment_id, mutate)
        changed = after.status != before.status
        if changed:
            logger.info(
                "Payment %s: %s -> %s via %s/%s",
                sanitize_id_for_logging(after.payment_id),
                before.status.value,
                after.status.value,
                event.gateway.value,
                event.channel.value,
            )
        elif flags["duplicate"]:
            logger.info("Duplicate %s event for payment %s ignored", event.gateway.value,
                        sanitize_id_for_logging(after.payment_id))
        return ApplyResult(after, changed, flags["duplicate"], before.status)

    # ==================== CHANNELS ====================

    async def handle_webhook(
        self,
        headers: Mapping[str, str],
        raw_body: bytes,
        content_type: str | None = None,
    ) -> dict:
        """
        Process a gateway callback. Always returns an acknowledgement;
        internal failures only reach the failure log and the intent's lastError.
        """
        gateway = Gateway.GENERIC
        event: Optional[NormalizedPaymentEvent] = None
        try:
            body = parse_webhook_body(raw_body, content_type)
            gateway = classify_gateway(headers, body)

            if gateway == Gateway.STRIPE and self.settings.stripe_webhook_secret:
                signature = {k.lower(): v for k, v in headers.items()}.get("stripe-signature")
                if not verify_stripe_signature(raw_body, signature, self.settings.stripe_webhook_secret):
                    self._record_failure(gateway, None, "Invalid signature")
                    return {"success": True, "message": "Webhook received"}

            event = normalize_event(gateway, body)
            if event.outcome == EventOutcome.IGNORED and not event.has_identifier:
                return {"success": True, "message": f"Event ignored ({sanitize_string_for_logging(event.raw_status or 'unknown', 40)})"}

            result = await self.apply(event)
            if result.changed and result.intent.status == PaymentStatus.SUCCEEDED:
                await self._record_invoice_payment(result.intent)

            if result.duplicate:
                message = "Event already processed"
            elif result.changed:
                message = f"Payment status updated to {result.intent.status.value}"
            else:
                message = f"Payment status unchanged ({result.intent.status.value})"
            return {"success": True, "message": message}

        except StorefrontError as e:
            await self._fail(gateway, event, e.message)
        except Exception as e:
            logger.exception("Unexpected webhook processing error")
            await self._fail(gateway, event, f"Internal error: {type(e).__name__}")
        return {"success": True, "message": "Webhook received"}

    async def handle_return(self, params: Mapping[str, Any]) -> dict:
        """
        Browser return from the hosted checkout.

        The redirect is user-controlled, so a "success" return only moves the
        intent to pendingConfirmation; the invoice is then polled to confirm.
        """
        outcome = map_status_word(params.get("status") or "success")
        if outcome == EventOutcome.SUCCEEDED:
            outcome = EventOutcome.PENDING

        event = normalize_event(Gateway.GENERIC, params, channel=EventChannel.RETURN)
        event = event.model_copy(update={"outcome": outcome, "event_id": f"return:{outcome.value}"})
        result = await self.apply(event)

        if outcome == EventOutcome.PENDING and not result.intent.is_terminal:
            try:
                return await self.verify(payment_id=result.intent.payment_id)
            except StorefrontError as e:
                # Confirmation will still arrive by webhook
                logger.warning("Return-time verification failed: %s", e.message)
        return result.intent.to_status_payload()

    async def verify(
        self,
        payment_id: Optional[str] = None,
        invoice_id: Optional[str] = None,
        order_id: Optional[str] = None,
    ) -> dict:
        """
        Poll the Billing Backend for the invoice and fold its status in.

        Raises:
            TransientError / RemoteRejection: if the invoice lookup fails
        """
        intent = await self._resolve(payment_id, invoice_id, order_id)
        if intent.is_terminal:
            return intent.to_status_payload()

        result = await self.backend.get_invoice(intent.invoice_id)
        if not result.success:
            raise result.error

        invoice_status = str(result.data.get("status", "")).strip().lower()
        outcome = INVOICE_OUTCOMES.get(invoice_status, EventOutcome.IGNORED)
        event = NormalizedPaymentEvent(
            gateway=Gateway.BILLING,
            channel=EventChannel.POLL,
            outcome=outcome,
            event_id=f"invoice:{invoice_status}",
            payment_id=intent.payment_id,
            raw_status=invoice_status,
        )
        applied = await self.apply(event)
        payload = applied.intent.to_status_payload()
        payload["invoiceStatus"] = result.data.get("status")
        return payload

    # ==================== SIDE CHANNELS ====================

    async def _record_invoice_payment(self, intent: PaymentIntent) -> None:
        if not self.settings.record_invoice_payments:
            return
        try:
            gateway_id = self.registry.get(intent.method).gateway_id
        except StorefrontError:
            gateway_id = intent.gateway_metadata.get("gatewayId")
        result = await self.backend.add_invoice_payment(
            intent.invoice_id, intent.amount, gateway_id, intent.transaction_id
        )
        if not result.success:
            logger.error(
                "Recording payment on invoice %s failed: %s",
                sanitize_id_for_logging(intent.invoice_id),
                result.error_message,
            )

    async def _fail(self, gateway: Gateway, event: Optional[NormalizedPaymentEvent], message: str) -> None:
        payment_id = event.payment_id if event else None
        self._record_failure(gateway, payment_id, message)
        if event is None or not event.has_identifier:
            return
        try:
            intent = await self.store.find(event.payment_id, event.invoice_id, event.order_id)
            if intent is not None:
                await self.store.update(
                    intent.payment_id,
                    lambda current: current.model_copy(update={"last_error": message}),
                )
        except Exception as e:
            logger.warning("Could not attach webhook error to intent: %s", type(e).__name__)

    def _record_failure(self, gateway: Gateway, payment_id: Optional[str], message: str) -> None:
        logger.warning(
            "Webhook processing failed (%s, payment=%s): %s",
            gateway.value,
            sanitize_id_for_logging(payment_id),
            message,
        )
        self._failures.append(
            {
                "at": utcnow().isoformat(),
                "gateway": gateway.value,
                "paymentId": payment_id,
                "error": message,
            }
        )

    def recent_failures(self) -> list[dict]:
        return list(self._failures)

"""
Payment Initializer

Validates a payment request against the enabled methods, records a
PaymentIntent and prepares the gateway side: a hosted-checkout redirect
URL, or bank-transfer instructions. Makes no network calls.
"""
import uuid
import zlib
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from urllib.parse import urlencode

from storefront.config import Settings
from storefront.errors import (
    ERROR_INVALID_AMOUNT,
    TransientError,
    ValidationError,
)
from storefront.logging import get_logger, sanitize_id_for_logging
from storefront.money import format_amount, parse_amount, round_money, to_float

from .config import MethodConfig, PaymentMethodRegistry
from .constants import PaymentStatus
from .models import PaymentInitRequest, PaymentInitResult, PaymentIntent, utcnow
from .store import PaymentIntentStore

logger = get_logger(__name__)

# Upper bound for a single payment, after rounding
MAX_PAYMENT_AMOUNT = Decimal("1000000.00")


def variable_symbol(order_id: str) -> str:
    """
    Bank reference derived only from the order id (max 10 digits).

    Numeric ids keep their last ten digits; anything else is hashed.
    """
    digits = "".join(ch for ch in order_id if ch.isdigit())
    if digits:
        return digits[-10:].lstrip("0") or "0"
    return str(zlib.crc32(order_id.encode("utf-8")) % 10**10)


class PaymentInitializer:
    def __init__(self, settings: Settings, registry: PaymentMethodRegistry, store: PaymentIntentStore):
        self.settings = settings
        self.registry = registry
        self.store = store

    def _validate(self, request: PaymentInitRequest) -> tuple[MethodConfig, Decimal]:
        """
        Raises:
            ValidationError: on any caller-side problem
        """
        missing = [
            name for name, value in (("orderId", request.order_id), ("invoiceId", request.invoice_id)) if not value
        ]
        if missing:
            raise ValidationError("Missing required payment fields", details={"missing": missing})

        amount = parse_amount(request.amount)
        try:
            amount = round_money(amount) if amount is not None else None
        except InvalidOperation:
            # quantize overflow on absurd magnitudes
            amount = None
        if amount is None or amount <= 0 or amount > MAX_PAYMENT_AMOUNT:
            raise ValidationError(ERROR_INVALID_AMOUNT, details={"amount": str(request.amount)})

        return self.registry.require_enabled(request.method), amount

    async def initialize(self, request: PaymentInitRequest) -> PaymentInitResult:
        method, amount = self._validate(request)
        currency = (request.currency or self.settings.home_currency).upper()
        payment_id = str(uuid.uuid4())

        intent = await self.store.create(
            PaymentIntent(
                payment_id=payment_id,
                order_id=request.order_id,
                invoice_id=request.invoice_id,
                method=method.method,
                amount=amount,
                currency=currency,
                gateway_metadata={"gatewayId": method.gateway_id},
            )
        )

        payment_url = None
        instructions = None
        if method.requires_redirect:
            payment_url = self._redirect_url(intent, method, request)
            target = PaymentStatus.PENDING_REDIRECT
            metadata = {**intent.gateway_metadata, "paymentUrl": payment_url}
        else:
            instructions = self.manual_instructions(intent)
            target = PaymentStatus.AWAITING_MANUAL_INSTRUCTIONS
            metadata = {**intent.gateway_metadata, "variableSymbol": instructions["variableSymbol"]}

        prepared = intent.model_copy(update={"status": target, "gateway_metadata": metadata})
        if not await self.store.compare_and_set(prepared, expected_version=intent.version):
            # Only a reconciler write can race us here; the caller may re-initialize
            raise TransientError("Payment intent changed during initialization", details={"paymentId": payment_id})

        logger.info(
            "Payment initialized: payment=%s order=%s method=%s status=%s",
            sanitize_id_for_logging(payment_id),
            sanitize_id_for_logging(request.order_id),
            method.method,
            target.value,
        )

        return PaymentInitResult(
            payment_id=payment_id,
            order_id=intent.order_id,
            invoice_id=intent.invoice_id,
            method=method.method,
            status=target,
            amount=amount,
            currency=currency,
            redirect_required=method.requires_redirect,
            payment_url=payment_url,
            instructions=instructions,
            test_mode=method.requires_redirect and self.settings.payment_test_mode,
        )

    def _return_urls(self, intent: PaymentIntent, request: PaymentInitRequest) -> tuple[str, str]:
        base = self.settings.storefront_url
        query = urlencode({"paymentId": intent.payment_id, "orderId": intent.order_id, "invoiceId": intent.invoice_id})
        success_url = request.return_url or f"{base}/payment-success?{query}"
        cancel_url = request.cancel_url or f"{base}/payment-failed?{query}&status=cancelled"
        return success_url, cancel_url

    def _redirect_url(self, intent: PaymentIntent, method: MethodConfig, request: PaymentInitRequest) -> str:
        """Deterministic from (checkout base, invoice, gateway, return url, cancel url)."""
        success_url, cancel_url = self._return_urls(intent, request)

        if self.settings.payment_test_mode:
            query = urlencode(
                {
                    "paymentId": intent.payment_id,
                    "orderId": intent.order_id,
                    "invoiceId": intent.invoice_id,
                    "method": method.method,
                    "amount": format_amount(intent.amount),
                    "currency": intent.currency,
                    "successUrl": success_url,
                    "cancelUrl": cancel_url,
                    "testMode": "true",
                }
            )
            return f"{self.settings.payment_test_base_url}/test-payment?{query}"

        query = urlencode(
            {
                "a": "complete",
                "i": intent.invoice_id,
                "gateway": method.gateway_id,
                "return": success_url,
                "cancel": cancel_url,
            }
        )
        return f"{self.settings.billing_client_url}/cart.php?{query}"

    def manual_instructions(self, intent: PaymentIntent) -> dict:
        bank = self.settings.bank
        symbol = variable_symbol(intent.order_id)
        due_date = (utcnow() + timedelta(days=bank.due_days)).date().isoformat()
        return {
            "accountNumber": bank.account_number,
            "bankName": bank.bank_name,
            "iban": bank.iban,
            "swift": bank.swift,
            "variableSymbol": symbol,
            "constantSymbol": bank.constant_symbol,
            "specificSymbol": variable_symbol(intent.invoice_id),
            "amount": to_float(intent.amount),
            "currency": intent.currency,
            "dueDate": due_date,
            "message": f"Please include variable symbol {symbol} with your transfer for order {intent.order_id}",
        }

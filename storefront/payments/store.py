"""
In-process PaymentIntent table.

Writes for one paymentId are serialized by a per-key asyncio.Lock; every
accepted write bumps the intent's version, so callers holding a stale copy
can detect it with compare_and_set().
"""
import asyncio
from collections.abc import Callable
from typing import Optional

from storefront.errors import ERROR_PAYMENT_NOT_FOUND, NotFound, ValidationError
from storefront.logging import get_logger, sanitize_id_for_logging

from .models import PaymentIntent, utcnow

logger = get_logger(__name__)

Mutation = Callable[[PaymentIntent], Optional[PaymentIntent]]


class PaymentIntentStore:
    def __init__(self):
        self._intents: dict[str, PaymentIntent] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        # Latest attempt wins for secondary lookups
        self._by_invoice: dict[str, str] = {}
        self._by_order: dict[str, str] = {}

    def _lock_for(self, payment_id: str) -> asyncio.Lock:
        lock = self._locks.get(payment_id)
        if lock is None:
            lock = self._locks[payment_id] = asyncio.Lock()
        return lock

    def _index(self, intent: PaymentIntent) -> None:
        if intent.invoice_id:
            self._by_invoice[intent.invoice_id] = intent.payment_id
        if intent.order_id:
            self._by_order[intent.order_id] = intent.payment_id

    async def create(self, intent: PaymentIntent) -> PaymentIntent:
        async with self._lock_for(intent.payment_id):
            if intent.payment_id in self._intents:
                raise ValidationError("Payment intent already exists", details={"paymentId": intent.payment_id})
            self._intents[intent.payment_id] = intent
            self._index(intent)
        logger.debug("Stored payment intent %s", sanitize_id_for_logging(intent.payment_id))
        return intent

    async def get(self, payment_id: str) -> Optional[PaymentIntent]:
        return self._intents.get(payment_id)

    async def find(
        self,
        payment_id: Optional[str] = None,
        invoice_id: Optional[str] = None,
        order_id: Optional[str] = None,
    ) -> Optional[PaymentIntent]:
        """Resolve by paymentId first, then invoiceId, then orderId."""
        if payment_id and payment_id in self._intents:
            return self._intents[payment_id]
        if invoice_id and invoice_id in self._by_invoice:
            return self._intents.get(self._by_invoice[invoice_id])
        if order_id and order_id in self._by_order:
            return self._intents.get(self._by_order[order_id])
        return None

    async def update(self, payment_id: str, mutate: Mutation) -> tuple[PaymentIntent, PaymentIntent]:
        """
        Apply `mutate` to the current intent while holding its key lock.

        `mutate` returns the replacement, or None to leave the intent alone.

        Returns:
            (before, after); identical objects when nothing changed

        Raises:
            NotFound: if the payment id is unknown
        """
        async with self._lock_for(payment_id):
            current = self._intents.get(payment_id)
            if current is None:
                raise NotFound(ERROR_PAYMENT_NOT_FOUND, details={"paymentId": payment_id})
            replacement = mutate(current)
            if replacement is None or replacement is current:
                return current, current
            stored = replacement.model_copy(update={"version": current.version + 1, "updated_at": utcnow()})
            self._intents[payment_id] = stored
            self._index(stored)
            return current, stored

    async def compare_and_set(self, intent: PaymentIntent, expected_version: int) -> bool:
        """Store `intent` only if the stored version still equals expected_version."""
        async with self._lock_for(intent.payment_id):
            current = self._intents.get(intent.payment_id)
            if current is None or current.version != expected_version:
                return False
            stored = intent.model_copy(update={"version": expected_version + 1, "updated_at": utcnow()})
            self._intents[intent.payment_id] = stored
            self._index(stored)
            return True

    def __len__(self) -> int:
        return len(self._intents)

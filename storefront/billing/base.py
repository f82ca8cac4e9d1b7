"""Billing Backend interface and result envelope."""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from storefront.errors import StorefrontError
from storefront.models import Customer


@dataclass(frozen=True)
class BillingResult:
    """Uniform outcome of one remote call: {success, data, error?}."""

    success: bool
    data: dict[str, Any] = field(default_factory=dict)
    error: StorefrontError | None = None

    @classmethod
    def ok(cls, data: dict[str, Any] | None = None) -> "BillingResult":
        return cls(success=True, data=data or {})

    @classmethod
    def fail(cls, error: StorefrontError, data: dict[str, Any] | None = None) -> "BillingResult":
        return cls(success=False, data=data or {}, error=error)

    @property
    def error_message(self) -> str:
        return self.error.message if self.error else ""

    @property
    def retryable(self) -> bool:
        return bool(self.error and self.error.retryable)


class BillingBackend(ABC):
    """
    Operations the pipeline needs from the billing platform.

    Implementations never raise for remote or transport failures; they
    classify them into the returned BillingResult.
    """

    @abstractmethod
    async def add_client(self, customer: Customer, currency: str) -> BillingResult:
        """Create a customer record. data: {"client_id"}"""

    @abstractmethod
    async def find_client_by_email(self, email: str) -> BillingResult:
        """Look up a customer. data: {"client_id", "email"}; NotFound when absent."""

    @abstractmethod
    async def add_order(
        self,
        client_id: str,
        product_id: str,
        cycle: str,
        config_options: dict[str, str] | None = None,
        addon_ids: list[str] | None = None,
        affiliate_id: str | None = None,
    ) -> BillingResult:
        """Create one order plus its invoice. data: {"order_id", "invoice_id", "total"}"""

    @abstractmethod
    async def set_order_referrer(self, order_id: str, affiliate_id: str) -> BillingResult:
        """Attach an affiliate referral to an existing order."""

    @abstractmethod
    async def get_affiliate(self, affiliate_id: str) -> BillingResult:
        """data: {"id", "status", "name"}"""

    @abstractmethod
    async def get_payment_modules(self) -> BillingResult:
        """data: {"modules": {module_id: module_name}}"""

    @abstractmethod
    async def get_invoice(self, invoice_id: str) -> BillingResult:
        """data: {"id", "status", "total", "currency"}"""

    @abstractmethod
    async def add_invoice_payment(
        self,
        invoice_id: str,
        amount: Decimal,
        gateway_id: str | None,
        transaction_id: str | None,
    ) -> BillingResult:
        """Record a captured payment against an invoice."""

    @abstractmethod
    async def track_visit(self, affiliate_id: str, url: str | None = None,
                          referrer: str | None = None) -> BillingResult:
        """Register an affiliate landing-page visit."""

    async def test_connection(self) -> BillingResult:
        return await self.get_payment_modules()

    async def aclose(self) -> None:
        return None

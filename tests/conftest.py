"""Pytest configuration and fixtures"""
import itertools
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pytest

from storefront.billing import BillingBackend, BillingResult
from storefront.catalog import ProductCatalogMapper
from storefront.config import Settings
from storefront.errors import NotFound, RemoteRejection, StorefrontError
from storefront.models import Customer


class FakeBillingBackend(BillingBackend):
    """In-memory Billing Backend recording every call."""

    def __init__(self):
        self.calls: List[tuple] = []
        self.clients: Dict[str, str] = {}
        self.affiliates: Dict[str, Dict[str, Any]] = {"7": {"id": "7", "status": "Active", "name": "Partner"}}
        self.modules: Dict[str, str] = {"1": "Credit Card", "2": "PayPal", "3": "Bank Transfer", "4": "CoinGate", "5": "PayU"}
        self.invoices: Dict[str, Dict[str, Any]] = {}
        self._ids = itertools.count(1001)

        # Failure injection: operation -> error
        self.failures: Dict[str, StorefrontError] = {}
        # add_order failures keyed by backend product id
        self.order_failures: Dict[str, StorefrontError] = {}

    def _fail(self, operation: str) -> Optional[BillingResult]:
        error = self.failures.get(operation)
        return BillingResult.fail(error) if error else None

    async def add_client(self, customer: Customer, currency: str) -> BillingResult:
        self.calls.append(("add_client", customer.email, currency))
        if failed := self._fail("add_client"):
            return failed
        if customer.email.lower() in self.clients:
            return BillingResult.fail(RemoteRejection("Client with this email already exists"))
        client_id = str(next(self._ids))
        self.clients[customer.email.lower()] = client_id
        return BillingResult.ok({"client_id": client_id})

    async def find_client_by_email(self, email: str) -> BillingResult:
        self.calls.append(("find_client_by_email", email))
        if failed := self._fail("find_client_by_email"):
            return failed
        client_id = self.clients.get(email.lower())
        if client_id is None:
            return BillingResult.fail(NotFound("No client"))
        return BillingResult.ok({"client_id": client_id, "email": email})

    async def add_order(self, client_id, product_id, cycle, config_options=None, addon_ids=None,
                        affiliate_id=None) -> BillingResult:
        self.calls.append(("add_order", client_id, product_id, cycle, config_options, addon_ids, affiliate_id))
        if product_id in self.order_failures:
            return BillingResult.fail(self.order_failures[product_id])
        if failed := self._fail("add_order"):
            return failed
        order_id = str(next(self._ids))
        invoice_id = str(next(self._ids))
        self.invoices[invoice_id] = {"id": invoice_id, "status": "Unpaid", "total": "299.00", "currency": "CZK"}
        return BillingResult.ok({"order_id": order_id, "invoice_id": invoice_id, "total": "299.00"})

    async def set_order_referrer(self, order_id, affiliate_id) -> BillingResult:
        self.calls.append(("set_order_referrer", order_id, affiliate_id))
        if failed := self._fail("set_order_referrer"):
            return failed
        return BillingResult.ok({})

    async def get_affiliate(self, affiliate_id) -> BillingResult:
        self.calls.append(("get_affiliate", affiliate_id))
        if failed := self._fail("get_affiliate"):
            return failed
        affiliate = self.affiliates.get(affiliate_id)
        if affiliate is None:
            return BillingResult.fail(NotFound("Affiliate not found"))
        return BillingResult.ok(dict(affiliate))

    async def get_payment_modules(self) -> BillingResult:
        self.calls.append(("get_payment_modules",))
        if failed := self._fail("get_payment_modules"):
            return failed
        return BillingResult.ok({"modules": dict(self.modules)})

    async def get_invoice(self, invoice_id) -> BillingResult:
        self.calls.append(("get_invoice", invoice_id))
        if failed := self._fail("get_invoice"):
            return failed
        invoice = self.invoices.get(invoice_id)
        if invoice is None:
            return BillingResult.fail(NotFound("Invoice not found"))
        return BillingResult.ok(dict(invoice))

    async def add_invoice_payment(self, invoice_id, amount: Decimal, gateway_id, transaction_id) -> BillingResult:
        self.calls.append(("add_invoice_payment", invoice_id, amount, gateway_id, transaction_id))
        if failed := self._fail("add_invoice_payment"):
            return failed
        return BillingResult.ok({})

    async def track_visit(self, affiliate_id, url=None, referrer=None) -> BillingResult:
        self.calls.append(("track_visit", affiliate_id, url, referrer))
        return BillingResult.ok({})

    def called(self, operation: str) -> List[tuple]:
        return [call for call in self.calls if call[0] == operation]


@pytest.fixture
def settings() -> Settings:
    """Settings with credentials, independent of the process environment"""
    return Settings(
        billing_api_url="https://billing.test/admin/api.php",
        billing_api_id="api-id",
        billing_api_key="api-key",
        billing_client_url="https://billing.test",
        storefront_url="https://shop.test",
        affiliate_cookie_secret="cookie-secret",
    )


@pytest.fixture
def backend() -> FakeBillingBackend:
    return FakeBillingBackend()


@pytest.fixture
def catalog(settings) -> ProductCatalogMapper:
    return ProductCatalogMapper.from_settings(settings)


@pytest.fixture
def customer_payload() -> Dict[str, Any]:
    return {
        "firstName": "Jan",
        "lastName": "Novak",
        "email": "jan@example.com",
        "address": "X",
        "city": "Praha",
        "postalCode": "11000",
    }


@pytest.fixture
def checkout_payload(customer_payload) -> Dict[str, Any]:
    return {
        "customer": customer_payload,
        "items": [{"internalProductId": "1", "quantity": 1, "unitPrice": 299}],
        "paymentMethod": "card",
        "total": 299,
    }

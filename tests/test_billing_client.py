"""Tests for the Billing Backend RPC client"""
from decimal import Decimal
from urllib.parse import parse_qs

import httpx
import pytest

from storefront.billing import BillingBackendClient, is_duplicate_customer
from storefront.errors import ERROR_BILLING_REJECTED, NotFound, RemoteRejection, TransientError
from storefront.models import Customer


def _form(request: httpx.Request) -> dict:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


def _client(settings, handler) -> BillingBackendClient:
    return BillingBackendClient(settings, transport=httpx.MockTransport(handler))


@pytest.fixture
def customer():
    return Customer(
        firstName="Jan",
        lastName="Novak",
        email="jan@example.com",
        address="X",
        city="Praha",
        postalCode="11000",
    )


@pytest.mark.asyncio
async def test_call_posts_form_with_credentials(settings):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"success": True, "value": 1})

    client = _client(settings, handler)
    result = await client.call("getClients", {"page": 2, "skip": None, "flag": True})
    await client.aclose()

    assert result.success is True
    assert result.data["value"] == 1

    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == "https://billing.test/admin/api.php"
    assert request.headers["content-type"] == "application/x-www-form-urlencoded"
    form = _form(request)
    assert form == {"call": "getClients", "api_id": "api-id", "api_key": "api-key", "page": "2", "flag": "1"}


@pytest.mark.asyncio
async def test_remote_rejection_is_not_retryable(settings):
    client = _client(settings, lambda r: httpx.Response(200, json={"success": False, "error": ["Email already exists"]}))

    result = await client.call("addClient")

    assert result.success is False
    assert isinstance(result.error, RemoteRejection)
    assert result.retryable is False
    assert result.error_message == "Email already exists"


@pytest.mark.asyncio
async def test_html_error_page_is_transient(settings):
    client = _client(settings, lambda r: httpx.Response(200, text="<html>Fatal error</html>"))

    result = await client.call("getClients")

    assert result.success is False
    assert isinstance(result.error, TransientError)
    assert result.retryable is True


@pytest.mark.asyncio
async def test_server_error_and_timeout_are_transient(settings):
    client = _client(settings, lambda r: httpx.Response(502, text="Bad gateway"))
    result = await client.call("getClients")
    assert isinstance(result.error, TransientError)

    def timeout(request):
        raise httpx.ReadTimeout("timed out", request=request)

    client = _client(settings, timeout)
    result = await client.call("getClients")
    assert isinstance(result.error, TransientError)
    assert "timeout" in result.error_message

    def refused(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(settings, refused)
    result = await client.call("getClients")
    assert isinstance(result.error, TransientError)


@pytest.mark.asyncio
async def test_add_client_returns_client_id(settings, customer):
    seen = []

    def handler(request):
        seen.append(_form(request))
        return httpx.Response(200, json={"success": True, "client_id": 55})

    client = _client(settings, handler)
    result = await client.add_client(customer, "CZK")

    assert result.success is True
    assert result.data["client_id"] == "55"
    form = seen[0]
    assert form["call"] == "addClient"
    assert form["email"] == "jan@example.com"
    assert form["country"] == "CZ"
    assert form["currency"] == "CZK"
    assert len(form["password"]) >= 12


@pytest.mark.asyncio
async def test_duplicate_customer_detection(settings, customer):
    client = _client(
        settings,
        lambda r: httpx.Response(200, json={"success": False, "error": ["Client with this email already exists"]}),
    )

    result = await client.add_client(customer, "CZK")

    assert is_duplicate_customer(result.error) is True
    assert is_duplicate_customer(RemoteRejection("Invalid postcode")) is False
    assert is_duplicate_customer(TransientError("already exists")) is False


@pytest.mark.asyncio
async def test_find_client_by_email_is_case_insensitive(settings):
    body = {"success": True, "clients": [{"id": "9", "email": "Other@example.com"}, {"id": "10", "email": "JAN@example.com"}]}
    client = _client(settings, lambda r: httpx.Response(200, json=body))

    found = await client.find_client_by_email("jan@example.com")
    missing = await client.find_client_by_email("nobody@example.com")

    assert found.data["client_id"] == "10"
    assert isinstance(missing.error, NotFound)


@pytest.mark.asyncio
async def test_add_order_parameters(settings):
    seen = []

    def handler(request):
        seen.append(_form(request))
        return httpx.Response(200, json={"success": True, "order_id": "700", "invoice_id": "800", "total": "299.00"})

    client = _client(settings, handler)
    result = await client.add_order(
        "55",
        "5",
        "m",
        config_options={"os": "ubuntu", "config_option_disk": "50"},
        addon_ids=["7"],
        affiliate_id="3",
    )

    assert result.data == {"order_id": "700", "invoice_id": "800", "total": "299.00"}
    form = seen[0]
    assert form["call"] == "addOrder"
    assert form["client_id"] == "55"
    assert form["product"] == "5"
    assert form["cycle"] == "m"
    assert form["confirm"] == "1"
    assert form["invoice_generate"] == "1"
    assert form["affiliate_id"] == "3"
    assert form["config_option_os"] == "ubuntu"
    assert form["config_option_disk"] == "50"
    assert form["addons[7][qty]"] == "1"


@pytest.mark.asyncio
async def test_invoice_payment_and_referrer(settings):
    seen = []

    def handler(request):
        seen.append(_form(request))
        return httpx.Response(200, json={"success": True})

    client = _client(settings, handler)
    await client.set_order_referrer("700", "3")
    await client.add_invoice_payment("800", Decimal("299"), "1", "txn_1")

    assert seen[0] == {"call": "setOrderReferrer", "api_id": "api-id", "api_key": "api-key", "id": "700", "referral": "3"}
    assert seen[1]["call"] == "addInvoicePayment"
    assert seen[1]["amount"] == "299.00"
    assert seen[1]["paymentmodule"] == "1"
    assert seen[1]["transnumber"] == "txn_1"


@pytest.mark.asyncio
async def test_get_invoice_and_modules(settings):
    def handler(request):
        call = _form(request)["call"]
        if call == "getInvoiceDetails":
            return httpx.Response(200, json={"success": True, "invoice": {"id": "800", "status": "Paid", "total": "299.00"}})
        return httpx.Response(200, json={"success": True, "modules": {"10": "PayU", "112": "PayPal"}})

    client = _client(settings, handler)
    invoice = await client.get_invoice("800")
    modules = await client.get_payment_modules()

    assert invoice.data["status"] == "Paid"
    assert modules.data["modules"] == {"10": "PayU", "112": "PayPal"}


@pytest.mark.asyncio
async def test_track_visit_hits_client_area(settings):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(302, headers={"Location": "https://shop.test"})

    client = _client(settings, handler)
    result = await client.track_visit("3", referrer="https://blog.test")

    assert result.success is True
    assert seen[0].method == "GET"
    assert seen[0].url.params["affid"] == "3"
    assert seen[0].headers["referer"] == "https://blog.test"


@pytest.mark.asyncio
async def test_rejection_without_message_gets_generic_error(settings):
    client = _client(settings, lambda r: httpx.Response(200, json={"success": False, "error": []}))

    result = await client.call("addOrder")

    assert isinstance(result.error, RemoteRejection)
    assert result.error_message == ERROR_BILLING_REJECTED

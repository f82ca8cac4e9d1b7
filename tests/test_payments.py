"""Tests for payment method selection and initialization"""
from dataclasses import replace
from decimal import Decimal
from urllib.parse import parse_qs, urlparse

import pytest

from storefront.errors import RemoteRejection, ValidationError
from storefront.payments import (
    PaymentInitializer,
    PaymentInitRequest,
    PaymentIntentStore,
    PaymentMethodRegistry,
    PaymentStatus,
    normalize_method,
    variable_symbol,
)


def _init_request(**overrides) -> PaymentInitRequest:
    payload = {"orderId": "1001", "invoiceId": "2002", "method": "card", "amount": 299, "currency": "CZK"}
    payload.update(overrides)
    return PaymentInitRequest.model_validate(payload)


@pytest.fixture
def registry(settings):
    return PaymentMethodRegistry(settings)


@pytest.fixture
def store():
    return PaymentIntentStore()


@pytest.fixture
def initializer(settings, registry, store):
    return PaymentInitializer(settings, registry, store)


def test_normalize_method_aliases():
    assert normalize_method("Bank_Transfer") == "banktransfer"
    assert normalize_method(" PayPal ") == "paypal"
    assert normalize_method("credit_card") == "card"
    assert normalize_method(None) == ""


@pytest.mark.asyncio
async def test_sync_enables_only_active_modules(registry, backend):
    backend.modules = {"112": "PayPal Checkout", "3": "Bank Transfer"}

    await registry.sync(backend)

    assert registry.synced is True
    assert registry.is_enabled("paypal")
    assert registry.is_enabled("banktransfer")
    assert not registry.is_enabled("card")
    assert not registry.is_enabled("crypto")
    methods = {m["method"]: m for m in registry.list_methods()}
    assert methods["paypal"]["moduleName"] == "PayPal Checkout"
    assert methods["card"]["enabled"] is False


@pytest.mark.asyncio
async def test_sync_rejection_keeps_defaults(registry, backend):
    backend.failures["get_payment_modules"] = RemoteRejection("Access denied")

    with pytest.raises(RemoteRejection):
        await registry.sync(backend)

    assert registry.synced is False
    assert registry.is_enabled("card")
    assert len(backend.called("get_payment_modules")) == 1


def test_gateway_override(settings):
    registry = PaymentMethodRegistry(replace(settings, gateway_overrides={"card": "121"}))
    assert registry.get("card").gateway_id == "121"
    assert registry.get("paypal").gateway_id == "2"


@pytest.mark.asyncio
async def test_redirect_method_builds_hosted_checkout_url(initializer, store):
    result = await initializer.initialize(_init_request(method="card"))

    assert result.redirect_required is True
    assert result.status == PaymentStatus.PENDING_REDIRECT
    assert result.instructions is None

    url = urlparse(result.payment_url)
    query = parse_qs(url.query)
    assert f"{url.scheme}://{url.netloc}{url.path}" == "https://billing.test/cart.php"
    assert query["a"] == ["complete"]
    assert query["i"] == ["2002"]
    assert query["gateway"] == ["1"]
    assert query["return"][0].startswith("https://shop.test/payment-success?")
    assert result.payment_id in query["cancel"][0]

    intent = await store.get(result.payment_id)
    assert intent.status == PaymentStatus.PENDING_REDIRECT
    assert intent.amount == Decimal("299.00")
    assert intent.version == 1


@pytest.mark.asyncio
async def test_test_mode_uses_test_gateway(settings, registry, store):
    initializer = PaymentInitializer(replace(settings, payment_test_mode=True), registry, store)

    result = await initializer.initialize(_init_request(method="paypal", amount="150.5"))

    assert result.test_mode is True
    assert result.payment_url.startswith("http://localhost:3005/test-payment?")
    query = parse_qs(urlparse(result.payment_url).query)
    assert query["method"] == ["paypal"]
    assert query["amount"] == ["150.50"]
    assert query["testMode"] == ["true"]


@pytest.mark.asyncio
async def test_bank_transfer_instructions(initializer, store):
    result = await initializer.initialize(_init_request(method="bank_transfer"))

    assert result.redirect_required is False
    assert result.payment_url is None
    assert result.status == PaymentStatus.AWAITING_MANUAL_INSTRUCTIONS
    instructions = result.instructions
    assert instructions["variableSymbol"] == "1001"
    assert instructions["constantSymbol"] == "0308"
    assert instructions["amount"] == 299.0
    assert instructions["currency"] == "CZK"
    assert instructions["iban"]
    assert instructions["dueDate"]

    response = result.to_response()
    assert response["redirectRequired"] is False
    assert "paymentUrl" not in response


@pytest.mark.asyncio
async def test_variable_symbol_is_deterministic(initializer):
    first = await initializer.initialize(_init_request(method="banktransfer", orderId="ORD-2024-000123"))
    second = await initializer.initialize(_init_request(method="banktransfer", orderId="ORD-2024-000123"))

    assert first.payment_id != second.payment_id
    assert first.instructions["variableSymbol"] == second.instructions["variableSymbol"]
    assert variable_symbol("abc") == variable_symbol("abc")
    assert variable_symbol("abc").isdigit()
    assert len(variable_symbol("12345678901234")) <= 10


@pytest.mark.asyncio
async def test_disabled_method_rejected_without_network(initializer, registry, store, backend):
    registry.apply_modules({"2": "PayPal"})
    backend.calls.clear()

    with pytest.raises(ValidationError) as exc_info:
        await initializer.initialize(_init_request(method="card"))

    assert exc_info.value.status_code == 422
    assert backend.calls == []
    assert len(store) == 0


@pytest.mark.parametrize(
    "overrides",
    [
        {"amount": 0},
        {"amount": -10},
        {"amount": "abc"},
        {"amount": "0.001"},
        {"amount": "1e30"},
        {"amount": "1000000.01"},
        {"amount": "NaN"},
        {"amount": None},
        {"orderId": ""},
        {"invoiceId": ""},
        {"method": "cheque"},
    ],
)
@pytest.mark.asyncio
async def test_invalid_requests_are_validation_errors(initializer, store, overrides):
    with pytest.raises(ValidationError):
        await initializer.initialize(_init_request(**overrides))
    assert len(store) == 0


@pytest.mark.asyncio
async def test_amount_is_validated_after_rounding(initializer, store):
    smallest = await initializer.initialize(_init_request(amount="0.005"))
    largest = await initializer.initialize(_init_request(amount="1000000"))

    assert (await store.get(smallest.payment_id)).amount == Decimal("0.01")
    assert (await store.get(largest.payment_id)).amount == Decimal("1000000.00")

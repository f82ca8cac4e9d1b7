"""
Billing Backend Client - single-endpoint RPC integration

The billing platform multiplexes every operation through one admin URL:
a form-encoded POST carrying `call=<operation>` plus the api_id/api_key
pair. Responses are JSON objects with a `success` flag.

The client performs exactly one attempt per call and never raises for
transport outcomes; callers get a BillingResult and decide what to do.
"""

import secrets
from decimal import Decimal
from typing import Any

import httpx

from storefront.billing.base import BillingBackend, BillingResult
from storefront.billing.translate import remote_error_message
from storefront.config import Settings
from storefront.errors import (
    ERROR_BILLING_MALFORMED,
    ERROR_BILLING_UNAVAILABLE,
    NotFound,
    RemoteRejection,
    TransientError,
)
from storefront.logging import get_logger, mask_email, sanitize_id_for_logging
from storefront.models import Customer
from storefront.money import format_amount

logger = get_logger(__name__)


def _form_value(value: Any) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, Decimal):
        return format_amount(value)
    return str(value)


class BillingBackendClient(BillingBackend):
    """Billing Backend client over the `call`-multiplexed admin API."""

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        self.api_url = settings.billing_api_url
        self.client_url = settings.billing_client_url
        self._api_id = settings.billing_api_id
        self._api_key = settings.billing_api_key
        self.timeout = settings.billing_timeout
        self.tracking_timeout = settings.tracking_timeout
        self.default_country = settings.default_country

        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Lazy creation of shared httpx client with timeouts."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout, connect=5.0),
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
                transport=self._transport,
            )
        return self._http_client

    # ==================== TRANSPORT ====================

    async def call(self, operation: str, params: dict[str, Any] | None = None) -> BillingResult:
        """
        Perform one authenticated remote call.

        Returns:
            BillingResult with the decoded body as data. Timeouts, connection
            failures, 5xx and non-JSON bodies are TransientError; a body with
            `success: false` is RemoteRejection.
        """
        payload: dict[str, str] = {
            "call": operation,
            "api_id": self._api_id,
            "api_key": self._api_key,
        }
        for key, value in (params or {}).items():
            if value is None:
                continue
            payload[key] = _form_value(value)

        logger.debug("Billing call %s (%d params)", operation, len(payload) - 3)

        client = await self._get_http_client()
        try:
            response = await client.post(
                self.api_url,
                data=payload,
                headers={"Accept": "application/json"},
            )
        except httpx.TimeoutException as e:
            logger.warning("Billing call %s timed out: %s", operation, type(e).__name__)
            return BillingResult.fail(TransientError(f"{ERROR_BILLING_UNAVAILABLE}: timeout"))
        except httpx.TransportError as e:
            logger.warning("Billing call %s network error: %s", operation, type(e).__name__)
            return BillingResult.fail(TransientError(f"{ERROR_BILLING_UNAVAILABLE}: {type(e).__name__}"))

        if response.status_code >= 500:
            logger.warning("Billing call %s returned HTTP %s", operation, response.status_code)
            return BillingResult.fail(
                TransientError(
                    f"{ERROR_BILLING_UNAVAILABLE}: HTTP {response.status_code}",
                    details={"status": response.status_code},
                )
            )

        try:
            body = response.json()
        except ValueError:
            logger.warning(
                "Billing call %s returned non-JSON body (HTTP %s, %d bytes)",
                operation,
                response.status_code,
                len(response.content),
            )
            return BillingResult.fail(TransientError(ERROR_BILLING_MALFORMED))

        if not isinstance(body, dict):
            logger.warning("Billing call %s returned %s instead of an object", operation, type(body).__name__)
            return BillingResult.fail(TransientError(ERROR_BILLING_MALFORMED))

        if body.get("success") is False or str(body.get("success")).lower() == "false":
            message = remote_error_message(body)
            logger.info("Billing call %s rejected: %s", operation, message[:120])
            return BillingResult.fail(RemoteRejection(message), data=body)

        if response.status_code >= 400:
            logger.warning("Billing call %s returned HTTP %s", operation, response.status_code)
            return BillingResult.fail(RemoteRejection(remote_error_message(body)), data=body)

        return BillingResult.ok(body)

    # ==================== CLIENTS ====================

    async def add_client(self, customer: Customer, currency: str) -> BillingResult:
        logger.info("Creating billing client for %s", mask_email(customer.email))
        result = await self.call(
            "addClient",
            {
                "firstname": customer.first_name,
                "lastname": customer.last_name,
                "email": customer.email,
                "phonenumber": customer.phone,
                "address1": customer.address,
                "city": customer.city,
                "postcode": customer.postal_code,
                "country": customer.country or self.default_country,
                "state": customer.state or "",
                "companyname": customer.company or "",
                # Customers log in via password reset; never reused
                "password": secrets.token_urlsafe(12),
                "currency": currency,
            },
        )
        if not result.success:
            return result

        client_id = result.data.get("client_id") or result.data.get("id") or result.data.get("clientId")
        if not client_id:
            logger.error("addClient succeeded without a client id. Keys: %s", sorted(result.data))
            return BillingResult.fail(TransientError(ERROR_BILLING_MALFORMED), data=result.data)
        return BillingResult.ok({"client_id": str(client_id), "email": customer.email})

    async def find_client_by_email(self, email: str) -> BillingResult:
        # getClients ignores email filters, so the match is done here
        result = await self.call("getClients")
        if not result.success:
            return result

        wanted = email.strip().lower()
        clients = result.data.get("clients") or []
        if isinstance(clients, dict):
            clients = list(clients.values())
        for client in clients:
            if not isinstance(client, dict):
                continue
            if str(client.get("email", "")).strip().lower() == wanted:
                client_id = client.get("id") or client.get("client_id")
                if client_id:
                    logger.info("Found existing billing client %s", sanitize_id_for_logging(client_id))
                    return BillingResult.ok({"client_id": str(client_id), "email": client.get("email")})

        return BillingResult.fail(NotFound(f"No billing client for {mask_email(email)}"))

    # ==================== ORDERS ====================

    async def add_order(
        self,
        client_id: str,
        product_id: str,
        cycle: str,
        config_options: dict[str, str] | None = None,
        addon_ids: list[str] | None = None,
        affiliate_id: str | None = None,
    ) -> BillingResult:
        params: dict[str, Any] = {
            "client_id": client_id,
            "product": product_id,
            "cycle": cycle,
            "confirm": 1,
            "invoice_generate": 1,
            "invoice_info": 1,
            "affiliate_id": affiliate_id,
        }
        for key, value in (config_options or {}).items():
            name = key if key.startswith("config_option_") else f"config_option_{key}"
            params[name] = value
        for addon_id in addon_ids or []:
            params[f"addons[{addon_id}][qty]"] = 1

        result = await self.call("addOrder", params)
        if not result.success:
            return result

        order_id = result.data.get("order_id") or result.data.get("id")
        if not order_id:
            logger.error("addOrder succeeded without an order id. Keys: %s", sorted(result.data))
            return BillingResult.fail(TransientError(ERROR_BILLING_MALFORMED), data=result.data)

        invoice_id = result.data.get("invoice_id")
        logger.info(
            "Billing order created: order=%s invoice=%s",
            sanitize_id_for_logging(order_id),
            sanitize_id_for_logging(invoice_id),
        )
        return BillingResult.ok(
            {
                "order_id": str(order_id),
                "invoice_id": str(invoice_id) if invoice_id else None,
                "total": result.data.get("total"),
            }
        )

    async def set_order_referrer(self, order_id: str, affiliate_id: str) -> BillingResult:
        return await self.call("setOrderReferrer", {"id": order_id, "referral": affiliate_id})

    # ==================== AFFILIATES ====================

    async def get_affiliate(self, affiliate_id: str) -> BillingResult:
        result = await self.call("getAffiliate", {"id": affiliate_id})
        if not result.success:
            return result

        affiliate = result.data.get("affiliate")
        if not isinstance(affiliate, dict):
            return BillingResult.fail(NotFound(f"Affiliate {affiliate_id} not found"))
        name = affiliate.get("name") or " ".join(
            part for part in (affiliate.get("firstname"), affiliate.get("lastname")) if part
        )
        return BillingResult.ok(
            {
                "id": str(affiliate.get("id") or affiliate_id),
                "status": affiliate.get("status", ""),
                "name": name,
            }
        )

    async def track_visit(self, affiliate_id: str, url: str | None = None,
                          referrer: str | None = None) -> BillingResult:
        """Hit the affiliate link on the client area so the visit is counted."""
        if not self.client_url:
            return BillingResult.fail(TransientError("Billing client URL is not configured"))

        client = await self._get_http_client()
        headers = {"Referer": referrer} if referrer else None
        try:
            response = await client.get(
                f"{self.client_url}/",
                params={"affid": affiliate_id, "url": url} if url else {"affid": affiliate_id},
                headers=headers,
                timeout=self.tracking_timeout,
                follow_redirects=False,
            )
        except httpx.HTTPError as e:
            return BillingResult.fail(TransientError(f"Visit tracking failed: {type(e).__name__}"))

        if response.status_code >= 400:
            return BillingResult.fail(TransientError(f"Visit tracking failed: HTTP {response.status_code}"))
        return BillingResult.ok({"status": response.status_code})

    # ==================== PAYMENTS ====================

    async def get_payment_modules(self) -> BillingResult:
        result = await self.call("getPaymentModules")
        if not result.success:
            return result
        modules = result.data.get("modules") or {}
        if isinstance(modules, list):
            modules = {str(m.get("id")): str(m.get("name", "")) for m in modules if isinstance(m, dict)}
        return BillingResult.ok({"modules": {str(k): str(v) for k, v in modules.items()}})

    async def get_invoice(self, invoice_id: str) -> BillingResult:
        result = await self.call("getInvoiceDetails", {"id": invoice_id})
        if not result.success:
            return result

        invoice = result.data.get("invoice")
        if not isinstance(invoice, dict):
            return BillingResult.fail(NotFound(f"Invoice {invoice_id} not found"))
        return BillingResult.ok(
            {
                "id": str(invoice.get("id") or invoice_id),
                "status": str(invoice.get("status", "")),
                "total": invoice.get("total"),
                "currency": invoice.get("currency") or invoice.get("currency_code"),
            }
        )

    async def add_invoice_payment(
        self,
        invoice_id: str,
        amount: Decimal,
        gateway_id: str | None,
        transaction_id: str | None,
    ) -> BillingResult:
        return await self.call(
            "addInvoicePayment",
            {
                "id": invoice_id,
                "amount": amount,
                "paymentmodule": gateway_id,
                "transnumber": transaction_id,
                "send_email": 1,
            },
        )

    async def test_connection(self) -> BillingResult:
        result = await self.call("getAffiliates")
        if not result.success:
            return result
        affiliates = result.data.get("affiliates") or []
        return BillingResult.ok({"connected": True, "affiliateCount": len(affiliates)})

    async def aclose(self) -> None:
        """Close http client if created."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

"""
Order Orchestrator

Turns a validated cart into Billing Backend records, one checkout attempt
at a time:

1. resolve the customer (create, or look up on "already exists")
2. optionally validate the affiliate
3. create one order per cart line, lines issued concurrently
4. attach the affiliate referral to each order once it exists
5. aggregate per-line results and warnings into an OrderRecord

Only step 1 can abort the attempt. Nothing is retried inside a request.
"""
import asyncio
import uuid
from typing import Optional

from storefront.affiliate import is_active_affiliate
from storefront.billing import BillingBackend, BillingResult, is_duplicate_customer
from storefront.catalog import ProductCatalogMapper
from storefront.config import Settings
from storefront.errors import ERROR_CUSTOMER_RESOLUTION, StorefrontError, UnknownProductError
from storefront.logging import get_logger, mask_email, sanitize_id_for_logging
from storefront.models import (
    CYCLE_CODES,
    AffiliateAttribution,
    CartItem,
    CheckoutRequest,
    Customer,
    OrderLine,
    OrderRecord,
)

logger = get_logger(__name__)


class CustomerResolutionError(StorefrontError):
    """Wraps the classified failure that stopped customer resolution."""

    def __init__(self, cause: StorefrontError):
        super().__init__(f"{ERROR_CUSTOMER_RESOLUTION}: {cause.message}", details=cause.details)
        self.cause = cause
        self.status_code = cause.status_code
        self.code = cause.code
        self.retryable = cause.retryable


class OrderOrchestrator:
    def __init__(self, settings: Settings, backend: BillingBackend, catalog: ProductCatalogMapper):
        self.settings = settings
        self.backend = backend
        self.catalog = catalog

    async def process_checkout(self, request: CheckoutRequest) -> OrderRecord:
        processing_id = str(uuid.uuid4())
        attribution = request.affiliate
        logger.info(
            "Checkout %s started: %s, %d items, affiliate=%s",
            processing_id,
            mask_email(request.customer.email),
            len(request.items),
            sanitize_id_for_logging(attribution.affiliate_id) if attribution else "none",
        )

        record = {
            "processing_id": processing_id,
            "affiliate": attribution,
            "total": request.total,
            "currency": self.settings.home_currency,
        }

        # Step 1: customer
        try:
            client_id = await self._resolve_customer(request.customer)
        except CustomerResolutionError as e:
            logger.error("Checkout %s aborted: %s", processing_id, e.message)
            return OrderRecord(
                **record,
                errors=(e.message,),
                failure_code=e.code,
                retryable=e.retryable,
            )

        # Step 2: affiliate
        warnings: list[str] = []
        referral_enabled = attribution is not None
        if attribution is not None and self.settings.affiliate_validate:
            warning = await self._validate_affiliate(attribution)
            if warning:
                warnings.append(warning)
                referral_enabled = False

        # Steps 3-4: lines
        results = await asyncio.gather(
            *(
                self._process_line(client_id, item, attribution if referral_enabled else None)
                for item in request.items
            )
        )

        lines = tuple(line for line, _ in results)
        errors = [line.error for line in lines if not line.success and line.error]
        for _, line_warnings in results:
            warnings.extend(line_warnings)

        successful = sum(1 for line in lines if line.success)
        logger.info(
            "Checkout %s completed: client=%s, %d/%d orders, %d warnings",
            processing_id,
            sanitize_id_for_logging(client_id),
            successful,
            len(lines),
            len(warnings),
        )

        return OrderRecord(
            **record,
            client_id=client_id,
            lines=lines,
            errors=tuple(errors + warnings),
            overall_success=successful > 0,
        )

    async def _resolve_customer(self, customer: Customer) -> str:
        """
        Raises:
            CustomerResolutionError: creation failed for a reason other than
                "already exists", or the follow-up lookup failed
        """
        created = await self.backend.add_client(customer, self.settings.home_currency)
        if created.success:
            return created.data["client_id"]

        if not is_duplicate_customer(created.error):
            raise CustomerResolutionError(created.error)

        logger.info("Customer %s already exists, looking up", mask_email(customer.email))
        found = await self.backend.find_client_by_email(customer.email)
        if not found.success:
            raise CustomerResolutionError(found.error)
        return found.data["client_id"]

    async def _validate_affiliate(self, attribution: AffiliateAttribution) -> Optional[str]:
        """Return a warning when referral attachment must be skipped."""
        result = await self.backend.get_affiliate(attribution.affiliate_id)
        if result.success:
            if is_active_affiliate(result.data):
                return None
            status = str(result.data.get("status")).lower()
            return f"Affiliate {attribution.affiliate_id} is not active ({status}); referral not attached"
        if result.retryable:
            # Unknown is not invalid; keep attribution
            logger.warning("Affiliate validation unavailable: %s", result.error_message)
            return None
        return f"Invalid affiliate ID: {attribution.affiliate_id}; referral not attached"

    async def _process_line(
        self,
        client_id: str,
        item: CartItem,
        attribution: Optional[AffiliateAttribution],
    ) -> tuple[OrderLine, list[str]]:
        warnings: list[str] = []
        product_name = item.name or self.catalog.product_name(item.internal_product_id) or (
            f"Product {item.internal_product_id}"
        )
        line = {
            "internal_product_id": item.internal_product_id,
            "product_name": product_name,
            "currency": item.currency or self.settings.home_currency,
        }

        try:
            backend_product_id = self.catalog.map_internal_to_backend(item.internal_product_id)
        except UnknownProductError as e:
            return OrderLine(**line, success=False, error=e.message, error_code=e.code), warnings

        addon_ids = []
        for addon in item.addons:
            addon_id = self.catalog.map_addon(addon)
            if addon_id is None:
                warnings.append(f"Unknown addon '{addon}' skipped for product {item.internal_product_id}")
            else:
                addon_ids.append(addon_id)

        created = await self.backend.add_order(
            client_id,
            backend_product_id,
            CYCLE_CODES[item.billing_cycle],
            config_options=dict(item.config_options),
            addon_ids=addon_ids,
            affiliate_id=attribution.affiliate_id if attribution else None,
        )
        if not created.success:
            return self._failed_line(line, f"Order creation failed for {product_name}", created), warnings

        order_id = created.data["order_id"]
        line["billing_backend_order_id"] = order_id
        line["billing_backend_invoice_id"] = created.data.get("invoice_id")

        # Referral strictly after the order exists
        if attribution is not None:
            referred = await self.backend.set_order_referrer(order_id, attribution.affiliate_id)
            if not referred.success:
                message = f"Affiliate referral not attached to order {order_id}: {referred.error_message}"
                if self.settings.affiliate_required:
                    return self._failed_line(line, message, referred, prefix_only=True), warnings
                logger.warning("%s", message)
                warnings.append(message)

        return OrderLine(**line, success=True), warnings

    @staticmethod
    def _failed_line(line: dict, message: str, result: BillingResult, prefix_only: bool = False) -> OrderLine:
        error = message if prefix_only else f"{message}: {result.error_message}"
        logger.warning("Line %s failed: %s", sanitize_id_for_logging(line["internal_product_id"]), error)
        return OrderLine(
            **line,
            success=False,
            error=error,
            error_code=result.error.code if result.error else None,
            retryable=result.retryable,
        )

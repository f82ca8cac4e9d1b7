"""
Orders Router

Checkout: cart -> Billing Backend client, orders and invoices.
"""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from storefront.affiliate import AFFILIATE_COOKIE_NAME, decode_affiliate_cookie
from storefront.errors import UnknownProductError, ValidationError
from storefront.logging import get_logger
from storefront.models import CheckoutRequest, OrderRecord
from storefront.routers.deps import get_orchestrator, get_settings

logger = get_logger(__name__)

router = APIRouter(prefix="/api/orders", tags=["orders"])

_CALLER_ERROR_CODES = {ValidationError.code, UnknownProductError.code}


def checkout_status_code(record: OrderRecord) -> int:
    """200 on success; otherwise the status of the dominant failure class."""
    if record.overall_success:
        return 200
    if not record.customer_resolved:
        return 503 if record.retryable else 502
    failed = record.failed_lines
    if any(line.retryable for line in failed):
        return 503
    if failed and all(line.error_code in _CALLER_ERROR_CODES for line in failed):
        return 422
    return 502


@router.post("/checkout")
async def checkout(body: CheckoutRequest, request: Request):
    """
    Process a checkout attempt.

    The affiliate comes from the body, else from the signed attribution cookie.
    Every call is a new attempt; resubmitting creates new orders.
    """
    if body.affiliate is None:
        settings = get_settings()
        attribution = decode_affiliate_cookie(
            request.cookies.get(AFFILIATE_COOKIE_NAME),
            settings.affiliate_cookie_secret,
            max_age=settings.affiliate_cookie_max_age,
        )
        if attribution is not None:
            body = body.model_copy(update={"affiliate": attribution})

    record = await get_orchestrator().process_checkout(body)
    return JSONResponse(record.to_response(), status_code=checkout_status_code(record))

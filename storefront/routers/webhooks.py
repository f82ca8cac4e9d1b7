"""
Webhooks Router

Payment gateway callbacks. Always answered with HTTP 200 so gateways do
not start retry storms; processing problems are visible only through the
payment status query.
"""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from storefront.logging import get_logger
from storefront.routers.deps import get_reconciler

logger = get_logger(__name__)

router = APIRouter(tags=["webhooks"])


@router.post("/api/payments/webhook")
@router.post("/api/payments/callback")
async def payment_webhook(request: Request):
    """Handle a payment notification from any gateway."""
    try:
        raw_body = await request.body()
        result = await get_reconciler().handle_webhook(
            request.headers,
            raw_body,
            content_type=request.headers.get("content-type"),
        )
    except Exception:
        logger.exception("Payment webhook handler failed")
        result = {"success": True, "message": "Webhook received"}
    return JSONResponse(result, status_code=200)

"""
Affiliate Router

Landing-page attribution: sets the signed cookie and pings the Billing
Backend in the background. Also answers affiliate id lookups for the
storefront's referral form.
"""
from typing import Optional

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, Field

from storefront.affiliate import (
    AFFILIATE_COOKIE_NAME,
    encode_affiliate_cookie,
    is_active_affiliate,
    track_visit_in_background,
)
from storefront.logging import get_logger, sanitize_id_for_logging
from storefront.models import AffiliateAttribution
from storefront.routers.deps import get_billing_backend, get_settings

logger = get_logger(__name__)

router = APIRouter(prefix="/api/affiliate", tags=["affiliate"])


class TrackVisitRequest(AffiliateAttribution):
    url: Optional[str] = None
    referrer: Optional[str] = Field(default=None, validation_alias=AliasChoices("referrer", "referer"))


@router.post("/track")
async def track_affiliate(body: TrackVisitRequest, request: Request):
    """Always succeeds once the body validates; tracking runs detached."""
    settings = get_settings()
    attribution = AffiliateAttribution(affiliate_id=body.affiliate_id, affiliate_code=body.affiliate_code)

    track_visit_in_background(
        get_billing_backend(),
        body.affiliate_id,
        url=body.url,
        referrer=body.referrer or request.headers.get("referer"),
        timeout=settings.tracking_timeout,
    )
    logger.info("Affiliate visit for %s", sanitize_id_for_logging(body.affiliate_id))

    response = JSONResponse({"success": True, "affiliate": attribution.to_response()})
    cookie = encode_affiliate_cookie(attribution, settings.affiliate_cookie_secret)
    if cookie:
        response.set_cookie(
            AFFILIATE_COOKIE_NAME,
            cookie,
            max_age=settings.affiliate_cookie_max_age,
            httponly=True,
            samesite="lax",
            secure=settings.storefront_url.startswith("https://"),
        )
    return response


@router.get("/validate")
async def validate_affiliate(affiliate_id: str = Query(min_length=1, alias="id")):
    """
    Check an affiliate id against the Billing Backend.

    Unknown or inactive affiliates are a normal answer (`valid: false`);
    only an unreachable backend is an error.
    """
    result = await get_billing_backend().get_affiliate(affiliate_id.strip())
    if not result.success:
        if result.retryable:
            raise result.error
        logger.info("Affiliate %s rejected: %s", sanitize_id_for_logging(affiliate_id), result.error_message)
        return {"success": True, "valid": False, "message": "Affiliate not found or inactive"}

    if not is_active_affiliate(result.data):
        return {"success": True, "valid": False, "message": "Affiliate not found or inactive"}
    return {
        "success": True,
        "valid": True,
        "affiliate": {
            "id": result.data.get("id"),
            "name": result.data.get("name"),
            "status": result.data.get("status"),
        },
    }

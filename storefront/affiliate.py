"""
Affiliate attribution cookie and visit tracking.

The cookie value is `<base64url(json)>.<hmac-sha256 hex>`; anything that
fails verification is treated as "no affiliate". Visit pings to the
Billing Backend run as background tasks and never affect the response.
"""

import asyncio
import base64
import hashlib
import hmac
import json
import time
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from storefront.billing.base import BillingBackend
from storefront.logging import get_logger, sanitize_id_for_logging
from storefront.models import AffiliateAttribution

logger = get_logger(__name__)

AFFILIATE_COOKIE_NAME = "affiliate_ref"

# Strong references so pending pings are not garbage collected
_background_tasks: set[asyncio.Task] = set()


def _sign(secret: str, payload: str) -> str:
    return hmac.new(secret.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).hexdigest()


def is_active_affiliate(data: dict) -> bool:
    """Billing Backend affiliates without a status are treated as active."""
    return str(data.get("status") or "").strip().lower() in ("active", "")


def encode_affiliate_cookie(attribution: AffiliateAttribution, secret: str, now: float | None = None) -> Optional[str]:
    """Serialize and sign; None when no signing secret is configured."""
    if not secret:
        logger.warning("AFFILIATE_COOKIE_SECRET not set, attribution cookie disabled")
        return None
    data = {
        "id": attribution.affiliate_id,
        "code": attribution.affiliate_code,
        "ts": int(now if now is not None else time.time()),
    }
    payload = base64.urlsafe_b64encode(json.dumps(data, separators=(",", ":")).encode("utf-8")).decode("ascii")
    return f"{payload}.{_sign(secret, payload)}"


def decode_affiliate_cookie(
    value: str | None,
    secret: str,
    max_age: int | None = None,
    now: float | None = None,
) -> Optional[AffiliateAttribution]:
    """Verify and parse a cookie value; tampered, expired or malformed -> None."""
    if not value or not secret or "." not in value:
        return None

    payload, _, signature = value.rpartition(".")
    if not hmac.compare_digest(_sign(secret, payload).encode("utf-8"), signature.encode("utf-8")):
        logger.warning("Affiliate cookie signature mismatch")
        return None

    try:
        data = json.loads(base64.urlsafe_b64decode(payload.encode("ascii")))
        attribution = AffiliateAttribution(affiliate_id=data["id"], affiliate_code=data.get("code"))
    except (ValueError, KeyError, TypeError, PydanticValidationError):
        return None

    if max_age is not None:
        issued = data.get("ts")
        current = now if now is not None else time.time()
        if not isinstance(issued, int) or current - issued > max_age:
            return None
    return attribution


async def _track_visit_async(
    backend: BillingBackend,
    affiliate_id: str,
    url: str | None,
    referrer: str | None,
    timeout: float,
) -> None:
    """Send the visit ping (fire-and-forget)."""
    try:
        result = await asyncio.wait_for(backend.track_visit(affiliate_id, url=url, referrer=referrer), timeout)
        if not result.success:
            logger.debug("Affiliate visit ping failed: %s", result.error_message)
    except Exception as e:
        # Non-fatal - tracking must never break the request
        logger.debug("Affiliate visit ping error for %s: %s", sanitize_id_for_logging(affiliate_id), e)


def track_visit_in_background(
    backend: BillingBackend,
    affiliate_id: str,
    url: str | None = None,
    referrer: str | None = None,
    timeout: float = 3.0,
) -> Optional[asyncio.Task]:
    """
    Schedule the visit ping and return immediately.

    Must be called from inside a running event loop. Do NOT await the
    returned task on the request path.
    """
    ping = _track_visit_async(backend, affiliate_id, url, referrer, timeout)
    try:
        task = asyncio.create_task(ping)
    except RuntimeError as e:
        ping.close()
        logger.debug("Failed to schedule affiliate visit ping: %s", e)
        return None
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task

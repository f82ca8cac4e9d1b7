"""
FastAPI Routers Package

Endpoints grouped by concern. All routers are included in api/index.py.
"""

from storefront.routers.affiliate import router as affiliate_router
from storefront.routers.orders import router as orders_router
from storefront.routers.payments import router as payments_router
from storefront.routers.webhooks import router as webhooks_router

__all__ = [
    "affiliate_router",
    "orders_router",
    "payments_router",
    "webhooks_router",
]

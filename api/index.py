"""
VPS Storefront - Main FastAPI Application

Single entry point for checkout, payment and affiliate routes.
"""
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storefront.errors import ERROR_INTERNAL, ERROR_INVALID_REQUEST, StorefrontError
from storefront.logging import get_logger
from storefront.routers import affiliate_router, orders_router, payments_router, webhooks_router
from storefront.routers.deps import (
    get_billing_backend,
    get_catalog,
    get_payment_registry,
    get_reconciler,
    get_settings,
    shutdown_services,
)

logger = get_logger(__name__)


# ==================== FASTAPI APP ====================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    # Startup
    load_dotenv()
    settings = get_settings().validate()
    get_catalog()
    try:
        await get_payment_registry().sync(get_billing_backend())
    except StorefrontError as e:
        logger.warning("Payment method sync failed, keeping defaults: %s", e.message)
    logger.info("Storefront started (currency=%s, test_mode=%s)", settings.home_currency, settings.payment_test_mode)
    yield
    # Shutdown
    await shutdown_services()


app = FastAPI(
    title="VPS Storefront",
    description="Order & payment orchestration in front of the billing backend",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(orders_router)
app.include_router(payments_router)
app.include_router(webhooks_router)
app.include_router(affiliate_router)


# ==================== ERROR HANDLERS ====================

@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.code)
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return JSONResponse(
        {
            "success": False,
            "error": ERROR_INVALID_REQUEST,
            "code": "validation_error",
            "retryable": False,
            "details": {"errors": errors},
        },
        status_code=422,
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        {"success": False, "error": ERROR_INTERNAL, "code": "internal_error", "retryable": False},
        status_code=500,
    )


# ==================== HEALTH CHECK ====================

@app.get("/api/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "ok",
        "service": "vps-storefront",
        "catalog": get_catalog().stats()["totalMappings"],
        "paymentMethodsSynced": get_payment_registry().synced,
        "webhookFailures": len(get_reconciler().recent_failures()),
    }


@app.get("/api/test-connection")
async def test_connection():
    """Check that the billing backend answers with our credentials"""
    result = await get_billing_backend().test_connection()
    if not result.success:
        raise result.error
    return {"success": True, **result.data}

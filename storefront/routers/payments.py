"""
Payments Router

Method listing, initialization, browser return, polling and status.
Classified errors propagate to the app-level StorefrontError handler.
"""
from typing import Optional

from fastapi import APIRouter, Request
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from storefront.logging import get_logger
from storefront.payments import PaymentInitRequest
from storefront.routers.deps import (
    get_payment_initializer,
    get_payment_registry,
    get_reconciler,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/api/payments", tags=["payments"])


class PaymentLookup(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    payment_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("paymentId", "payment_id"))
    invoice_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("invoiceId", "invoice_id"))
    order_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("orderId", "order_id"))


@router.get("/methods")
async def list_methods():
    registry = get_payment_registry()
    methods = registry.list_methods()
    return {
        "success": True,
        "methods": methods,
        "enabledCount": sum(1 for m in methods if m["enabled"]),
        "synced": registry.synced,
    }


@router.post("/initialize")
async def initialize_payment(body: PaymentInitRequest):
    result = await get_payment_initializer().initialize(body)
    return result.to_response()


@router.get("/return")
async def payment_return(request: Request):
    """Browser lands here (via the storefront page) after the hosted checkout."""
    return await get_reconciler().handle_return(dict(request.query_params))


@router.post("/verify")
async def verify_payment(body: PaymentLookup):
    return await get_reconciler().verify(body.payment_id, body.invoice_id, body.order_id)


@router.get("/status")
async def payment_status(
    paymentId: Optional[str] = None,
    invoiceId: Optional[str] = None,
    orderId: Optional[str] = None,
):
    return await get_reconciler().get_status(paymentId, invoiceId, orderId)

"""
Pydantic Models - Checkout Data Schemas

Contains the checkout-side models:
- Cart input (CartItem, Customer, AffiliateAttribution, CheckoutRequest)
- Orchestration result (OrderLine, OrderRecord)

Field names follow the storefront's JSON (camelCase aliases); Python code
uses the snake_case attribute names.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from storefront.errors import ERROR_NO_ORDERS_CREATED


class BillingCycle(str, Enum):
    """Subscription billing cycles offered in the cart."""
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    SEMIANNUAL = "semiannual"
    ANNUAL = "annual"


# Billing Backend cycle codes
CYCLE_CODES: dict[BillingCycle, str] = {
    BillingCycle.MONTHLY: "m",
    BillingCycle.QUARTERLY: "q",
    BillingCycle.SEMIANNUAL: "s",
    BillingCycle.ANNUAL: "a",
}


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, str_strip_whitespace=True)


class CartItem(_Frozen):
    internal_product_id: str = Field(
        validation_alias=AliasChoices("internalProductId", "productId", "internal_product_id"),
        serialization_alias="internalProductId",
        min_length=1,
    )
    quantity: int = Field(default=1, ge=1)
    unit_price: Decimal = Field(
        default=Decimal("0"),
        validation_alias=AliasChoices("unitPrice", "price", "unit_price"),
        serialization_alias="unitPrice",
        ge=0,
    )
    billing_cycle: BillingCycle = Field(
        default=BillingCycle.MONTHLY,
        validation_alias=AliasChoices("billingCycle", "cycle", "billing_cycle"),
        serialization_alias="billingCycle",
    )
    config_options: dict[str, str] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("configOptions", "config_options"),
        serialization_alias="configOptions",
    )
    addons: tuple[str, ...] = ()
    name: Optional[str] = None
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)

    @field_validator("internal_product_id", mode="before")
    @classmethod
    def _coerce_id(cls, value):
        return str(value) if isinstance(value, int) else value

    @field_validator("config_options", mode="before")
    @classmethod
    def _stringify_options(cls, value):
        if isinstance(value, dict):
            return {str(k): str(v) for k, v in value.items() if v is not None}
        return value

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value):
        return value.upper() if value else value


class Customer(_Frozen):
    first_name: str = Field(validation_alias=AliasChoices("firstName", "first_name"), min_length=1)
    last_name: str = Field(validation_alias=AliasChoices("lastName", "last_name"), min_length=1)
    email: str = Field(min_length=3)
    phone: str = ""
    address: str = Field(min_length=1)
    city: str = Field(min_length=1)
    postal_code: str = Field(validation_alias=AliasChoices("postalCode", "postal_code"), min_length=1)
    country: Optional[str] = None
    company: Optional[str] = None
    state: Optional[str] = None

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        local, sep, domain = value.partition("@")
        if not sep or not local or "." not in domain:
            raise ValueError("Valid email is required")
        return value


class AffiliateAttribution(_Frozen):
    affiliate_id: str = Field(validation_alias=AliasChoices("affiliateId", "id", "affiliate_id"), min_length=1)
    affiliate_code: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("affiliateCode", "code", "affiliate_code")
    )

    @field_validator("affiliate_id", mode="before")
    @classmethod
    def _coerce_id(cls, value):
        return str(value) if isinstance(value, int) else value

    def to_response(self) -> dict:
        payload = {"id": self.affiliate_id}
        if self.affiliate_code:
            payload["code"] = self.affiliate_code
        return payload


class CheckoutRequest(_Frozen):
    customer: Customer
    items: tuple[CartItem, ...] = Field(min_length=1)
    affiliate: Optional[AffiliateAttribution] = None
    payment_method: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("paymentMethod", "payment_method")
    )
    total: Optional[Decimal] = Field(default=None, ge=0)


class OrderLine(_Frozen):
    """Outcome of one cart line."""
    internal_product_id: str
    product_name: str
    success: bool
    billing_backend_order_id: Optional[str] = None
    billing_backend_invoice_id: Optional[str] = None
    currency: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    retryable: bool = False

    def to_response(self) -> dict:
        return {
            "orderId": self.billing_backend_order_id,
            "invoiceId": self.billing_backend_invoice_id,
            "productName": self.product_name,
            "internalProductId": self.internal_product_id,
            "currency": self.currency,
        }


class OrderRecord(_Frozen):
    """Aggregate result of one checkout attempt. Never mutated after return."""
    processing_id: str
    client_id: Optional[str] = None
    lines: tuple[OrderLine, ...] = ()
    affiliate: Optional[AffiliateAttribution] = None
    errors: tuple[str, ...] = ()
    total: Optional[Decimal] = None
    currency: str = "CZK"
    overall_success: bool = False
    # Classification of a fatal customer-resolution failure
    failure_code: Optional[str] = None
    retryable: bool = False

    @property
    def customer_resolved(self) -> bool:
        return self.client_id is not None

    @property
    def successful_lines(self) -> tuple[OrderLine, ...]:
        return tuple(line for line in self.lines if line.success)

    @property
    def failed_lines(self) -> tuple[OrderLine, ...]:
        return tuple(line for line in self.lines if not line.success)

    def to_response(self) -> dict:
        payload = {
            "success": self.overall_success,
            "processingId": self.processing_id,
            "orders": [line.to_response() for line in self.successful_lines],
            "failedItems": [
                {
                    "internalProductId": line.internal_product_id,
                    "productName": line.product_name,
                    "error": line.error,
                    "code": line.error_code,
                    "retryable": line.retryable,
                }
                for line in self.failed_lines
            ],
            "client": {"id": self.client_id} if self.client_id else None,
            "errors": list(self.errors),
            "currency": self.currency,
        }
        if self.total is not None:
            payload["total"] = str(self.total)
        if self.affiliate:
            payload["affiliate"] = self.affiliate.to_response()
        if self.failure_code:
            payload["code"] = self.failure_code
            payload["retryable"] = self.retryable
        elif not self.overall_success:
            payload["error"] = ERROR_NO_ORDERS_CREATED
        return payload

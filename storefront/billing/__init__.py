"""Billing Backend integration: interface, RPC client and message translation."""
from .base import BillingBackend, BillingResult
from .client import BillingBackendClient
from .translate import is_duplicate_customer

__all__ = [
    "BillingBackend",
    "BillingBackendClient",
    "BillingResult",
    "is_duplicate_customer",
]

"""
Shared Dependencies for Routers

Lazy-loaded singletons, all built from one Settings instance.
Tests call configure() to inject their own settings and backend.
"""

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from storefront.billing import BillingBackend
    from storefront.catalog import ProductCatalogMapper
    from storefront.config import Settings
    from storefront.orders import OrderOrchestrator
    from storefront.payments import (
        PaymentInitializer,
        PaymentIntentStore,
        PaymentMethodRegistry,
        PaymentReconciler,
    )


# ==================== LAZY SINGLETONS ====================

_settings: Optional["Settings"] = None
_backend: Optional["BillingBackend"] = None
_catalog: Optional["ProductCatalogMapper"] = None
_registry: Optional["PaymentMethodRegistry"] = None
_store: Optional["PaymentIntentStore"] = None
_orchestrator: Optional["OrderOrchestrator"] = None
_initializer: Optional["PaymentInitializer"] = None
_reconciler: Optional["PaymentReconciler"] = None


def configure(settings: Optional["Settings"] = None, backend: Optional["BillingBackend"] = None) -> None:
    """Drop every singleton; the next access rebuilds from the given objects."""
    global _settings, _backend, _catalog, _registry, _store, _orchestrator, _initializer, _reconciler
    _settings = settings
    _backend = backend
    _catalog = None
    _registry = None
    _store = None
    _orchestrator = None
    _initializer = None
    _reconciler = None


def get_settings() -> "Settings":
    """Get or create Settings singleton (from environment)"""
    global _settings
    if _settings is None:
        from storefront.config import Settings
        _settings = Settings.from_env()
    return _settings


def get_billing_backend() -> "BillingBackend":
    """Get or create Billing Backend client singleton (lazy loaded)"""
    global _backend
    if _backend is None:
        from storefront.billing import BillingBackendClient
        _backend = BillingBackendClient(get_settings())
    return _backend


def get_catalog() -> "ProductCatalogMapper":
    global _catalog
    if _catalog is None:
        from storefront.catalog import ProductCatalogMapper
        _catalog = ProductCatalogMapper.from_settings(get_settings())
    return _catalog


def get_payment_registry() -> "PaymentMethodRegistry":
    global _registry
    if _registry is None:
        from storefront.payments import PaymentMethodRegistry
        _registry = PaymentMethodRegistry(get_settings())
    return _registry


def get_payment_store() -> "PaymentIntentStore":
    global _store
    if _store is None:
        from storefront.payments import PaymentIntentStore
        _store = PaymentIntentStore()
    return _store


def get_orchestrator() -> "OrderOrchestrator":
    global _orchestrator
    if _orchestrator is None:
        from storefront.orders import OrderOrchestrator
        _orchestrator = OrderOrchestrator(get_settings(), get_billing_backend(), get_catalog())
    return _orchestrator


def get_payment_initializer() -> "PaymentInitializer":
    global _initializer
    if _initializer is None:
        from storefront.payments import PaymentInitializer
        _initializer = PaymentInitializer(get_settings(), get_payment_registry(), get_payment_store())
    return _initializer


def get_reconciler() -> "PaymentReconciler":
    global _reconciler
    if _reconciler is None:
        from storefront.payments import PaymentReconciler
        _reconciler = PaymentReconciler(
            get_settings(), get_payment_store(), get_billing_backend(), get_payment_registry()
        )
    return _reconciler


# ==================== SHUTDOWN HELPERS ====================
async def shutdown_services():
    """Cleanly close singleton services (http clients, etc.)."""
    global _backend
    if _backend is not None:
        try:
            await _backend.aclose()
        finally:
            _backend = None

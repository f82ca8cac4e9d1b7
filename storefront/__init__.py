"""
VPS Storefront Core Module

This package contains the order & payment pipeline:
- catalog: storefront <-> Billing Backend product mapping
- billing: Billing Backend RPC client
- orders: checkout orchestration
- payments: method selection, initialization, reconciliation
- affiliate: attribution cookie and visit tracking
- routers: FastAPI endpoints

Note: Submodules are imported explicitly by callers; nothing is loaded
at package import time.
"""

__version__ = "1.0.0"

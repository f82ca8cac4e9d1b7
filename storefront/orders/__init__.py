from .orchestrator import CustomerResolutionError, OrderOrchestrator

__all__ = ["CustomerResolutionError", "OrderOrchestrator"]

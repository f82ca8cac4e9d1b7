"""Payment method configuration, synced from the Billing Backend's active modules."""
from dataclasses import dataclass, replace
from typing import Optional

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from storefront.billing.base import BillingBackend
from storefront.config import Settings
from storefront.errors import (
    ERROR_METHOD_DISABLED,
    ERROR_METHOD_UNSUPPORTED,
    TransientError,
    ValidationError,
)
from storefront.logging import get_logger

from .constants import (
    DEFAULT_GATEWAY_IDS,
    METHOD_NAMES,
    METHOD_TYPES,
    MODULE_ID_METHODS,
    MODULE_NAME_HINTS,
    PaymentMethod,
    PaymentType,
    normalize_method,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class MethodConfig:
    method: str
    name: str
    type: PaymentType
    gateway_id: str
    enabled: bool = True
    module_name: Optional[str] = None

    @property
    def requires_redirect(self) -> bool:
        return self.type == PaymentType.REDIRECT

    def to_dict(self) -> dict:
        payload = {
            "method": self.method,
            "name": self.name,
            "type": self.type.value,
            "requiresRedirect": self.requires_redirect,
            "gatewayId": self.gateway_id,
            "enabled": self.enabled,
        }
        if self.module_name:
            payload["moduleName"] = self.module_name
        return payload


def _methods_for_module(module_id: str, module_name: str, gateway_ids: dict[str, str]) -> set[str]:
    """Every method an installed payment module can serve."""
    matched = {method for method, gateway_id in gateway_ids.items() if gateway_id == module_id}
    if module_id in MODULE_ID_METHODS:
        matched.add(MODULE_ID_METHODS[module_id])
    lowered = module_name.lower()
    for hint, method in MODULE_NAME_HINTS.items():
        if hint in lowered:
            matched.add(method)
    return matched


class PaymentMethodRegistry:
    """
    Supported payment methods with their enabled flags.

    Until the first successful sync every method counts as enabled, so a
    Billing Backend outage at startup does not take checkout down.
    """

    def __init__(self, settings: Settings):
        self._methods: dict[str, MethodConfig] = {}
        for method in PaymentMethod:
            key = method.value
            self._methods[key] = MethodConfig(
                method=key,
                name=METHOD_NAMES[key],
                type=METHOD_TYPES[key],
                gateway_id=settings.gateway_overrides.get(key, DEFAULT_GATEWAY_IDS[key]),
            )
        self.synced = False

    def apply_modules(self, modules: dict[str, str]) -> None:
        """Mark methods enabled iff an active module serves them."""
        gateway_ids = {m.method: m.gateway_id for m in self._methods.values()}
        served: dict[str, str] = {}
        for module_id, module_name in modules.items():
            for method in _methods_for_module(str(module_id), str(module_name), gateway_ids):
                served.setdefault(method, str(module_name))

        for key, config in self._methods.items():
            self._methods[key] = replace(config, enabled=key in served, module_name=served.get(key))
        self.synced = True

        enabled = [key for key, config in self._methods.items() if config.enabled]
        logger.info("Payment methods synced: enabled=%s (%d modules)", enabled, len(modules))

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception_type(TransientError),
        reraise=True,
    )
    async def _fetch_modules(self, backend: BillingBackend) -> dict[str, str]:
        result = await backend.get_payment_modules()
        if not result.success:
            raise result.error
        return result.data.get("modules", {})

    async def sync(self, backend: BillingBackend) -> None:
        """
        Refresh enabled flags from the Billing Backend.

        Transient failures are retried a few times; the last error propagates
        and the previous flags stay in place.
        """
        modules = await self._fetch_modules(backend)
        self.apply_modules(modules)

    def list_methods(self) -> list[dict]:
        return [config.to_dict() for config in self._methods.values()]

    def get(self, method: str | None) -> MethodConfig:
        """
        Raises:
            ValidationError: if the method is not supported
        """
        key = normalize_method(method)
        config = self._methods.get(key)
        if config is None:
            raise ValidationError(ERROR_METHOD_UNSUPPORTED, details={"method": method})
        return config

    def require_enabled(self, method: str | None) -> MethodConfig:
        """
        Raises:
            ValidationError: if the method is unsupported or disabled
        """
        config = self.get(method)
        if not config.enabled:
            raise ValidationError(ERROR_METHOD_DISABLED, details={"method": config.method})
        return config

    def is_enabled(self, method: str | None) -> bool:
        config = self._methods.get(normalize_method(method))
        return bool(config and config.enabled)

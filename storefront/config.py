"""
Storefront configuration.

All environment access happens here. Components receive a Settings instance
at construction and never read os.environ themselves.
"""
import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from storefront.errors import ConfigurationError
from storefront.logging import get_logger

logger = get_logger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _as_bool(value: str | None, default: bool = False) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in _TRUE_VALUES


def _as_float(value: str | None, default: float) -> float:
    try:
        return float(value) if value else default
    except ValueError:
        logger.warning("Invalid numeric setting %r, using %s", value, default)
        return default


def _prefixed(environ: Mapping[str, str], prefix: str) -> dict[str, str]:
    """Collect PREFIX_<key>=value pairs, keyed by <key>."""
    result = {}
    for key, value in environ.items():
        if key.startswith(prefix) and value:
            name = key[len(prefix):]
            if name:
                result[name] = value
    return result


@dataclass(frozen=True)
class BankDetails:
    """Account the customer pays into for manual bank transfers."""

    account_number: str = "123456789/0100"
    bank_name: str = "Komercni banka"
    iban: str = "CZ65 0100 0000 0012 3456 7890"
    swift: str = "KOMBCZPP"
    constant_symbol: str = "0308"
    due_days: int = 7


@dataclass(frozen=True)
class Settings:
    """Explicit process configuration, built once at startup."""

    billing_api_url: str = ""
    billing_api_id: str = ""
    billing_api_key: str = ""
    billing_client_url: str = ""
    billing_timeout: float = 12.0

    home_currency: str = "CZK"
    default_country: str = "CZ"
    storefront_url: str = "http://localhost:3000"

    affiliate_required: bool = False
    affiliate_validate: bool = False
    affiliate_cookie_secret: str = ""
    affiliate_cookie_max_age: int = 30 * 24 * 3600

    catalog_file: str | None = None
    product_overrides: dict[str, str] = field(default_factory=dict)
    addon_overrides: dict[str, str] = field(default_factory=dict)
    gateway_overrides: dict[str, str] = field(default_factory=dict)

    payment_test_mode: bool = False
    payment_test_base_url: str = "http://localhost:3005"
    bank: BankDetails = field(default_factory=BankDetails)

    stripe_webhook_secret: str = ""
    record_invoice_payments: bool = False
    tracking_timeout: float = 3.0

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from environment variables (os.environ by default)."""
        env = os.environ if environ is None else environ

        api_url = env.get("BILLING_API_URL", "")
        # Hosted checkout lives on the client area, next to the admin API
        client_url = env.get("BILLING_CLIENT_URL") or api_url.replace("/admin/api.php", "").rstrip("/")

        bank = BankDetails(
            account_number=env.get("BANK_ACCOUNT_NUMBER", BankDetails.account_number),
            bank_name=env.get("BANK_NAME", BankDetails.bank_name),
            iban=env.get("BANK_IBAN", BankDetails.iban),
            swift=env.get("BANK_SWIFT", BankDetails.swift),
            constant_symbol=env.get("BANK_CONSTANT_SYMBOL", BankDetails.constant_symbol),
        )

        return cls(
            billing_api_url=api_url,
            billing_api_id=env.get("BILLING_API_ID", ""),
            billing_api_key=env.get("BILLING_API_KEY", ""),
            billing_client_url=client_url,
            billing_timeout=_as_float(env.get("BILLING_TIMEOUT"), 12.0),
            home_currency=(env.get("HOME_CURRENCY") or "CZK").upper(),
            default_country=(env.get("DEFAULT_COUNTRY") or "CZ").upper(),
            storefront_url=(env.get("STOREFRONT_URL") or "http://localhost:3000").rstrip("/"),
            affiliate_required=_as_bool(env.get("AFFILIATE_REQUIRED")),
            affiliate_validate=_as_bool(env.get("AFFILIATE_VALIDATE")),
            affiliate_cookie_secret=env.get("AFFILIATE_COOKIE_SECRET", ""),
            catalog_file=env.get("CATALOG_FILE") or None,
            product_overrides=_prefixed(env, "PRODUCT_MAPPING_"),
            addon_overrides={k.lower(): v for k, v in _prefixed(env, "ADDON_MAPPING_").items()},
            gateway_overrides={k.lower(): v for k, v in _prefixed(env, "PAYMENT_GATEWAY_").items()},
            payment_test_mode=_as_bool(env.get("PAYMENT_TEST_MODE")),
            payment_test_base_url=(env.get("PAYMENT_TEST_BASE_URL") or "http://localhost:3005").rstrip("/"),
            bank=bank,
            stripe_webhook_secret=env.get("STRIPE_WEBHOOK_SECRET", ""),
            record_invoice_payments=_as_bool(env.get("RECORD_INVOICE_PAYMENTS")),
            tracking_timeout=_as_float(env.get("TRACKING_TIMEOUT"), 3.0),
        )

    def validate(self) -> "Settings":
        """
        Fail fast on missing Billing Backend credentials.

        Raises:
            ConfigurationError: if the API URL or the secret pair is missing
        """
        missing = [
            name
            for name, value in (
                ("BILLING_API_URL", self.billing_api_url),
                ("BILLING_API_ID", self.billing_api_id),
                ("BILLING_API_KEY", self.billing_api_key),
            )
            if not value
        ]
        if missing:
            logger.error("Billing backend not configured. Missing: %s", missing)
            raise ConfigurationError(
                "Billing backend credentials are not configured",
                details={"missing": missing},
            )
        if self.billing_timeout <= 0:
            raise ConfigurationError("BILLING_TIMEOUT must be positive")
        return self

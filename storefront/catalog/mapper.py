"""
Product Catalog Mapper

Static bidirectional mapping between storefront product ids and Billing
Backend product ids, plus add-on ids. The table is data (products.json,
optionally replaced via CATALOG_FILE) with per-id environment overrides.
Pure lookups, no I/O after construction.
"""
import json
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any

from storefront.config import Settings
from storefront.errors import ERROR_UNKNOWN_PRODUCT, ConfigurationError, UnknownProductError
from storefront.logging import get_logger, sanitize_id_for_logging

logger = get_logger(__name__)


@dataclass(frozen=True)
class CatalogEntry:
    internal_id: str
    backend_id: str
    name: str


def load_catalog_table(path: str | None = None) -> dict[str, Any]:
    """Read the mapping table from `path` or from the bundled products.json."""
    try:
        if path:
            raw = Path(path).read_text(encoding="utf-8")
        else:
            raw = resources.files("storefront.catalog").joinpath("products.json").read_text(encoding="utf-8")
        data = json.loads(raw)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Catalog mapping could not be loaded: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError("Catalog mapping must be a JSON object")
    return data


class ProductCatalogMapper:
    """Maps storefront product/add-on identifiers to Billing Backend ones."""

    def __init__(self, table: dict[str, Any], product_overrides: dict[str, str] | None = None,
                 addon_overrides: dict[str, str] | None = None) -> None:
        self._entries: dict[str, CatalogEntry] = {}
        for internal_id, entry in (table.get("products") or {}).items():
            if isinstance(entry, dict):
                backend_id = str(entry.get("backend_id") or "")
                name = str(entry.get("name") or f"Product {internal_id}")
            else:
                backend_id, name = str(entry), f"Product {internal_id}"
            if backend_id:
                self._entries[str(internal_id)] = CatalogEntry(str(internal_id), backend_id, name)

        for internal_id, backend_id in (product_overrides or {}).items():
            current = self._entries.get(internal_id)
            name = current.name if current else f"Product {internal_id}"
            self._entries[internal_id] = CatalogEntry(internal_id, str(backend_id), name)

        self._addons: dict[str, str] = {
            str(name).lower(): str(addon_id)
            for name, addon_id in (table.get("addons") or {}).items()
            if addon_id
        }
        self._addons.update({k.lower(): str(v) for k, v in (addon_overrides or {}).items()})

        if not self._entries:
            raise ConfigurationError("Catalog mapping contains no products")

        self._reverse = {entry.backend_id: entry.internal_id for entry in self._entries.values()}

        logger.info(
            "Product mapping initialized: %d products, %d addons",
            len(self._entries),
            len(self._addons),
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProductCatalogMapper":
        table = load_catalog_table(settings.catalog_file)
        return cls(table, settings.product_overrides, settings.addon_overrides)

    def map_internal_to_backend(self, internal_product_id: str | int) -> str:
        """
        Translate a storefront product id.

        Raises:
            UnknownProductError: the id is not in the table (caller error)
        """
        entry = self._entries.get(str(internal_product_id))
        if entry is None:
            logger.warning("No backend mapping for product %s", sanitize_id_for_logging(internal_product_id))
            raise UnknownProductError(
                f"{ERROR_UNKNOWN_PRODUCT}: {internal_product_id}",
                details={"internalProductId": str(internal_product_id)},
            )
        return entry.backend_id

    def map_backend_to_internal(self, backend_product_id: str | int) -> str | None:
        return self._reverse.get(str(backend_product_id))

    def map_addon(self, addon_name: str) -> str | None:
        if not addon_name:
            return None
        return self._addons.get(addon_name.strip().lower())

    def has_mapping(self, internal_product_id: str | int) -> bool:
        return str(internal_product_id) in self._entries

    def product_name(self, internal_product_id: str | int) -> str | None:
        entry = self._entries.get(str(internal_product_id))
        return entry.name if entry else None

    def stats(self) -> dict[str, Any]:
        return {
            "totalMappings": len(self._entries),
            "internalProducts": sorted(self._entries),
            "backendProducts": sorted(self._reverse),
            "addons": sorted(self._addons),
        }

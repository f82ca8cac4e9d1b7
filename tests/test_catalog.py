"""Tests for product catalog mapping"""
import json

import pytest

from storefront.catalog import ProductCatalogMapper, load_catalog_table
from storefront.config import Settings
from storefront.errors import ConfigurationError, UnknownProductError, ValidationError


def test_bundled_table_maps_known_products(catalog):
    assert catalog.map_internal_to_backend("1") == "5"
    assert catalog.map_internal_to_backend(2) == "10"
    assert catalog.map_backend_to_internal("11") == "3"
    assert catalog.product_name("1") == "VPS Start"


def test_unknown_product_is_caller_error(catalog):
    with pytest.raises(UnknownProductError) as exc_info:
        catalog.map_internal_to_backend("999")

    assert isinstance(exc_info.value, ValidationError)
    assert exc_info.value.status_code == 422
    assert exc_info.value.retryable is False
    assert exc_info.value.details == {"internalProductId": "999"}


def test_addons_are_case_insensitive_and_optional(catalog):
    assert catalog.map_addon("cPanel") == "5"
    assert catalog.map_addon("  backup ") == "7"
    assert catalog.map_addon("nonexistent") is None
    assert catalog.map_addon("") is None


def test_environment_overrides_win():
    settings = Settings.from_env(
        {
            "PRODUCT_MAPPING_1": "42",
            "PRODUCT_MAPPING_77": "88",
            "ADDON_MAPPING_CPANEL": "500",
        }
    )
    mapper = ProductCatalogMapper.from_settings(settings)

    assert mapper.map_internal_to_backend("1") == "42"
    assert mapper.product_name("1") == "VPS Start"
    assert mapper.map_internal_to_backend("77") == "88"
    assert mapper.map_addon("cpanel") == "500"


def test_custom_catalog_file(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps({"products": {"a": {"backend_id": "900", "name": "Custom"}}, "addons": {}}))

    mapper = ProductCatalogMapper(load_catalog_table(str(path)))

    assert mapper.map_internal_to_backend("a") == "900"
    assert mapper.has_mapping("a")
    assert not mapper.has_mapping("1")
    assert mapper.stats()["totalMappings"] == 1


def test_empty_or_missing_table_is_configuration_error(tmp_path):
    with pytest.raises(ConfigurationError):
        ProductCatalogMapper({"products": {}})

    with pytest.raises(ConfigurationError):
        load_catalog_table(str(tmp_path / "missing.json"))

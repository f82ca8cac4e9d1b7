"""Catalog package: storefront <-> Billing Backend product id mapping."""
from .mapper import CatalogEntry, ProductCatalogMapper, load_catalog_table

__all__ = [
    "CatalogEntry",
    "ProductCatalogMapper",
    "load_catalog_table",
]

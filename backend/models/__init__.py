# Models package - Consolidated imports only
from .catalog import Product, Engraving, CatalogEntityMixin

__all__ = [
    "Product",
    "Engraving",
    "CatalogEntityMixin",
]

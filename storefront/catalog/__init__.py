# Catalog Sync

from .client import CatalogClient
from .sync import CatalogSyncEngine, index_products

__all__ = [
    "CatalogClient",
    "CatalogSyncEngine",
    "index_products",
]

"""
Catalog API Client

Reads product records from the Product Catalog collaborator.
"""

import logging
from typing import Any, Optional

from pydantic import ValidationError as ModelValidationError

from ..core.errors import ProviderError
from ..models.product import Product
from ..transport import HttpTransport

logger = logging.getLogger(__name__)


def _unwrap_list(payload: Any) -> list[Any]:
    """Accept a bare list or a {"products": [...]} / {"data": [...]} envelope"""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in ("products", "data", "items"):
            value = payload.get(key)
            if isinstance(value, list):
                return value
    raise ProviderError("Unexpected product list payload", payload=payload)


def _unwrap_one(payload: Any) -> Any:
    if isinstance(payload, dict):
        for key in ("product", "data"):
            value = payload.get(key)
            if isinstance(value, dict):
                return value
    return payload


class CatalogClient:
    """Client for the product catalog endpoints"""

    def __init__(self, transport: HttpTransport):
        self.transport = transport

    # ==================== Product APIs ====================

    async def fetch_products(self, category: Optional[str] = None) -> list[Product]:
        """
        List products, optionally filtered by category.

        Records that fail validation are skipped with a warning.
        """
        params = {"category": category} if category else None
        payload = await self.transport.request("GET", "/products", params=params)

        products = []
        for raw in _unwrap_list(payload):
            try:
                products.append(Product.model_validate(raw))
            except ModelValidationError as e:
                logger.warning(f"Skipping malformed product record: {e.error_count()} errors")
        logger.debug(f"Fetched {len(products)} products (category={category})")
        return products

    async def fetch_product(self, product_id: str) -> Optional[Product]:
        """Get product details; None when the catalog no longer knows the id"""
        try:
            payload = await self.transport.request("GET", f"/products/{product_id}")
        except ProviderError as e:
            if e.status_code == 404:
                return None
            raise
        try:
            return Product.model_validate(_unwrap_one(payload))
        except ModelValidationError as e:
            raise ProviderError(f"Malformed product record for {product_id}", payload=payload) from e

"""Product API routes for the mock store"""

from typing import Optional
from fastapi import APIRouter, HTTPException, Query

from ..models.product import Product, ProductListResponse
from ..database.products import product_db

router = APIRouter(prefix="/api/products", tags=["Products"])


@router.get("", response_model=ProductListResponse)
async def list_products(
    category: Optional[str] = Query(None, description="Filter by category"),
):
    """List products in the catalog"""
    products = product_db.list_products(category=category)
    return ProductListResponse(products=products, total=len(products))


@router.get("/{product_id}", response_model=Product)
async def get_product(product_id: str):
    """Get a product by id or numeric id"""
    product = product_db.get_product(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product

"""Product models for the mock store"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Optional


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProductVariant(CamelModel):
    """Jar size of a product"""
    id: str
    size: str
    price: float = Field(gt=0)
    sku: Optional[str] = None


class Product(CamelModel):
    """Product in the catalog"""
    id: str
    numeric_id: int
    name: str
    description: str = ""
    price: float = Field(gt=0)
    currency: str = "KES"
    category: str
    images: list[str] = []
    size: str = "370g"
    sku: str
    in_stock: bool = True
    stock_quantity: int = Field(ge=0, default=100)
    variants: list[ProductVariant] = []


class ProductListResponse(CamelModel):
    """Response from the product listing"""
    products: list[Product]
    total: int

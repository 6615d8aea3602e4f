"""Product models as served by the catalog API"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Any, Optional


class ProductVariant(BaseModel):
    """Package size of a product (e.g. 370g / 1kg jar)"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    price: Optional[float] = None
    size: Optional[str] = None
    mass: Optional[str] = None
    sku: Optional[str] = None

    @field_validator("id", "mass", "size", "sku", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)


class Product(BaseModel):
    """Product in the catalog"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        from_attributes=True,
    )

    id: Optional[str] = None
    mongo_id: Optional[str] = Field(default=None, alias="_id")
    numeric_id: Optional[int] = None
    name: str
    description: Optional[str] = None
    price: float = Field(ge=0)
    category: Optional[str] = None
    image: Optional[str] = None
    images: list[str] = []
    size: Optional[str] = None
    sku: Optional[str] = None
    in_stock: bool = True
    stock_quantity: Optional[int] = Field(default=None, ge=0)
    variants: list[ProductVariant] = []

    @field_validator("id", "mongo_id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @property
    def primary_id(self) -> Optional[str]:
        """The id the backend treats as canonical"""
        return self.mongo_id or self.id or (str(self.numeric_id) if self.numeric_id is not None else None)

    @property
    def all_ids(self) -> list[str]:
        """Every id form this product can be referenced by"""
        ids = [self.id, self.mongo_id]
        if self.numeric_id is not None:
            ids.append(str(self.numeric_id))
        return [i for i in ids if i]

    @property
    def primary_image(self) -> Optional[str]:
        return self.image or (self.images[0] if self.images else None)

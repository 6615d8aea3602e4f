"""Cart models"""

from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Any, Optional

from .money import round_amount


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SelectedVariant(BaseModel):
    """Variant chosen for a cart line"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    price: Optional[int] = None
    size: Optional[str] = None
    mass: Optional[str] = None
    sku: Optional[str] = None

    @field_validator("id", "size", "mass", "sku", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value or None
        return str(value)

    @field_validator("price", mode="before")
    @classmethod
    def _round_price(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        return round_amount(value)

    @property
    def display_size(self) -> Optional[str]:
        if self.size:
            return self.size
        if self.mass:
            return f"{self.mass}g"
        return None


class CartLineItem(BaseModel):
    """Line in the shopping cart"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    cart_item_id: str
    product_id: str
    name: str
    unit_price: int = Field(ge=0)
    quantity: int = Field(default=1, ge=1)
    selected_variant: Optional[SelectedVariant] = None
    stock_quantity: Optional[int] = Field(default=None, ge=0)
    in_stock: bool = True
    image: Optional[str] = None
    category: Optional[str] = None
    size: Optional[str] = None
    sku: Optional[str] = None
    added_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    last_synced_at: Optional[datetime] = None

    @field_validator("unit_price", mode="before")
    @classmethod
    def _round_price(cls, value: Any) -> Any:
        return round_amount(value)

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity

    def to_storage(self) -> dict[str, Any]:
        """JSON-ready dict in the camelCase shape kept in client storage"""
        return self.model_dump(mode="json", by_alias=True)


class WishlistItem(CartLineItem):
    """Wishlist entry; quantity is always 1"""

    quantity: int = Field(default=1, ge=1, le=1)

    @field_validator("quantity", mode="before")
    @classmethod
    def _always_one(cls, value: Any) -> int:
        return 1


class CartTotals(BaseModel):
    """Derived cart totals (KES)"""

    subtotal: int = 0
    shipping: int = 0
    discount: int = 0
    tax: int = 0
    total: int = 0
    item_count: int = 0
    currency: str = "KES"

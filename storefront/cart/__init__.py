# Cart Store

from .pricing import PricingPolicy, StandardPricing
from .store import CartStore, catalog_changes, line_fields

__all__ = [
    "CartStore",
    "PricingPolicy",
    "StandardPricing",
    "catalog_changes",
    "line_fields",
]

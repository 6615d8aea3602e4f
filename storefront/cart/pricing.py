"""
Pricing policies

Shipping, discount and tax are computed through a policy object so that
turning discounts/tax back on is a configuration change.
"""

import logging
from typing import Optional

from ..core.config import Settings
from ..models.cart import CartTotals
from ..models.money import round_amount

logger = logging.getLogger(__name__)


class PricingPolicy:
    """Strategy for the derived parts of the cart totals"""

    def shipping(self, subtotal: int) -> int:
        raise NotImplementedError

    def discount(self, subtotal: int, code: Optional[str] = None) -> int:
        raise NotImplementedError

    def tax(self, taxable: int) -> int:
        raise NotImplementedError

    def totals(
        self,
        subtotal: int,
        item_count: int,
        discount_code: Optional[str] = None,
        currency: str = "KES",
    ) -> CartTotals:
        """total = subtotal + shipping - discount + tax"""
        shipping = self.shipping(subtotal)
        discount = min(self.discount(subtotal, discount_code), subtotal)
        tax = self.tax(subtotal - discount)
        return CartTotals(
            subtotal=subtotal,
            shipping=shipping,
            discount=discount,
            tax=tax,
            total=subtotal + shipping - discount + tax,
            item_count=item_count,
            currency=currency,
        )


class StandardPricing(PricingPolicy):
    """
    Flat-rate shipping with optional percentage tax and discount codes.

    Tax and discounts are forced to zero unless apply_adjustments is set;
    the computation stays in place for when the business re-enables them.
    """

    def __init__(
        self,
        shipping_fee: int = 300,
        charge_shipping_on_empty: bool = False,
        tax_rate: float = 0.0,
        discount_codes: Optional[dict[str, float]] = None,
        apply_adjustments: bool = False,
    ):
        """
        Args:
            shipping_fee: Flat shipping fee in KES
            charge_shipping_on_empty: Charge shipping when the subtotal is 0
            tax_rate: Tax as a fraction of the discounted subtotal (0.16 = 16%)
            discount_codes: Code -> fraction off the subtotal
            apply_adjustments: Enable tax and discount codes
        """
        self.shipping_fee = shipping_fee
        self.charge_shipping_on_empty = charge_shipping_on_empty
        self.tax_rate = tax_rate
        self.discount_codes = {k.upper(): v for k, v in (discount_codes or {}).items()}
        self.apply_adjustments = apply_adjustments

    @classmethod
    def from_settings(cls, settings: Settings) -> "StandardPricing":
        return cls(
            shipping_fee=settings.shipping_fee,
            charge_shipping_on_empty=settings.charge_shipping_on_empty_cart,
            tax_rate=settings.tax_rate,
            discount_codes=settings.discount_codes,
            apply_adjustments=settings.apply_price_adjustments,
        )

    def shipping(self, subtotal: int) -> int:
        if subtotal <= 0 and not self.charge_shipping_on_empty:
            return 0
        return self.shipping_fee

    def discount(self, subtotal: int, code: Optional[str] = None) -> int:
        if not self.apply_adjustments or not code:
            return 0
        rate = self.discount_codes.get(code.strip().upper())
        if rate is None:
            logger.info(f"Unknown discount code {code!r}")
            return 0
        return round_amount(subtotal * rate)

    def tax(self, taxable: int) -> int:
        if not self.apply_adjustments or self.tax_rate <= 0:
            return 0
        return round_amount(taxable * self.tax_rate)

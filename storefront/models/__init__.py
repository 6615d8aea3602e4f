# Storefront Models

from .money import round_amount
from .product import Product, ProductVariant
from .cart import CartLineItem, WishlistItem, SelectedVariant, CartTotals
from .order import Order, OrderItem, OrderPaymentStatus, PaymentConfirmation
from .payment import (
    PaymentStatus,
    PaymentState,
    PaymentRequest,
    PaymentInitiation,
    StatusResult,
    PaymentEvent,
)

__all__ = [
    "round_amount",
    "Product",
    "ProductVariant",
    "CartLineItem",
    "WishlistItem",
    "SelectedVariant",
    "CartTotals",
    "Order",
    "OrderItem",
    "OrderPaymentStatus",
    "PaymentConfirmation",
    "PaymentStatus",
    "PaymentState",
    "PaymentRequest",
    "PaymentInitiation",
    "StatusResult",
    "PaymentEvent",
]

# Mock Store Models

from .product import CamelModel, Product, ProductVariant, ProductListResponse
from .order import Order, OrderItem, PaymentStatus, CreateOrderRequest, PaymentUpdate
from .mpesa import (
    CallbackEnvelope,
    CancelRequest,
    StatusQueryRequest,
    StkCallback,
    StkPushRequest,
    Transaction,
    TransactionStatus,
)

__all__ = [
    "CamelModel",
    "Product",
    "ProductVariant",
    "ProductListResponse",
    "Order",
    "OrderItem",
    "PaymentStatus",
    "CreateOrderRequest",
    "PaymentUpdate",
    "CallbackEnvelope",
    "CancelRequest",
    "StatusQueryRequest",
    "StkCallback",
    "StkPushRequest",
    "Transaction",
    "TransactionStatus",
]

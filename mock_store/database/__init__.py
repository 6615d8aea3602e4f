# Database modules

from .products import product_db, ProductDatabase
from .orders import order_db, OrderDatabase
from .transactions import transaction_db, TransactionDatabase


def reset_all() -> None:
    """Restore seed data and drop all orders and transactions"""
    product_db.reset()
    order_db.reset()
    transaction_db.reset()


__all__ = [
    "product_db",
    "ProductDatabase",
    "order_db",
    "OrderDatabase",
    "transaction_db",
    "TransactionDatabase",
    "reset_all",
]

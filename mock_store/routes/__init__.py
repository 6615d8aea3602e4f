# API Routes

from .products import router as products_router
from .orders import router as orders_router
from .mpesa import router as mpesa_router

__all__ = ["products_router", "orders_router", "mpesa_router"]

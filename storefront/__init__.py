# Linda's Nut Butter storefront core

from .storefront import Storefront
from .cart import CartStore, PricingPolicy, StandardPricing
from .catalog import CatalogClient, CatalogSyncEngine
from .identity import normalize_identity, product_key
from .orders import OrderClient, generate_order_number
from .payments import PaymentGateway, PaymentHandle, PaymentStatusPoller, normalize_status
from .realtime import PaymentEventChannel
from .storage import FileStorage, MemoryStorage
from .notifications import CollectingNotifier, LoggingNotifier
from .transport import HttpTransport, RetryPolicy, Route

__version__ = "1.0.0"

__all__ = [
    "Storefront",
    "CartStore",
    "PricingPolicy",
    "StandardPricing",
    "CatalogClient",
    "CatalogSyncEngine",
    "normalize_identity",
    "product_key",
    "OrderClient",
    "generate_order_number",
    "PaymentGateway",
    "PaymentHandle",
    "PaymentStatusPoller",
    "normalize_status",
    "PaymentEventChannel",
    "FileStorage",
    "MemoryStorage",
    "CollectingNotifier",
    "LoggingNotifier",
    "HttpTransport",
    "RetryPolicy",
    "Route",
]

# Core modules

from .config import Settings, get_settings
from .errors import (
    StorefrontError,
    ValidationError,
    ConcurrencyError,
    TransportError,
    ProviderError,
    ReconciliationError,
)

__all__ = [
    "Settings",
    "get_settings",
    "StorefrontError",
    "ValidationError",
    "ConcurrencyError",
    "TransportError",
    "ProviderError",
    "ReconciliationError",
]

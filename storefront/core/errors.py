"""Storefront error taxonomy"""

from typing import Any, Optional


class StorefrontError(Exception):
    """Base exception for storefront core errors"""
    pass


class ValidationError(StorefrontError):
    """Bad input detected before any network call (phone, amount, identity)"""
    pass


class ConcurrencyError(StorefrontError):
    """An operation guarded by a single-flight lock is already running"""
    pass


class TransportError(StorefrontError):
    """Network failure or timeout talking to the backing API"""
    pass


class ProviderError(StorefrontError):
    """
    Business rejection returned by the payment provider or catalog API.

    Carries the HTTP status and the provider's own message text so the UI
    can show it verbatim.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        payload: Optional[Any] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def __str__(self) -> str:
        if self.status_code:
            return f"{self.message} (HTTP {self.status_code})"
        return self.message


class ReconciliationError(StorefrontError):
    """
    Payment details could not be attached to the order.

    Money may have moved without the order reflecting it, so this must be
    surfaced and retried, never ignored.
    """

    def __init__(self, message: str, order_id: str, idempotency_key: Optional[str] = None):
        super().__init__(message)
        self.order_id = order_id
        self.idempotency_key = idempotency_key

"""
Storefront

Wires the cart, catalog sync, payment and order components together for
one session and runs the checkout flow.
"""

import logging
from typing import Any, Optional

import httpx

from .cart import CartStore
from .catalog import CatalogClient, CatalogSyncEngine
from .core.config import Settings, get_settings
from .core.errors import ReconciliationError, StorefrontError, ValidationError
from .models.order import Order
from .models.payment import PaymentState, PaymentStatus
from .notifications import LoggingNotifier, Notifier
from .orders import OrderClient
from .payments import PaymentGateway, PaymentHandle, PaymentStatusPoller, require_phone
from .realtime import PaymentEventChannel
from .storage import FileStorage, MemoryStorage, Storage
from .transport import HttpTransport

logger = logging.getLogger(__name__)


class Storefront:
    """
    Session-scoped facade over the storefront components.

    Usage:
        async with Storefront.from_settings() as shop:
            await shop.cart.add_item(product, 2)
            order, handle = await shop.checkout("0712345678", customer)
            order = await shop.complete_checkout(handle, order)
    """

    def __init__(
        self,
        settings: Settings,
        transport: HttpTransport,
        cart: CartStore,
        catalog: CatalogClient,
        sync: CatalogSyncEngine,
        channel: PaymentEventChannel,
        poller: PaymentStatusPoller,
        gateway: PaymentGateway,
        orders: OrderClient,
        notifier: Notifier,
    ):
        self.settings = settings
        self.transport = transport
        self.cart = cart
        self.catalog = catalog
        self.sync = sync
        self.channel = channel
        self.poller = poller
        self.gateway = gateway
        self.orders = orders
        self.notifier = notifier

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        storage: Optional[Storage] = None,
        notifier: Optional[Notifier] = None,
    ) -> "Storefront":
        """Build every component from configuration"""
        settings = settings or get_settings()
        if storage is None:
            storage = FileStorage(settings.storage_path) if settings.storage_configured else MemoryStorage()
        notifier = notifier or LoggingNotifier()

        transport = HttpTransport.from_settings(settings, client=http_client)
        catalog = CatalogClient(transport)
        cart = CartStore(storage=storage, settings=settings, notifier=notifier, catalog=catalog)
        channel = PaymentEventChannel()
        poller = PaymentStatusPoller(transport, channel=channel, settings=settings)

        return cls(
            settings=settings,
            transport=transport,
            cart=cart,
            catalog=catalog,
            sync=CatalogSyncEngine(cart, catalog, settings=settings, notifier=notifier),
            channel=channel,
            poller=poller,
            gateway=PaymentGateway(transport, poller=poller, settings=settings),
            orders=OrderClient(transport),
            notifier=notifier,
        )

    async def checkout(
        self,
        phone_number: Any,
        customer: Optional[dict[str, Any]] = None,
        discount_code: Optional[str] = None,
    ) -> tuple[Order, PaymentHandle]:
        """
        Create an order from the cart and send the STK push.

        Returns:
            The created order and a handle tracking its payment

        Raises:
            ValidationError: empty cart or invalid phone (nothing is created)
            ConcurrencyError: a payment initiation is already running
            TransportError / ProviderError: order creation or initiation failed
        """
        if self.cart.is_empty:
            raise ValidationError("Your cart is empty")
        phone = require_phone(phone_number)

        totals = self.cart.get_cart_totals(discount_code)
        order = await self.orders.create_order(
            self.cart.items,
            totals,
            customer={**(customer or {}), "phone": phone},
        )

        try:
            initiation = await self.gateway.initiate(
                phone,
                totals.total,
                order.order_number,
                description=f"Linda's Nut Butter order {order.order_number}",
            )
        except StorefrontError as e:
            self.notifier.error("Payment Failed", str(getattr(e, "message", e)))
            raise

        self.notifier.info(
            "Payment Initiated",
            initiation.customer_message or "Check your phone to enter your M-Pesa PIN.",
        )
        return order, self.poller.track(initiation, order_id=order.id)

    async def complete_checkout(
        self,
        handle: PaymentHandle,
        order: Order,
        poll_interval: Optional[float] = None,
    ) -> Order:
        """
        Wait for the payment and settle the order.

        On success the payment is attached to the order and the cart is
        cleared. The idempotency key is derived from the checkout request id
        so a retried call never updates the order twice.

        Raises:
            ReconciliationError: paid, but the order could not be updated
        """
        result = await handle.wait(poll_interval)

        if result.status == PaymentStatus.COMPLETED:
            confirmation = self.poller.confirmation_from(result, handle.initiation)
            try:
                updated = await self.poller.reconcile(
                    order.id,
                    confirmation,
                    idempotency_key=f"reconcile-{handle.checkout_request_id}",
                )
            except ReconciliationError:
                self.notifier.error(
                    "Order Update Failed",
                    "Your payment was received but your order could not be updated. "
                    f"Please contact us with order {order.order_number}.",
                )
                raise
            self.cart.clear_cart()
            self.notifier.success("Payment Successful", result.message)
            return updated

        if result.state == PaymentState.CANCELLED:
            self.notifier.info("Payment Cancelled", result.message)
        else:
            self.notifier.error("Payment Failed", result.message)
        return order

    async def aclose(self) -> None:
        """Stop background sync and close the HTTP client"""
        await self.sync.stop_background()
        await self.transport.close()

    async def __aenter__(self) -> "Storefront":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

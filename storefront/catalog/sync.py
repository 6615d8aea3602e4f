"""
Catalog Sync Engine

Keeps cart line prices and stock in step with the catalog. Syncs are
rate-limited by a cooldown, never overlap, and are skipped for an empty
cart. Background syncs stay quiet; only forced syncs and out-of-stock
transitions produce notifications.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from ..cart.store import CartStore, catalog_changes
from ..core.config import Settings, get_settings
from ..core.errors import StorefrontError
from ..models.cart import CartLineItem
from ..models.product import Product
from ..notifications import LoggingNotifier, Notifier
from .client import CatalogClient

logger = logging.getLogger(__name__)


def index_products(products: list[Product]) -> dict[str, Product]:
    """Map every id form of each product (id, _id, numeric id) to the product"""
    index: dict[str, Product] = {}
    for product in products:
        for product_id in product.all_ids:
            index.setdefault(product_id, product)
    return index


class CatalogSyncEngine:
    """
    Refreshes cart lines from the product catalog.

    Usage:
        engine = CatalogSyncEngine(cart, catalog_client)
        await engine.on_cart_opened()
        engine.start_background()
        ...
        await engine.stop_background()
    """

    def __init__(
        self,
        cart: CartStore,
        catalog: CatalogClient,
        settings: Optional[Settings] = None,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cart = cart
        self.catalog = catalog
        self.settings = settings or get_settings()
        self.notifier = notifier or cart.notifier or LoggingNotifier()
        self._clock = clock
        self._in_flight = False
        self._last_sync: Optional[float] = None
        self._background: Optional[asyncio.Task] = None

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def _cooling_down(self) -> bool:
        if self._last_sync is None:
            return False
        return self._clock() - self._last_sync < self.settings.sync_cooldown_seconds

    async def sync(self, force: bool = False) -> list[CartLineItem]:
        """
        Refresh cart lines from the catalog.

        Args:
            force: Ignore the cooldown and stamp every line found in the catalog

        Returns:
            The cart lines after the sync (unchanged when skipped or aborted)
        """
        if self._in_flight:
            logger.debug("Catalog sync already in flight, skipping")
            return list(self.cart.items)
        if self.cart.is_empty:
            return []
        if not force and self._cooling_down():
            logger.debug("Catalog sync within cooldown window, skipping")
            return list(self.cart.items)

        self._in_flight = True
        try:
            try:
                products = await self.catalog.fetch_products()
            except StorefrontError as e:
                logger.error(f"Catalog sync aborted, cart left unchanged: {e}")
                if force:
                    self.notifier.error("Sync Failed", "Could not refresh cart prices. Please try again.")
                return list(self.cart.items)

            index = index_products(products)
            now = datetime.now(timezone.utc)
            updates = {}
            out_of_stock = []

            for line in self.cart.items:
                fresh = index.get(line.product_id)
                if fresh is None:
                    logger.warning(
                        f"Product {line.product_id} ({line.name}) not found in catalog, leaving line unchanged"
                    )
                    continue

                changes = catalog_changes(line, fresh)
                if "unit_price" in changes:
                    logger.info(f"Price of {line.name} changed: {line.unit_price} -> {changes['unit_price']}")
                if line.in_stock and changes.get("in_stock") is False:
                    logger.warning(f"{line.name} is now out of stock")
                    out_of_stock.append(line.name)
                if changes or force:
                    updates[line.cart_item_id] = {**changes, "last_synced_at": now}

            changed = self.cart.apply_catalog_updates(updates)
            self._last_sync = self._clock()
            logger.info(f"Catalog sync complete: {len(changed)} of {len(self.cart.items)} lines refreshed")

            for name in out_of_stock:
                self.notifier.warning("Out of Stock", f"{name} is no longer in stock")
            if force:
                self.notifier.success("Cart Synced", "Prices and stock are up to date.")

            return list(self.cart.items)
        finally:
            self._in_flight = False

    async def on_cart_opened(self) -> list[CartLineItem]:
        """Cart view opened; sync unless within the cooldown"""
        return await self.sync()

    # ==================== Background sync ====================

    def start_background(self, interval: Optional[float] = None) -> asyncio.Task:
        """Start periodic syncing on the running event loop"""
        if self._background is not None and not self._background.done():
            return self._background
        period = interval if interval is not None else self.settings.background_sync_interval
        self._background = asyncio.create_task(self._run_periodic(period))
        logger.info(f"Background catalog sync every {period}s")
        return self._background

    async def _run_periodic(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            await self.sync()

    async def stop_background(self) -> None:
        task, self._background = self._background, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

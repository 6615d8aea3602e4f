"""
Cart Store

Owns the cart and wishlist collections for a browsing session. Every
mutation goes through this class, is persisted to client storage and is
reflected in a user notification. Business-rule failures are reported
through the return value, never raised.
"""

import logging
import random
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Sequence, Type, TypeVar

from pydantic import ValidationError as ModelValidationError

from ..core.config import Settings, get_settings
from ..core.errors import StorefrontError
from ..identity import base_product_id, get_field, normalize_identity, product_key
from ..models.cart import CartLineItem, CartTotals, SelectedVariant, WishlistItem
from ..models.money import round_amount
from ..models.product import Product
from ..notifications import LoggingNotifier, Notifier
from ..storage import MemoryStorage, Storage, load_json_list, save_json_list
from .pricing import PricingPolicy, StandardPricing

logger = logging.getLogger(__name__)

LineT = TypeVar("LineT", bound=CartLineItem)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _variant_from(product: Any) -> Optional[SelectedVariant]:
    variant = get_field(product, "selectedVariant", "selected_variant")
    if variant is None:
        return None
    if isinstance(variant, SelectedVariant):
        return variant.model_copy()
    return SelectedVariant(
        id=get_field(variant, "id", "_id"),
        price=get_field(variant, "price"),
        size=get_field(variant, "size"),
        mass=get_field(variant, "mass"),
        sku=get_field(variant, "sku"),
    )


def _stock_flags(product: Any) -> dict[str, Any]:
    """in_stock / stock_quantity as last reported for a product reference"""
    if isinstance(product, dict):
        in_stock = product.get("inStock", product.get("in_stock", True))
    else:
        in_stock = getattr(product, "in_stock", True)
    stock_quantity = get_field(product, "stockQuantity", "stock_quantity")
    return {
        "in_stock": in_stock is not False,
        "stock_quantity": max(0, int(stock_quantity)) if stock_quantity is not None else None,
    }


def line_fields(product: Any, default_size: str) -> dict[str, Any]:
    """
    Extract the line-item fields from any product reference.

    Raises:
        ValueError: if the product has no name or no usable price
    """
    name = get_field(product, "name")
    if name is None:
        raise ValueError("Product has no name")

    variant = _variant_from(product)
    price = get_field(product, "price", "unitPrice", "unit_price")
    if variant is not None and variant.price is not None:
        price = variant.price
    if price is None:
        raise ValueError(f"Product {name!r} has no price")

    size = get_field(product, "size") or default_size
    sku = get_field(product, "sku")
    if variant is not None:
        size = variant.display_size or size
        sku = variant.sku or sku

    images = get_field(product, "images") or []
    image = get_field(product, "image") or (images[0] if images else None)

    return {
        "product_id": base_product_id(product) or product_key(product),
        "name": str(name),
        "unit_price": round_amount(price),
        "selected_variant": variant,
        "image": image,
        "category": get_field(product, "category"),
        "size": size,
        "sku": sku,
        **_stock_flags(product),
    }


class CartStore:
    """
    Shopping cart and wishlist for one session.

    Usage:
        store = CartStore(storage=FileStorage("~/.lindas/state.json"))
        await store.add_item({"id": "p1", "name": "Peanut Butter", "price": 1000}, 2)
        store.update_quantity("p1", 3)
        totals = store.get_cart_totals()
    """

    def __init__(
        self,
        storage: Optional[Storage] = None,
        settings: Optional[Settings] = None,
        pricing: Optional[PricingPolicy] = None,
        notifier: Optional[Notifier] = None,
        catalog: Optional[Any] = None,  # CatalogClient
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
        rng: Optional[random.Random] = None,
    ):
        self.settings = settings or get_settings()
        self.pricing = pricing or StandardPricing.from_settings(self.settings)
        self.notifier = notifier or LoggingNotifier()
        self.catalog = catalog
        self._storage = storage or MemoryStorage()
        self._new_id = id_factory
        self._rng = rng or random.Random()

        self._items: list[CartLineItem] = self._merge_duplicates(
            self._load(self.settings.cart_storage_key, CartLineItem)
        )
        self._wishlist: list[WishlistItem] = self._load(
            self.settings.wishlist_storage_key, WishlistItem
        )
        logger.info(f"Cart rehydrated with {len(self._items)} lines, wishlist {len(self._wishlist)}")

    # ==================== Persistence ====================

    def _load(self, key: str, model: Type[LineT]) -> list[LineT]:
        lines: list[LineT] = []
        for raw in load_json_list(self._storage, key):
            try:
                lines.append(model.model_validate(raw))
            except ModelValidationError as e:
                logger.warning(f"Dropping unreadable entry from {key!r}: {e.error_count()} errors")
        return lines

    def _merge_duplicates(self, lines: list[CartLineItem]) -> list[CartLineItem]:
        merged: list[CartLineItem] = []
        by_key: dict[str, int] = {}
        for line in lines:
            key = product_key(line)
            if key in by_key:
                existing = merged[by_key[key]]
                merged[by_key[key]] = existing.model_copy(
                    update={"quantity": existing.quantity + line.quantity}
                )
                logger.warning(f"Merged duplicate stored cart lines for {key}")
                continue
            by_key[key] = len(merged)
            merged.append(line)
        return merged

    def _persist_cart(self) -> None:
        save_json_list(
            self._storage,
            self.settings.cart_storage_key,
            [line.to_storage() for line in self._items],
        )

    def _persist_wishlist(self) -> None:
        save_json_list(
            self._storage,
            self.settings.wishlist_storage_key,
            [item.to_storage() for item in self._wishlist],
        )

    def _commit(
        self,
        action: str,
        mutate: Callable[[], None],
        persist: Sequence[Callable[[], None]] = (),
    ) -> bool:
        """
        Run a mutation and persist it; on any failure restore the prior state.

        Args:
            action: Description used in the log and the error toast
            mutate: Changes the in-memory cart and/or wishlist
            persist: Writers to run afterwards (default: the cart)
        """
        writers = list(persist) or [self._persist_cart]
        cart_snapshot = [line.model_copy(deep=True) for line in self._items]
        wishlist_snapshot = [item.model_copy(deep=True) for item in self._wishlist]
        written: list[Callable[[], None]] = []
        try:
            mutate()
            for write in writers:
                write()
                written.append(write)
            return True
        except Exception as e:
            self._items = cart_snapshot
            self._wishlist = wishlist_snapshot
            logger.error(f"Failed to {action}: {e}", exc_info=True)
            # Writers that already succeeded stored the new state; put the old one back
            for write in written:
                try:
                    write()
                except Exception as restore_error:
                    logger.error(f"Could not restore stored state after failed {action}: {restore_error}")
            self.notifier.error("Error", f"Could not {action}. Please try again.")
            return False

    # ==================== Read access ====================

    @property
    def items(self) -> tuple[CartLineItem, ...]:
        """Copies of the cart lines"""
        return tuple(line.model_copy(deep=True) for line in self._items)

    @property
    def wishlist_items(self) -> tuple[WishlistItem, ...]:
        return tuple(item.model_copy(deep=True) for item in self._wishlist)

    @property
    def is_empty(self) -> bool:
        return not self._items

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self._items)

    def _candidate_keys(self, ref: Any) -> list[str]:
        keys = []
        key = normalize_identity(ref)
        if key is not None:
            keys.append(key)
        if not isinstance(ref, (str, int, float)):
            pkey = product_key(ref)
            if pkey is not None and pkey not in keys:
                keys.append(pkey)
        return keys

    def _index_of(self, lines: list[LineT], ref: Any) -> Optional[int]:
        keys = self._candidate_keys(ref)
        if not keys:
            return None
        # Row id first, then exact product+variant, then bare product id
        for matches in (
            lambda line, key: line.cart_item_id == key,
            lambda line, key: product_key(line) == key,
            lambda line, key: line.product_id == key,
        ):
            for key in keys:
                for index, line in enumerate(lines):
                    if matches(line, key):
                        return index
        return None

    def line_for(self, ref: Any) -> Optional[CartLineItem]:
        """Find the cart line a reference points at"""
        index = self._index_of(self._items, ref)
        return self._items[index].model_copy(deep=True) if index is not None else None

    # ==================== Cart operations ====================

    async def add_item(self, product: Any, quantity: Any = 1) -> bool:
        """
        Add a product (or increase its quantity) in the cart.

        The line is written immediately from the caller's data; fresh
        catalog data is backfilled afterwards when a catalog is attached.

        Args:
            product: API product dict, Product model or cart/wishlist line
            quantity: Units to add

        Returns:
            True if the cart changed
        """
        key = product_key(product)
        if key is None:
            logger.warning("add_item rejected: product has no resolvable identity")
            self.notifier.error("Error", "Invalid product data.")
            return False

        try:
            qty = int(quantity)
        except (TypeError, ValueError):
            qty = 0
        if qty < 1:
            self.notifier.error("Error", f"Invalid quantity: {quantity!r}")
            return False

        try:
            fields = line_fields(product, self.settings.default_size)
        except ValueError as e:
            logger.warning(f"add_item rejected for {key}: {e}")
            self.notifier.error("Error", "Invalid product data.")
            return False

        target: dict[str, CartLineItem] = {}

        def mutate() -> None:
            target["line"] = self._merge_line(key, fields, qty)

        if not self._commit("add item to cart", mutate):
            return False

        await self._after_add(target["line"], qty, product)
        return True

    def _merge_line(self, key: str, fields: dict[str, Any], qty: int) -> CartLineItem:
        """Add qty to the line for key, creating it if needed (in memory only)"""
        now = _now()
        index = next(
            (i for i, line in enumerate(self._items) if product_key(line) == key),
            None,
        )
        if index is None:
            line = CartLineItem(
                cart_item_id=self._new_id(),
                quantity=qty,
                added_at=now,
                updated_at=now,
                **fields,
            )
            self._items.append(line)
            return line

        existing = self._items[index]
        updated = existing.model_copy(update={
            "quantity": existing.quantity + qty,
            "unit_price": fields["unit_price"],
            "image": fields["image"] or existing.image,
            "in_stock": fields["in_stock"],
            "stock_quantity": (
                fields["stock_quantity"]
                if fields["stock_quantity"] is not None
                else existing.stock_quantity
            ),
            "updated_at": now,
        })
        self._items[index] = CartLineItem.model_validate(updated.model_dump())
        return self._items[index]

    async def _after_add(self, line: CartLineItem, qty: int, product: Any) -> None:
        if line.quantity == qty:
            self.notifier.success("Added to Cart", f"{line.name} added to your cart!")
        else:
            self.notifier.success("Cart Updated", f"{line.name} quantity is now {line.quantity}.")
        self._warn_if_over_stock(line)
        await self._backfill(line.cart_item_id, product)

    async def _backfill(self, cart_item_id: str, product: Any) -> None:
        """Best-effort refresh of a freshly added line from the catalog"""
        if self.catalog is None:
            return
        product_id = base_product_id(product)
        if product_id is None:
            return
        try:
            fresh = await self.catalog.fetch_product(product_id)
        except StorefrontError as e:
            logger.warning(f"Could not refresh product {product_id} after add, keeping caller data: {e}")
            return
        if fresh is None:
            return
        line = self.line_for(cart_item_id)
        if line is None:
            return
        changes = catalog_changes(line, fresh)
        if changes:
            self.apply_catalog_updates({cart_item_id: changes})

    def _warn_if_over_stock(self, line: CartLineItem) -> None:
        if line.stock_quantity is not None and line.quantity > line.stock_quantity:
            self.notifier.warning(
                "Limited Stock",
                f"Only {line.stock_quantity} units of {line.name} available",
            )

    def remove_item(self, product_or_id: Any) -> bool:
        """Remove the line matching a product, line or id"""
        if normalize_identity(product_or_id) is None:
            logger.error(f"remove_item: invalid item reference {product_or_id!r}")
            self.notifier.error("Error", "Could not remove item.")
            return False

        index = self._index_of(self._items, product_or_id)
        if index is None:
            logger.warning(f"No matching item found for removal: {product_or_id!r}")
            self.notifier.error("Error", "Could not find the item to remove.")
            return False

        removed = self._items[index]

        def mutate() -> None:
            del self._items[index]

        if not self._commit("remove item", mutate):
            return False
        self.notifier.success("Removed from Cart", f"{removed.name} removed from your cart")
        return True

    def update_quantity(self, product_or_id: Any, new_quantity: Any) -> bool:
        """
        Set the quantity of a line.

        Quantities of zero or less remove the line. With the stock ceiling
        enabled the quantity is clamped to the last known stock; otherwise
        exceeding stock only produces a warning.
        """
        try:
            quantity = int(new_quantity)
        except (TypeError, ValueError):
            self.notifier.error("Error", f"Invalid quantity: {new_quantity!r}")
            return False

        if quantity <= 0:
            return self.remove_item(product_or_id)

        index = self._index_of(self._items, product_or_id)
        if index is None:
            logger.warning(f"update_quantity: no cart line for {product_or_id!r}")
            self.notifier.warning("Cart", "That item is no longer in your cart.")
            return False

        line = self._items[index]
        stock = line.stock_quantity
        if stock is not None and quantity > stock:
            if self.settings.enforce_stock_ceiling:
                quantity = max(1, stock)
                self.notifier.warning("Limited Stock", f"Only {stock} units available")
            else:
                self.notifier.warning(
                    "Limited Stock",
                    f"{line.name}: only {stock} units in stock, order may be delayed",
                )

        previous = line.quantity

        def mutate() -> None:
            self._items[index] = line.model_copy(update={"quantity": quantity, "updated_at": _now()})

        if not self._commit("update quantity", mutate):
            return False
        if quantity > previous:
            self.notifier.info("Quantity Updated", f"{line.name}: {previous} → {quantity}")
        return True

    def clear_cart(self) -> bool:
        """Empty the cart"""
        if not self._commit("clear cart", self._items.clear):
            return False
        self.notifier.info("Cart Cleared", "Your cart has been cleared.")
        return True

    def get_cart_totals(self, discount_code: Optional[str] = None) -> CartTotals:
        """Subtotal, shipping, discount, tax and total for the current cart"""
        subtotal = sum(line.line_total for line in self._items)
        return self.pricing.totals(
            subtotal=subtotal,
            item_count=self.item_count,
            discount_code=discount_code,
            currency=self.settings.currency,
        )

    def apply_catalog_updates(self, updates: dict[str, dict[str, Any]]) -> list[CartLineItem]:
        """
        Write refreshed catalog fields onto cart lines.

        Args:
            updates: cart_item_id -> field values (unit_price, in_stock, ...)

        Returns:
            Copies of the lines that were changed
        """
        changed: list[CartLineItem] = []

        def mutate() -> None:
            for index, line in enumerate(self._items):
                fields = updates.get(line.cart_item_id)
                if not fields:
                    continue
                merged = CartLineItem.model_validate({**line.model_dump(), **fields})
                self._items[index] = merged
                changed.append(merged.model_copy(deep=True))

        if not updates or not self._commit("refresh cart", mutate):
            return []
        return changed

    # ==================== Wishlist ====================

    def add_to_wishlist(self, product: Any) -> bool:
        key = product_key(product)
        if key is None:
            self.notifier.error("Wishlist", "Invalid product data.")
            return False

        name = get_field(product, "name") or key
        if any(product_key(item) == key for item in self._wishlist):
            self.notifier.info("Wishlist", f"{name} is already in your wishlist.")
            return False

        try:
            item = WishlistItem(
                cart_item_id=self._new_id(),
                **line_fields(product, self.settings.default_size),
            )
        except ValueError as e:
            logger.warning(f"add_to_wishlist rejected for {key}: {e}")
            self.notifier.error("Wishlist", "Invalid product data.")
            return False

        if not self._commit(
            "add item to wishlist",
            lambda: self._wishlist.append(item),
            persist=[self._persist_wishlist],
        ):
            return False
        self.notifier.success("Wishlist", f"{name} added to your wishlist!")
        return True

    def remove_from_wishlist(self, product_or_id: Any) -> bool:
        index = self._index_of(self._wishlist, product_or_id)
        if index is None:
            return False

        def mutate() -> None:
            del self._wishlist[index]

        return self._commit("remove item from wishlist", mutate, persist=[self._persist_wishlist])

    async def move_to_cart(self, product_or_id: Any) -> bool:
        """Move a wishlist entry into the cart with quantity 1"""
        index = self._index_of(self._wishlist, product_or_id)
        if index is None:
            return False
        item = self._wishlist[index]
        key = product_key(item)
        try:
            fields = line_fields(item, self.settings.default_size)
        except ValueError as e:
            logger.warning(f"move_to_cart rejected for {key}: {e}")
            self.notifier.error("Error", "Invalid product data.")
            return False

        target: dict[str, CartLineItem] = {}

        def mutate() -> None:
            target["line"] = self._merge_line(key, fields, 1)
            del self._wishlist[index]

        # Both collections change together or not at all
        if not self._commit(
            "move item to cart",
            mutate,
            persist=[self._persist_cart, self._persist_wishlist],
        ):
            return False

        await self._after_add(target["line"], 1, item)
        return True

    # ==================== Recommendations ====================

    async def get_related_products(self, limit: int = 4) -> list[Product]:
        """Products from a category already in the cart, excluding cart contents"""
        if self.catalog is None or not self._items:
            return []

        categories = sorted({line.category for line in self._items if line.category})
        if not categories:
            return []
        category = self._rng.choice(categories)

        try:
            products = await self.catalog.fetch_products(category=category)
        except StorefrontError as e:
            logger.error(f"Error fetching related products: {e}")
            return []

        in_cart = {line.product_id for line in self._items}
        related = [
            p for p in products
            if not (set(p.all_ids) & in_cart)
        ]
        return related[:limit]


def catalog_changes(line: CartLineItem, fresh: Product) -> dict[str, Any]:
    """Fields of a line that differ from the catalog's current product data"""
    changes: dict[str, Any] = {}
    price = fresh.price
    if line.selected_variant is not None and line.selected_variant.id:
        for variant in fresh.variants:
            if variant.id == line.selected_variant.id and variant.price is not None:
                price = variant.price
                break
        else:
            price = line.selected_variant.price if line.selected_variant.price is not None else fresh.price
    fresh_price = round_amount(price)

    if fresh_price != line.unit_price:
        changes["unit_price"] = fresh_price
    if fresh.in_stock != line.in_stock:
        changes["in_stock"] = fresh.in_stock
    if fresh.stock_quantity is not None and fresh.stock_quantity != line.stock_quantity:
        changes["stock_quantity"] = fresh.stock_quantity
    if fresh.name and fresh.name != line.name:
        changes["name"] = fresh.name
    image = fresh.primary_image
    if image and image != line.image:
        changes["image"] = image
    return changes

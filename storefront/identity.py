"""
Identity Normalizer

Resolves the many shapes a product or cart line reference can take
(raw ids, API product records, persisted cart lines, pydantic models)
to one stable string key.

Precedence, first match wins:
    1. string / integer primitive
    2. cartItemId (cart rows keep their identity across catalog refreshes)
    3. base id + selected variant discriminator
    4. name + size, for legacy records that carry no id at all
    5. raw id fields: productId, _id, id, numericId
    6. sku
"""

import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)

DEFAULT_SIZE = "370g"

# camelCase API name first, then the snake_case attribute name used by our models
_BASE_ID_FIELDS = (
    ("productId", "product_id"),
    ("_id", "mongo_id"),
    ("id",),
    ("numericId", "numeric_id"),
)
_VARIANT_ID_FIELDS = (("id",), ("_id",), ("size",), ("mass",))


def _present(value: Any) -> bool:
    if value is None or isinstance(value, bool):
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def _as_key(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def get_field(ref: Any, *names: str) -> Any:
    """Read the first present field from a dict or an object"""
    for name in names:
        if isinstance(ref, dict):
            value = ref.get(name)
        else:
            value = getattr(ref, name, None)
        if _present(value):
            return value
    return None


def _is_primitive(ref: Any) -> bool:
    return isinstance(ref, (str, int, float)) and not isinstance(ref, bool)


def base_product_id(ref: Any) -> Optional[str]:
    """Return the first raw id field (productId, _id, id, numericId)"""
    if ref is None or _is_primitive(ref):
        return None
    for names in _BASE_ID_FIELDS:
        value = get_field(ref, *names)
        if value is not None:
            return _as_key(value)
    return None


def variant_discriminator(variant: Any) -> Optional[str]:
    """Return the value that tells two package sizes of one product apart"""
    if variant is None:
        return None
    for names in _VARIANT_ID_FIELDS:
        value = get_field(variant, *names)
        if value is not None:
            return _as_key(value)
    return None


def _selected_variant(ref: Any) -> Any:
    return get_field(ref, "selectedVariant", "selected_variant")


def _legacy_key(ref: Any) -> Optional[str]:
    name = get_field(ref, "name")
    if name is None:
        return None
    size = get_field(ref, "size") or DEFAULT_SIZE
    return f"{_as_key(name)}_{_as_key(size)}"


def _resolve(ref: Any, use_cart_item_id: bool) -> Optional[str]:
    if ref is None:
        return None

    if _is_primitive(ref):
        return _as_key(ref) if _present(ref) else None

    if use_cart_item_id:
        cart_item_id = get_field(ref, "cartItemId", "cart_item_id")
        if cart_item_id is not None:
            return _as_key(cart_item_id)

    base_id = base_product_id(ref)

    variant_id = variant_discriminator(_selected_variant(ref))
    if base_id and variant_id:
        return f"{base_id}_{variant_id}"

    if base_id is None:
        legacy = _legacy_key(ref)
        if legacy:
            logger.debug(f"Resolved legacy identity {legacy!r} from name and size")
            return legacy

    if base_id:
        return base_id

    sku = get_field(ref, "sku")
    return _as_key(sku) if sku is not None else None


def normalize_identity(ref: Any) -> Optional[str]:
    """
    Resolve any product or cart-line reference to one canonical key.

    Args:
        ref: id primitive, API product dict, cart line dict or model

    Returns:
        Stable string key, or None when nothing usable is present.
        Callers must reject the operation on None.
    """
    key = _resolve(ref, use_cart_item_id=True)
    if key is None:
        logger.debug(f"No usable identity in {type(ref).__name__} reference")
    return key


def product_key(ref: Any) -> Optional[str]:
    """
    Canonical product+variant key, ignoring any cart row id.

    Two lines with the same product_key are the same purchasable item and
    must be merged.
    """
    return _resolve(ref, use_cart_item_id=False)

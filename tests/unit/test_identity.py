import pytest

from storefront.identity import (
    base_product_id,
    normalize_identity,
    product_key,
    variant_discriminator,
)
from storefront.models.cart import CartLineItem, SelectedVariant
from storefront.models.product import Product


@pytest.mark.parametrize(
    "ref, expected",
    [
        ("abc", "abc"),
        (42, "42"),
        (7.0, "7"),
        ("", None),
        ("   ", None),
        (None, None),
        (True, None),
        ({}, None),
        ({"foo": 1}, None),
    ],
)
def test_primitives_and_empty_refs(ref, expected):
    assert normalize_identity(ref) == expected


def test_cart_item_id_wins_over_product_fields():
    ref = {"cartItemId": "c1", "id": "p1", "selectedVariant": {"id": "v1"}}
    assert normalize_identity(ref) == "c1"
    assert product_key(ref) == "p1_v1"


def test_variant_discriminator_fields_in_order():
    assert normalize_identity({"id": "p1", "selectedVariant": {"id": "v2", "size": "1kg"}}) == "p1_v2"
    assert normalize_identity({"id": "p1", "selectedVariant": {"size": "1kg"}}) == "p1_1kg"
    assert normalize_identity({"id": "p1", "selectedVariant": {"mass": 500}}) == "p1_500"


def test_legacy_name_and_size_only_without_raw_id():
    assert normalize_identity({"name": "Crunchy", "size": "1kg"}) == "Crunchy_1kg"
    assert normalize_identity({"name": "Crunchy"}) == "Crunchy_370g"
    # A raw id always beats the name
    assert normalize_identity({"name": "Crunchy", "numericId": 7}) == "7"


def test_raw_id_field_precedence():
    assert normalize_identity({"productId": "a", "_id": "b", "id": "c"}) == "a"
    assert normalize_identity({"_id": "b", "id": "c"}) == "b"
    assert normalize_identity({"id": "c", "numericId": 3}) == "c"
    assert base_product_id({"numericId": 3.0}) == "3"


def test_sku_is_last_resort():
    assert normalize_identity({"sku": "LNB-PNT"}) == "LNB-PNT"


def test_models_resolve_like_dicts():
    product = Product.model_validate({"_id": "m1", "id": "p1", "name": "Peanut", "price": 500})
    assert normalize_identity(product) == "m1"

    line = CartLineItem(
        cart_item_id="row-1",
        product_id="p1",
        name="Peanut",
        unit_price=500,
        selected_variant=SelectedVariant(id="v1"),
    )
    assert normalize_identity(line) == "row-1"
    assert product_key(line) == product_key({"id": "p1", "selectedVariant": {"id": "v1"}})


def test_variant_discriminator_none_for_missing_variant():
    assert variant_discriminator(None) is None
    assert variant_discriminator({}) is None

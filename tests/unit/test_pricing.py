from storefront.cart.pricing import StandardPricing


def test_shipping_added_to_non_empty_cart():
    totals = StandardPricing().totals(subtotal=2000, item_count=2)
    assert totals.shipping == 300
    assert totals.total == 2300
    assert totals.currency == "KES"


def test_empty_cart_has_no_shipping_by_default():
    totals = StandardPricing().totals(subtotal=0, item_count=0)
    assert totals.shipping == 0
    assert totals.total == 0


def test_empty_cart_shipping_can_be_enabled():
    totals = StandardPricing(charge_shipping_on_empty=True).totals(subtotal=0, item_count=0)
    assert totals.total == 300


def test_tax_and_discount_stay_zero_until_enabled():
    pricing = StandardPricing(tax_rate=0.16, discount_codes={"NUTS10": 0.1})
    totals = pricing.totals(subtotal=1000, item_count=1, discount_code="NUTS10")
    assert totals.discount == 0
    assert totals.tax == 0
    assert totals.total == 1300


def test_adjustments_when_enabled():
    pricing = StandardPricing(tax_rate=0.16, discount_codes={"NUTS10": 0.1}, apply_adjustments=True)
    totals = pricing.totals(subtotal=1000, item_count=1, discount_code=" nuts10 ")
    assert totals.discount == 100
    assert totals.tax == 144
    assert totals.total == 1000 + 300 - 100 + 144


def test_discount_capped_at_subtotal_and_unknown_codes_ignored():
    pricing = StandardPricing(discount_codes={"ALL": 1.5}, apply_adjustments=True)
    assert pricing.totals(subtotal=1000, item_count=1, discount_code="ALL").total == 300
    assert pricing.totals(subtotal=1000, item_count=1, discount_code="NOPE").discount == 0


def test_from_settings(settings):
    custom = settings.model_copy(update={"shipping_fee": 250, "charge_shipping_on_empty_cart": True})
    pricing = StandardPricing.from_settings(custom)
    assert pricing.shipping(0) == 250

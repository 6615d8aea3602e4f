import pytest

from storefront.core.errors import ValidationError
from storefront.payments.phone import normalize_phone, require_phone


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("0712345678", "254712345678"),
        ("0700000000", "254700000000"),
        ("+254 712 345 678", "254712345678"),
        ("254112345678", "254112345678"),
        ("712345678", "254712345678"),
        ("112345678", "254112345678"),
        ("0712-345-678", "254712345678"),
    ],
)
def test_valid_numbers(raw, expected):
    assert normalize_phone(raw) == expected


@pytest.mark.parametrize("raw", ["", None, True, "12345", "07123456789", "255712345678", "abc"])
def test_invalid_numbers(raw):
    assert normalize_phone(raw) is None


def test_require_phone_raises():
    with pytest.raises(ValidationError):
        require_phone("12345")

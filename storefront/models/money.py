"""KES amount helpers"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any


def round_amount(value: Any) -> int:
    """
    Round a KES amount to a whole shilling, halves away from zero.

    Raises:
        ValueError: if value is not numeric
    """
    if isinstance(value, bool):
        raise ValueError(f"Not an amount: {value!r}")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Not an amount: {value!r}") from e
    if not amount.is_finite():
        raise ValueError(f"Not an amount: {value!r}")
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

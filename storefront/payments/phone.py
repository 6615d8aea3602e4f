"""Kenyan MSISDN normalisation for M-Pesa"""

import re
from typing import Any, Optional

from ..core.errors import ValidationError

_MSISDN = re.compile(r"^254\d{9}$")


def normalize_phone(phone_number: Any) -> Optional[str]:
    """
    Rewrite a phone number into the 254XXXXXXXXX form M-Pesa expects.

    Non-digits are stripped, a leading 0 becomes 254 and a bare 9-digit
    subscriber number (7XXXXXXXX / 1XXXXXXXX) is prefixed with 254.

    Returns:
        The normalized number, or None if the result is not a valid MSISDN
    """
    if phone_number is None or isinstance(phone_number, bool):
        return None
    digits = re.sub(r"\D", "", str(phone_number))
    if digits.startswith("0"):
        digits = "254" + digits[1:]
    elif len(digits) == 9 and digits[0] in "71":
        digits = "254" + digits
    return digits if _MSISDN.match(digits) else None


def require_phone(phone_number: Any) -> str:
    """normalize_phone, raising ValidationError on failure"""
    normalized = normalize_phone(phone_number)
    if normalized is None:
        raise ValidationError(
            "Invalid phone number format. Please use 2547XXXXXXXX or 07XXXXXXXX."
        )
    return normalized

"""Shared validation utilities"""

import re
from decimal import Decimal, InvalidOperation
from typing import Optional

BRAZIL_COUNTRY_CODE = "55"


def normalize_br_phone(phone: Optional[str]) -> Optional[str]:
    """
    Normalize a Brazilian phone number to digits with country code (55XXXXXXXXXXX).

    Returns None when the input has no digits.
    """
    if not phone:
        return None

    digits = re.sub(r"\D", "", phone)
    if not digits:
        return None

    if not digits.startswith(BRAZIL_COUNTRY_CODE):
        digits = f"{BRAZIL_COUNTRY_CODE}{digits}"
    return digits


def to_money(value) -> Optional[Decimal]:
    """Parse a monetary value into a Decimal with two fractional digits"""
    if value is None:
        return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    return amount.quantize(Decimal("0.01"))

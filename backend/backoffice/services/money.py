# Overview: Decimal normalization for monetary values coming from the external database.

"""
Money Normalization

WHY: External amounts arrive as floats, numeric strings, or free text such as
"$12.50" or "12,50 refunded". Storing them as fixed 2-decimal strings makes a
re-import compare exactly what was stored.

CHANGE DETECTION: two amounts are "different" only when they differ by at
least one cent (MONEY_TOLERANCE). Values that went through a lossy
float/string round-trip upstream (109.999999 vs 110.00) compare equal.
"""

from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any


TWO_PLACES = Decimal("0.01")
MONEY_TOLERANCE = Decimal("0.01")
ZERO = "0.00"

_NON_NUMERIC = re.compile(r"[^0-9.\-]")


def _to_decimal(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return result if result.is_finite() else None


def is_numeric(value: Any) -> bool:
    return _to_decimal(value) is not None


def strip_non_numeric(value: Any) -> str:
    return _NON_NUMERIC.sub("", str(value))


def parse_amount(value: Any) -> Decimal | None:
    """Numeric value of a raw amount, trying a cleaned-up form second."""
    amount = _to_decimal(value)
    if amount is not None:
        return amount
    if value is None:
        return None
    return _to_decimal(strip_non_numeric(value))


def normalize_decimal(value: Any) -> str:
    """
    Canonical 2-decimal string for a raw amount.

    - None / "" -> "0.00"
    - numeric -> rounded half-up to cents
    - otherwise strip everything but digits, '.' and '-' and retry
    - still unreadable -> "0.00"
    """
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return ZERO
    amount = parse_amount(value)
    if amount is None:
        return ZERO
    return str(amount.quantize(TWO_PLACES, rounding=ROUND_HALF_UP))


def is_valid_amount(value: Any) -> bool:
    """
    Whether a raw amount is trustworthy.

    Empty counts as valid (no refund); numeric is valid; text that becomes
    numeric after stripping non-numeric characters is valid.
    """
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return True
    if is_numeric(value):
        return True
    return is_numeric(strip_non_numeric(value))


def money_changed(old: Any, new: Any) -> bool:
    old_amount = parse_amount(old) if old not in (None, "") else Decimal("0")
    new_amount = parse_amount(new) if new not in (None, "") else Decimal("0")
    if old_amount is None or new_amount is None:
        return old != new
    return abs(old_amount - new_amount) >= MONEY_TOLERANCE

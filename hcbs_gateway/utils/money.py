"""Monetary conversions between decimal dollar text and integer cents"""

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

_NON_NUMERIC = re.compile(r"[^0-9.\-]")
_CENT = Decimal("0.01")


def parse_amount(value: Any) -> Optional[int]:
    """
    Convert a dollar amount to integer cents.

    Accepts numbers and strings such as "1,234.50", "$95", "(12.50)". Blank
    input yields None so callers can tell "absent" from "zero".

    Raises:
        ValueError: value is present but not a number
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float, Decimal)):
        amount = Decimal(str(value))
    else:
        text = str(value).strip()
        if not text:
            return None
        negative = text.startswith("(") and text.endswith(")")
        sanitized = _NON_NUMERIC.sub("", text)
        if sanitized in ("", "-", ".", "-."):
            raise ValueError(f"Not a monetary amount: {value!r}")
        try:
            amount = Decimal(sanitized)
        except InvalidOperation as e:
            raise ValueError(f"Not a monetary amount: {value!r}") from e
        if negative:
            amount = -abs(amount)

    if not amount.is_finite():
        raise ValueError(f"Not a finite monetary amount: {value!r}")
    try:
        cents = (amount.quantize(_CENT, rounding=ROUND_HALF_UP) * 100).to_integral_value()
    except InvalidOperation as e:
        raise ValueError(f"Monetary amount out of range: {value!r}") from e
    return int(cents)


def format_cents(cents: Optional[int]) -> str:
    """Integer cents to a two-decimal dollar string, e.g. 9500 -> "95.00" """
    if cents is None:
        return ""
    sign = "-" if cents < 0 else ""
    whole, fraction = divmod(abs(int(cents)), 100)
    return f"{sign}{whole}.{fraction:02d}"

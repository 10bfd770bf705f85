from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal

from proreceipts.utils.validators import parse_money

_CENTS = Decimal("0.01")


def format_amount(value: object) -> str:
    """Format an amount as X,XXX.XX (non-finite or unparseable values render 0.00)."""
    d = parse_money(value).quantize(_CENTS, rounding=ROUND_HALF_UP)
    if d == 0:
        d = abs(d)
    return f"{d:,.2f}"


def format_peso(value: object, symbol: str = "₱") -> str:
    """Format an amount with the currency symbol, e.g. ₱1,234.50."""
    return f"{symbol}{format_amount(value)}"


def format_number(value: object) -> str:
    """Format a stored amount with at least 2 decimals, keeping any extra precision.

    100 -> "100.00", 100.5 -> "100.50", 100.567 -> "100.567".
    Empty values render as "".
    """
    if value is None or value == "":
        return ""
    d = parse_money(value)
    text = format(d.normalize(), "f")
    _, _, decimals = text.partition(".")
    if len(decimals) < 2:
        return f"{d:.2f}"
    return text


def normalize_title(title: str) -> str:
    """Group title as shown in headers: "SERVICE_CHARGES" -> "Service Charges"."""
    lowered = title.replace("_", " ").lower()
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), lowered)

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from proreceipts.services.exceptions import ValidationError

_ZERO = Decimal("0")
_INCOMPLETE = frozenset({"", "-", ".", "-."})


def parse_money(value: object) -> Decimal:
    """Coerce user or stored input to a Decimal amount.

    Thousands separators and surrounding whitespace are ignored.  Empty or
    half-typed input ("-", ".", "-."), NaN, infinities and unparseable text
    all become 0.  Never raises.
    """
    if value is None or isinstance(value, bool):
        return _ZERO
    if isinstance(value, Decimal):
        return value if value.is_finite() else _ZERO
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        text = repr(value)
    else:
        text = str(value)
    cleaned = text.replace(",", "").strip()
    if cleaned in _INCOMPLETE:
        return _ZERO
    try:
        d = Decimal(cleaned)
    except InvalidOperation:
        return _ZERO
    if not d.is_finite():
        return _ZERO
    return d


def parse_percent(value: object) -> Decimal:
    """Coerce a percentage such as "12", "12%" or " 2.5 % " to a Decimal."""
    if isinstance(value, str):
        value = value.replace("%", "")
    return parse_money(value)


def validate_positive_total(value: object) -> Decimal:
    """Validate that a receipt total is a finite, positive amount.

    Unlike parse_money this is strict: it is the last check before a
    receipt is written to the store.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError("Grand total is missing")
    try:
        d = Decimal(repr(value) if isinstance(value, float) else str(value))
    except InvalidOperation:
        raise ValidationError(f"Grand total is not a number: '{value}'") from None
    if not d.is_finite():
        raise ValidationError(f"Grand total is not a number: '{value}'")
    if d <= 0:
        raise ValidationError("Cannot save a receipt with a zero or negative grand total")
    return d


def validate_pro_number(value: str) -> str:
    """Validate a PRO (shipment reference) number; returns it stripped."""
    pro = (value or "").strip()
    if not pro:
        raise ValidationError("PRO number is required")
    return pro

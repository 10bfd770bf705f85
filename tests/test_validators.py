from __future__ import annotations

from decimal import Decimal

import pytest

from proreceipts.services.exceptions import ValidationError
from proreceipts.utils.validators import (
    parse_money,
    parse_percent,
    validate_positive_total,
    validate_pro_number,
)


class TestParseMoney:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("1500", Decimal("1500")),
            ("1,234.50", Decimal("1234.50")),
            ("  42.5 ", Decimal("42.5")),
            ("-250", Decimal("-250")),
            (1000, Decimal("1000")),
            (0.1, Decimal("0.1")),
            (Decimal("3.14159"), Decimal("3.14159")),
        ],
    )
    def test_valid_input(self, value, expected):
        assert parse_money(value) == expected

    @pytest.mark.parametrize(
        "value",
        ["", "-", ".", "-.", "abc", "12abc", "NaN", "Infinity", None, True, float("nan")],
    )
    def test_malformed_input_is_zero(self, value):
        assert parse_money(value) == Decimal("0")

    def test_non_finite_decimal_is_zero(self):
        assert parse_money(Decimal("NaN")) == 0
        assert parse_money(Decimal("-Infinity")) == 0

    def test_float_uses_shortest_repr(self):
        # Decimal(0.1) would carry binary noise
        assert str(parse_money(0.1)) == "0.1"


class TestParsePercent:
    @pytest.mark.parametrize(
        "value,expected",
        [("12", Decimal("12")), ("12%", Decimal("12")), (" 2.5 % ", Decimal("2.5")), (20, 20)],
    )
    def test_parses(self, value, expected):
        assert parse_percent(value) == expected

    def test_garbage_is_zero(self):
        assert parse_percent("ten") == 0


class TestValidatePositiveTotal:
    def test_accepts_positive(self):
        assert validate_positive_total(1500) == Decimal("1500")
        assert validate_positive_total(0.01) == Decimal("0.01")
        assert validate_positive_total("12.5") == Decimal("12.5")

    @pytest.mark.parametrize("value", [0, -1, "0", "-0.01"])
    def test_rejects_non_positive(self, value):
        with pytest.raises(ValidationError, match="zero or negative"):
            validate_positive_total(value)

    @pytest.mark.parametrize("value", ["abc", float("nan"), float("inf")])
    def test_rejects_non_numbers(self, value):
        with pytest.raises(ValidationError, match="not a number"):
            validate_positive_total(value)

    def test_rejects_missing(self):
        with pytest.raises(ValidationError, match="missing"):
            validate_positive_total(None)


class TestValidateProNumber:
    def test_strips(self):
        assert validate_pro_number("  PRO-2024-001 ") == "PRO-2024-001"

    @pytest.mark.parametrize("value", ["", "   ", None])
    def test_rejects_empty(self, value):
        with pytest.raises(ValidationError, match="PRO number is required"):
            validate_pro_number(value)

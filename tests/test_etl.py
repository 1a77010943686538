"""
Tests for value coercion helpers.
"""

from decimal import Decimal

import pytest

from src.common.etl import coerce_int, parse_amount, to_decimal


class TestToDecimal:
    def test_currency_text(self):
        assert to_decimal("£1,250.505") == Decimal("1250.51")

    @pytest.mark.parametrize("value", ["NaN", "nan", "sNaN", "Infinity", "-inf", "1e400", "abc", "", None, True])
    def test_unusable_values_are_none(self, value):
        assert to_decimal(value) is None

    def test_csv_cell_falls_back_to_zero(self):
        assert parse_amount("NaN") == Decimal("0")


class TestCoerceInt:
    @pytest.mark.parametrize("value, expected", [("6", 6), (" 6.0 ", 6), (12, 12), (3.0, 3), (Decimal("4"), 4)])
    def test_whole_numbers(self, value, expected):
        assert coerce_int(value) == expected

    @pytest.mark.parametrize(
        "value", ["6.7", 6.7, "NaN", float("nan"), float("inf"), "1e400", "1e30", "six", None, False, [6]]
    )
    def test_rejected(self, value):
        assert coerce_int(value) is None

"""Value coercion helpers used by every normalizer."""

from datetime import datetime
from decimal import Decimal

import pytest

from commerce_hub.utils.parsing import as_list, as_mapping, as_text, parse_datetime, to_decimal, to_int


@pytest.mark.parametrize("value", ["Infinity", "-Infinity", "NaN", float("inf")])
def test_to_int_non_finite_falls_back(value):
    assert to_int(value) == 0
    assert to_int(value, default=7) == 7


def test_to_int_truncates_numeric_strings():
    assert to_int("3.9") == 3
    assert to_int(12) == 12
    assert to_int(None) == 0
    assert to_int("abc") == 0


@pytest.mark.parametrize("value", ["Infinity", "NaN", "-inf", [1, 2], {"a": 1}])
def test_to_decimal_rejects_non_finite_and_non_numeric(value):
    assert to_decimal(value) == Decimal("0")


def test_to_decimal_keeps_precision():
    assert to_decimal("199.90") == Decimal("199.90")
    assert to_decimal(420.5) == Decimal("420.5")


def test_parse_datetime_formats():
    assert parse_datetime("2024-03-01T12:00:00Z") == datetime(2024, 3, 1, 12, 0)
    assert parse_datetime("2024-03-02T09:15:00-03:00") == datetime(2024, 3, 2, 12, 15)
    assert parse_datetime("2024-01-15 10:30:00.000000") == datetime(2024, 1, 15, 10, 30)
    assert parse_datetime(["2024-01-15"]) is None
    assert parse_datetime("") is None


def test_shape_guards():
    assert as_mapping({"a": 1}) == {"a": 1}
    assert as_mapping("guest") == {}
    assert as_list([1]) == [1]
    assert as_list("1") == []
    assert as_text("x") == "x"
    assert as_text("") is None
    assert as_text(42) == "42"
    assert as_text(True) is None
    assert as_text(["x"]) is None

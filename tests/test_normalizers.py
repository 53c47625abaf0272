import math

import pytest

from services.normalizers import clean_text, coerce_int, format_price, is_valid_price, parse_price


@pytest.mark.parametrize(
    "raw, expected",
    [(None, ""), (float("nan"), ""), ("  Red  ", "Red"), (12, "12"), ("", "")],
)
def test_clean_text(raw, expected):
    assert clean_text(raw) == expected


@pytest.mark.parametrize(
    "raw, expected",
    [
        (5, 5),
        ("7", 7),
        (" 8 ", 8),
        (3.0, 3),
        (3.5, None),
        (math.nan, None),
        (True, None),
        ("abc", None),
        ("", None),
        (None, None),
    ],
)
def test_coerce_int(raw, expected):
    assert coerce_int(raw) == expected


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("10", 10.0),
        (" 19.99 ", 19.99),
        ("1,250.50", 1250.5),
        (0, 0.0),
        ("-3", -3.0),
        ("", None),
        ("   ", None),
        ("ten", None),
        (None, None),
        (False, None),
        ("nan", None),
        (float("inf"), None),
    ],
)
def test_parse_price(raw, expected):
    assert parse_price(raw) == expected


def test_is_valid_price_accepts_zero_and_rejects_negatives():
    assert is_valid_price("0")
    assert is_valid_price(12.5)
    assert not is_valid_price("-0.01")
    assert not is_valid_price("")


@pytest.mark.parametrize(
    "raw, expected",
    [("30.00", "30"), (32, "32"), ("25.50", "25.5"), (9.999, "10"), ("x", ""), (None, "")],
)
def test_format_price(raw, expected):
    assert format_price(raw) == expected

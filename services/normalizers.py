"""Normalization helpers for wizard form values and API payloads."""
from __future__ import annotations

import math
from typing import Any, Optional


def clean_text(value: Any) -> str:
    """Return ``value`` as a stripped string, ``""`` for blanks."""

    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    return str(value).strip()


def coerce_int(value: Any) -> Optional[int]:
    """Return ``value`` as an ``int`` or ``None`` when it is not an integer id."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isnan(value) or not value.is_integer():
            return None
        return int(value)
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        return None


def parse_price(value: Any) -> Optional[float]:
    """Parse a user-entered price.

    Accepts numbers and numeric strings (surrounding whitespace allowed).
    Returns ``None`` for blanks, booleans, non-numeric text and non-finite
    numbers. Negative prices are returned as-is; callers decide whether they
    are acceptable.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip().replace(",", "")
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def is_valid_price(value: Any) -> bool:
    price = parse_price(value)
    return price is not None and price >= 0


def format_price(value: Any) -> str:
    """Render a price for display, ``""`` when it cannot be parsed."""

    price = parse_price(value)
    if price is None:
        return ""
    if price.is_integer():
        return str(int(price))
    text = f"{price:.2f}".rstrip("0").rstrip(".")
    return text

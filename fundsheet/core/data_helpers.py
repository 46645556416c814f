"""
Centralized Data Conversion Helpers.

Pure, total conversion and arithmetic helpers shared by every engine. None of
them raise on bad input: anything that cannot be coerced comes back as None,
which is written out as a blank cell (never as zero).

Usage:
    from fundsheet.core.data_helpers import to_number, round_to, floor_to_positive
"""

from __future__ import annotations

import math
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Any, Iterable

import pandas as pd


# Turnaround floor: non-positive values are clamped to this before growth math
FLOOR_VALUE = 0.01

_TRUE_STRINGS = {"yes", "y", "true", "1", "x"}


def _is_na(value: Any) -> bool:
    """Check for pandas NA/NaT on scalars only."""
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def to_number(value: Any) -> float | None:
    """
    Coerce a cell value to a finite float.

    Handles None, empty strings, NaN/Inf, pandas NA/NaT, numeric strings with
    thousands separators, and conversion errors. Booleans are not numbers.

    Args:
        value: Any cell value

    Returns:
        Finite float or None
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        f = float(value)
        return f if math.isfinite(f) else None
    if isinstance(value, str):
        text = value.strip().replace(",", "")
        if not text:
            return None
        try:
            f = float(text)
        except ValueError:
            return None
        return f if math.isfinite(f) else None
    if _is_na(value):
        return None
    try:
        f = float(value)
    except (ValueError, TypeError):
        return None
    return f if math.isfinite(f) else None


def to_int(value: Any) -> int | None:
    """Coerce to int (truncating toward zero), None when not numeric."""
    f = to_number(value)
    if f is None:
        return None
    return int(f)


def to_year(value: Any) -> int | None:
    """
    Extract a fiscal year from a cell.

    Accepts integers, numeric strings, dates, and ISO date strings
    ("2021-12-31" -> 2021).
    """
    if isinstance(value, (datetime, date)):
        return value.year
    n = to_number(value)
    if n is not None:
        return int(n) if n > 0 else None
    if isinstance(value, str):
        text = value.strip()
        if len(text) >= 4 and text[:4].isdigit():
            return int(text[:4])
    return None


def to_bool(value: Any) -> bool:
    """Interpret workbook flags such as Yes/No, TRUE/FALSE, 1/0."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return value != 0 and not _is_na(value)
    return str(value).strip().lower() in _TRUE_STRINGS


def round_to(value: Any, decimals: int) -> float | None:
    """
    Round half away from zero at the given decimal count.

    Python's round() uses banker's rounding and binary floats, so values are
    routed through Decimal (via their repr) to get 2.5 -> 3 and 0.125 -> 0.13.
    """
    f = to_number(value)
    if f is None:
        return None
    exact = Decimal(repr(f))
    with localcontext() as ctx:
        # Enough digits for the integer part plus the requested decimals
        ctx.prec = max(ctx.prec, exact.adjusted() + decimals + 2)
        rounded = exact.quantize(Decimal(1).scaleb(-decimals), rounding=ROUND_HALF_UP)
    return float(rounded)


def floor_to_positive(value: Any) -> float | None:
    """
    Apply the turnaround floor rule.

    Returns None for non-numeric input, FLOOR_VALUE when the value is zero or
    negative, and the value itself otherwise. Idempotent.
    """
    f = to_number(value)
    if f is None:
        return None
    if f <= 0:
        return FLOOR_VALUE
    return f


def was_floored(value: Any) -> bool:
    """True when floor_to_positive would clamp this raw value."""
    f = to_number(value)
    return f is not None and f <= 0


def safe_divide(numerator: Any, denominator: Any) -> float | None:
    """Divide two finite numbers; None if either is missing or denominator is 0."""
    n = to_number(numerator)
    d = to_number(denominator)
    if n is None or d is None or d == 0:
        return None
    result = n / d
    return result if math.isfinite(result) else None


def first_non_null(values: Iterable[Any]) -> Any:
    """Return the first value that is not None, NaN or an empty string."""
    for value in values:
        if value is None:
            continue
        if isinstance(value, str) and value.strip() == "":
            continue
        if isinstance(value, float) and math.isnan(value):
            continue
        return value
    return None


def pct_change(
    current: float | None,
    previous: float | None,
    *,
    as_percent: bool = False,
) -> float | None:
    """
    Compute percentage change between two values.

    Args:
        current: Current/new value
        previous: Previous/old value (base for comparison)
        as_percent: If True, multiply by 100 (e.g., 0.05 -> 5.0)

    Returns:
        Percentage change as decimal (0.05) or percent (5.0), or None if invalid

    Examples:
        >>> pct_change(110, 100)
        0.1
        >>> pct_change(50, -100)
        1.5
    """
    current = to_number(current)
    previous = to_number(previous)
    if current is None or previous is None or previous == 0:
        return None
    result = (current - previous) / abs(previous)
    return result * 100 if as_percent else result


def is_blank(value: Any) -> bool:
    """True for None and whitespace-only strings."""
    return value is None or (isinstance(value, str) and value.strip() == "")


__all__ = [
    "FLOOR_VALUE",
    "to_number",
    "to_int",
    "to_year",
    "to_bool",
    "round_to",
    "floor_to_positive",
    "was_floored",
    "safe_divide",
    "first_non_null",
    "pct_change",
    "is_blank",
]

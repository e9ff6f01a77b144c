"""
Utility functions for settle-up
"""
from __future__ import annotations
import os
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation

CENT = Decimal("0.01")


def now_str() -> str:
    """Current UTC time as ISO-8601 string"""
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def parse_date(s: str) -> date:
    """Parse YYYY-MM-DD date string, or the date part of an ISO timestamp"""
    s = s.strip()
    if len(s) > 10:
        return datetime.fromisoformat(s).date()
    return datetime.strptime(s, "%Y-%m-%d").date()


def to_decimal(x) -> Decimal:
    """Convert int/str/Decimal/float to Decimal; floats go through their repr"""
    if isinstance(x, bool):
        raise ValueError(f"not a number: {x!r}")
    if isinstance(x, float):
        x = repr(x)
    try:
        d = Decimal(x)
    except (InvalidOperation, TypeError):
        raise ValueError(f"not a number: {x!r}") from None
    if not d.is_finite():
        raise ValueError(f"not a finite number: {x!r}")
    return d


def to_minor_units(value, exponent: int = 2) -> int:
    """
    Convert a major-unit money value ("12.34", 12.34, Decimal) to integer
    minor units (1234). Values finer than the currency allows are rejected.
    """
    scaled = to_decimal(value).scaleb(exponent)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"{value!r} has more than {exponent} decimal places")
    return int(scaled)


def format_minor_units(amount: int, exponent: int = 2) -> str:
    """Render minor units as a major-unit string, e.g. 1234 -> '12.34'"""
    return f"{Decimal(amount).scaleb(-exponent):.{exponent}f}"


def minor_to_major(amount: int, exponent: int = 2) -> Decimal:
    return Decimal(amount).scaleb(-exponent)


def to_percentage(value) -> Decimal:
    """Percentage with two-decimal precision; finer input is rejected"""
    d = to_decimal(value)
    try:
        q = d.quantize(CENT)
    except InvalidOperation:
        raise ValueError(f"percentage out of range: {value!r}") from None
    if q != d:
        raise ValueError(f"{value!r} has more than 2 decimal places")
    return q


def app_dir() -> str:
    """
    Get application data directory: $SETTLE_UP_HOME or ~/.settle_up.
    Creates directory if it doesn't exist.
    """
    path = os.environ.get("SETTLE_UP_HOME") or os.path.expanduser("~/.settle_up")
    os.makedirs(path, exist_ok=True)
    return path

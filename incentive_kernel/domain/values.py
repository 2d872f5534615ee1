"""
Values -- Decimal helpers and fiscal-month arithmetic.

Responsibility:
    Provides the numeric and calendar primitives shared by every engine:
    half-up money rounding, safe percentage math, and ``"YYYY-MM"`` month
    handling (fiscal year = calendar year).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Decimal-only arithmetic: floats are coerced through ``str`` so that
      ``0.1`` becomes ``Decimal("0.1")`` rather than its binary expansion.
    - Rounding is ROUND_HALF_UP to 2 places unless a caller asks otherwise.

Failure modes:
    - ValueError on malformed month strings.
"""

from __future__ import annotations

import calendar
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")


def to_decimal(value: Decimal | int | float | str | None) -> Decimal:
    """Coerce a numeric value to Decimal; None becomes zero."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def round_money(amount: Decimal, places: int = 2) -> Decimal:
    """Round half-up to ``places`` decimal places."""
    quantum = Decimal(1).scaleb(-places)
    return amount.quantize(quantum, rounding=ROUND_HALF_UP)


def percent_of(amount: Decimal, pct: Decimal) -> Decimal:
    return amount * pct / HUNDRED


def fmt_money(amount: Decimal) -> str:
    """Render an amount for human-readable notes (``$1,234.50``)."""
    return f"${round_money(amount):,}"


def fmt_pct(pct: Decimal) -> str:
    return f"{round_money(pct, 1)}%"


# ---------------------------------------------------------------------------
# Month helpers
# ---------------------------------------------------------------------------


def parse_month(month_year: str) -> tuple[int, int]:
    """Split ``"YYYY-MM"`` (or ``"YYYY-MM-DD"``) into (year, month)."""
    parts = month_year.split("-")
    if len(parts) < 2:
        raise ValueError(f"Invalid month_year {month_year!r}, expected YYYY-MM")
    year, month = int(parts[0]), int(parts[1])
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month in {month_year!r}")
    return year, month


def normalize_month(month_year: str) -> str:
    year, month = parse_month(month_year)
    return f"{year:04d}-{month:02d}"


def month_of(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}"


def fiscal_year_of(month_year: str) -> int:
    return parse_month(month_year)[0]


def month_start(month_year: str) -> date:
    year, month = parse_month(month_year)
    return date(year, month, 1)


def month_end(month_year: str) -> date:
    year, month = parse_month(month_year)
    return date(year, month, calendar.monthrange(year, month)[1])


def fiscal_year_start(fiscal_year: int) -> date:
    return date(fiscal_year, 1, 1)


def fiscal_year_end(fiscal_year: int) -> date:
    return date(fiscal_year, 12, 31)


def first_month_of_year(fiscal_year: int) -> str:
    return f"{fiscal_year:04d}-01"


def is_month_in_ytd(candidate: str, month_year: str) -> bool:
    """True when ``candidate`` falls in Jan..``month_year`` of the same year."""
    c_year, c_month = parse_month(candidate)
    year, month = parse_month(month_year)
    return c_year == year and c_month <= month

"""Month, quarter and bonus-payout period arithmetic.

Bonuses follow a fixed one-quarter lag and are paid in the third month
after the quarter closes:

    March     -> Q4 of the previous year
    June      -> Q1
    September -> Q2
    December  -> Q3

Every other month carries no bonus.
"""

from __future__ import annotations

import calendar
import re
from dataclasses import dataclass
from datetime import date

from compensation_engine.errors import ValidationError

MONTH_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")
QUARTER_PATTERN = re.compile(r"^(\d{4})-Q([1-4])$")

MONTH_ABBREVIATIONS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)

# payout month -> (year offset, quarter number)
BONUS_PAYOUT_TABLE: dict[int, tuple[int, int]] = {
    3: (-1, 4),
    6: (0, 1),
    9: (0, 2),
    12: (0, 3),
}


@dataclass(frozen=True, order=True)
class Month:
    """A calendar month, rendered as ``YYYY-MM``."""

    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValidationError(f"Month number must be 1-12, got {self.month}")

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


@dataclass(frozen=True, order=True)
class Quarter:
    """A performance quarter, rendered as ``YYYY-Qn``."""

    year: int
    number: int

    def __post_init__(self) -> None:
        if not 1 <= self.number <= 4:
            raise ValidationError(f"Quarter number must be 1-4, got {self.number}")

    def __str__(self) -> str:
        return f"{self.year:04d}-Q{self.number}"

    @property
    def label(self) -> str:
        return f"Q{self.number} {self.year}"

    def previous(self) -> Quarter:
        if self.number == 1:
            return Quarter(self.year - 1, 4)
        return Quarter(self.year, self.number - 1)


def parse_month(value: str | Month) -> Month:
    """Parse ``YYYY-MM``; raises ValidationError when malformed."""
    if isinstance(value, Month):
        return value
    match = MONTH_PATTERN.match(value or "")
    if not match:
        raise ValidationError(f"Invalid month format '{value}'. Use YYYY-MM")
    return Month(int(match.group(1)), int(match.group(2)))


def parse_quarter(value: str | Quarter) -> Quarter:
    """Parse ``YYYY-Qn``; raises ValidationError when malformed."""
    if isinstance(value, Quarter):
        return value
    match = QUARTER_PATTERN.match(value or "")
    if not match:
        raise ValidationError(f"Invalid quarter format '{value}'. Use YYYY-Q# (e.g., 2026-Q1)")
    return Quarter(int(match.group(1)), int(match.group(2)))


def quarter_of(month: str | Month) -> Quarter:
    """Quarter containing a month; the year is unchanged."""
    m = parse_month(month)
    return Quarter(m.year, (m.month - 1) // 3 + 1)


def bonus_quarter_for(month: str | Month) -> Quarter | None:
    """Quarter whose bonus is paid out in ``month``, or None."""
    m = parse_month(month)
    entry = BONUS_PAYOUT_TABLE.get(m.month)
    if entry is None:
        return None
    year_offset, quarter_number = entry
    return Quarter(m.year + year_offset, quarter_number)


def is_bonus_month(month: str | Month) -> bool:
    return bonus_quarter_for(month) is not None


def financial_year(month: str | Month) -> str:
    """April-March financial year, e.g. Jan 2026 -> '2025-26'."""
    m = parse_month(month)
    if m.month <= 3:
        return f"{m.year - 1}-{str(m.year)[-2:]}"
    return f"{m.year}-{str(m.year + 1)[-2:]}"


def period_label(month: str | Month) -> str:
    """Short label used on statements, e.g. 'Jan-26'."""
    m = parse_month(month)
    return f"{MONTH_ABBREVIATIONS[m.month - 1]}-{str(m.year)[-2:]}"


def days_in_month(month: str | Month) -> int:
    m = parse_month(month)
    return calendar.monthrange(m.year, m.month)[1]


def current_month(today: date | None = None) -> Month:
    today = today or date.today()
    return Month(today.year, today.month)


def current_quarter(today: date | None = None) -> Quarter:
    return quarter_of(current_month(today))

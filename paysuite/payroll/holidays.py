"""Public-holiday calendar used to seed ``holiday_days``.

Fixed-date holidays repeat every year; lunar new year moves, so its dates
are listed per year. Years missing from ``LUNAR_NEW_YEAR`` simply contribute
no lunar holidays.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date

FIXED_HOLIDAYS: dict[tuple[int, int], str] = {
    (1, 1): "New Year's Day",
    (4, 30): "Reunification Day",
    (5, 1): "International Labour Day",
    (9, 2): "National Day",
}

LUNAR_NEW_YEAR_NAME = "Lunar New Year"

LUNAR_NEW_YEAR: dict[int, tuple[date, ...]] = {
    2024: tuple(date(2024, 2, day) for day in range(8, 15)),
    2025: (
        date(2025, 1, 28),
        date(2025, 1, 29),
        date(2025, 1, 30),
        date(2025, 1, 31),
        date(2025, 2, 1),
    ),
}


@dataclass(frozen=True)
class MonthHolidays:
    count: int
    names: tuple[str, ...]


def holiday_name(day: date) -> str | None:
    """Return the holiday falling on *day*, or ``None``."""
    fixed = FIXED_HOLIDAYS.get((day.month, day.day))
    if fixed:
        return fixed
    if day in LUNAR_NEW_YEAR.get(day.year, ()):
        return LUNAR_NEW_YEAR_NAME
    return None


def holidays_in_month(year: int, month: int) -> MonthHolidays:
    """Count calendar days of the month that are public holidays.

    Paid holidays count regardless of the weekday they fall on.
    """
    _, days_in_month = calendar.monthrange(year, month)
    count = 0
    names: list[str] = []
    for day in range(1, days_in_month + 1):
        name = holiday_name(date(year, month, day))
        if name is None:
            continue
        count += 1
        if name not in names:
            names.append(name)
    return MonthHolidays(count=count, names=tuple(names))


def holiday_day_count(period: str) -> int:
    """Holiday count for a ``YYYY-MM`` period (already validated)."""
    year, month = (int(part) for part in period.split("-"))
    return holidays_in_month(year, month).count

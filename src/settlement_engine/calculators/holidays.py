"""US federal holiday lookup.

Holidays are produced by a pure function of the year and collected into an
immutable ``HolidayCalendar`` owned by the caller. Nothing is cached at
module level.
"""

from __future__ import annotations

import calendar
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, timedelta

MONDAY = 0
THURSDAY = 3


def _nth_weekday(year: int, month: int, weekday: int, n: int) -> date:
    first = date(year, month, 1)
    offset = (weekday - first.weekday()) % 7
    return first + timedelta(days=offset + (n - 1) * 7)


def _last_weekday(year: int, month: int, weekday: int) -> date:
    last = date(year, month, calendar.monthrange(year, month)[1])
    return last - timedelta(days=(last.weekday() - weekday) % 7)


def _observed(year: int, month: int, day: int) -> date:
    """Saturday holidays are observed Friday, Sunday holidays Monday."""
    actual = date(year, month, day)
    if actual.weekday() == 5:
        return actual - timedelta(days=1)
    if actual.weekday() == 6:
        return actual + timedelta(days=1)
    return actual


def federal_holidays(year: int) -> dict[date, str]:
    """Observed US federal holidays for ``year``, keyed by date."""
    return {
        _observed(year, 1, 1): "New Year's Day",
        _nth_weekday(year, 1, MONDAY, 3): "Martin Luther King Jr. Day",
        _nth_weekday(year, 2, MONDAY, 3): "Presidents' Day",
        _last_weekday(year, 5, MONDAY): "Memorial Day",
        _observed(year, 6, 19): "Juneteenth",
        _observed(year, 7, 4): "Independence Day",
        _nth_weekday(year, 9, MONDAY, 1): "Labor Day",
        _nth_weekday(year, 10, MONDAY, 2): "Columbus Day",
        _observed(year, 11, 11): "Veterans Day",
        _nth_weekday(year, 11, THURSDAY, 4): "Thanksgiving Day",
        _observed(year, 12, 25): "Christmas Day",
    }


@dataclass(frozen=True)
class HolidayCalendar:
    """Explicit set of non-business dates."""

    dates: frozenset[date] = field(default_factory=frozenset)

    @classmethod
    def federal(cls, years: Iterable[int]) -> HolidayCalendar:
        collected: set[date] = set()
        for year in years:
            collected.update(federal_holidays(year))
        return cls(frozenset(collected))

    @classmethod
    def of(cls, dates: Iterable[date]) -> HolidayCalendar:
        return cls(frozenset(dates))

    def is_holiday(self, day: date) -> bool:
        return day in self.dates

    def next_business_day(self, day: date) -> date:
        """First date on or after ``day`` that is not a listed holiday."""
        while self.is_holiday(day):
            day += timedelta(days=1)
        return day

    def __contains__(self, day: object) -> bool:
        return isinstance(day, date) and self.is_holiday(day)


@dataclass(frozen=True)
class FederalHolidayCalendar(HolidayCalendar):
    """Observed federal holidays of any year, plus any extra ``dates``."""

    def is_holiday(self, day: date) -> bool:
        return day in self.dates or day in federal_holidays(day.year)


HOLIDAY_CALENDARS = ("none", "federal")


def holiday_calendar_named(name: str | None) -> HolidayCalendar | None:
    """Calendar for a configured name; ``none`` (or empty) means no calendar."""
    key = (name or "none").strip().lower()
    if key == "none":
        return None
    if key == "federal":
        return FederalHolidayCalendar()
    raise ValueError(
        f"Unknown holiday calendar {name!r}, expected one of: {', '.join(HOLIDAY_CALENDARS)}"
    )

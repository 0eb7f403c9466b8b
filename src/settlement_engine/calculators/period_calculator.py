"""Pay period calculation.

All arithmetic happens on local calendar dates in the plan's timezone; the
resulting boundaries are timezone-aware instants.
"""

from __future__ import annotations

import calendar
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from settlement_engine.calculators.holidays import HolidayCalendar
from settlement_engine.calculators.types import DayOfWeek, PayFrequency, PayPeriod, PeriodPolicy
from settlement_engine.errors import ValidationError

# Biweekly blocks are counted from this Monday so boundaries never drift.
BIWEEKLY_ANCHOR = date(2024, 1, 1)
END_OF_PERIOD_OFFSET = timedelta(milliseconds=1)
DEFAULT_CUTOFF = "23:59"

_CUTOFF_PATTERN = re.compile(r"^\d{2}:\d{2}$")


# ===== Validation helpers =====


def parse_cutoff(value: str | None) -> time:
    """Parse an ``HH:MM`` cutoff into a time of day."""
    raw = value or DEFAULT_CUTOFF
    if not _CUTOFF_PATTERN.match(raw):
        raise ValidationError("cutoffTime must be in HH:MM format", field="cutoff_time")
    hours, minutes = int(raw[:2]), int(raw[3:])
    if hours > 23 or minutes > 59:
        raise ValidationError("cutoffTime must be a valid time of day", field="cutoff_time")
    return time(hours, minutes)


def resolve_timezone(*candidates: str | None) -> ZoneInfo:
    """Return the first configured timezone among ``candidates``."""
    for name in candidates:
        if not name:
            continue
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValidationError(f"Unknown timezone: {name}", field="timezone") from e
    raise ValidationError("No timezone configured", field="timezone")


def build_policy(
    frequency: str | PayFrequency,
    day_of_week: str | DayOfWeek | None = None,
    day_of_month: int | None = None,
    payment_lag_days: int = 0,
) -> PeriodPolicy:
    """Validate a frequency/anchor combination and build a policy."""
    try:
        freq = PayFrequency(frequency)
    except ValueError as e:
        raise ValidationError(f"Unknown frequency: {frequency}", field="frequency") from e

    if payment_lag_days is None or payment_lag_days < 0:
        raise ValidationError("paymentLagDays must be zero or greater", field="payment_lag_days")

    dow: DayOfWeek | None = None
    if freq in (PayFrequency.WEEKLY, PayFrequency.BIWEEKLY):
        if not day_of_week:
            raise ValidationError(
                "WEEKLY and BIWEEKLY frequencies require periodStartDayOfWeek",
                field="period_start_day_of_week",
            )
        try:
            dow = DayOfWeek(day_of_week)
        except ValueError as e:
            raise ValidationError(
                f"Unknown day of week: {day_of_week}", field="period_start_day_of_week"
            ) from e

    if freq == PayFrequency.MONTHLY:
        if day_of_month is None:
            raise ValidationError(
                "MONTHLY frequency requires periodStartDayOfMonth",
                field="period_start_day_of_month",
            )
        if not 1 <= day_of_month <= 28:
            raise ValidationError(
                "periodStartDayOfMonth must be between 1 and 28",
                field="period_start_day_of_month",
            )

    return PeriodPolicy(
        frequency=freq,
        day_of_week=dow,
        day_of_month=day_of_month if freq == PayFrequency.MONTHLY else None,
        payment_lag_days=payment_lag_days,
    )


def policy_from_plan(plan: Any) -> PeriodPolicy:
    """Build a policy from a stored pay plan row."""
    return build_policy(
        plan.frequency,
        plan.period_start_day_of_week,
        plan.period_start_day_of_month,
        plan.payment_lag_days,
    )


# ===== Calendar arithmetic =====


def _last_day(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def _shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def _local_midnight(day: date, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz)


class PeriodCalculator:
    """Computes pay periods for a policy.

    When a ``HolidayCalendar`` is supplied, pay dates falling on a listed
    holiday roll forward to the next non-holiday date. Instances hold no
    mutable state, so one calculator may be shared freely.
    """

    def __init__(self, holidays: HolidayCalendar | None = None):
        self.holidays = holidays

    def period_start_date(self, policy: PeriodPolicy, reference: date) -> date:
        """Local start date of the period containing ``reference``."""
        freq = policy.frequency

        if freq == PayFrequency.WEEKLY:
            back = (reference.weekday() - policy.day_of_week.weekday) % 7
            return reference - timedelta(days=back)

        if freq == PayFrequency.BIWEEKLY:
            anchor = BIWEEKLY_ANCHOR + timedelta(
                days=(policy.day_of_week.weekday - BIWEEKLY_ANCHOR.weekday()) % 7
            )
            blocks = (reference - anchor).days // 14
            return anchor + timedelta(days=blocks * 14)

        if freq == PayFrequency.SEMIMONTHLY:
            return reference.replace(day=1 if reference.day <= 15 else 16)

        # MONTHLY
        anchor_day = policy.day_of_month or 1
        year, month = reference.year, reference.month
        if reference.day < min(anchor_day, _last_day(year, month)):
            year, month = _shift_month(year, month, -1)
        return date(year, month, min(anchor_day, _last_day(year, month)))

    def next_start_date(self, policy: PeriodPolicy, start: date) -> date:
        """Local start date of the period following the one starting at ``start``."""
        freq = policy.frequency
        if freq == PayFrequency.WEEKLY:
            return start + timedelta(days=7)
        if freq == PayFrequency.BIWEEKLY:
            return start + timedelta(days=14)
        if freq == PayFrequency.SEMIMONTHLY:
            if start.day == 1:
                return start.replace(day=16)
            year, month = _shift_month(start.year, start.month, 1)
            return date(year, month, 1)
        anchor_day = policy.day_of_month or start.day
        year, month = _shift_month(start.year, start.month, 1)
        return date(year, month, min(anchor_day, _last_day(year, month)))

    def pay_date_for(self, policy: PeriodPolicy, next_start: date, tz: ZoneInfo) -> datetime:
        pay_day = next_start + timedelta(days=policy.payment_lag_days)
        if self.holidays is not None:
            pay_day = self.holidays.next_business_day(pay_day)
        return _local_midnight(pay_day, tz)

    def current_period(
        self,
        policy: PeriodPolicy,
        reference: datetime,
        tz: ZoneInfo,
    ) -> PayPeriod:
        """Period enclosing ``reference`` (an aware instant)."""
        if reference.tzinfo is None:
            raise ValidationError("Reference instant must be timezone-aware", field="reference")

        local_ref = reference.astimezone(tz).date()
        start_day = self.period_start_date(policy, local_ref)
        next_day = self.next_start_date(policy, start_day)

        start = _local_midnight(start_day, tz)
        next_start = _local_midnight(next_day, tz)
        end = (next_start.astimezone(timezone.utc) - END_OF_PERIOD_OFFSET).astimezone(tz)

        return PayPeriod(start=start, end=end, pay_date=self.pay_date_for(policy, next_day, tz))

    def next_periods(
        self,
        policy: PeriodPolicy,
        reference: datetime,
        tz: ZoneInfo,
        count: int = 3,
    ) -> list[PayPeriod]:
        """``count`` consecutive periods beginning with the one enclosing ``reference``."""
        periods: list[PayPeriod] = []
        cursor = reference
        for _ in range(count):
            period = self.current_period(policy, cursor, tz)
            periods.append(period)
            cursor = period.end.astimezone(timezone.utc) + END_OF_PERIOD_OFFSET
        return periods

    @staticmethod
    def period_number(policy: PeriodPolicy, start: date) -> int:
        """Ordinal of the period within the calendar year of its start."""
        days = (start - date(start.year, 1, 1)).days
        freq = policy.frequency
        if freq == PayFrequency.WEEKLY:
            return days // 7 + 1
        if freq == PayFrequency.BIWEEKLY:
            return days // 14 + 1
        if freq == PayFrequency.SEMIMONTHLY:
            return (start.month - 1) * 2 + (1 if start.day <= 15 else 2)
        return start.month


def format_short_date(value: date) -> str:
    return f"{value:%b} {value.day}"


def period_label(start: date, end: date, period_number: int | None = None) -> str:
    """Human label such as ``Period 3 • Jan 15 - Jan 21``."""
    span = f"{format_short_date(start)} - {format_short_date(end)}"
    if period_number:
        return f"Period {period_number} • {span}"
    return span

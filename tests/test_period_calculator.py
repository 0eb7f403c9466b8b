"""Tests for pay period calculation."""

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from settlement_engine.calculators.holidays import HolidayCalendar
from settlement_engine.calculators.period_calculator import (
    END_OF_PERIOD_OFFSET,
    PeriodCalculator,
    build_policy,
    parse_cutoff,
    period_label,
    resolve_timezone,
)
from settlement_engine.calculators.types import PayFrequency
from settlement_engine.errors import ValidationError

NEW_YORK = ZoneInfo("America/New_York")
CHICAGO = ZoneInfo("America/Chicago")


def local(year, month, day, hour=0, minute=0, tz=NEW_YORK):
    return datetime(year, month, day, hour, minute, tzinfo=tz)


@pytest.fixture
def calculator():
    return PeriodCalculator()


class TestWeekly:
    """Weekly periods anchored on a weekday."""

    def test_wednesday_reference_maps_to_preceding_monday(self, calculator):
        """Monday-anchored week containing a Wednesday."""
        policy = build_policy("WEEKLY", "MONDAY")
        period = calculator.current_period(policy, local(2024, 2, 7, 12), NEW_YORK)

        assert period.start == local(2024, 2, 5)
        assert period.end == local(2024, 2, 12) - END_OF_PERIOD_OFFSET
        assert period.pay_date == local(2024, 2, 12)

    def test_reference_on_anchor_day_starts_that_day(self, calculator):
        policy = build_policy("WEEKLY", "MONDAY")
        period = calculator.current_period(policy, local(2024, 2, 5, 0, 0), NEW_YORK)
        assert period.start_date == date(2024, 2, 5)

    def test_reference_read_in_plan_timezone(self, calculator):
        """01:30 UTC Monday is still Sunday evening in New York."""
        policy = build_policy("WEEKLY", "MONDAY")
        reference = datetime(2024, 2, 12, 1, 30, tzinfo=timezone.utc)
        period = calculator.current_period(policy, reference, NEW_YORK)
        assert period.start_date == date(2024, 2, 5)

    def test_payment_lag_shifts_pay_date(self, calculator):
        policy = build_policy("WEEKLY", "FRIDAY", payment_lag_days=3)
        period = calculator.current_period(policy, local(2024, 2, 7), NEW_YORK)
        assert period.start_date == date(2024, 2, 2)
        assert period.pay_date == local(2024, 2, 12)

    def test_end_across_dst_change(self, calculator):
        """Period end keeps the local wall time across spring-forward."""
        policy = build_policy("WEEKLY", "MONDAY")
        period = calculator.current_period(policy, local(2024, 3, 6), NEW_YORK)

        assert period.end.astimezone(timezone.utc) == datetime(
            2024, 3, 11, 3, 59, 59, 999000, tzinfo=timezone.utc
        )
        assert period.end.utcoffset() == timedelta(hours=-4)
        assert period.start.utcoffset() == timedelta(hours=-5)


class TestBiweekly:
    """Biweekly blocks counted from the fixed 2024-01-01 anchor."""

    def test_blocks_from_anchor(self, calculator):
        policy = build_policy("BIWEEKLY", "MONDAY")
        period = calculator.current_period(policy, local(2024, 1, 20), NEW_YORK)
        assert period.start_date == date(2024, 1, 15)
        assert period.end_date == date(2024, 1, 28)

    def test_reference_before_anchor(self, calculator):
        """Dates before the anchor fall into earlier blocks, not a partial one."""
        policy = build_policy("BIWEEKLY", "FRIDAY")
        period = calculator.current_period(policy, local(2024, 1, 4), NEW_YORK)
        assert period.start_date == date(2023, 12, 22)
        assert period.end_date == date(2024, 1, 4)

    def test_blocks_do_not_drift(self, calculator):
        policy = build_policy("BIWEEKLY", "MONDAY")
        periods = calculator.next_periods(policy, local(2024, 1, 1), NEW_YORK, count=30)
        for period in periods:
            assert (period.start_date - date(2024, 1, 1)).days % 14 == 0


class TestSemimonthly:
    """Semimonthly halves: 1st-15th and 16th-end of month."""

    def test_reference_on_the_20th(self, calculator):
        policy = build_policy("SEMIMONTHLY")
        period = calculator.current_period(policy, local(2024, 2, 20), NEW_YORK)

        assert period.start == local(2024, 2, 16)
        assert period.end == local(2024, 3, 1) - END_OF_PERIOD_OFFSET
        assert period.end_date == date(2024, 2, 29)

    def test_first_half(self, calculator):
        policy = build_policy("SEMIMONTHLY")
        period = calculator.current_period(policy, local(2024, 4, 15, 23), NEW_YORK)
        assert period.start_date == date(2024, 4, 1)
        assert period.end_date == date(2024, 4, 15)
        assert period.pay_date == local(2024, 4, 16)

    def test_second_half_rolls_into_next_year(self, calculator):
        policy = build_policy("SEMIMONTHLY")
        period = calculator.current_period(policy, local(2024, 12, 31), NEW_YORK)
        assert period.start_date == date(2024, 12, 16)
        assert period.pay_date == local(2025, 1, 1)


class TestMonthly:
    """Monthly periods anchored on a day of month."""

    def test_before_anchor_uses_previous_month(self, calculator):
        policy = build_policy("MONTHLY", day_of_month=15)
        period = calculator.current_period(policy, local(2024, 3, 10), NEW_YORK)
        assert period.start_date == date(2024, 2, 15)
        assert period.end_date == date(2024, 3, 14)

    def test_on_or_after_anchor_uses_current_month(self, calculator):
        policy = build_policy("MONTHLY", day_of_month=15)
        period = calculator.current_period(policy, local(2024, 3, 15), NEW_YORK)
        assert period.start_date == date(2024, 3, 15)

    def test_first_of_month(self, calculator):
        policy = build_policy("MONTHLY", day_of_month=1, payment_lag_days=5)
        period = calculator.current_period(policy, local(2024, 2, 29), NEW_YORK)
        assert period.start_date == date(2024, 2, 1)
        assert period.end_date == date(2024, 2, 29)
        assert period.pay_date == local(2024, 3, 6)


class TestPeriodChaining:
    """Consecutive periods neither overlap nor leave gaps."""

    @pytest.mark.parametrize(
        "frequency,day_of_week,day_of_month",
        [
            ("WEEKLY", "THURSDAY", None),
            ("BIWEEKLY", "MONDAY", None),
            ("SEMIMONTHLY", None, None),
            ("MONTHLY", None, 28),
        ],
    )
    def test_no_gap_no_overlap(self, calculator, frequency, day_of_week, day_of_month):
        policy = build_policy(frequency, day_of_week, day_of_month)
        periods = calculator.next_periods(policy, local(2024, 1, 10), CHICAGO, count=26)

        assert len(periods) == 26
        for previous, current in zip(periods, periods[1:]):
            assert current.start == previous.end + END_OF_PERIOD_OFFSET
            assert current.start > previous.start

    def test_calculation_is_idempotent(self, calculator):
        policy = build_policy("BIWEEKLY", "WEDNESDAY", payment_lag_days=2)
        reference = local(2024, 7, 4, 15, 30)
        assert calculator.current_period(policy, reference, NEW_YORK) == calculator.current_period(
            policy, reference, NEW_YORK
        )

    def test_naive_reference_rejected(self, calculator):
        policy = build_policy("WEEKLY", "MONDAY")
        with pytest.raises(ValidationError) as exc_info:
            calculator.current_period(policy, datetime(2024, 2, 7), NEW_YORK)
        assert exc_info.value.field == "reference"


class TestHolidayPayDates:
    """Pay dates roll past holidays only when a calendar is supplied."""

    def test_pay_date_rolls_past_holiday(self):
        calculator = PeriodCalculator(HolidayCalendar.federal([2024]))
        policy = build_policy("WEEKLY", "MONDAY")
        period = calculator.current_period(policy, local(2024, 1, 10), NEW_YORK)

        # Next period starts on Martin Luther King Jr. Day
        assert period.pay_date == local(2024, 1, 16)

    def test_without_calendar_pay_date_unchanged(self, calculator):
        policy = build_policy("WEEKLY", "MONDAY")
        period = calculator.current_period(policy, local(2024, 1, 10), NEW_YORK)
        assert period.pay_date == local(2024, 1, 15)


class TestPeriodNumberAndLabel:
    def test_period_numbers(self):
        weekly = build_policy("WEEKLY", "MONDAY")
        biweekly = build_policy("BIWEEKLY", "MONDAY")
        semimonthly = build_policy("SEMIMONTHLY")
        monthly = build_policy("MONTHLY", day_of_month=1)

        assert PeriodCalculator.period_number(weekly, date(2024, 2, 5)) == 6
        assert PeriodCalculator.period_number(biweekly, date(2024, 1, 15)) == 2
        assert PeriodCalculator.period_number(semimonthly, date(2024, 2, 16)) == 4
        assert PeriodCalculator.period_number(semimonthly, date(2024, 1, 1)) == 1
        assert PeriodCalculator.period_number(monthly, date(2024, 11, 1)) == 11

    def test_label(self):
        assert period_label(date(2024, 1, 15), date(2024, 1, 21), 3) == (
            "Period 3 • Jan 15 - Jan 21"
        )

    def test_label_without_number(self):
        assert period_label(date(2024, 2, 1), date(2024, 2, 29)) == "Feb 1 - Feb 29"


class TestPolicyValidation:
    def test_weekly_requires_day_of_week(self):
        with pytest.raises(ValidationError) as exc_info:
            build_policy("WEEKLY")
        assert exc_info.value.field == "period_start_day_of_week"

    def test_monthly_requires_day_of_month(self):
        with pytest.raises(ValidationError) as exc_info:
            build_policy("MONTHLY")
        assert exc_info.value.field == "period_start_day_of_month"

    @pytest.mark.parametrize("day", [0, 29, 31])
    def test_monthly_day_out_of_range(self, day):
        with pytest.raises(ValidationError):
            build_policy("MONTHLY", day_of_month=day)

    def test_unknown_frequency(self):
        with pytest.raises(ValidationError) as exc_info:
            build_policy("QUARTERLY")
        assert exc_info.value.field == "frequency"

    def test_negative_lag(self):
        with pytest.raises(ValidationError) as exc_info:
            build_policy("SEMIMONTHLY", payment_lag_days=-1)
        assert exc_info.value.field == "payment_lag_days"

    def test_irrelevant_anchor_is_dropped(self):
        policy = build_policy("SEMIMONTHLY", "MONDAY", 10)
        assert policy.frequency == PayFrequency.SEMIMONTHLY
        assert policy.day_of_week is None
        assert policy.day_of_month is None


class TestCutoffAndTimezone:
    def test_parse_cutoff(self):
        assert parse_cutoff("17:00").hour == 17
        assert parse_cutoff(None).minute == 59

    @pytest.mark.parametrize("value", ["5pm", "7:00", "24:00", "12:60", "17-00"])
    def test_malformed_cutoff(self, value):
        with pytest.raises(ValidationError) as exc_info:
            parse_cutoff(value)
        assert exc_info.value.field == "cutoff_time"

    def test_first_configured_timezone_wins(self):
        assert resolve_timezone(None, "", "America/Chicago", "UTC").key == "America/Chicago"

    def test_unknown_timezone(self):
        with pytest.raises(ValidationError):
            resolve_timezone("Mars/Olympus_Mons")

"""Tests for the eligibility filter."""

from datetime import datetime, time, timedelta
from uuid import uuid4
from zoneinfo import ZoneInfo

import pytest

from settlement_engine.calculators.eligibility import EligibilityWindow, select_eligible
from settlement_engine.calculators.period_calculator import PeriodCalculator, build_policy
from settlement_engine.calculators.types import EligibilityCandidate, TriggerResolution

NEW_YORK = ZoneInfo("America/New_York")


def local(day, hour=0, minute=0, month=2):
    return datetime(2024, month, day, hour, minute, tzinfo=NEW_YORK)


@pytest.fixture
def period():
    """Monday-anchored week Feb 5 - Feb 11, 2024."""
    policy = build_policy("WEEKLY", "MONDAY")
    return PeriodCalculator().current_period(policy, local(7, 12), NEW_YORK)


@pytest.fixture
def window(period):
    return EligibilityWindow.build(period, time(17, 0), NEW_YORK)


def candidate(
    trigger_at=None,
    *,
    standalone=False,
    held=False,
    created_at=None,
    source="LAST_DELIVERY_CHECKED_OUT",
):
    return EligibilityCandidate(
        payable_id=uuid4(),
        is_standalone=standalone,
        is_held=held,
        created_at=created_at or trigger_at or local(6),
        trigger=TriggerResolution(trigger_at, source if trigger_at else "UNRESOLVED"),
    )


class TestWindow:
    def test_cutoff_bounds(self, window):
        assert window.opens_after == local(4, 17)
        assert window.closes_at == local(11, 17)

    def test_without_cutoff_window_is_the_period(self, period):
        window = EligibilityWindow.build(period, None, NEW_YORK)
        assert window.opens_after is None
        assert window.closes_at == period.end
        assert window.contains(period.start)
        assert not window.contains(period.start - timedelta(milliseconds=1))


class TestCutoff:
    """Triggers after the cutoff on the period-end day roll to the next period."""

    def test_sunday_before_cutoff_included(self, window):
        early = candidate(local(11, 16))
        result = select_eligible([early], window)
        assert result.included == [early.payable_id]

    def test_sunday_after_cutoff_excluded(self, window):
        late = candidate(local(11, 18))
        result = select_eligible([late], window)
        assert result.included == []
        assert result.excluded_out_of_window == [late.payable_id]

    def test_exactly_at_cutoff_included(self, window):
        on_time = candidate(local(11, 17))
        assert select_eligible([on_time], window).included == [on_time.payable_id]

    def test_previous_sunday_after_cutoff_rolls_in(self, window):
        rolled = candidate(local(4, 18))
        assert select_eligible([rolled], window).included == [rolled.payable_id]

    def test_previous_sunday_before_cutoff_belongs_to_previous_period(self, window):
        earlier = candidate(local(4, 16))
        result = select_eligible([earlier], window)
        assert result.excluded_out_of_window == [earlier.payable_id]


class TestHeld:
    def test_held_excluded_by_default(self, window):
        held = candidate(local(7), held=True)
        result = select_eligible([held], window)
        assert result.excluded_held == [held.payable_id]

    def test_released_held_from_earlier_period(self, window):
        """Held pay from earlier periods is released when asked for."""
        held = candidate(local(15, month=1), held=True)
        result = select_eligible([held], window, include_held=True)
        assert result.included == [held.payable_id]

    def test_released_held_still_bounded_by_cutoff(self, window):
        held = candidate(local(11, 18), held=True)
        result = select_eligible([held], window, include_held=True)
        assert result.excluded_out_of_window == [held.payable_id]

    def test_released_held_still_needs_resolved_trigger(self, window):
        held = candidate(None, held=True)
        result = select_eligible([held], window, include_held=True)
        assert result.excluded_unresolved == [held.payable_id]


class TestUnresolvedAndStandalone:
    def test_unresolved_never_included(self, window):
        unresolved = candidate(None, created_at=local(7))
        result = select_eligible([unresolved], window)
        assert result.excluded_unresolved == [unresolved.payable_id]
        assert result.included_count == 0

    def test_standalone_created_in_period(self, window):
        adjustment = candidate(
            local(11, 20), standalone=True, source="STANDALONE_CREATED_AT"
        )
        assert select_eligible([adjustment], window).included == [adjustment.payable_id]

    def test_standalone_excluded_when_plan_disables_them(self, window):
        adjustment = candidate(
            local(11, 20), standalone=True, source="STANDALONE_CREATED_AT"
        )
        result = select_eligible([adjustment], window, include_standalone=False)
        assert result.excluded_out_of_window == [adjustment.payable_id]

    def test_standalone_unapproved_under_approval_trigger(self, window):
        adjustment = candidate(None, standalone=True, created_at=local(8))
        assert select_eligible([adjustment], window).included == [adjustment.payable_id]


class TestCarryOver:
    def test_missed_items_carried_over(self, window):
        missed = candidate(local(20, month=1))
        assert select_eligible([missed], window).included == []
        assert select_eligible([missed], window, carry_over=True).included == [
            missed.payable_id
        ]

    def test_carry_over_never_pulls_future_items(self, window):
        future = candidate(local(14))
        result = select_eligible([future], window, carry_over=True)
        assert result.excluded_out_of_window == [future.payable_id]


def test_partition_is_complete(window):
    candidates = [
        candidate(local(6)),
        candidate(local(11, 18)),
        candidate(None),
        candidate(local(8), held=True),
    ]
    result = select_eligible(candidates, window)
    partitioned = (
        result.included
        + result.excluded_held
        + result.excluded_unresolved
        + result.excluded_out_of_window
    )
    assert sorted(partitioned) == sorted(c.payable_id for c in candidates)

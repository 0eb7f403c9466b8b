"""Eligibility filter: decides which unassigned payables belong to a period."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from zoneinfo import ZoneInfo

from settlement_engine.calculators.types import (
    EligibilityCandidate,
    EligibilityResult,
    PayPeriod,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EligibilityWindow:
    """Instants that bound a period's membership test.

    With a cutoff, the window opens just after the cutoff on the day before
    the period starts (events that missed the previous period roll in here)
    and closes at the cutoff on the period-end day. Without a cutoff it is
    the period itself.
    """

    period: PayPeriod
    opens_after: datetime | None
    closes_at: datetime

    @classmethod
    def build(cls, period: PayPeriod, cutoff: time | None, tz: ZoneInfo) -> EligibilityWindow:
        if cutoff is None:
            return cls(period=period, opens_after=None, closes_at=period.end)
        start_day = period.start.astimezone(tz).date()
        end_day = period.end.astimezone(tz).date()
        return cls(
            period=period,
            opens_after=datetime.combine(start_day - timedelta(days=1), cutoff, tzinfo=tz),
            closes_at=datetime.combine(end_day, cutoff, tzinfo=tz),
        )

    def contains(self, instant: datetime) -> bool:
        if self.opens_after is not None:
            if instant <= self.opens_after:
                return False
        elif instant < self.period.start:
            return False
        return instant <= self.closes_at

    def precedes(self, instant: datetime) -> bool:
        """True when ``instant`` falls before the window opens."""
        if self.opens_after is not None:
            return instant <= self.opens_after
        return instant < self.period.start

    def created_within(self, instant: datetime) -> bool:
        return self.period.start <= instant <= self.period.end


def select_eligible(
    candidates: Iterable[EligibilityCandidate],
    window: EligibilityWindow,
    *,
    include_held: bool = False,
    include_standalone: bool = True,
    carry_over: bool = False,
) -> EligibilityResult:
    """Partition candidates into included and excluded sets.

    Rules, in order:
    - held payables are excluded unless ``include_held``; released held
      payables still need a resolved trigger at or before the window close
    - unresolved triggers are excluded, never guessed
    - resolved triggers inside the window are included
    - with ``carry_over``, triggers before the window are included
    - with ``include_standalone``, standalone payables created inside the
      period are included regardless of their trigger
    """
    result = EligibilityResult()

    for candidate in candidates:
        if candidate.is_held and not include_held:
            result.excluded_held.append(candidate.payable_id)
            continue

        standalone_in_period = (
            include_standalone
            and candidate.is_standalone
            and window.created_within(candidate.created_at)
        )

        timestamp = candidate.trigger.timestamp
        if timestamp is None:
            if standalone_in_period:
                result.included.append(candidate.payable_id)
            else:
                logger.debug(
                    "Excluding payable %s: trigger unresolved (%s)",
                    candidate.payable_id,
                    candidate.trigger.source,
                )
                result.excluded_unresolved.append(candidate.payable_id)
            continue

        if candidate.is_held:
            included = timestamp <= window.closes_at
        else:
            included = (
                window.contains(timestamp)
                or (carry_over and window.precedes(timestamp))
                or standalone_in_period
            )

        if included:
            result.included.append(candidate.payable_id)
        else:
            result.excluded_out_of_window.append(candidate.payable_id)

    return result

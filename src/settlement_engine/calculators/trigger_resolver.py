"""Trigger timestamp resolution for payables.

Load-linked payables walk an ordered list of resolution steps and stop at
the first one that yields a timestamp. Creation time is never used for a
load-linked payable; when every step comes back empty the payable is
unresolved and stays out of automatic generation.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from settlement_engine.calculators.types import (
    DeliverySnapshot,
    PayableTrigger,
    StopTimes,
    TriggerResolution,
)
from settlement_engine.models import DispatchLeg, LoadStop, Payable

logger = logging.getLogger(__name__)

UNRESOLVED = "UNRESOLVED"


@dataclass(frozen=True)
class ResolutionStep:
    """One link of the fallback chain."""

    source: str
    resolve: Callable[[DeliverySnapshot, PayableTrigger], datetime | None]


def _leg_completion_when_requested(
    snapshot: DeliverySnapshot, trigger: PayableTrigger
) -> datetime | None:
    if trigger == PayableTrigger.COMPLETION_DATE:
        return snapshot.leg_completed_at
    return None


def _leg_end_stop_checkout(snapshot: DeliverySnapshot, trigger: PayableTrigger) -> datetime | None:
    return snapshot.leg_end_stop.checked_out_at if snapshot.leg_end_stop else None


def _leg_completion(snapshot: DeliverySnapshot, trigger: PayableTrigger) -> datetime | None:
    return snapshot.leg_completed_at


def _last_delivery_checkout(snapshot: DeliverySnapshot, trigger: PayableTrigger) -> datetime | None:
    stop = snapshot.last_delivery_stop
    return stop.checked_out_at if stop else None


def _last_delivery_window_end(
    snapshot: DeliverySnapshot, trigger: PayableTrigger
) -> datetime | None:
    stop = snapshot.last_delivery_stop
    return stop.window_end_time if stop else None


def _last_delivery_window_begin(
    snapshot: DeliverySnapshot, trigger: PayableTrigger
) -> datetime | None:
    stop = snapshot.last_delivery_stop
    return stop.window_begin_time if stop else None


# Strict priority order for load-linked payables.
LOAD_LINKED_STEPS: tuple[ResolutionStep, ...] = (
    ResolutionStep("LEG_COMPLETED_AT", _leg_completion_when_requested),
    ResolutionStep("LEG_END_STOP_CHECKED_OUT", _leg_end_stop_checkout),
    ResolutionStep("LEG_COMPLETED_AT_FALLBACK", _leg_completion),
    ResolutionStep("LAST_DELIVERY_CHECKED_OUT", _last_delivery_checkout),
    ResolutionStep("LAST_DELIVERY_WINDOW_END", _last_delivery_window_end),
    ResolutionStep("LAST_DELIVERY_WINDOW_BEGIN", _last_delivery_window_begin),
)


def resolve_trigger(
    snapshot: DeliverySnapshot,
    trigger: PayableTrigger,
    steps: Sequence[ResolutionStep] = LOAD_LINKED_STEPS,
) -> TriggerResolution:
    """Resolve the period-deciding timestamp for one payable."""
    if trigger == PayableTrigger.APPROVAL_DATE:
        return TriggerResolution(snapshot.approved_at, "APPROVAL_DATE")

    if not snapshot.is_load_linked:
        return TriggerResolution(snapshot.created_at, "STANDALONE_CREATED_AT")

    for step in steps:
        value = step.resolve(snapshot, trigger)
        if value is not None:
            return TriggerResolution(value, step.source)

    return TriggerResolution(None, UNRESOLVED)


def _stop_times(stop: LoadStop | None) -> StopTimes | None:
    if stop is None:
        return None
    return StopTimes(
        checked_out_at=stop.checked_out_at,
        window_end_time=stop.window_end_time,
        window_begin_time=stop.window_begin_time,
    )


class DeliverySnapshotReader:
    """Loads the dispatch facts trigger resolution needs, in batches."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def read(self, payables: Sequence[Payable]) -> dict[UUID, DeliverySnapshot]:
        leg_ids = {p.leg_id for p in payables if p.leg_id is not None}
        legs: dict[UUID, DispatchLeg] = {}
        if leg_ids:
            result = await self.session.execute(
                select(DispatchLeg).where(DispatchLeg.leg_id.in_(leg_ids))
            )
            legs = {leg.leg_id: leg for leg in result.scalars()}

        end_stop_ids = {leg.end_stop_id for leg in legs.values() if leg.end_stop_id}
        end_stops: dict[UUID, LoadStop] = {}
        if end_stop_ids:
            result = await self.session.execute(
                select(LoadStop).where(LoadStop.stop_id.in_(end_stop_ids))
            )
            end_stops = {stop.stop_id: stop for stop in result.scalars()}

        def load_for(payable: Payable) -> UUID | None:
            if payable.load_id is not None:
                return payable.load_id
            leg = legs.get(payable.leg_id) if payable.leg_id else None
            return leg.load_id if leg else None

        load_ids = {lid for lid in (load_for(p) for p in payables) if lid is not None}
        last_delivery: dict[UUID, LoadStop] = {}
        if load_ids:
            result = await self.session.execute(
                select(LoadStop)
                .where(LoadStop.load_id.in_(load_ids))
                .where(LoadStop.stop_type == "DELIVERY")
                .order_by(LoadStop.load_id, LoadStop.sequence_number.desc())
            )
            for stop in result.scalars():
                # First row per load has the highest sequence number
                last_delivery.setdefault(stop.load_id, stop)

        snapshots: dict[UUID, DeliverySnapshot] = {}
        for payable in payables:
            leg = legs.get(payable.leg_id) if payable.leg_id else None
            load_id = load_for(payable)
            snapshots[payable.payable_id] = DeliverySnapshot(
                created_at=payable.created_at,
                approved_at=payable.approved_at,
                is_load_linked=not payable.is_standalone,
                leg_completed_at=leg.completed_at if leg else None,
                leg_end_stop=_stop_times(end_stops.get(leg.end_stop_id)) if leg else None,
                last_delivery_stop=_stop_times(last_delivery.get(load_id)) if load_id else None,
            )
        return snapshots


class TriggerResolver:
    """Resolves trigger timestamps for payables stored in the database."""

    def __init__(self, session: AsyncSession, steps: Sequence[ResolutionStep] = LOAD_LINKED_STEPS):
        self.reader = DeliverySnapshotReader(session)
        self.steps = steps

    async def resolve_many(
        self,
        payables: Sequence[Payable],
        trigger: PayableTrigger,
    ) -> dict[UUID, TriggerResolution]:
        snapshots = await self.reader.read(payables)
        resolutions: dict[UUID, TriggerResolution] = {}
        for payable in payables:
            resolution = resolve_trigger(snapshots[payable.payable_id], trigger, self.steps)
            logger.debug(
                "Resolved trigger for payable %s: source=%s timestamp=%s",
                payable.payable_id,
                resolution.source,
                resolution.timestamp.isoformat() if resolution.timestamp else None,
            )
            resolutions[payable.payable_id] = resolution
        return resolutions

    async def resolve(self, payable: Payable, trigger: PayableTrigger) -> TriggerResolution:
        resolutions = await self.resolve_many([payable], trigger)
        return resolutions[payable.payable_id]

"""Trigger resolution over stored loads, stops and legs."""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from settlement_engine.calculators.trigger_resolver import TriggerResolver
from settlement_engine.calculators.types import PayableTrigger
from settlement_engine.models import LoadStop, Payable

pytestmark = pytest.mark.asyncio


async def stop_of(session, load, stop_type):
    result = await session.execute(
        select(LoadStop).where(LoadStop.load_id == load.load_id, LoadStop.stop_type == stop_type)
    )
    return result.scalar_one()


async def leg_payable(session, organization, payee, leg):
    payable = Payable(
        organization_id=organization.organization_id,
        payee_id=payee.payee_id,
        leg_id=leg.leg_id,
        description="Leg pay",
        quantity=Decimal("100"),
        rate=Decimal("1.50"),
        total_amount=Decimal("150.00"),
        source_type="SYSTEM",
    )
    session.add(payable)
    await session.flush()
    return payable


class TestDeliverySnapshots:
    async def test_last_delivery_is_highest_sequence(
        self, session, organization, payee, make_load, make_payable, at
    ):
        load = await make_load(at(2024, 2, 6, 9))
        session.add(
            LoadStop(
                load_id=load.load_id,
                stop_type="DELIVERY",
                sequence_number=3,
                checked_out_at=at(2024, 2, 6, 15),
            )
        )
        await session.flush()
        payable = await make_payable(payee, at(2024, 2, 6, 9), load=load)

        resolution = await TriggerResolver(session).resolve(
            payable, PayableTrigger.DELIVERY_DATE
        )

        assert resolution.source == "LAST_DELIVERY_CHECKED_OUT"
        assert resolution.timestamp == at(2024, 2, 6, 15)

    async def test_leg_without_load_id_reaches_load_through_leg(
        self, session, organization, payee, make_load, make_leg, at
    ):
        load = await make_load(at(2024, 2, 6, 9))
        leg = await make_leg(load)
        payable = await leg_payable(session, organization, payee, leg)

        resolution = await TriggerResolver(session).resolve(
            payable, PayableTrigger.DELIVERY_DATE
        )

        assert resolution.source == "LAST_DELIVERY_CHECKED_OUT"
        assert resolution.timestamp == at(2024, 2, 6, 9)

    async def test_completion_trigger_prefers_leg_completion(
        self, session, organization, payee, make_load, make_leg, at
    ):
        load = await make_load(at(2024, 2, 6, 9))
        pickup = await stop_of(session, load, "PICKUP")
        leg = await make_leg(load, completed_at=at(2024, 2, 6, 4), end_stop=pickup)
        payable = await leg_payable(session, organization, payee, leg)
        resolver = TriggerResolver(session)

        completion = await resolver.resolve(payable, PayableTrigger.COMPLETION_DATE)
        delivery = await resolver.resolve(payable, PayableTrigger.DELIVERY_DATE)

        assert (completion.source, completion.timestamp) == (
            "LEG_COMPLETED_AT",
            at(2024, 2, 6, 4),
        )
        assert (delivery.source, delivery.timestamp) == (
            "LEG_END_STOP_CHECKED_OUT",
            at(2024, 2, 6, 9) - timedelta(hours=6),
        )

    async def test_batch_resolution(
        self, session, payee, make_payable, make_standalone_payable, at
    ):
        delivered = await make_payable(payee, at(2024, 2, 6, 9))
        windowed = await make_payable(payee, None, window_begin=at(2024, 2, 9, 8))
        missing = await make_payable(payee, None)
        standalone = await make_standalone_payable(payee, at(2024, 2, 5, 12))

        resolutions = await TriggerResolver(session).resolve_many(
            [delivered, windowed, missing, standalone], PayableTrigger.DELIVERY_DATE
        )

        assert {pid: r.source for pid, r in resolutions.items()} == {
            delivered.payable_id: "LAST_DELIVERY_CHECKED_OUT",
            windowed.payable_id: "LAST_DELIVERY_WINDOW_BEGIN",
            missing.payable_id: "UNRESOLVED",
            standalone.payable_id: "STANDALONE_CREATED_AT",
        }
        assert resolutions[missing.payable_id].timestamp is None

    async def test_approval_trigger_uses_approval_stamp(
        self, session, payee, make_payable, at
    ):
        payable = await make_payable(payee, at(2024, 2, 6, 9))
        payable.approved_at = at(2024, 2, 12, 10)
        await session.flush()

        resolution = await TriggerResolver(session).resolve(
            payable, PayableTrigger.APPROVAL_DATE
        )

        assert resolution.timestamp == at(2024, 2, 12, 10)

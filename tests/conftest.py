"""Pytest fixtures for settlement engine tests."""

from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.pool import StaticPool

from settlement_engine.database import create_session_factory, get_engine
from settlement_engine.models import (
    Base,
    DispatchLeg,
    Load,
    LoadStop,
    Organization,
    Payable,
    Payee,
    PayPlan,
)

# Use in-memory SQLite for tests (with async support)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

EASTERN = ZoneInfo("America/New_York")

# Wednesday 2024-02-07 12:00 in New York; the enclosing Monday week is Feb 5 - Feb 11
FIXED_NOW = datetime(2024, 2, 7, 17, 0, tzinfo=timezone.utc)


@pytest.fixture
async def engine():
    """Create a fresh in-memory database per test."""
    engine = get_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def session(engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    session_factory = create_session_factory(engine)

    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def clock():
    """Deterministic clock pinned to FIXED_NOW."""
    return lambda: FIXED_NOW


@pytest.fixture
async def organization(session: AsyncSession) -> Organization:
    org = Organization(name="Blue Ridge Freight", default_timezone="America/New_York")
    session.add(org)
    await session.flush()
    return org


@pytest.fixture
async def weekly_plan(session: AsyncSession, organization: Organization) -> PayPlan:
    """Weekly plan starting Mondays with a 17:00 cutoff."""
    plan = PayPlan(
        organization_id=organization.organization_id,
        name="Weekly Drivers",
        frequency="WEEKLY",
        period_start_day_of_week="MONDAY",
        timezone="America/New_York",
        cutoff_time="17:00",
        payment_lag_days=0,
        payable_trigger="DELIVERY_DATE",
        include_standalone_adjustments=True,
        auto_carryover=False,
        is_active=True,
    )
    session.add(plan)
    await session.flush()
    return plan


@pytest.fixture
def make_payee(session: AsyncSession, organization: Organization):
    """Factory for payees in the test organization."""

    async def factory(
        first_name: str,
        last_name: str,
        plan: PayPlan | None = None,
        *,
        payee_type: str = "DRIVER",
        company_name: str | None = None,
        is_active: bool = True,
    ) -> Payee:
        payee = Payee(
            organization_id=organization.organization_id,
            payee_type=payee_type,
            first_name=first_name,
            last_name=last_name,
            company_name=company_name,
            pay_plan_id=plan.pay_plan_id if plan else None,
            is_active=is_active,
        )
        session.add(payee)
        await session.flush()
        return payee

    return factory


@pytest.fixture
async def payee(make_payee, weekly_plan: PayPlan) -> Payee:
    return await make_payee("Dana", "Reyes", weekly_plan)


@pytest.fixture
def make_load(session: AsyncSession, organization: Organization):
    """Factory for a load with a pickup and a final delivery stop."""
    counter = itertools.count(1001)

    async def factory(
        delivered_at: datetime | None,
        *,
        effective_miles: Decimal | None = Decimal("250"),
        is_held: bool = False,
        has_signed_pod: bool = True,
        window_end: datetime | None = None,
        window_begin: datetime | None = None,
    ) -> Load:
        number = next(counter)
        load = Load(
            organization_id=organization.organization_id,
            internal_id=f"L-{number}",
            order_number=f"PO-{number}",
            effective_miles=effective_miles,
            is_held=is_held,
            held_reason="Awaiting paperwork" if is_held else None,
            has_signed_pod=has_signed_pod,
        )
        session.add(load)
        await session.flush()

        session.add_all(
            [
                LoadStop(
                    load_id=load.load_id,
                    stop_type="PICKUP",
                    sequence_number=1,
                    checked_out_at=delivered_at - timedelta(hours=6) if delivered_at else None,
                ),
                LoadStop(
                    load_id=load.load_id,
                    stop_type="DELIVERY",
                    sequence_number=2,
                    checked_out_at=delivered_at,
                    window_end_time=window_end,
                    window_begin_time=window_begin,
                ),
            ]
        )
        await session.flush()
        return load

    return factory


@pytest.fixture
def make_payable(session: AsyncSession, organization: Organization, make_load):
    """Factory for a SYSTEM payable on a freshly delivered load."""

    async def factory(
        payee: Payee,
        delivered_at: datetime | None,
        *,
        quantity: Decimal = Decimal("250"),
        rate: Decimal = Decimal("2.00"),
        description: str = "Linehaul miles",
        load: Load | None = None,
        **load_options,
    ) -> Payable:
        if load is None:
            load = await make_load(delivered_at, **load_options)
        payable = Payable(
            organization_id=organization.organization_id,
            payee_id=payee.payee_id,
            load_id=load.load_id,
            description=description,
            quantity=quantity,
            rate=rate,
            total_amount=(quantity * rate).quantize(Decimal("0.01")),
            source_type="SYSTEM",
            created_at=delivered_at or FIXED_NOW,
        )
        session.add(payable)
        await session.flush()
        return payable

    return factory


@pytest.fixture
def make_standalone_payable(session: AsyncSession, organization: Organization):
    """Factory for a MANUAL payable with no load or leg."""

    async def factory(
        payee: Payee,
        created_at: datetime,
        amount: Decimal = Decimal("75.00"),
        description: str = "Fuel advance repayment",
        receipt_ref: str | None = None,
    ) -> Payable:
        payable = Payable(
            organization_id=organization.organization_id,
            payee_id=payee.payee_id,
            description=description,
            quantity=Decimal("1"),
            rate=amount,
            total_amount=amount,
            source_type="MANUAL",
            is_locked=True,
            receipt_ref=receipt_ref,
            created_at=created_at,
        )
        session.add(payable)
        await session.flush()
        return payable

    return factory


@pytest.fixture
def make_leg(session: AsyncSession):
    """Factory for a dispatch leg on an existing load."""

    async def factory(
        load: Load,
        *,
        completed_at: datetime | None = None,
        end_stop: LoadStop | None = None,
    ) -> DispatchLeg:
        leg = DispatchLeg(
            load_id=load.load_id,
            sequence=1,
            completed_at=completed_at,
            end_stop_id=end_stop.stop_id if end_stop else None,
        )
        session.add(leg)
        await session.flush()
        return leg

    return factory


def eastern(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    """Aware New York local time."""
    return datetime(year, month, day, hour, minute, tzinfo=EASTERN)


@pytest.fixture
def at():
    """Shorthand for building New York local instants in tests."""
    return eastern

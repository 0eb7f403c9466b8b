"""Organization-scoped row lookups shared by the services."""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from settlement_engine.errors import ReferenceNotFoundError
from settlement_engine.models import DispatchLeg, Load, Payable, Payee, Settlement


async def get_settlement(
    session: AsyncSession,
    settlement_id: UUID,
    organization_id: UUID,
    for_update: bool = False,
) -> Settlement:
    """Load a settlement, row-locked when it is about to be mutated."""
    stmt = select(Settlement).where(
        Settlement.settlement_id == settlement_id,
        Settlement.organization_id == organization_id,
    )
    if for_update:
        stmt = stmt.with_for_update()
    settlement = (await session.execute(stmt)).scalar_one_or_none()
    if settlement is None:
        raise ReferenceNotFoundError("Settlement", settlement_id)
    return settlement


async def get_payee(session: AsyncSession, payee_id: UUID, organization_id: UUID) -> Payee:
    payee = await session.get(Payee, payee_id)
    if payee is None or payee.organization_id != organization_id or payee.is_deleted:
        raise ReferenceNotFoundError("Payee", payee_id)
    return payee


async def get_payable(
    session: AsyncSession,
    payable_id: UUID,
    organization_id: UUID,
    for_update: bool = False,
) -> Payable:
    stmt = select(Payable).where(
        Payable.payable_id == payable_id,
        Payable.organization_id == organization_id,
    )
    if for_update:
        stmt = stmt.with_for_update()
    payable = (await session.execute(stmt)).scalar_one_or_none()
    if payable is None:
        raise ReferenceNotFoundError("Payable", payable_id)
    return payable


def source_load_id():
    """SQL expression for a payable's load, direct or through its leg.

    Statements using it must outer-join ``DispatchLeg`` on ``Payable.leg_id``.
    """
    return func.coalesce(Payable.load_id, DispatchLeg.load_id)


def with_source_load(stmt, outer: bool = True):
    """Join a ``Payable`` statement to the payable's source ``Load``."""
    stmt = stmt.outerjoin(DispatchLeg, Payable.leg_id == DispatchLeg.leg_id)
    if outer:
        return stmt.outerjoin(Load, Load.load_id == source_load_id())
    return stmt.join(Load, Load.load_id == source_load_id())


async def get_source_loads(session: AsyncSession, payables: Sequence[Payable]) -> dict[UUID, Load]:
    """Source load of each load-linked payable, keyed by payable id."""
    payable_ids = [p.payable_id for p in payables if not p.is_standalone]
    if not payable_ids:
        return {}
    stmt = with_source_load(
        select(Payable.payable_id, Load).select_from(Payable), outer=False
    ).where(Payable.payable_id.in_(payable_ids))
    result = await session.execute(stmt)
    return {payable_id: load for payable_id, load in result.all()}

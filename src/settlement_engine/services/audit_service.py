"""Audit engine over stored settlements (read-only)."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from settlement_engine.calculators.types import AuditFlags
from settlement_engine.calculators.variance import audit_payables
from settlement_engine.models import Payable
from settlement_engine.services import lookups


class AuditService:
    """Runs the audit rules against settlements' payables and loads."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def audit_settlement(self, settlement_id: UUID) -> AuditFlags:
        flags = await self.audit_many([settlement_id])
        return flags[settlement_id]

    async def audit_many(self, settlement_ids: Sequence[UUID]) -> dict[UUID, AuditFlags]:
        """Audit several settlements with one payable query and one load query."""
        if not settlement_ids:
            return {}
        result = await self.session.execute(
            select(Payable).where(Payable.settlement_id.in_(settlement_ids))
        )
        payables = list(result.scalars().all())
        loads = await lookups.get_source_loads(self.session, payables)

        grouped: dict[UUID, list[Payable]] = defaultdict(list)
        for payable in payables:
            grouped[payable.settlement_id].append(payable)
        return {sid: audit_payables(grouped.get(sid, []), loads) for sid in settlement_ids}

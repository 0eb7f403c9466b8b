"""Total freezing and payable locking for settlement approval."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from settlement_engine.calculators.types import SettlementSummary, SourceType
from settlement_engine.models import Payable, Settlement, utcnow
from settlement_engine.services import lookups

HOUR_KEYWORDS = ("hour", "hr", "layover", "detention")

CENTS = Decimal("0.01")
TEN_THOUSANDTHS = Decimal("0.0001")


def summarize_payables(
    payables: Iterable[Any], source_load_ids: Mapping[UUID, UUID] | None = None
) -> SettlementSummary:
    """Aggregate a settlement's payables.

    Miles are the SYSTEM quantities; hours are quantities of lines whose
    description mentions hours, layover or detention. Loads are counted from
    ``source_load_ids`` (payable id to load id, including loads reached
    through a leg) when given, otherwise from ``load_id``.
    """
    rows = list(payables)
    zero = Decimal("0")

    gross = sum((Decimal(p.total_amount) for p in rows), zero)
    system = sum(
        (Decimal(p.total_amount) for p in rows if p.source_type == SourceType.SYSTEM.value), zero
    )
    manual = sum(
        (Decimal(p.total_amount) for p in rows if p.source_type == SourceType.MANUAL.value), zero
    )
    miles = sum(
        (Decimal(p.quantity) for p in rows if p.source_type == SourceType.SYSTEM.value), zero
    )
    hours = sum(
        (
            Decimal(p.quantity)
            for p in rows
            if any(word in (p.description or "").lower() for word in HOUR_KEYWORDS)
        ),
        zero,
    )
    if source_load_ids is not None:
        loads = set(source_load_ids.values())
    else:
        loads = {p.load_id for p in rows if p.load_id is not None}

    return SettlementSummary(
        gross_total=gross.quantize(CENTS),
        system_calculated=system.quantize(CENTS),
        manual_adjustments=manual.quantize(CENTS),
        total_miles=miles.quantize(TEN_THOUSANDTHS),
        total_hours=hours.quantize(TEN_THOUSANDTHS),
        total_loads=len(loads),
        average_rate_per_mile=(gross / miles).quantize(TEN_THOUSANDTHS) if miles > 0 else None,
    )


class LockingService:
    """Freezes settlement totals and locks member payables at approval.

    Once frozen, the stored totals must equal a fresh summary of the locked
    payables; ``verify_frozen_totals`` reports any drift.
    """

    def __init__(self, session: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.session = session
        self.clock = clock

    async def get_member_payables(self, settlement_id: UUID) -> list[Payable]:
        result = await self.session.execute(
            select(Payable)
            .where(Payable.settlement_id == settlement_id)
            .order_by(Payable.created_at, Payable.payable_id)
        )
        return list(result.scalars().all())

    async def summarize(self, payables: list[Payable]) -> SettlementSummary:
        loads = await lookups.get_source_loads(self.session, payables)
        return summarize_payables(
            payables, {payable_id: load.load_id for payable_id, load in loads.items()}
        )

    async def compute_summary(self, settlement_id: UUID) -> SettlementSummary:
        return await self.summarize(await self.get_member_payables(settlement_id))

    async def freeze(self, settlement: Settlement) -> SettlementSummary:
        """Write frozen totals and lock every member payable.

        Member payables get ``approved_at`` stamped, which is what makes them
        resolvable under an APPROVAL_DATE trigger.
        """
        summary = await self.compute_summary(settlement.settlement_id)
        for name, value in summary.frozen_fields().items():
            setattr(settlement, name, value)

        await self.session.execute(
            update(Payable)
            .where(Payable.settlement_id == settlement.settlement_id)
            .values(is_locked=True, approved_at=self.clock())
        )
        return summary

    async def verify_frozen_totals(self, settlement: Settlement) -> list[str]:
        """Compare frozen totals against a fresh summary.

        Returns list of mismatch messages (empty if intact).
        """
        if settlement.gross_total is None:
            return ["Settlement totals have not been frozen"]

        errors: list[str] = []
        payables = await self.get_member_payables(settlement.settlement_id)
        summary = summarize_payables(payables)

        expected = {
            "gross_total": (settlement.gross_total, summary.gross_total, CENTS),
            "total_miles": (settlement.total_miles, summary.total_miles, TEN_THOUSANDTHS),
            "total_manual_adjustments": (
                settlement.total_manual_adjustments,
                summary.manual_adjustments,
                CENTS,
            ),
        }
        for name, (frozen, fresh, quantum) in expected.items():
            if frozen is None or Decimal(frozen).quantize(quantum) != fresh.quantize(quantum):
                errors.append(f"{name} mismatch: frozen={frozen} recomputed={fresh}")

        if settlement.total_loads != summary.total_loads:
            errors.append(
                f"total_loads mismatch: frozen={settlement.total_loads} "
                f"recomputed={summary.total_loads}"
            )

        unlocked = [str(p.payable_id) for p in payables if not p.is_locked]
        if unlocked:
            errors.append(f"{len(unlocked)} payable(s) are not locked")

        return errors

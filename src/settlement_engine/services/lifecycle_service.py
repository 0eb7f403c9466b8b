"""Settlement lifecycle: status transitions and deletion."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from settlement_engine.errors import ValidationError
from settlement_engine.models import Payable, Settlement, utcnow
from settlement_engine.services import lookups
from settlement_engine.services.locking_service import LockingService
from settlement_engine.services.state_machine import (
    InvalidTransitionError,
    SettlementOperation,
    SettlementStateMachine,
    SettlementStatus,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionContext:
    """Caller-supplied details stamped onto a settlement by a transition."""

    actor: str | None = None
    notes: str | None = None
    paid_method: str | None = None
    paid_reference: str | None = None
    void_reason: str | None = None


@dataclass
class DeleteResult:
    unassigned: int
    deleted_adjustments: int


class SettlementLifecycleService:
    """Service for settlement status transitions.

    Transition side effects:
    - PENDING -> APPROVED: freeze totals, lock and stamp member payables
    - APPROVED -> PAID: verify frozen totals, stamp payment details
    - * -> VOID: requires a reason; payables stay where they are
    """

    def __init__(self, session: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.session = session
        self.clock = clock
        self.locking_service = LockingService(session, clock)

    async def update_status(
        self,
        settlement_id: UUID,
        organization_id: UUID,
        to_status: str,
        context: TransitionContext | None = None,
    ) -> Settlement:
        """Move a settlement to ``to_status``.

        Raises InvalidTransitionError if the transition is not allowed.
        """
        context = context or TransitionContext()
        settlement = await lookups.get_settlement(
            self.session, settlement_id, organization_id, for_update=True
        )
        from_status = settlement.status
        operation = SettlementStateMachine.operation_for(from_status, to_status)
        now = self.clock()

        if operation == SettlementOperation.APPROVE:
            await self.locking_service.freeze(settlement)
            settlement.approved_by = context.actor
            settlement.approved_at = now

        elif operation == SettlementOperation.PAY:
            errors = await self.locking_service.verify_frozen_totals(settlement)
            if errors:
                raise InvalidTransitionError(
                    from_status, to_status, f"Freeze verification failed: {'; '.join(errors)}"
                )
            settlement.paid_at = now
            settlement.paid_method = context.paid_method
            settlement.paid_reference = context.paid_reference

        elif operation == SettlementOperation.VOID:
            if not context.void_reason or not context.void_reason.strip():
                raise ValidationError("Voiding a settlement requires a reason", field="void_reason")
            settlement.voided_by = context.actor
            settlement.voided_at = now
            settlement.void_reason = context.void_reason.strip()

        if context.notes:
            settlement.notes = context.notes
        settlement.status = SettlementStatus(to_status).value
        settlement.updated_at = now
        await self.session.flush()

        logger.info(
            "Settlement %s moved %s -> %s",
            settlement.statement_number,
            from_status,
            settlement.status,
        )
        return settlement

    async def approve(
        self, settlement_id: UUID, organization_id: UUID, actor: str | None = None
    ) -> Settlement:
        return await self.update_status(
            settlement_id, organization_id, SettlementStatus.APPROVED, TransitionContext(actor=actor)
        )

    async def delete_settlement(self, settlement_id: UUID, organization_id: UUID) -> DeleteResult:
        """Delete a DRAFT or VOID settlement.

        Load-based payables go back to the unassigned pool; standalone
        adjustments are deleted with the settlement.
        """
        settlement = await lookups.get_settlement(
            self.session, settlement_id, organization_id, for_update=True
        )
        SettlementStateMachine.require(settlement.status, SettlementOperation.DELETE)

        members = (
            await self.session.execute(
                select(Payable).where(Payable.settlement_id == settlement_id)
            )
        ).scalars().all()
        linked_ids = [p.payable_id for p in members if not p.is_standalone]
        standalone_ids = [p.payable_id for p in members if p.is_standalone]

        if linked_ids:
            await self.session.execute(
                update(Payable)
                .where(Payable.payable_id.in_(linked_ids))
                .values(settlement_id=None, updated_at=self.clock())
            )
        if standalone_ids:
            await self.session.execute(
                delete(Payable).where(Payable.payable_id.in_(standalone_ids))
            )
        await self.session.flush()
        await self.session.delete(settlement)
        await self.session.flush()

        logger.info(
            "Deleted settlement %s: %d payable(s) returned to pool, %d adjustment(s) deleted",
            settlement.statement_number,
            len(linked_ids),
            len(standalone_ids),
        )
        return DeleteResult(unassigned=len(linked_ids), deleted_adjustments=len(standalone_ids))

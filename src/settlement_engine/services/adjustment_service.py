"""Manual adjustments and payable edits.

Every change to a payable that belongs to a settlement is checked against
the settlement state machine first.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from settlement_engine.calculators.types import SourceType
from settlement_engine.errors import ReferenceNotFoundError, StateConflictError, ValidationError
from settlement_engine.models import Load, Payable, Settlement, utcnow
from settlement_engine.services import lookups
from settlement_engine.services.patches import UNSET, Patch
from settlement_engine.services.state_machine import SettlementOperation, SettlementStateMachine

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


@dataclass(frozen=True)
class ManualPayableDraft:
    """A manually entered pay line."""

    description: str
    quantity: Decimal
    rate: Decimal
    total_amount: Decimal | None = None
    load_id: UUID | None = None
    is_rebillable: bool = False
    receipt_ref: str | None = None


@dataclass(frozen=True)
class PayablePatch(Patch):
    """Explicit payable edit; ``total_amount`` overrides quantity x rate."""

    description: Any = UNSET
    quantity: Any = UNSET
    rate: Any = UNSET
    total_amount: Any = UNSET
    is_rebillable: Any = UNSET
    receipt_ref: Any = UNSET


def _require_description(description: str | None) -> str:
    if not description or not description.strip():
        raise ValidationError("Description is required", field="description")
    return description.strip()


def _money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENTS)


class AdjustmentService:
    """Service for manual pay lines and payable edits."""

    def __init__(self, session: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.session = session
        self.clock = clock

    async def _owning_settlement(self, payable: Payable) -> Settlement | None:
        if payable.settlement_id is None:
            return None
        return await lookups.get_settlement(
            self.session, payable.settlement_id, payable.organization_id, for_update=True
        )

    async def _require_line_operation(self, payable: Payable, operation: SettlementOperation) -> None:
        settlement = await self._owning_settlement(payable)
        if settlement is not None:
            SettlementStateMachine.require(settlement.status, operation)

    async def add_manual_adjustment(
        self,
        settlement_id: UUID,
        organization_id: UUID,
        description: str,
        amount: Decimal,
        *,
        is_rebillable: bool = False,
        receipt_ref: str | None = None,
        created_by: str | None = None,
    ) -> Payable:
        """Add a one-off MANUAL line (quantity 1, rate = amount) to a DRAFT settlement."""
        settlement = await lookups.get_settlement(
            self.session, settlement_id, organization_id, for_update=True
        )
        SettlementStateMachine.require(settlement.status, SettlementOperation.ADD_PAYABLE)

        amount = Decimal(amount)
        payable = Payable(
            organization_id=organization_id,
            payee_id=settlement.payee_id,
            settlement_id=settlement_id,
            description=_require_description(description),
            quantity=Decimal("1"),
            rate=amount,
            total_amount=_money(amount),
            source_type=SourceType.MANUAL.value,
            is_locked=True,
            is_rebillable=is_rebillable,
            receipt_ref=receipt_ref,
            created_by=created_by,
            created_at=self.clock(),
        )
        self.session.add(payable)
        settlement.updated_at = self.clock()
        await self.session.flush()

        logger.info(
            "Added manual adjustment %s (%s) to settlement %s",
            payable.payable_id,
            payable.total_amount,
            settlement.statement_number,
        )
        return payable

    async def create_manual_payable(
        self,
        organization_id: UUID,
        payee_id: UUID,
        draft: ManualPayableDraft,
        created_by: str | None = None,
    ) -> Payable:
        """Create an unassigned MANUAL payable; manual lines are always locked."""
        await lookups.get_payee(self.session, payee_id, organization_id)
        if draft.load_id is not None:
            load = await self.session.get(Load, draft.load_id)
            if load is None or load.organization_id != organization_id:
                raise ReferenceNotFoundError("Load", draft.load_id)

        quantity, rate = Decimal(draft.quantity), Decimal(draft.rate)
        total = draft.total_amount if draft.total_amount is not None else quantity * rate
        payable = Payable(
            organization_id=organization_id,
            payee_id=payee_id,
            load_id=draft.load_id,
            description=_require_description(draft.description),
            quantity=quantity,
            rate=rate,
            total_amount=_money(total),
            source_type=SourceType.MANUAL.value,
            is_locked=True,
            is_rebillable=draft.is_rebillable,
            receipt_ref=draft.receipt_ref,
            created_by=created_by,
            created_at=self.clock(),
        )
        self.session.add(payable)
        await self.session.flush()
        return payable

    async def update_payable(
        self,
        payable_id: UUID,
        organization_id: UUID,
        patch: PayablePatch,
    ) -> Payable:
        """Apply an edit; allowed while unassigned or in a DRAFT settlement.

        Any edit locks the payable, and a SYSTEM payable becomes MANUAL.
        """
        payable = await lookups.get_payable(
            self.session, payable_id, organization_id, for_update=True
        )
        await self._require_line_operation(payable, SettlementOperation.EDIT_PAYABLE)

        changes = patch.changes()
        if "description" in changes:
            payable.description = _require_description(changes["description"])
        if "quantity" in changes:
            payable.quantity = Decimal(changes["quantity"])
        if "rate" in changes:
            payable.rate = Decimal(changes["rate"])
        if "is_rebillable" in changes:
            payable.is_rebillable = bool(changes["is_rebillable"])
        if "receipt_ref" in changes:
            payable.receipt_ref = changes["receipt_ref"]

        if changes.get("total_amount") is not None:
            payable.total_amount = _money(changes["total_amount"])
        elif "quantity" in changes or "rate" in changes:
            payable.total_amount = _money(Decimal(payable.quantity) * Decimal(payable.rate))

        if payable.source_type == SourceType.SYSTEM.value:
            payable.source_type = SourceType.MANUAL.value
        payable.is_locked = True
        payable.updated_at = self.clock()
        await self.session.flush()
        return payable

    async def delete_payable(self, payable_id: UUID, organization_id: UUID) -> None:
        """Delete a MANUAL payable that is unassigned or in a DRAFT/VOID settlement."""
        payable = await lookups.get_payable(
            self.session, payable_id, organization_id, for_update=True
        )
        if payable.source_type != SourceType.MANUAL.value:
            raise StateConflictError("Can only delete manual adjustments")
        await self._require_line_operation(payable, SettlementOperation.DELETE_PAYABLE)

        await self.session.delete(payable)
        await self.session.flush()
        logger.info("Deleted manual payable %s", payable_id)

    async def remove_from_settlement(self, payable_id: UUID, organization_id: UUID) -> Payable:
        """Return a payable from its DRAFT settlement to the unassigned pool."""
        payable = await lookups.get_payable(
            self.session, payable_id, organization_id, for_update=True
        )
        if payable.settlement_id is None:
            raise StateConflictError("Payable is not assigned to a settlement")
        await self._require_line_operation(payable, SettlementOperation.REMOVE_PAYABLE)

        payable.settlement_id = None
        payable.updated_at = self.clock()
        await self.session.flush()
        return payable

    async def unlock_payable(self, payable_id: UUID, organization_id: UUID) -> Payable:
        """Unlock an unassigned payable so pay recalculation may overwrite it."""
        payable = await lookups.get_payable(
            self.session, payable_id, organization_id, for_update=True
        )
        if payable.settlement_id is not None:
            raise StateConflictError("Cannot unlock a payable that belongs to a settlement")
        payable.is_locked = False
        payable.updated_at = self.clock()
        await self.session.flush()
        return payable

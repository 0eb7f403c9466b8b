"""Settlement lifecycle: transitions, freezing and deletion."""

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from settlement_engine.errors import StateConflictError, ValidationError
from settlement_engine.models import Payable, Settlement
from settlement_engine.services.adjustment_service import AdjustmentService
from settlement_engine.services.lifecycle_service import TransitionContext
from settlement_engine.services.state_machine import InvalidTransitionError

pytestmark = pytest.mark.asyncio


@pytest.fixture
def adjustments(session, clock):
    return AdjustmentService(session, clock)


@pytest.fixture
async def draft(assembly, organization, payee, make_payable, at):
    """DRAFT settlement with one 250-mile linehaul line."""
    await make_payable(payee, at(2024, 2, 6, 9))
    result = await assembly.generate_statement(organization.organization_id, payee.payee_id)
    return result.settlement_id


async def advance(lifecycle, settlement_id, organization, *statuses, **context):
    settlement = None
    for status in statuses:
        settlement = await lifecycle.update_status(
            settlement_id, organization.organization_id, status, TransitionContext(**context)
        )
    return settlement


class TestTransitions:
    """Happy path and illegal moves."""

    async def test_full_lifecycle(self, session, lifecycle, adjustments, organization, draft, clock):
        await adjustments.add_manual_adjustment(
            draft, organization.organization_id, "Lumper reimbursement", Decimal("40.00"),
            receipt_ref="R-2201",
        )

        await advance(lifecycle, draft, organization, "PENDING")
        approved = await lifecycle.approve(draft, organization.organization_id, actor="m.chen")

        assert approved.status == "APPROVED"
        assert approved.approved_by == "m.chen"
        assert approved.approved_at == clock()
        assert approved.gross_total == Decimal("540.00")
        assert approved.total_miles == Decimal("250")
        assert approved.total_loads == 1
        assert approved.total_manual_adjustments == Decimal("40.00")

        paid = await advance(
            lifecycle, draft, organization, "PAID",
            paid_method="ACH", paid_reference="BATCH-0207",
        )
        assert paid.status == "PAID"
        assert paid.paid_method == "ACH"
        assert paid.paid_reference == "BATCH-0207"
        assert paid.paid_at == clock()

    async def test_approval_locks_and_stamps_payables(self, session, lifecycle, organization, draft, clock):
        await advance(lifecycle, draft, organization, "PENDING", "APPROVED")

        payables = (
            await session.execute(select(Payable).where(Payable.settlement_id == draft))
        ).scalars().all()
        assert payables
        assert all(p.is_locked for p in payables)
        assert all(p.approved_at == clock() for p in payables)

    async def test_cannot_skip_review(self, lifecycle, organization, draft):
        with pytest.raises(InvalidTransitionError) as exc_info:
            await advance(lifecycle, draft, organization, "APPROVED")

        assert exc_info.value.from_status == "DRAFT"
        assert exc_info.value.to_status == "APPROVED"

    async def test_paid_is_terminal(self, lifecycle, organization, draft):
        await advance(lifecycle, draft, organization, "PENDING", "APPROVED", "PAID")

        with pytest.raises(InvalidTransitionError):
            await advance(lifecycle, draft, organization, "VOID", void_reason="Duplicate")

    async def test_unknown_status(self, lifecycle, organization, draft):
        with pytest.raises(InvalidTransitionError):
            await advance(lifecycle, draft, organization, "ARCHIVED")

    async def test_notes_recorded(self, lifecycle, organization, draft):
        settlement = await advance(
            lifecycle, draft, organization, "PENDING", notes="Checked against fuel card"
        )
        assert settlement.notes == "Checked against fuel card"


class TestFrozenTotals:
    """Payment re-verifies the totals frozen at approval."""

    async def test_tampered_line_blocks_payment(self, session, lifecycle, organization, draft):
        await advance(lifecycle, draft, organization, "PENDING", "APPROVED")

        payable = (
            await session.execute(select(Payable).where(Payable.settlement_id == draft))
        ).scalars().first()
        payable.total_amount = Decimal("999.00")
        await session.flush()

        with pytest.raises(InvalidTransitionError) as exc_info:
            await advance(lifecycle, draft, organization, "PAID")

        assert "Freeze verification failed" in str(exc_info.value)
        assert "gross_total mismatch" in str(exc_info.value)
        settlement = await session.get(Settlement, draft)
        assert settlement.status == "APPROVED"

    async def test_unlocked_line_blocks_payment(self, session, lifecycle, organization, draft):
        await advance(lifecycle, draft, organization, "PENDING", "APPROVED")

        payable = (
            await session.execute(select(Payable).where(Payable.settlement_id == draft))
        ).scalars().first()
        payable.is_locked = False
        await session.flush()

        with pytest.raises(InvalidTransitionError) as exc_info:
            await advance(lifecycle, draft, organization, "PAID")
        assert "not locked" in str(exc_info.value)


class TestVoid:
    async def test_void_requires_reason(self, lifecycle, organization, draft):
        with pytest.raises(ValidationError) as exc_info:
            await advance(lifecycle, draft, organization, "VOID", void_reason="   ")
        assert exc_info.value.field == "void_reason"

    async def test_void_from_approved(self, session, lifecycle, organization, draft, clock):
        await advance(lifecycle, draft, organization, "PENDING", "APPROVED")

        voided = await advance(
            lifecycle, draft, organization, "VOID",
            actor="m.chen", void_reason="  Wrong driver  ",
        )

        assert voided.status == "VOID"
        assert voided.void_reason == "Wrong driver"
        assert voided.voided_by == "m.chen"
        assert voided.voided_at == clock()
        # Payables stay attached to the voided statement
        count = await session.scalar(
            select(func.count()).select_from(Payable).where(Payable.settlement_id == draft)
        )
        assert count == 1


class TestDelete:
    async def test_delete_draft_returns_lines_to_pool(
        self, session, lifecycle, adjustments, organization, draft
    ):
        adjustment = await adjustments.add_manual_adjustment(
            draft, organization.organization_id, "Scale ticket", Decimal("12.50")
        )

        result = await lifecycle.delete_settlement(draft, organization.organization_id)

        assert (result.unassigned, result.deleted_adjustments) == (1, 1)
        assert await session.get(Settlement, draft) is None
        unassigned = await session.scalar(
            select(func.count()).select_from(Payable).where(Payable.settlement_id.is_(None))
        )
        assert unassigned == 1
        assert await session.scalar(
            select(func.count()).select_from(Payable).where(
                Payable.payable_id == adjustment.payable_id
            )
        ) == 0

    async def test_delete_void(self, session, lifecycle, organization, draft):
        await advance(lifecycle, draft, organization, "VOID", void_reason="Entered twice")

        result = await lifecycle.delete_settlement(draft, organization.organization_id)

        assert result.unassigned == 1

    @pytest.mark.parametrize("statuses", [("PENDING",), ("PENDING", "APPROVED")])
    async def test_delete_refused_after_submission(self, lifecycle, organization, draft, statuses):
        await advance(lifecycle, draft, organization, *statuses)

        with pytest.raises(StateConflictError) as exc_info:
            await lifecycle.delete_settlement(draft, organization.organization_id)
        assert exc_info.value.current_status == statuses[-1]

"""Payable and payee endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Response, status

from settlement_engine.api.dependencies import DbSession, OrganizationId
from settlement_engine.api.routes.settlements import payable_view_response
from settlement_engine.api.schemas import (
    ErrorResponse,
    PayableCreate,
    PayableResponse,
    PayableUpdate,
    PayeePlanRequest,
    PayeeResponse,
    UnassignedPayablesResponse,
)
from settlement_engine.services.adjustment_service import (
    AdjustmentService,
    ManualPayableDraft,
    PayablePatch,
)
from settlement_engine.services.pay_plan_service import PayPlanService
from settlement_engine.services.query_service import SettlementQueryService

router = APIRouter(tags=["payables"])


# ============================================================================
# Payables
# ============================================================================


@router.post(
    "/payables",
    response_model=PayableResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def create_payable(
    db: DbSession,
    organization_id: OrganizationId,
    payload: PayableCreate,
) -> PayableResponse:
    """Create a locked manual payable in the payee's unassigned pool."""
    draft = ManualPayableDraft(
        description=payload.description,
        quantity=payload.quantity,
        rate=payload.rate,
        total_amount=payload.total_amount,
        load_id=payload.load_id,
        is_rebillable=payload.is_rebillable,
        receipt_ref=payload.receipt_ref,
    )
    payable = await AdjustmentService(db).create_manual_payable(
        organization_id, payload.payee_id, draft, created_by=payload.created_by
    )
    await db.commit()
    return PayableResponse.model_validate(payable)


@router.patch(
    "/payables/{payable_id}",
    response_model=PayableResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def update_payable(
    db: DbSession,
    organization_id: OrganizationId,
    payable_id: Annotated[UUID, Path()],
    payload: PayableUpdate,
) -> PayableResponse:
    """Edit a payable; the edit locks it and marks system lines as manual."""
    patch = PayablePatch(**payload.model_dump(exclude_unset=True))
    payable = await AdjustmentService(db).update_payable(payable_id, organization_id, patch)
    await db.commit()
    return PayableResponse.model_validate(payable)


@router.delete(
    "/payables/{payable_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def delete_payable(
    db: DbSession,
    organization_id: OrganizationId,
    payable_id: Annotated[UUID, Path()],
) -> Response:
    await AdjustmentService(db).delete_payable(payable_id, organization_id)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/payables/{payable_id}/unassign",
    response_model=PayableResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def unassign_payable(
    db: DbSession,
    organization_id: OrganizationId,
    payable_id: Annotated[UUID, Path()],
) -> PayableResponse:
    """Return a payable from its DRAFT settlement to the unassigned pool."""
    payable = await AdjustmentService(db).remove_from_settlement(payable_id, organization_id)
    await db.commit()
    return PayableResponse.model_validate(payable)


@router.post(
    "/payables/{payable_id}/unlock",
    response_model=PayableResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def unlock_payable(
    db: DbSession,
    organization_id: OrganizationId,
    payable_id: Annotated[UUID, Path()],
) -> PayableResponse:
    payable = await AdjustmentService(db).unlock_payable(payable_id, organization_id)
    await db.commit()
    return PayableResponse.model_validate(payable)


# ============================================================================
# Payees
# ============================================================================


@router.get(
    "/payees/{payee_id}/unassigned-payables",
    response_model=UnassignedPayablesResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_unassigned_payables(
    db: DbSession,
    organization_id: OrganizationId,
    payee_id: Annotated[UUID, Path()],
) -> UnassignedPayablesResponse:
    """Payee's unassigned pool split into regular, held and unresolved items."""
    pool = await SettlementQueryService(db).get_unassigned_payables(payee_id, organization_id)
    return UnassignedPayablesResponse(
        trigger=pool.trigger,
        regular=[payable_view_response(v) for v in pool.regular],
        held=[payable_view_response(v) for v in pool.held],
        unresolved=[payable_view_response(v) for v in pool.unresolved],
        regular_total=pool.regular_total,
        held_total=pool.held_total,
    )


@router.put(
    "/payees/{payee_id}/pay-plan",
    response_model=PayeeResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def set_payee_pay_plan(
    db: DbSession,
    organization_id: OrganizationId,
    payee_id: Annotated[UUID, Path()],
    payload: PayeePlanRequest,
) -> PayeeResponse:
    """Assign a pay plan to a payee, or clear it with ``null``."""
    payee = await PayPlanService(db).assign_plan(payee_id, payload.pay_plan_id, organization_id)
    await db.commit()
    return PayeeResponse.model_validate(payee)

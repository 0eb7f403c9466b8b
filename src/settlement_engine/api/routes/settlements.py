"""Settlement API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from settlement_engine.api.dependencies import DbSession, OrganizationId
from settlement_engine.api.schemas import (
    AdjustmentCreate,
    AuditFlagsResponse,
    BulkGenerateRequest,
    BulkGenerationResponse,
    DeleteResponse,
    ErrorResponse,
    GenerateRequest,
    GenerationResponse,
    PayableResponse,
    PayableViewResponse,
    PayeeResponse,
    RefreshRequest,
    RefreshResponse,
    SettlementDetailResponse,
    SettlementListItemResponse,
    SettlementListResponse,
    SettlementResponse,
    StatusUpdateRequest,
    SummaryResponse,
)
from settlement_engine.services.adjustment_service import AdjustmentService
from settlement_engine.services.assembly_service import ExplicitRange, SettlementAssemblyService
from settlement_engine.services.lifecycle_service import (
    SettlementLifecycleService,
    TransitionContext,
)
from settlement_engine.services.query_service import PayableView, SettlementQueryService

router = APIRouter(prefix="/settlements", tags=["settlements"])


def payable_view_response(view: PayableView) -> PayableViewResponse:
    return PayableViewResponse(
        payable=PayableResponse.model_validate(view.payable),
        load_internal_id=view.load_internal_id,
        load_order_number=view.load_order_number,
        is_held=view.is_held,
        held_reason=view.held_reason,
        trigger_source=view.trigger_source,
    )


# ============================================================================
# Queries
# ============================================================================


@router.get("", response_model=SettlementListResponse)
async def list_settlements(
    db: DbSession,
    organization_id: OrganizationId,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    pay_plan_id: UUID | None = None,
    payee_id: UUID | None = None,
) -> SettlementListResponse:
    """List settlements, newest period first, with audit warning markers."""
    items = await SettlementQueryService(db).list_settlements(
        organization_id, status=status_filter, pay_plan_id=pay_plan_id, payee_id=payee_id
    )
    return SettlementListResponse(
        items=[
            SettlementListItemResponse(
                settlement=SettlementResponse.model_validate(item.settlement),
                payee_name=item.payee_name,
                period_label=item.period_label,
                has_audit_warnings=item.has_audit_warnings,
            )
            for item in items
        ],
        total=len(items),
    )


@router.get(
    "/{settlement_id}",
    response_model=SettlementDetailResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_settlement(
    db: DbSession,
    organization_id: OrganizationId,
    settlement_id: Annotated[UUID, Path()],
) -> SettlementDetailResponse:
    """Get a settlement with its lines, held items, audit flags and summary."""
    detail = await SettlementQueryService(db).get_settlement_detail(
        settlement_id, organization_id
    )
    return SettlementDetailResponse(
        settlement=SettlementResponse.model_validate(detail.settlement),
        payee=PayeeResponse.model_validate(detail.payee),
        period_label=detail.period_label,
        payables=[payable_view_response(v) for v in detail.payables],
        held_payables=[payable_view_response(v) for v in detail.held_payables],
        audit_flags=AuditFlagsResponse.model_validate(detail.audit_flags),
        summary=SummaryResponse.model_validate(detail.summary),
        next_statuses=detail.next_statuses,
    )


# ============================================================================
# Generation
# ============================================================================


@router.post(
    "/generate",
    response_model=GenerationResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def generate_settlement(
    db: DbSession,
    organization_id: OrganizationId,
    payload: GenerateRequest,
) -> GenerationResponse:
    """Generate a DRAFT settlement for one payee."""
    period_range = None
    if payload.period_start is not None and payload.period_end is not None:
        period_range = ExplicitRange(start=payload.period_start, end=payload.period_end)

    result = await SettlementAssemblyService(db).generate_statement(
        organization_id,
        payload.payee_id,
        pay_plan_id=payload.pay_plan_id,
        period_range=period_range,
        reference=payload.reference,
        include_held=payload.include_held,
        created_by=payload.created_by,
    )
    await db.commit()
    return GenerationResponse.model_validate(result)


@router.post(
    "/bulk-generate",
    response_model=BulkGenerationResponse,
    responses={400: {"model": ErrorResponse}},
)
async def bulk_generate_settlements(
    db: DbSession,
    organization_id: OrganizationId,
    payload: BulkGenerateRequest,
) -> BulkGenerationResponse:
    """Generate the current period for every active payee on a plan."""
    result = await SettlementAssemblyService(db).bulk_generate_by_plan(
        organization_id,
        payload.pay_plan_id,
        reference=payload.reference,
        include_held=payload.include_held,
        created_by=payload.created_by,
    )
    await db.commit()
    return BulkGenerationResponse.model_validate(result)


@router.post(
    "/{settlement_id}/refresh",
    response_model=RefreshResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def refresh_settlement(
    db: DbSession,
    organization_id: OrganizationId,
    settlement_id: Annotated[UUID, Path()],
    payload: RefreshRequest | None = None,
) -> RefreshResponse:
    """Rebuild a DRAFT settlement's lines from the unassigned pool."""
    include_held = payload.include_held if payload else False
    result = await SettlementAssemblyService(db).refresh_draft(
        settlement_id, organization_id, include_held=include_held
    )
    await db.commit()
    return RefreshResponse.model_validate(result)


# ============================================================================
# Lifecycle
# ============================================================================


@router.post(
    "/{settlement_id}/status",
    response_model=SettlementResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def update_settlement_status(
    db: DbSession,
    organization_id: OrganizationId,
    settlement_id: Annotated[UUID, Path()],
    payload: StatusUpdateRequest,
) -> SettlementResponse:
    """Move a settlement through DRAFT -> PENDING -> APPROVED -> PAID, or VOID it."""
    context = TransitionContext(
        actor=payload.actor,
        notes=payload.notes,
        paid_method=payload.paid_method,
        paid_reference=payload.paid_reference,
        void_reason=payload.void_reason,
    )
    settlement = await SettlementLifecycleService(db).update_status(
        settlement_id, organization_id, payload.status, context
    )
    await db.commit()
    return SettlementResponse.model_validate(settlement)


@router.delete(
    "/{settlement_id}",
    response_model=DeleteResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def delete_settlement(
    db: DbSession,
    organization_id: OrganizationId,
    settlement_id: Annotated[UUID, Path()],
) -> DeleteResponse:
    """Delete a DRAFT or VOID settlement, returning load lines to the pool."""
    result = await SettlementLifecycleService(db).delete_settlement(
        settlement_id, organization_id
    )
    await db.commit()
    return DeleteResponse.model_validate(result)


@router.post(
    "/{settlement_id}/adjustments",
    response_model=PayableResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def add_adjustment(
    db: DbSession,
    organization_id: OrganizationId,
    settlement_id: Annotated[UUID, Path()],
    payload: AdjustmentCreate,
) -> PayableResponse:
    """Add a manual line to a DRAFT settlement."""
    payable = await AdjustmentService(db).add_manual_adjustment(
        settlement_id,
        organization_id,
        payload.description,
        payload.amount,
        is_rebillable=payload.is_rebillable,
        receipt_ref=payload.receipt_ref,
        created_by=payload.created_by,
    )
    await db.commit()
    return PayableResponse.model_validate(payable)

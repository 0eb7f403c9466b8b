"""Pay plan API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from settlement_engine.api.dependencies import DbSession, OrganizationId
from settlement_engine.api.schemas import (
    AssignPlanRequest,
    AssignPlanResponse,
    ErrorResponse,
    PayPlanCreate,
    PayPlanDetailResponse,
    PayPlanListItem,
    PayPlanResponse,
    PayPlanUpdate,
    PeriodPreviewResponse,
    PreviewPeriodsRequest,
)
from settlement_engine.services.pay_plan_service import (
    PayPlanConfig,
    PayPlanPatch,
    PayPlanService,
    PeriodPreview,
)

router = APIRouter(prefix="/pay-plans", tags=["pay-plans"])

PREVIEW_PLAN_NAME = "Preview"


def _preview_response(preview: PeriodPreview) -> PeriodPreviewResponse:
    return PeriodPreviewResponse(
        period_start=preview.period.start,
        period_end=preview.period.end,
        pay_date=preview.period.pay_date,
        period_number=preview.period_number,
        label=preview.label,
    )


# ============================================================================
# Pay Plan CRUD
# ============================================================================


@router.post(
    "",
    response_model=PayPlanResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
async def create_pay_plan(
    db: DbSession,
    organization_id: OrganizationId,
    payload: PayPlanCreate,
) -> PayPlanResponse:
    """Create a pay plan after validating its period policy."""
    config = PayPlanConfig(**payload.model_dump(exclude={"created_by"}))
    plan = await PayPlanService(db).create_plan(
        organization_id, config, created_by=payload.created_by
    )
    await db.commit()
    return PayPlanResponse.model_validate(plan)


@router.get("", response_model=list[PayPlanListItem])
async def list_pay_plans(
    db: DbSession,
    organization_id: OrganizationId,
    include_inactive: Annotated[bool, Query()] = False,
) -> list[PayPlanListItem]:
    """List pay plans with the number of payees assigned to each."""
    summaries = await PayPlanService(db).list_plans(organization_id, include_inactive)
    return [
        PayPlanListItem(
            plan=PayPlanResponse.model_validate(s.plan),
            payee_count=s.payee_count,
        )
        for s in summaries
    ]


@router.post(
    "/preview-periods",
    response_model=list[PeriodPreviewResponse],
    responses={400: {"model": ErrorResponse}},
)
async def preview_periods(
    db: DbSession,
    organization_id: OrganizationId,
    payload: PreviewPeriodsRequest,
) -> list[PeriodPreviewResponse]:
    """Compute upcoming periods for a configuration that is not saved yet."""
    config = PayPlanConfig(
        name=PREVIEW_PLAN_NAME,
        **payload.model_dump(exclude={"count", "reference"}),
    )
    previews = await PayPlanService(db).preview_periods(
        organization_id, config, reference=payload.reference, count=payload.count
    )
    return [_preview_response(p) for p in previews]


@router.get(
    "/{pay_plan_id}",
    response_model=PayPlanDetailResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_pay_plan(
    db: DbSession,
    organization_id: OrganizationId,
    pay_plan_id: Annotated[UUID, Path()],
) -> PayPlanDetailResponse:
    """Get a plan with its resolved timezone, current period and the next three."""
    overview = await PayPlanService(db).get_overview(pay_plan_id, organization_id)
    return PayPlanDetailResponse(
        plan=PayPlanResponse.model_validate(overview.plan),
        timezone=overview.timezone,
        payee_count=overview.payee_count,
        current_period=_preview_response(overview.current_period),
        upcoming_periods=[_preview_response(p) for p in overview.upcoming_periods],
    )


@router.patch(
    "/{pay_plan_id}",
    response_model=PayPlanResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def update_pay_plan(
    db: DbSession,
    organization_id: OrganizationId,
    pay_plan_id: Annotated[UUID, Path()],
    payload: PayPlanUpdate,
) -> PayPlanResponse:
    """Update the fields present in the body. Existing settlements are untouched."""
    patch = PayPlanPatch(**payload.model_dump(exclude_unset=True))
    plan = await PayPlanService(db).update_plan(pay_plan_id, organization_id, patch)
    await db.commit()
    return PayPlanResponse.model_validate(plan)


# ============================================================================
# Archive / assignment
# ============================================================================


@router.post(
    "/{pay_plan_id}/archive",
    response_model=PayPlanResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def archive_pay_plan(
    db: DbSession,
    organization_id: OrganizationId,
    pay_plan_id: Annotated[UUID, Path()],
) -> PayPlanResponse:
    """Archive a plan; refused while payees are still assigned to it."""
    plan = await PayPlanService(db).archive_plan(pay_plan_id, organization_id)
    await db.commit()
    return PayPlanResponse.model_validate(plan)


@router.post(
    "/{pay_plan_id}/restore",
    response_model=PayPlanResponse,
    responses={404: {"model": ErrorResponse}},
)
async def restore_pay_plan(
    db: DbSession,
    organization_id: OrganizationId,
    pay_plan_id: Annotated[UUID, Path()],
) -> PayPlanResponse:
    plan = await PayPlanService(db).restore_plan(pay_plan_id, organization_id)
    await db.commit()
    return PayPlanResponse.model_validate(plan)


@router.post(
    "/{pay_plan_id}/assign",
    response_model=AssignPlanResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def assign_pay_plan(
    db: DbSession,
    organization_id: OrganizationId,
    pay_plan_id: Annotated[UUID, Path()],
    payload: AssignPlanRequest,
) -> AssignPlanResponse:
    """Assign the plan to several payees; unknown payees are reported, not raised."""
    result = await PayPlanService(db).bulk_assign(
        payload.payee_ids, pay_plan_id, organization_id
    )
    await db.commit()
    return AssignPlanResponse.model_validate(result)

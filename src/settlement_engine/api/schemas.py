"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from settlement_engine.calculators.types import PayeeType, SourceType


class ORMModel(BaseModel):
    """Base for responses built from ORM rows and service dataclasses."""

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Pay Plan schemas
# ============================================================================


class PayPlanFields(BaseModel):
    """Period policy fields shared by create and preview requests."""

    frequency: str
    period_start_day_of_week: str | None = None
    period_start_day_of_month: int | None = None
    timezone: str | None = None
    cutoff_time: str = "23:59"
    payment_lag_days: int = 0
    payable_trigger: str = "DELIVERY_DATE"
    include_standalone_adjustments: bool = True
    auto_carryover: bool = False


class PayPlanCreate(PayPlanFields):
    """Schema for creating a pay plan."""

    name: str
    description: str | None = None
    created_by: str | None = None


class PayPlanUpdate(BaseModel):
    """Partial update; only fields present in the body are applied."""

    name: str | None = None
    description: str | None = None
    frequency: str | None = None
    period_start_day_of_week: str | None = None
    period_start_day_of_month: int | None = None
    timezone: str | None = None
    cutoff_time: str | None = None
    payment_lag_days: int | None = None
    payable_trigger: str | None = None
    include_standalone_adjustments: bool | None = None
    auto_carryover: bool | None = None


class PayPlanResponse(ORMModel):
    """Schema for pay plan response."""

    pay_plan_id: UUID
    organization_id: UUID
    name: str
    description: str | None = None
    frequency: str
    period_start_day_of_week: str | None = None
    period_start_day_of_month: int | None = None
    timezone: str | None = None
    cutoff_time: str
    payment_lag_days: int
    payable_trigger: str
    include_standalone_adjustments: bool
    auto_carryover: bool
    is_active: bool
    created_by: str | None = None
    created_at: datetime
    updated_at: datetime | None = None


class PayPlanListItem(BaseModel):
    plan: PayPlanResponse
    payee_count: int


class PeriodPreviewResponse(BaseModel):
    """One computed pay period."""

    period_start: datetime
    period_end: datetime
    pay_date: datetime
    period_number: int
    label: str


class PayPlanDetailResponse(BaseModel):
    plan: PayPlanResponse
    timezone: str
    payee_count: int
    current_period: PeriodPreviewResponse
    upcoming_periods: list[PeriodPreviewResponse]


class PreviewPeriodsRequest(PayPlanFields):
    """Unsaved plan configuration to preview."""

    count: int = Field(default=3, ge=1, le=24)
    reference: datetime | None = None


class AssignPlanRequest(BaseModel):
    payee_ids: list[UUID] = Field(min_length=1)


class AssignPlanResponse(ORMModel):
    success: int
    failed: int
    errors: list[dict[str, str]]


class PayeePlanRequest(BaseModel):
    """Set or clear (``null``) a payee's pay plan."""

    pay_plan_id: UUID | None = None


class PayeeResponse(ORMModel):
    payee_id: UUID
    payee_type: PayeeType
    display_name: str
    pay_plan_id: UUID | None = None
    is_active: bool


# ============================================================================
# Payable schemas
# ============================================================================


class PayableResponse(ORMModel):
    """Schema for payable response."""

    payable_id: UUID
    payee_id: UUID
    load_id: UUID | None = None
    leg_id: UUID | None = None
    settlement_id: UUID | None = None
    description: str
    quantity: Decimal
    rate: Decimal
    total_amount: Decimal
    source_type: SourceType
    is_locked: bool
    is_rebillable: bool
    receipt_ref: str | None = None
    approved_at: datetime | None = None
    created_at: datetime


class PayableViewResponse(BaseModel):
    """Payable with the load context shown on statements."""

    payable: PayableResponse
    load_internal_id: str | None = None
    load_order_number: str | None = None
    is_held: bool = False
    held_reason: str | None = None
    trigger_source: str | None = None


class PayableCreate(BaseModel):
    """Schema for a manual payable outside any settlement."""

    payee_id: UUID
    description: str
    quantity: Decimal = Decimal("1")
    rate: Decimal
    total_amount: Decimal | None = None
    load_id: UUID | None = None
    is_rebillable: bool = False
    receipt_ref: str | None = None
    created_by: str | None = None


class PayableUpdate(BaseModel):
    """Partial payable edit; ``total_amount`` overrides quantity x rate."""

    description: str | None = None
    quantity: Decimal | None = None
    rate: Decimal | None = None
    total_amount: Decimal | None = None
    is_rebillable: bool | None = None
    receipt_ref: str | None = None


class UnassignedPayablesResponse(BaseModel):
    trigger: str
    regular: list[PayableViewResponse]
    held: list[PayableViewResponse]
    unresolved: list[PayableViewResponse]
    regular_total: Decimal
    held_total: Decimal


# ============================================================================
# Settlement schemas
# ============================================================================


class SettlementResponse(ORMModel):
    """Schema for settlement response."""

    settlement_id: UUID
    organization_id: UUID
    payee_id: UUID
    pay_plan_id: UUID | None = None
    pay_plan_name: str | None = None
    period_number: int | None = None
    period_start: datetime
    period_end: datetime
    status: str
    statement_number: str
    gross_total: Decimal | None = None
    total_miles: Decimal | None = None
    total_loads: int | None = None
    total_manual_adjustments: Decimal | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    paid_at: datetime | None = None
    paid_method: str | None = None
    paid_reference: str | None = None
    voided_by: str | None = None
    voided_at: datetime | None = None
    void_reason: str | None = None
    notes: str | None = None
    created_by: str | None = None
    created_at: datetime
    updated_at: datetime | None = None


class SettlementListItemResponse(BaseModel):
    settlement: SettlementResponse
    payee_name: str
    period_label: str
    has_audit_warnings: bool


class SettlementListResponse(BaseModel):
    items: list[SettlementListItemResponse]
    total: int


class MissingPodResponse(ORMModel):
    load_id: UUID
    load_internal_id: str
    order_number: str | None = None


class MileageVarianceResponse(ORMModel):
    load_id: UUID
    load_internal_id: str
    payable_quantity: Decimal
    load_effective_miles: Decimal
    variance: Decimal
    percent_variance: Decimal
    level: str


class MissingReceiptResponse(ORMModel):
    payable_id: UUID
    description: str
    amount: Decimal


class AuditFlagsResponse(ORMModel):
    missing_pods: list[MissingPodResponse]
    mileage_variances: list[MileageVarianceResponse]
    missing_receipts: list[MissingReceiptResponse]
    has_warnings: bool


class SummaryResponse(ORMModel):
    gross_total: Decimal
    system_calculated: Decimal
    manual_adjustments: Decimal
    total_miles: Decimal
    total_hours: Decimal
    total_loads: int
    average_rate_per_mile: Decimal | None = None


class SettlementDetailResponse(BaseModel):
    settlement: SettlementResponse
    payee: PayeeResponse
    period_label: str
    payables: list[PayableViewResponse]
    held_payables: list[PayableViewResponse]
    audit_flags: AuditFlagsResponse
    summary: SummaryResponse
    next_statuses: list[str]


class GenerateRequest(BaseModel):
    """Generate one payee's settlement from a plan or an explicit date range."""

    payee_id: UUID
    pay_plan_id: UUID | None = None
    period_start: date | None = None
    period_end: date | None = None
    reference: datetime | None = None
    include_held: bool = False
    created_by: str | None = None

    @model_validator(mode="after")
    def check_range(self) -> "GenerateRequest":
        if (self.period_start is None) != (self.period_end is None):
            raise ValueError("period_start and period_end must be given together")
        if self.period_start and self.period_end and self.period_end < self.period_start:
            raise ValueError("period_end must not be before period_start")
        return self


class GenerationResponse(ORMModel):
    settlement_id: UUID
    statement_number: str
    payables_assigned: int
    gross_total: Decimal
    period_start: datetime
    period_end: datetime
    period_number: int | None = None


class BulkGenerateRequest(BaseModel):
    pay_plan_id: UUID
    reference: datetime | None = None
    include_held: bool = False
    created_by: str | None = None


class PayeeOutcomeResponse(ORMModel):
    payee_id: UUID
    payee_name: str
    success: bool
    settlement_id: UUID | None = None
    statement_number: str | None = None
    payables_assigned: int = 0
    gross_total: Decimal = Decimal("0")
    error: str | None = None


class BulkGenerationResponse(ORMModel):
    period_start: datetime
    period_end: datetime
    success: int
    failed: int
    results: list[PayeeOutcomeResponse]


class RefreshRequest(BaseModel):
    include_held: bool = False


class RefreshResponse(ORMModel):
    added: int
    removed: int
    gross_total: Decimal


class StatusUpdateRequest(BaseModel):
    """Schema for a settlement status transition."""

    status: str
    actor: str | None = None
    notes: str | None = None
    paid_method: str | None = None
    paid_reference: str | None = None
    void_reason: str | None = None


class DeleteResponse(ORMModel):
    unassigned: int
    deleted_adjustments: int


class AdjustmentCreate(BaseModel):
    """One-off manual line added to a draft settlement."""

    description: str
    amount: Decimal
    is_rebillable: bool = False
    receipt_ref: str | None = None
    created_by: str | None = None


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None

"""Pay plan management: validation, CRUD, assignment and period preview."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from typing import Any
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from settlement_engine.calculators.holidays import HolidayCalendar, holiday_calendar_named
from settlement_engine.calculators.period_calculator import (
    DEFAULT_CUTOFF,
    PeriodCalculator,
    build_policy,
    parse_cutoff,
    period_label,
    resolve_timezone,
)
from settlement_engine.calculators.types import PayableTrigger, PayPeriod
from settlement_engine.config import get_settings
from settlement_engine.errors import PlanInUseError, ReferenceNotFoundError, ValidationError
from settlement_engine.models import Organization, Payee, PayPlan, utcnow
from settlement_engine.services import lookups
from settlement_engine.services.patches import UNSET, Patch

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PayPlanConfig:
    """Full configuration of a pay plan."""

    name: str
    frequency: str
    period_start_day_of_week: str | None = None
    period_start_day_of_month: int | None = None
    timezone: str | None = None
    cutoff_time: str = "23:59"
    payment_lag_days: int = 0
    payable_trigger: str = PayableTrigger.DELIVERY_DATE.value
    include_standalone_adjustments: bool = True
    auto_carryover: bool = False
    description: str | None = None

    @classmethod
    def from_plan(cls, plan: PayPlan) -> PayPlanConfig:
        return cls(**{f.name: getattr(plan, f.name) for f in fields(cls)})


@dataclass(frozen=True)
class PayPlanPatch(Patch):
    """Explicit plan update; fields left UNSET are not touched."""

    name: Any = UNSET
    description: Any = UNSET
    frequency: Any = UNSET
    period_start_day_of_week: Any = UNSET
    period_start_day_of_month: Any = UNSET
    timezone: Any = UNSET
    cutoff_time: Any = UNSET
    payment_lag_days: Any = UNSET
    payable_trigger: Any = UNSET
    include_standalone_adjustments: Any = UNSET
    auto_carryover: Any = UNSET

    def apply_to(self, config: PayPlanConfig) -> PayPlanConfig:
        return replace(config, **self.changes())


def validate_plan_config(config: PayPlanConfig) -> PayPlanConfig:
    """Reject an invalid plan configuration before anything is written.

    Returns the configuration with the name trimmed and any anchor field
    that does not apply to the frequency cleared.
    """
    if not config.name or not config.name.strip():
        raise ValidationError("Pay plan name is required", field="name")
    policy = build_policy(
        config.frequency,
        config.period_start_day_of_week,
        config.period_start_day_of_month,
        config.payment_lag_days,
    )
    parse_cutoff(config.cutoff_time)
    if config.timezone:
        resolve_timezone(config.timezone)
    try:
        trigger = PayableTrigger(config.payable_trigger)
    except ValueError as e:
        raise ValidationError(
            f"Unknown payable trigger: {config.payable_trigger}", field="payable_trigger"
        ) from e
    return replace(
        config,
        name=config.name.strip(),
        frequency=policy.frequency.value,
        period_start_day_of_week=policy.day_of_week.value if policy.day_of_week else None,
        period_start_day_of_month=policy.day_of_month,
        cutoff_time=config.cutoff_time or DEFAULT_CUTOFF,
        payable_trigger=trigger.value,
    )


@dataclass(frozen=True)
class PeriodPreview:
    period: PayPeriod
    period_number: int
    label: str


@dataclass
class PlanSummary:
    plan: PayPlan
    payee_count: int


@dataclass
class PlanOverview:
    plan: PayPlan
    timezone: str
    payee_count: int
    current_period: PeriodPreview
    upcoming_periods: list[PeriodPreview]


@dataclass
class BulkAssignResult:
    success: int = 0
    failed: int = 0
    errors: list[dict[str, str]] = field(default_factory=list)


class PayPlanService:
    """Service for pay plan configuration and assignment."""

    def __init__(
        self,
        session: AsyncSession,
        holidays: HolidayCalendar | None = None,
        default_timezone: str | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        if holidays is None:
            holidays = holiday_calendar_named(get_settings().holiday_calendar)
        self.calculator = PeriodCalculator(holidays)
        self.default_timezone = default_timezone or get_settings().default_timezone
        self.clock = clock

    # ----- lookups -----

    async def get_organization(self, organization_id: UUID) -> Organization:
        organization = await self.session.get(Organization, organization_id)
        if organization is None:
            raise ReferenceNotFoundError("Organization", organization_id)
        return organization

    async def get_plan(self, pay_plan_id: UUID, organization_id: UUID) -> PayPlan:
        plan = await self.session.get(PayPlan, pay_plan_id)
        if plan is None or plan.organization_id != organization_id:
            raise ReferenceNotFoundError("PayPlan", pay_plan_id)
        return plan

    async def get_payee(self, payee_id: UUID, organization_id: UUID) -> Payee:
        return await lookups.get_payee(self.session, payee_id, organization_id)

    async def count_assigned_payees(self, pay_plan_id: UUID) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(Payee)
            .where(Payee.pay_plan_id == pay_plan_id, Payee.is_deleted.is_(False))
        )
        return int(result.scalar_one())

    async def resolve_zone(self, plan: PayPlan | None, organization_id: UUID) -> ZoneInfo:
        """Plan timezone, then organization default, then the configured fallback."""
        organization = await self.get_organization(organization_id)
        return resolve_timezone(
            plan.timezone if plan is not None else None,
            organization.default_timezone,
            self.default_timezone,
        )

    # ----- CRUD -----

    async def create_plan(
        self,
        organization_id: UUID,
        config: PayPlanConfig,
        created_by: str | None = None,
    ) -> PayPlan:
        config = validate_plan_config(config)
        await self.get_organization(organization_id)

        plan = PayPlan(
            organization_id=organization_id,
            created_by=created_by,
            is_active=True,
            **{f.name: getattr(config, f.name) for f in fields(config)},
        )
        self.session.add(plan)
        await self.session.flush()

        logger.info(
            "Created pay plan %s (%s) for organization %s",
            plan.pay_plan_id,
            plan.frequency,
            organization_id,
        )
        return plan

    async def update_plan(
        self,
        pay_plan_id: UUID,
        organization_id: UUID,
        patch: PayPlanPatch,
    ) -> PayPlan:
        """Apply a patch. Existing settlements keep their stored periods."""
        plan = await self.get_plan(pay_plan_id, organization_id)
        merged = validate_plan_config(patch.apply_to(PayPlanConfig.from_plan(plan)))

        for f in fields(merged):
            setattr(plan, f.name, getattr(merged, f.name))
        plan.updated_at = self.clock()
        await self.session.flush()
        return plan

    async def archive_plan(self, pay_plan_id: UUID, organization_id: UUID) -> PayPlan:
        plan = await self.get_plan(pay_plan_id, organization_id)
        assigned = await self.count_assigned_payees(pay_plan_id)
        if assigned:
            raise PlanInUseError(pay_plan_id, assigned)
        plan.is_active = False
        plan.updated_at = self.clock()
        await self.session.flush()
        logger.info("Archived pay plan %s", pay_plan_id)
        return plan

    async def restore_plan(self, pay_plan_id: UUID, organization_id: UUID) -> PayPlan:
        plan = await self.get_plan(pay_plan_id, organization_id)
        plan.is_active = True
        plan.updated_at = self.clock()
        await self.session.flush()
        return plan

    async def list_plans(
        self, organization_id: UUID, include_inactive: bool = False
    ) -> list[PlanSummary]:
        counts = (
            select(Payee.pay_plan_id, func.count().label("payee_count"))
            .where(Payee.is_deleted.is_(False), Payee.pay_plan_id.is_not(None))
            .group_by(Payee.pay_plan_id)
            .subquery()
        )
        stmt = (
            select(PayPlan, func.coalesce(counts.c.payee_count, 0))
            .outerjoin(counts, counts.c.pay_plan_id == PayPlan.pay_plan_id)
            .where(PayPlan.organization_id == organization_id)
            .order_by(PayPlan.name)
        )
        if not include_inactive:
            stmt = stmt.where(PayPlan.is_active.is_(True))
        result = await self.session.execute(stmt)
        return [PlanSummary(plan=plan, payee_count=int(count)) for plan, count in result.all()]

    # ----- assignment -----

    async def assign_plan(
        self,
        payee_id: UUID,
        pay_plan_id: UUID | None,
        organization_id: UUID,
    ) -> Payee:
        """Assign a plan to a payee, or clear the assignment with ``None``."""
        payee = await self.get_payee(payee_id, organization_id)
        if pay_plan_id is not None:
            plan = await self.get_plan(pay_plan_id, organization_id)
            if not plan.is_active:
                raise ValidationError("Cannot assign an archived pay plan", field="pay_plan_id")
        payee.pay_plan_id = pay_plan_id
        payee.updated_at = self.clock()
        await self.session.flush()
        return payee

    async def bulk_assign(
        self,
        payee_ids: Sequence[UUID],
        pay_plan_id: UUID,
        organization_id: UUID,
    ) -> BulkAssignResult:
        plan = await self.get_plan(pay_plan_id, organization_id)
        if not plan.is_active:
            raise ValidationError("Cannot assign an archived pay plan", field="pay_plan_id")

        outcome = BulkAssignResult()
        for payee_id in payee_ids:
            try:
                await self.assign_plan(payee_id, pay_plan_id, organization_id)
            except ReferenceNotFoundError as e:
                outcome.failed += 1
                outcome.errors.append({"payee_id": str(payee_id), "error": str(e)})
            else:
                outcome.success += 1
        return outcome

    # ----- periods -----

    def preview(
        self,
        config: PayPlanConfig,
        zone: ZoneInfo,
        reference: datetime | None = None,
        count: int = 3,
    ) -> list[PeriodPreview]:
        config = validate_plan_config(config)
        policy = build_policy(
            config.frequency,
            config.period_start_day_of_week,
            config.period_start_day_of_month,
            config.payment_lag_days,
        )
        periods = self.calculator.next_periods(policy, reference or self.clock(), zone, count)
        previews = []
        for period in periods:
            number = self.calculator.period_number(policy, period.start_date)
            previews.append(
                PeriodPreview(
                    period=period,
                    period_number=number,
                    label=period_label(period.start_date, period.end_date, number),
                )
            )
        return previews

    async def preview_periods(
        self,
        organization_id: UUID,
        config: PayPlanConfig,
        reference: datetime | None = None,
        count: int = 3,
    ) -> list[PeriodPreview]:
        """Preview periods for an unsaved configuration."""
        organization = await self.get_organization(organization_id)
        zone = resolve_timezone(
            config.timezone, organization.default_timezone, self.default_timezone
        )
        return self.preview(config, zone, reference, count)

    async def get_overview(
        self,
        pay_plan_id: UUID,
        organization_id: UUID,
        reference: datetime | None = None,
    ) -> PlanOverview:
        """Plan with its resolved timezone, current period and the next three."""
        plan = await self.get_plan(pay_plan_id, organization_id)
        zone = await self.resolve_zone(plan, organization_id)
        previews = self.preview(PayPlanConfig.from_plan(plan), zone, reference, count=4)
        return PlanOverview(
            plan=plan,
            timezone=zone.key,
            payee_count=await self.count_assigned_payees(pay_plan_id),
            current_period=previews[0],
            upcoming_periods=previews[1:],
        )

"""Settlement assembly: generate, bulk generate and refresh.

Services flush but never commit; each public operation is meant to run
inside one caller-owned transaction.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from settlement_engine.calculators.eligibility import EligibilityWindow, select_eligible
from settlement_engine.calculators.holidays import HolidayCalendar, holiday_calendar_named
from settlement_engine.calculators.period_calculator import (
    END_OF_PERIOD_OFFSET,
    PeriodCalculator,
    parse_cutoff,
    policy_from_plan,
    resolve_timezone,
)
from settlement_engine.calculators.trigger_resolver import TriggerResolver
from settlement_engine.calculators.types import (
    EligibilityCandidate,
    EligibilityResult,
    PayableTrigger,
    PayPeriod,
)
from settlement_engine.config import get_settings
from settlement_engine.errors import (
    SettlementEngineError,
    SettlementExistsError,
    StateConflictError,
    ValidationError,
)
from settlement_engine.models import Load, Organization, Payable, Payee, PayPlan, Settlement, utcnow
from settlement_engine.services import lookups
from settlement_engine.services.state_machine import (
    SettlementOperation,
    SettlementStateMachine,
    SettlementStatus,
)
from settlement_engine.services.statement_numbering import StatementNumberAllocator

logger = logging.getLogger(__name__)

NO_PAYABLES_MESSAGE = "No payables found for this period"
ALREADY_EXISTS_MESSAGE = "Settlement already exists for this period"


@dataclass(frozen=True)
class ExplicitRange:
    """Ad-hoc period given as inclusive local calendar dates."""

    start: date
    end: date


@dataclass
class GenerationResult:
    settlement_id: UUID
    statement_number: str
    payables_assigned: int
    gross_total: Decimal
    period_start: datetime
    period_end: datetime
    period_number: int | None = None


@dataclass
class PayeeOutcome:
    payee_id: UUID
    payee_name: str
    success: bool
    settlement_id: UUID | None = None
    statement_number: str | None = None
    payables_assigned: int = 0
    gross_total: Decimal = Decimal("0")
    error: str | None = None


@dataclass
class BulkGenerationResult:
    period_start: datetime
    period_end: datetime
    success: int = 0
    failed: int = 0
    results: list[PayeeOutcome] = field(default_factory=list)


@dataclass
class RefreshResult:
    added: int
    removed: int
    gross_total: Decimal


@dataclass
class _Policy:
    """Everything one generation needs to select payables."""

    period: PayPeriod
    zone: ZoneInfo
    trigger: PayableTrigger
    cutoff: time | None
    include_standalone: bool
    carry_over: bool
    plan: PayPlan | None = None
    period_number: int | None = None

    @property
    def window(self) -> EligibilityWindow:
        return EligibilityWindow.build(self.period, self.cutoff, self.zone)


class SettlementAssemblyService:
    """Builds DRAFT settlements from a payee's unassigned payables."""

    def __init__(
        self,
        session: AsyncSession,
        holidays: HolidayCalendar | None = None,
        default_timezone: str | None = None,
        clock: Callable[[], datetime] = utcnow,
        allocator: StatementNumberAllocator | None = None,
    ):
        self.session = session
        if holidays is None:
            holidays = holiday_calendar_named(get_settings().holiday_calendar)
        self.calculator = PeriodCalculator(holidays)
        self.default_timezone = default_timezone or get_settings().default_timezone
        self.clock = clock
        self.resolver = TriggerResolver(session)
        self.allocator = allocator or StatementNumberAllocator(session)

    # ----- policy resolution -----

    async def _zone_for(self, plan: PayPlan | None, organization_id: UUID) -> ZoneInfo:
        organization = await self.session.get(Organization, organization_id)
        return resolve_timezone(
            plan.timezone if plan is not None else None,
            organization.default_timezone if organization is not None else None,
            self.default_timezone,
        )

    async def _active_plan_for(self, payee: Payee) -> PayPlan | None:
        if payee.pay_plan_id is None:
            return None
        plan = await self.session.get(PayPlan, payee.pay_plan_id)
        return plan if plan is not None and plan.is_active else None

    async def _plan_policy(
        self, plan: PayPlan, organization_id: UUID, reference: datetime
    ) -> _Policy:
        zone = await self._zone_for(plan, organization_id)
        policy = policy_from_plan(plan)
        period = self.calculator.current_period(policy, reference, zone)
        return _Policy(
            period=period,
            zone=zone,
            trigger=PayableTrigger(plan.payable_trigger),
            cutoff=parse_cutoff(plan.cutoff_time),
            include_standalone=plan.include_standalone_adjustments,
            carry_over=plan.auto_carryover,
            plan=plan,
            period_number=self.calculator.period_number(policy, period.start_date),
        )

    async def _ad_hoc_policy(
        self,
        payee: Payee,
        organization_id: UUID,
        start: datetime,
        end: datetime,
    ) -> _Policy:
        """Selection rules for a range that is not tied to a plan period.

        The payee's active plan still supplies trigger, cutoff and timezone.
        """
        plan = await self._active_plan_for(payee)
        zone = await self._zone_for(plan, organization_id)
        start = start.astimezone(zone)
        end = end.astimezone(zone)
        pay_day = end.date() + timedelta(days=1)
        return _Policy(
            period=PayPeriod(
                start=start,
                end=end,
                pay_date=datetime.combine(pay_day, time.min, tzinfo=zone),
            ),
            zone=zone,
            trigger=PayableTrigger(plan.payable_trigger) if plan else PayableTrigger.DELIVERY_DATE,
            cutoff=parse_cutoff(plan.cutoff_time) if plan else None,
            include_standalone=plan.include_standalone_adjustments if plan else True,
            carry_over=False,
        )

    async def _range_policy(
        self, payee: Payee, organization_id: UUID, period_range: ExplicitRange
    ) -> _Policy:
        if period_range.end < period_range.start:
            raise ValidationError("Period end must not precede period start", field="period_end")
        plan = await self._active_plan_for(payee)
        zone = await self._zone_for(plan, organization_id)
        start = datetime.combine(period_range.start, time.min, tzinfo=zone)
        next_day = datetime.combine(period_range.end + timedelta(days=1), time.min, tzinfo=zone)
        end = next_day.astimezone(timezone.utc) - END_OF_PERIOD_OFFSET
        return await self._ad_hoc_policy(payee, organization_id, start, end)

    # ----- selection -----

    async def _unassigned_with_hold(self, payee_id: UUID) -> list[tuple[Payable, bool]]:
        result = await self.session.execute(
            lookups.with_source_load(select(Payable, Load.is_held).select_from(Payable))
            .where(Payable.payee_id == payee_id, Payable.settlement_id.is_(None))
            .order_by(Payable.created_at, Payable.payable_id)
        )
        return [(payable, bool(is_held)) for payable, is_held in result.all()]

    async def _select(
        self, payee_id: UUID, policy: _Policy, include_held: bool
    ) -> tuple[EligibilityResult, dict[UUID, Payable]]:
        rows = await self._unassigned_with_hold(payee_id)
        payables = [payable for payable, _ in rows]
        resolutions = await self.resolver.resolve_many(payables, policy.trigger)
        candidates = [
            EligibilityCandidate(
                payable_id=payable.payable_id,
                is_standalone=payable.is_standalone,
                is_held=is_held,
                created_at=payable.created_at,
                trigger=resolutions[payable.payable_id],
            )
            for payable, is_held in rows
        ]
        selection = select_eligible(
            candidates,
            policy.window,
            include_held=include_held,
            include_standalone=policy.include_standalone,
            carry_over=policy.carry_over,
        )
        return selection, {p.payable_id: p for p in payables}

    async def _assign(self, settlement_id: UUID, payable_ids: Sequence[UUID]) -> None:
        """Point the payables at the settlement; all of them or none."""
        if not payable_ids:
            return
        result = await self.session.execute(
            update(Payable)
            .where(Payable.payable_id.in_(payable_ids), Payable.settlement_id.is_(None))
            .values(settlement_id=settlement_id, updated_at=self.clock())
        )
        if result.rowcount != len(payable_ids):
            raise StateConflictError(
                f"{len(payable_ids) - (result.rowcount or 0)} payable(s) were assigned "
                "to another settlement concurrently"
            )

    async def _find_existing(self, payee_id: UUID, period: PayPeriod) -> Settlement | None:
        result = await self.session.execute(
            select(Settlement).where(
                Settlement.payee_id == payee_id,
                Settlement.period_start == period.start,
                Settlement.period_end == period.end,
            )
        )
        return result.scalar_one_or_none()

    async def _ensure_not_generated(self, payee_id: UUID, period: PayPeriod) -> None:
        existing = await self._find_existing(payee_id, period)
        if existing is not None:
            raise SettlementExistsError(
                existing.settlement_id, existing.statement_number, existing.status
            )

    # ----- generation -----

    async def _generate(
        self,
        organization_id: UUID,
        payee: Payee,
        policy: _Policy,
        include_held: bool,
        allow_empty: bool,
        created_by: str | None,
    ) -> GenerationResult:
        payee_id = payee.payee_id
        await self._ensure_not_generated(payee_id, policy.period)

        selection, payables = await self._select(payee_id, policy, include_held)
        if not selection.included and not allow_empty:
            raise ValidationError(NO_PAYABLES_MESSAGE)

        year = self.clock().astimezone(policy.zone).year
        plan = policy.plan

        def build(statement_number: str) -> Settlement:
            return Settlement(
                organization_id=organization_id,
                payee_id=payee_id,
                pay_plan_id=plan.pay_plan_id if plan else None,
                pay_plan_name=plan.name if plan else None,
                period_number=policy.period_number,
                period_start=policy.period.start,
                period_end=policy.period.end,
                status=SettlementStatus.DRAFT.value,
                statement_number=statement_number,
                created_by=created_by,
            )

        async def on_conflict() -> None:
            await self._ensure_not_generated(payee_id, policy.period)

        settlement = await self.allocator.insert_numbered(organization_id, year, build, on_conflict)
        await self._assign(settlement.settlement_id, selection.included)

        gross = sum((Decimal(payables[pid].total_amount) for pid in selection.included), Decimal("0"))
        logger.info(
            "Generated settlement %s for payee %s: %d payable(s), gross %s",
            settlement.statement_number,
            payee_id,
            selection.included_count,
            gross,
        )
        return GenerationResult(
            settlement_id=settlement.settlement_id,
            statement_number=settlement.statement_number,
            payables_assigned=selection.included_count,
            gross_total=gross,
            period_start=policy.period.start,
            period_end=policy.period.end,
            period_number=policy.period_number,
        )

    async def generate_statement(
        self,
        organization_id: UUID,
        payee_id: UUID,
        *,
        pay_plan_id: UUID | None = None,
        period_range: ExplicitRange | None = None,
        reference: datetime | None = None,
        include_held: bool = False,
        created_by: str | None = None,
    ) -> GenerationResult:
        """Generate a DRAFT settlement for one payee.

        The period comes from ``period_range`` when given, otherwise from
        ``pay_plan_id`` or the payee's assigned plan at ``reference``.
        Raises SettlementExistsError if the payee already has a settlement
        for that exact period.
        """
        payee = await lookups.get_payee(self.session, payee_id, organization_id)
        if not payee.is_active:
            raise ValidationError(f"Payee {payee_id} is inactive", field="payee_id")

        if period_range is not None:
            policy = await self._range_policy(payee, organization_id, period_range)
        else:
            plan_id = pay_plan_id or payee.pay_plan_id
            if plan_id is None:
                raise ValidationError(
                    "Payee has no pay plan assigned; provide a period range",
                    field="pay_plan_id",
                )
            plan = await self.session.get(PayPlan, plan_id)
            if plan is None or plan.organization_id != organization_id:
                raise ValidationError(f"Pay plan {plan_id} not found", field="pay_plan_id")
            if not plan.is_active:
                raise ValidationError("Pay plan is archived", field="pay_plan_id")
            policy = await self._plan_policy(plan, organization_id, reference or self.clock())

        return await self._generate(
            organization_id, payee, policy, include_held, allow_empty=True, created_by=created_by
        )

    async def bulk_generate_by_plan(
        self,
        organization_id: UUID,
        pay_plan_id: UUID,
        *,
        reference: datetime | None = None,
        include_held: bool = False,
        created_by: str | None = None,
    ) -> BulkGenerationResult:
        """Generate the current period for every active payee on a plan.

        Each payee runs in its own SAVEPOINT; a failure is recorded in the
        result and never rolls back other payees.
        """
        plan = await self.session.get(PayPlan, pay_plan_id)
        if plan is None or plan.organization_id != organization_id:
            raise ValidationError(f"Pay plan {pay_plan_id} not found", field="pay_plan_id")
        if not plan.is_active:
            raise ValidationError("Pay plan is archived", field="pay_plan_id")

        policy = await self._plan_policy(plan, organization_id, reference or self.clock())
        payees = (
            await self.session.execute(
                select(Payee)
                .where(
                    Payee.organization_id == organization_id,
                    Payee.pay_plan_id == pay_plan_id,
                    Payee.is_active.is_(True),
                    Payee.is_deleted.is_(False),
                )
                .order_by(Payee.last_name, Payee.first_name, Payee.company_name)
            )
        ).scalars().all()

        outcome = BulkGenerationResult(
            period_start=policy.period.start, period_end=policy.period.end
        )
        for payee in payees:
            payee_id, payee_name = payee.payee_id, payee.display_name
            try:
                async with self.session.begin_nested():
                    generated = await self._generate(
                        organization_id,
                        payee,
                        policy,
                        include_held,
                        allow_empty=False,
                        created_by=created_by,
                    )
            except SettlementExistsError:
                error = ALREADY_EXISTS_MESSAGE
            except (SettlementEngineError, SQLAlchemyError) as e:
                error = str(e)
            else:
                outcome.success += 1
                outcome.results.append(
                    PayeeOutcome(
                        payee_id=payee_id,
                        payee_name=payee_name,
                        success=True,
                        settlement_id=generated.settlement_id,
                        statement_number=generated.statement_number,
                        payables_assigned=generated.payables_assigned,
                        gross_total=generated.gross_total,
                    )
                )
                continue

            logger.warning("Bulk generation skipped payee %s: %s", payee_id, error)
            outcome.failed += 1
            outcome.results.append(
                PayeeOutcome(payee_id=payee_id, payee_name=payee_name, success=False, error=error)
            )

        logger.info(
            "Bulk generation for plan %s: %d succeeded, %d failed",
            pay_plan_id,
            outcome.success,
            outcome.failed,
        )
        return outcome

    # ----- refresh -----

    async def _policy_for_existing(self, settlement: Settlement, payee: Payee) -> _Policy:
        plan = None
        if settlement.pay_plan_id is not None:
            plan = await self.session.get(PayPlan, settlement.pay_plan_id)
        if plan is None:
            return await self._ad_hoc_policy(
                payee, settlement.organization_id, settlement.period_start, settlement.period_end
            )

        zone = await self._zone_for(plan, settlement.organization_id)
        pay_day = settlement.period_end.astimezone(zone).date() + timedelta(
            days=1 + plan.payment_lag_days
        )
        return _Policy(
            period=PayPeriod(
                start=settlement.period_start.astimezone(zone),
                end=settlement.period_end.astimezone(zone),
                pay_date=datetime.combine(pay_day, time.min, tzinfo=zone),
            ),
            zone=zone,
            trigger=PayableTrigger(plan.payable_trigger),
            cutoff=parse_cutoff(plan.cutoff_time),
            include_standalone=plan.include_standalone_adjustments,
            carry_over=plan.auto_carryover,
            plan=plan,
            period_number=settlement.period_number,
        )

    async def refresh_draft(
        self,
        settlement_id: UUID,
        organization_id: UUID,
        include_held: bool = False,
    ) -> RefreshResult:
        """Rebuild a DRAFT settlement's membership from the current pool.

        Load-based members return to the pool and standalone members are
        deleted before selection runs again. The returned gross total is the
        live figure; frozen totals are only written at approval.
        """
        settlement = await lookups.get_settlement(
            self.session, settlement_id, organization_id, for_update=True
        )
        SettlementStateMachine.require(settlement.status, SettlementOperation.REFRESH)
        payee = await self.session.get(Payee, settlement.payee_id)

        members = (
            await self.session.execute(
                select(Payable).where(Payable.settlement_id == settlement_id)
            )
        ).scalars().all()
        standalone_ids = [p.payable_id for p in members if p.is_standalone]
        linked_ids = [p.payable_id for p in members if not p.is_standalone]

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

        policy = await self._policy_for_existing(settlement, payee)
        selection, payables = await self._select(settlement.payee_id, policy, include_held)
        await self._assign(settlement_id, selection.included)
        settlement.updated_at = self.clock()
        await self.session.flush()

        gross = sum((Decimal(payables[pid].total_amount) for pid in selection.included), Decimal("0"))
        logger.info(
            "Refreshed settlement %s: removed %d, added %d",
            settlement.statement_number,
            len(members),
            selection.included_count,
        )
        return RefreshResult(added=selection.included_count, removed=len(members), gross_total=gross)

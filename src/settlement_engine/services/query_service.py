"""Read models for settlements and the unassigned payable pool."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from settlement_engine.calculators.period_calculator import period_label, resolve_timezone
from settlement_engine.calculators.trigger_resolver import TriggerResolver
from settlement_engine.calculators.types import AuditFlags, PayableTrigger, SettlementSummary
from settlement_engine.config import get_settings
from settlement_engine.models import Load, Organization, Payable, Payee, PayPlan, Settlement
from settlement_engine.services import lookups
from settlement_engine.services.audit_service import AuditService
from settlement_engine.services.locking_service import LockingService
from settlement_engine.services.state_machine import SettlementStateMachine


@dataclass
class PayableView:
    payable: Payable
    load_internal_id: str | None = None
    load_order_number: str | None = None
    is_held: bool = False
    held_reason: str | None = None
    trigger_source: str | None = None


@dataclass
class SettlementListItem:
    settlement: Settlement
    payee_name: str
    period_label: str
    has_audit_warnings: bool


@dataclass
class SettlementDetail:
    settlement: Settlement
    payee: Payee
    period_label: str
    payables: list[PayableView]
    held_payables: list[PayableView]
    audit_flags: AuditFlags
    summary: SettlementSummary
    next_statuses: list[str]


@dataclass
class UnassignedPayables:
    trigger: str
    regular: list[PayableView] = field(default_factory=list)
    held: list[PayableView] = field(default_factory=list)
    unresolved: list[PayableView] = field(default_factory=list)

    @property
    def regular_total(self) -> Decimal:
        return sum((Decimal(v.payable.total_amount) for v in self.regular), Decimal("0"))

    @property
    def held_total(self) -> Decimal:
        return sum((Decimal(v.payable.total_amount) for v in self.held), Decimal("0"))


class SettlementQueryService:
    """Read-only views used by operator tooling."""

    def __init__(self, session: AsyncSession, default_timezone: str | None = None):
        self.session = session
        self.default_timezone = default_timezone or get_settings().default_timezone
        self.audit_service = AuditService(session)
        self.locking_service = LockingService(session)

    async def _zone_for(self, organization_id: UUID, pay_plan_id: UUID | None) -> ZoneInfo:
        plan = await self.session.get(PayPlan, pay_plan_id) if pay_plan_id else None
        organization = await self.session.get(Organization, organization_id)
        return resolve_timezone(
            plan.timezone if plan is not None else None,
            organization.default_timezone if organization is not None else None,
            self.default_timezone,
        )

    async def _label(self, settlement: Settlement) -> str:
        zone = await self._zone_for(settlement.organization_id, settlement.pay_plan_id)
        return period_label(
            settlement.period_start.astimezone(zone).date(),
            settlement.period_end.astimezone(zone).date(),
            settlement.period_number,
        )

    async def _views(self, payables: list[Payable]) -> list[PayableView]:
        loads = await lookups.get_source_loads(self.session, payables)
        views = []
        for payable in payables:
            load = loads.get(payable.payable_id)
            views.append(
                PayableView(
                    payable=payable,
                    load_internal_id=load.internal_id if load else None,
                    load_order_number=load.order_number if load else None,
                    is_held=bool(load is not None and load.is_held),
                    held_reason=load.held_reason if load is not None and load.is_held else None,
                )
            )
        return views

    async def list_settlements(
        self,
        organization_id: UUID,
        status: str | None = None,
        pay_plan_id: UUID | None = None,
        payee_id: UUID | None = None,
    ) -> list[SettlementListItem]:
        stmt = (
            select(Settlement, Payee)
            .join(Payee, Settlement.payee_id == Payee.payee_id)
            .where(Settlement.organization_id == organization_id)
            .order_by(Settlement.period_start.desc(), Settlement.statement_number.desc())
        )
        if status:
            stmt = stmt.where(Settlement.status == status)
        if pay_plan_id:
            stmt = stmt.where(Settlement.pay_plan_id == pay_plan_id)
        if payee_id:
            stmt = stmt.where(Settlement.payee_id == payee_id)

        rows = (await self.session.execute(stmt)).all()
        flags = await self.audit_service.audit_many([s.settlement_id for s, _ in rows])

        items = []
        for settlement, payee in rows:
            items.append(
                SettlementListItem(
                    settlement=settlement,
                    payee_name=payee.display_name,
                    period_label=await self._label(settlement),
                    has_audit_warnings=flags[settlement.settlement_id].has_warnings,
                )
            )
        return items

    async def get_settlement_detail(
        self, settlement_id: UUID, organization_id: UUID
    ) -> SettlementDetail:
        settlement = await lookups.get_settlement(self.session, settlement_id, organization_id)
        payee = await self.session.get(Payee, settlement.payee_id)

        members = list(
            (
                await self.session.execute(
                    select(Payable)
                    .where(Payable.settlement_id == settlement_id)
                    .order_by(Payable.created_at, Payable.payable_id)
                )
            ).scalars()
        )
        held = list(
            (
                await self.session.execute(
                    lookups.with_source_load(select(Payable).select_from(Payable), outer=False)
                    .where(
                        Payable.payee_id == settlement.payee_id,
                        Payable.settlement_id.is_(None),
                        Load.is_held.is_(True),
                    )
                    .order_by(Payable.created_at, Payable.payable_id)
                )
            ).scalars()
        )

        return SettlementDetail(
            settlement=settlement,
            payee=payee,
            period_label=await self._label(settlement),
            payables=await self._views(members),
            held_payables=await self._views(held),
            audit_flags=await self.audit_service.audit_settlement(settlement_id),
            summary=await self.locking_service.summarize(members),
            next_statuses=SettlementStateMachine.get_next_statuses(settlement.status),
        )

    async def get_unassigned_payables(
        self, payee_id: UUID, organization_id: UUID
    ) -> UnassignedPayables:
        """Pool of a payee's unassigned payables.

        Held items are listed with their hold reason; items whose trigger
        cannot be resolved under the payee's plan are listed separately since
        automatic generation will never pick them up.
        """
        payee = await lookups.get_payee(self.session, payee_id, organization_id)
        plan = await self.session.get(PayPlan, payee.pay_plan_id) if payee.pay_plan_id else None
        trigger = PayableTrigger(plan.payable_trigger) if plan else PayableTrigger.DELIVERY_DATE

        payables = list(
            (
                await self.session.execute(
                    select(Payable)
                    .where(Payable.payee_id == payee_id, Payable.settlement_id.is_(None))
                    .order_by(Payable.created_at, Payable.payable_id)
                )
            ).scalars()
        )
        resolutions = await TriggerResolver(self.session).resolve_many(payables, trigger)

        pool = UnassignedPayables(trigger=trigger.value)
        for view in await self._views(payables):
            resolution = resolutions[view.payable.payable_id]
            view.trigger_source = resolution.source
            if view.is_held:
                pool.held.append(view)
            elif not resolution.resolved:
                pool.unresolved.append(view)
            else:
                pool.regular.append(view)
        return pool

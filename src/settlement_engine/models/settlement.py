"""Pay plan, payable and settlement models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from settlement_engine.models.base import Base, TimestampMixin


# ===== Pay Plans =====


class PayPlan(Base, TimestampMixin):
    """Payee pay-period policy."""

    __tablename__ = "pay_plan"

    pay_plan_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organization.organization_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    frequency: Mapped[str] = mapped_column(String, nullable=False)
    period_start_day_of_week: Mapped[str | None] = mapped_column(String, nullable=True)
    period_start_day_of_month: Mapped[int | None] = mapped_column(Integer, nullable=True)
    timezone: Mapped[str | None] = mapped_column(String, nullable=True)
    cutoff_time: Mapped[str] = mapped_column(String(5), nullable=False, default="23:59")
    payment_lag_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    payable_trigger: Mapped[str] = mapped_column(String, nullable=False, default="DELIVERY_DATE")
    auto_carryover: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    include_standalone_adjustments: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "frequency IN ('WEEKLY', 'BIWEEKLY', 'SEMIMONTHLY', 'MONTHLY')",
            name="pay_plan_frequency_check",
        ),
        CheckConstraint(
            "payable_trigger IN ('DELIVERY_DATE', 'COMPLETION_DATE', 'APPROVAL_DATE')",
            name="pay_plan_trigger_check",
        ),
        CheckConstraint("payment_lag_days >= 0", name="pay_plan_lag_check"),
        CheckConstraint(
            "period_start_day_of_month IS NULL OR "
            "(period_start_day_of_month BETWEEN 1 AND 28)",
            name="pay_plan_day_of_month_check",
        ),
    )


# ===== Payables =====


class Payable(Base, TimestampMixin):
    """One earned or manually-added money line for a payee."""

    __tablename__ = "payable"

    payable_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organization.organization_id", ondelete="CASCADE"),
        nullable=False,
    )
    payee_id: Mapped[UUID] = mapped_column(
        ForeignKey("payee.payee_id", ondelete="CASCADE"),
        nullable=False,
    )
    load_id: Mapped[UUID | None] = mapped_column(ForeignKey("load.load_id"), nullable=True)
    leg_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("dispatch_leg.leg_id"), nullable=True
    )
    settlement_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("settlement.settlement_id"),
        nullable=True,
        index=True,
    )
    description: Mapped[str] = mapped_column(String, nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    rate: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    source_type: Mapped[str] = mapped_column(String, nullable=False, default="SYSTEM")
    is_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_rebillable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    receipt_ref: Mapped[str | None] = mapped_column(String, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_by: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        CheckConstraint("source_type IN ('SYSTEM', 'MANUAL')", name="payable_source_type_check"),
        Index("payable_payee_settlement_idx", "payee_id", "settlement_id"),
    )

    @property
    def is_standalone(self) -> bool:
        """True when the line has no source load or leg."""
        return self.load_id is None and self.leg_id is None


# ===== Settlements =====


class Settlement(Base, TimestampMixin):
    """One pay-period statement for one payee."""

    __tablename__ = "settlement"

    settlement_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organization.organization_id", ondelete="CASCADE"),
        nullable=False,
    )
    payee_id: Mapped[UUID] = mapped_column(
        ForeignKey("payee.payee_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    pay_plan_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("pay_plan.pay_plan_id"), nullable=True
    )
    pay_plan_name: Mapped[str | None] = mapped_column(String, nullable=True)
    period_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    period_start: Mapped[datetime] = mapped_column(nullable=False)
    period_end: Mapped[datetime] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="DRAFT")
    statement_number: Mapped[str] = mapped_column(String, nullable=False)

    # Frozen at approval
    gross_total: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    total_miles: Mapped[Decimal | None] = mapped_column(Numeric(12, 4), nullable=True)
    total_loads: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_manual_adjustments: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 2), nullable=True
    )

    approved_by: Mapped[str | None] = mapped_column(String, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    paid_method: Mapped[str | None] = mapped_column(String, nullable=True)
    paid_reference: Mapped[str | None] = mapped_column(String, nullable=True)
    voided_by: Mapped[str | None] = mapped_column(String, nullable=True)
    voided_at: Mapped[datetime | None] = mapped_column(nullable=True)
    void_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "organization_id", "statement_number", name="settlement_org_statement_unique"
        ),
        UniqueConstraint(
            "payee_id", "period_start", "period_end", name="settlement_payee_period_unique"
        ),
        CheckConstraint(
            "status IN ('DRAFT', 'PENDING', 'APPROVED', 'PAID', 'VOID')",
            name="settlement_status_check",
        ),
        CheckConstraint("period_end >= period_start", name="settlement_dates_check"),
    )

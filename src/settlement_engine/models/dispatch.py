"""Load, leg and stop records consumed for trigger resolution and audits."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from settlement_engine.models.base import Base, TimestampMixin


class Load(Base, TimestampMixin):
    """A freight load."""

    __tablename__ = "load"

    load_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organization.organization_id", ondelete="CASCADE"),
        nullable=False,
    )
    internal_id: Mapped[str] = mapped_column(String, nullable=False)
    order_number: Mapped[str | None] = mapped_column(String, nullable=True)
    effective_miles: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    is_held: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    held_reason: Mapped[str | None] = mapped_column(String, nullable=True)
    has_signed_pod: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class LoadStop(Base, TimestampMixin):
    """Pickup or delivery stop on a load."""

    __tablename__ = "load_stop"

    stop_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    load_id: Mapped[UUID] = mapped_column(
        ForeignKey("load.load_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    stop_type: Mapped[str] = mapped_column(String, nullable=False)
    sequence_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    checked_out_at: Mapped[datetime | None] = mapped_column(nullable=True)
    window_begin_time: Mapped[datetime | None] = mapped_column(nullable=True)
    window_end_time: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        CheckConstraint("stop_type IN ('PICKUP', 'DELIVERY')", name="load_stop_type_check"),
    )


class DispatchLeg(Base, TimestampMixin):
    """A dispatched leg of a load, driven by one payee."""

    __tablename__ = "dispatch_leg"

    leg_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    load_id: Mapped[UUID] = mapped_column(
        ForeignKey("load.load_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    end_stop_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("load_stop.stop_id"),
        nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

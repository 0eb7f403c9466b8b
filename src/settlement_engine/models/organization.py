"""Organization and payee models.

These rows are owned by the surrounding fleet application; the settlement
engine reads them and only writes ``Payee.pay_plan_id``.
"""

from __future__ import annotations

from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from settlement_engine.models.base import Base, TimestampMixin


class Organization(Base, TimestampMixin):
    """Multi-tenant container."""

    __tablename__ = "organization"

    organization_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    default_timezone: Mapped[str | None] = mapped_column(String, nullable=True)


class Payee(Base, TimestampMixin):
    """A driver or carrier being paid."""

    __tablename__ = "payee"

    payee_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organization.organization_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    payee_type: Mapped[str] = mapped_column(String, nullable=False, default="DRIVER")
    first_name: Mapped[str | None] = mapped_column(String, nullable=True)
    last_name: Mapped[str | None] = mapped_column(String, nullable=True)
    company_name: Mapped[str | None] = mapped_column(String, nullable=True)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    pay_plan_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("pay_plan.pay_plan_id"),
        nullable=True,
        index=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        CheckConstraint("payee_type IN ('DRIVER', 'CARRIER')", name="payee_type_check"),
    )

    @property
    def display_name(self) -> str:
        if self.payee_type == "CARRIER" and self.company_name:
            return self.company_name
        name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return name or self.company_name or "Unknown Payee"

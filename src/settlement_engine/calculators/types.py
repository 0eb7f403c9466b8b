"""Type definitions for the settlement calculation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class PayFrequency(str, Enum):
    """Pay plan frequencies."""

    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    SEMIMONTHLY = "SEMIMONTHLY"
    MONTHLY = "MONTHLY"


class DayOfWeek(str, Enum):
    """Anchor weekday for weekly and biweekly plans."""

    MONDAY = "MONDAY"
    TUESDAY = "TUESDAY"
    WEDNESDAY = "WEDNESDAY"
    THURSDAY = "THURSDAY"
    FRIDAY = "FRIDAY"
    SATURDAY = "SATURDAY"
    SUNDAY = "SUNDAY"

    @property
    def weekday(self) -> int:
        """Python weekday number (Monday == 0)."""
        return list(DayOfWeek).index(self)


class PayableTrigger(str, Enum):
    """Which event decides a payable's period."""

    DELIVERY_DATE = "DELIVERY_DATE"
    COMPLETION_DATE = "COMPLETION_DATE"
    APPROVAL_DATE = "APPROVAL_DATE"


class SourceType(str, Enum):
    """Origin of a payable line."""

    SYSTEM = "SYSTEM"
    MANUAL = "MANUAL"


class PayeeType(str, Enum):
    DRIVER = "DRIVER"
    CARRIER = "CARRIER"


class VarianceLevel(str, Enum):
    """Mileage variance classification."""

    OK = "OK"
    INFO = "INFO"
    WARNING = "WARNING"


@dataclass(frozen=True)
class PayPeriod:
    """A computed pay period.

    ``end`` is the last valid instant (1 ms before the next period's start).
    """

    start: datetime
    end: datetime
    pay_date: datetime

    @property
    def start_date(self) -> date:
        return self.start.date()

    @property
    def end_date(self) -> date:
        return self.end.date()


@dataclass(frozen=True)
class PeriodPolicy:
    """The parts of a pay plan that drive period calculation."""

    frequency: PayFrequency
    day_of_week: DayOfWeek | None = None
    day_of_month: int | None = None
    payment_lag_days: int = 0


@dataclass(frozen=True)
class StopTimes:
    """Timestamps of one stop."""

    checked_out_at: datetime | None = None
    window_end_time: datetime | None = None
    window_begin_time: datetime | None = None


@dataclass(frozen=True)
class DeliverySnapshot:
    """Everything trigger resolution may read for one payable.

    Loaded once from the dispatch records so each resolution step is a pure
    function of this value.
    """

    created_at: datetime
    approved_at: datetime | None = None
    is_load_linked: bool = False
    leg_completed_at: datetime | None = None
    leg_end_stop: StopTimes | None = None
    last_delivery_stop: StopTimes | None = None


@dataclass(frozen=True)
class TriggerResolution:
    """Outcome of trigger resolution."""

    timestamp: datetime | None
    source: str

    @property
    def resolved(self) -> bool:
        return self.timestamp is not None


@dataclass(frozen=True)
class EligibilityCandidate:
    """A payable as seen by the eligibility filter."""

    payable_id: UUID
    is_standalone: bool
    is_held: bool
    created_at: datetime
    trigger: TriggerResolution


@dataclass
class EligibilityResult:
    """Set membership decision for one period."""

    included: list[UUID] = field(default_factory=list)
    excluded_held: list[UUID] = field(default_factory=list)
    excluded_unresolved: list[UUID] = field(default_factory=list)
    excluded_out_of_window: list[UUID] = field(default_factory=list)

    @property
    def included_count(self) -> int:
        return len(self.included)


@dataclass(frozen=True)
class SettlementSummary:
    """Aggregate figures over a settlement's payables."""

    gross_total: Decimal = Decimal("0")
    system_calculated: Decimal = Decimal("0")
    manual_adjustments: Decimal = Decimal("0")
    total_miles: Decimal = Decimal("0")
    total_hours: Decimal = Decimal("0")
    total_loads: int = 0
    average_rate_per_mile: Decimal | None = None

    def frozen_fields(self) -> dict[str, Any]:
        """Values written onto a settlement at approval."""
        return {
            "gross_total": self.gross_total,
            "total_miles": self.total_miles,
            "total_loads": self.total_loads,
            "total_manual_adjustments": self.manual_adjustments,
        }


@dataclass(frozen=True)
class MissingPod:
    load_id: UUID
    load_internal_id: str
    order_number: str | None


@dataclass(frozen=True)
class MileageVariance:
    load_id: UUID
    load_internal_id: str
    payable_quantity: Decimal
    load_effective_miles: Decimal
    variance: Decimal
    percent_variance: Decimal
    level: VarianceLevel


@dataclass(frozen=True)
class MissingReceipt:
    payable_id: UUID
    description: str
    amount: Decimal


@dataclass
class AuditFlags:
    """Irregularities found on a settlement."""

    missing_pods: list[MissingPod] = field(default_factory=list)
    mileage_variances: list[MileageVariance] = field(default_factory=list)
    missing_receipts: list[MissingReceipt] = field(default_factory=list)

    @property
    def has_warnings(self) -> bool:
        return bool(self.missing_pods or self.mileage_variances or self.missing_receipts)

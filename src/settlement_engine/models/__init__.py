"""ORM models for the settlement engine."""

from settlement_engine.models.base import Base, TimestampMixin, UTCDateTime, utcnow
from settlement_engine.models.dispatch import DispatchLeg, Load, LoadStop
from settlement_engine.models.organization import Organization, Payee
from settlement_engine.models.settlement import Payable, PayPlan, Settlement

__all__ = [
    "Base",
    "TimestampMixin",
    "UTCDateTime",
    "utcnow",
    "Organization",
    "Payee",
    "Load",
    "LoadStop",
    "DispatchLeg",
    "PayPlan",
    "Payable",
    "Settlement",
]

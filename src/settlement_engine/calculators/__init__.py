"""Settlement calculation components."""

from settlement_engine.calculators.eligibility import EligibilityWindow, select_eligible
from settlement_engine.calculators.holidays import HolidayCalendar, federal_holidays
from settlement_engine.calculators.period_calculator import (
    PeriodCalculator,
    build_policy,
    parse_cutoff,
    period_label,
    policy_from_plan,
    resolve_timezone,
)
from settlement_engine.calculators.trigger_resolver import TriggerResolver, resolve_trigger
from settlement_engine.calculators.variance import audit_payables, classify_mileage

__all__ = [
    "EligibilityWindow",
    "select_eligible",
    "HolidayCalendar",
    "federal_holidays",
    "PeriodCalculator",
    "build_policy",
    "parse_cutoff",
    "period_label",
    "policy_from_plan",
    "resolve_timezone",
    "TriggerResolver",
    "resolve_trigger",
    "audit_payables",
    "classify_mileage",
]

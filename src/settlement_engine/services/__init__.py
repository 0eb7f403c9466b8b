"""Settlement engine services."""

from settlement_engine.services.state_machine import (
    InvalidTransitionError,
    SettlementOperation,
    SettlementStateMachine,
    SettlementStatus,
)
from settlement_engine.services.statement_numbering import StatementNumberAllocator
from settlement_engine.services.pay_plan_service import PayPlanConfig, PayPlanPatch, PayPlanService
from settlement_engine.services.assembly_service import ExplicitRange, SettlementAssemblyService
from settlement_engine.services.locking_service import LockingService
from settlement_engine.services.lifecycle_service import (
    SettlementLifecycleService,
    TransitionContext,
)
from settlement_engine.services.adjustment_service import (
    AdjustmentService,
    ManualPayableDraft,
    PayablePatch,
)
from settlement_engine.services.audit_service import AuditService
from settlement_engine.services.query_service import SettlementQueryService

__all__ = [
    "InvalidTransitionError",
    "SettlementOperation",
    "SettlementStateMachine",
    "SettlementStatus",
    "StatementNumberAllocator",
    "PayPlanConfig",
    "PayPlanPatch",
    "PayPlanService",
    "ExplicitRange",
    "SettlementAssemblyService",
    "LockingService",
    "SettlementLifecycleService",
    "TransitionContext",
    "AdjustmentService",
    "ManualPayableDraft",
    "PayablePatch",
    "AuditService",
    "SettlementQueryService",
]

"""Error types raised by the settlement engine."""

from __future__ import annotations

from typing import Any
from uuid import UUID


class SettlementEngineError(Exception):
    """Base class for all settlement engine errors."""

    code = "SETTLEMENT_ERROR"

    def context(self) -> dict[str, Any]:
        """Structured details for API error bodies."""
        return {}


class ValidationError(SettlementEngineError, ValueError):
    """Raised when input is rejected before any write."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)

    def context(self) -> dict[str, Any]:
        return {"field": self.field} if self.field else {}


class StateConflictError(SettlementEngineError):
    """Raised when an operation is not allowed in the current status."""

    code = "STATE_CONFLICT"

    def __init__(self, message: str, current_status: str | None = None):
        self.current_status = current_status
        super().__init__(message)

    def context(self) -> dict[str, Any]:
        return {"current_status": self.current_status} if self.current_status else {}


class SettlementExistsError(StateConflictError):
    """Raised when a settlement already exists for a payee and period."""

    code = "SETTLEMENT_EXISTS"

    def __init__(self, settlement_id: UUID, statement_number: str, status: str):
        self.settlement_id = settlement_id
        self.statement_number = statement_number
        super().__init__(
            f"Settlement already exists for this period ({statement_number})",
            current_status=status,
        )

    def context(self) -> dict[str, Any]:
        return {
            **super().context(),
            "settlement_id": str(self.settlement_id),
            "statement_number": self.statement_number,
        }


class PlanInUseError(StateConflictError):
    """Raised when archiving a pay plan that still has payees assigned."""

    code = "PLAN_IN_USE"

    def __init__(self, pay_plan_id: UUID, payee_count: int):
        self.pay_plan_id = pay_plan_id
        self.payee_count = payee_count
        super().__init__(
            f"Cannot archive pay plan. {payee_count} payee(s) are currently assigned to it."
        )

    def context(self) -> dict[str, Any]:
        return {"pay_plan_id": str(self.pay_plan_id), "payee_count": self.payee_count}


class StatementNumberConflictError(StateConflictError):
    """Raised when statement number allocation keeps colliding."""

    code = "STATEMENT_NUMBER_CONFLICT"

    def __init__(self, organization_id: UUID, attempts: int):
        self.organization_id = organization_id
        self.attempts = attempts
        super().__init__(
            f"Could not allocate a statement number for organization "
            f"{organization_id} after {attempts} attempt(s)"
        )


class ReferenceNotFoundError(SettlementEngineError, LookupError):
    """Raised when a referenced payee, plan, settlement or payable is missing."""

    code = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: UUID | str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} not found")

    def context(self) -> dict[str, Any]:
        return {"entity_type": self.entity_type, "entity_id": str(self.entity_id)}

"""Settlement state machine.

Every status-gated operation is looked up in one ``(status, operation)``
table before any write happens.
"""

from __future__ import annotations

from enum import Enum

from settlement_engine.errors import StateConflictError


class SettlementStatus(str, Enum):
    """Settlement status values."""

    DRAFT = "DRAFT"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    PAID = "PAID"
    VOID = "VOID"


class SettlementOperation(str, Enum):
    """Operations that depend on settlement status."""

    SUBMIT = "SUBMIT"
    APPROVE = "APPROVE"
    PAY = "PAY"
    VOID = "VOID"
    REFRESH = "REFRESH"
    ADD_PAYABLE = "ADD_PAYABLE"
    EDIT_PAYABLE = "EDIT_PAYABLE"
    REMOVE_PAYABLE = "REMOVE_PAYABLE"
    DELETE_PAYABLE = "DELETE_PAYABLE"
    DELETE = "DELETE"


class InvalidTransitionError(StateConflictError):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, current_status=from_status)

    def context(self):
        return {**super().context(), "to_status": self.to_status}


_S = SettlementStatus
_O = SettlementOperation


class SettlementStateMachine:
    """Legality table for settlement operations.

    Transitions:
    - DRAFT -> PENDING (submit)
    - PENDING -> APPROVED (approve, freezes totals)
    - APPROVED -> PAID (pay)
    - DRAFT / PENDING / APPROVED -> VOID
    PAID and VOID are terminal. Line items change only in DRAFT. A
    settlement, or a manual line in it, is deleted only from DRAFT or VOID.
    """

    ALLOWED: dict[tuple[str, str], bool] = {
        (_S.DRAFT, _O.SUBMIT): True,
        (_S.DRAFT, _O.VOID): True,
        (_S.DRAFT, _O.REFRESH): True,
        (_S.DRAFT, _O.ADD_PAYABLE): True,
        (_S.DRAFT, _O.EDIT_PAYABLE): True,
        (_S.DRAFT, _O.REMOVE_PAYABLE): True,
        (_S.DRAFT, _O.DELETE_PAYABLE): True,
        (_S.DRAFT, _O.DELETE): True,
        (_S.PENDING, _O.APPROVE): True,
        (_S.PENDING, _O.VOID): True,
        (_S.APPROVED, _O.PAY): True,
        (_S.APPROVED, _O.VOID): True,
        (_S.VOID, _O.DELETE): True,
        (_S.VOID, _O.DELETE_PAYABLE): True,
    }

    # Target status reached by each transition operation
    TRANSITION_TARGETS: dict[str, str] = {
        _O.SUBMIT: _S.PENDING,
        _O.APPROVE: _S.APPROVED,
        _O.PAY: _S.PAID,
        _O.VOID: _S.VOID,
    }

    @classmethod
    def is_allowed(cls, status: str, operation: str) -> bool:
        return cls.ALLOWED.get((SettlementStatus(status), SettlementOperation(operation)), False)

    @classmethod
    def require(cls, status: str, operation: str) -> None:
        """Raise StateConflictError unless ``operation`` is legal in ``status``."""
        if not cls.is_allowed(status, operation):
            op = SettlementOperation(operation)
            raise StateConflictError(
                f"Cannot {op.value.lower().replace('_', ' ')} a settlement in {status} status",
                current_status=str(SettlementStatus(status).value),
            )

    @classmethod
    def operation_for(cls, from_status: str, to_status: str) -> SettlementOperation:
        """Transition operation that moves ``from_status`` to ``to_status``."""
        try:
            target = SettlementStatus(to_status)
        except ValueError:
            raise InvalidTransitionError(from_status, to_status, "unknown status") from None
        for operation, reached in cls.TRANSITION_TARGETS.items():
            if reached == target and cls.is_allowed(from_status, operation):
                return SettlementOperation(operation)
        raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        try:
            cls.operation_for(from_status, to_status)
        except InvalidTransitionError:
            return False
        return True

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        return [
            str(target.value)
            for operation, target in cls.TRANSITION_TARGETS.items()
            if cls.is_allowed(current_status, operation)
        ]

    @classmethod
    def lines_mutable(cls, status: str) -> bool:
        return cls.is_allowed(status, _O.EDIT_PAYABLE)

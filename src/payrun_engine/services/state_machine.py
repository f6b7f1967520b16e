"""Pay run state machine with transition validation."""

from __future__ import annotations

from enum import Enum

from payrun_engine.errors import PayrollError


class PayRunStatus(str, Enum):
    """Pay run status values."""

    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"
    CANCELLED = "cancelled"


class ReconciliationStatus:
    """Values of pay_run.reconciliation_status."""

    NOT_REQUIRED = "not_required"
    PENDING = "pending"
    RECONCILED = "reconciled"
    FAILED = "failed"

    # A paid run in one of these states still owes the source system a mark
    RETRYABLE = frozenset({PENDING, FAILED})


class InvalidTransitionError(PayrollError):
    """Raised when an invalid state transition is attempted."""

    code = "INVALID_TRANSITION"

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, {"from_status": from_status, "to_status": to_status})


class PayRunStateMachine:
    """State machine for pay run status transitions.

    Allowed transitions:
    - draft → pending
    - pending → approved
    - approved → paid
    - draft | pending | approved → cancelled

    paid and cancelled are terminal.
    """

    # Define valid transitions: {from_status: [allowed_to_statuses]}
    VALID_TRANSITIONS: dict[str, list[str]] = {
        PayRunStatus.DRAFT: [PayRunStatus.PENDING, PayRunStatus.CANCELLED],
        PayRunStatus.PENDING: [PayRunStatus.APPROVED, PayRunStatus.CANCELLED],
        PayRunStatus.APPROVED: [PayRunStatus.PAID, PayRunStatus.CANCELLED],
        PayRunStatus.PAID: [],  # Terminal state
        PayRunStatus.CANCELLED: [],  # Terminal state
    }

    # Statuses where items may be added, removed, or recalculated
    ITEMS_MUTABLE = {
        PayRunStatus.DRAFT,
        PayRunStatus.PENDING,
        PayRunStatus.APPROVED,
    }

    # Statuses where the populator may run
    POPULATION_ALLOWED = {
        PayRunStatus.DRAFT,
    }

    TERMINAL = {
        PayRunStatus.PAID,
        PayRunStatus.CANCELLED,
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        try:
            target = PayRunStatus(to_status).value
        except ValueError:
            raise InvalidTransitionError(from_status, str(to_status), "unknown status") from None
        if not cls.can_transition(from_status, target):
            raise InvalidTransitionError(from_status, target)

    @classmethod
    def can_modify_items(cls, status: str) -> bool:
        """Check if adjustments and recalculation are allowed in this status."""
        return status in cls.ITEMS_MUTABLE

    @classmethod
    def can_populate(cls, status: str) -> bool:
        return status in cls.POPULATION_ALLOWED

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return status in cls.TERMINAL

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return [s.value for s in cls.VALID_TRANSITIONS.get(current_status, [])]

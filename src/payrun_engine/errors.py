"""Engine error taxonomy.

Every error raised by a service derives from PayrollError so callers can
inspect failures uniformly. Validation and invariant errors are raised
before any write is issued.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID


class PayrollError(Exception):
    """Base class for all pay-run engine errors."""

    code = "PAYROLL_ERROR"

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        self.message = message
        self.context = context or {}
        super().__init__(message)


class ValidationError(PayrollError):
    """Raised for malformed input such as bad date ranges or overlapping periods."""

    code = "VALIDATION_ERROR"


class NotFoundError(PayrollError):
    """Raised when a referenced record does not exist."""

    code = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: UUID | str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"{entity_type} {entity_id} not found",
            {"entity_type": entity_type, "entity_id": str(entity_id)},
        )


class ImmutableRunError(PayrollError):
    """Raised when a paid or cancelled pay run would be mutated."""

    code = "IMMUTABLE_RUN"

    def __init__(self, pay_run_id: UUID, status: str, operation: str):
        self.pay_run_id = pay_run_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} on pay run {pay_run_id} in status '{status}'",
            {"pay_run_id": str(pay_run_id), "status": status},
        )


class NotManualItemError(PayrollError):
    """Raised when deleting a pay run item that the populator owns."""

    code = "NOT_MANUAL_ITEM"

    def __init__(self, item_id: UUID, source_type: str):
        self.item_id = item_id
        self.source_type = source_type
        super().__init__(
            f"Pay run item {item_id} has source type '{source_type}' and cannot be "
            "deleted as an adjustment",
            {"item_id": str(item_id), "source_type": source_type},
        )


class EmptySelectionError(PayrollError):
    """Raised when payment processing is requested for no employees."""

    code = "EMPTY_SELECTION"


class ExternalServiceError(PayrollError):
    """Raised when the populator or reconciler fails or times out."""

    code = "EXTERNAL_SERVICE_ERROR"

    def __init__(self, service: str, message: str):
        self.service = service
        super().__init__(f"{service} failed: {message}", {"service": service})

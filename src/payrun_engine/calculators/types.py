"""Type definitions for the summary and population pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID


class CompensationType(str, Enum):
    """Pay run item compensation types."""

    SALARY = "salary"
    COMMISSION = "commission"
    TIP = "tip"
    ADJUSTMENT = "adjustment"


class SourceType(str, Enum):
    """Where a pay run item came from."""

    SERVICE = "service"
    MANUAL = "manual"
    LEAVE = "leave"
    COMPENSATION = "compensation"


# Compensation types that count towards earnings in a summary
EARNING_TYPES = frozenset(
    {CompensationType.SALARY.value, CompensationType.COMMISSION.value, CompensationType.TIP.value}
)

ZERO = Decimal("0")

# Pay run status at which every item counts as paid
PAID_STATUS = "paid"


@dataclass(frozen=True)
class SummaryLine:
    """Minimal view of a pay run item needed for summarising."""

    employee_id: UUID
    compensation_type: str
    amount: Decimal
    is_paid: bool


@dataclass
class PayRunSummary:
    """Totals for a whole pay run."""

    earnings: Decimal = ZERO
    other: Decimal = ZERO
    total: Decimal = ZERO
    paid: Decimal = ZERO
    to_pay: Decimal = ZERO
    total_employees: int = 0


@dataclass
class EmployeePayRunSummary:
    """Totals for one employee within a pay run."""

    employee_id: UUID
    earnings: Decimal = ZERO
    other: Decimal = ZERO
    total: Decimal = ZERO
    paid: Decimal = ZERO
    to_pay: Decimal = ZERO
    item_count: int = 0


@dataclass
class AdjustmentRequest:
    """Manually entered line for an employee."""

    employee_id: UUID
    compensation_type: str
    amount: Decimal
    description: str
    is_addition: bool = True


@dataclass(frozen=True)
class SourceRecord:
    """A completed booking/service that can earn commission or tips."""

    source_id: UUID
    employee_id: UUID
    location_id: UUID | None
    service_date: date
    amount: Decimal
    compensation_type: str = CompensationType.COMMISSION.value
    description: str | None = None
    completed: bool = True
    paid_for: bool = True


@dataclass
class PopulationResult:
    """Outcome of populating a pay run."""

    items_created: int = 0
    items_skipped: int = 0
    employees: set[UUID] = field(default_factory=set)

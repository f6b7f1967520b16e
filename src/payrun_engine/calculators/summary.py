"""Reference pay run summary formula.

    earnings = Σ amount where compensation_type ∈ {salary, commission, tip}
    other    = Σ amount where compensation_type ∉ {salary, commission, tip}
    total    = earnings + other
    paid     = Σ amount where is_paid        (= total when the run is paid)
    to_pay   = total − paid                  (= 0 when the run is paid)
    total_employees = number of distinct employee ids

Any other implementation (e.g. the SQL aggregate in SummaryService) must
produce exactly these numbers for the same items.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from typing import Any
from uuid import UUID

from payrun_engine.calculators.line_builder import LineItemBuilder
from payrun_engine.calculators.types import (
    EARNING_TYPES,
    PAID_STATUS,
    ZERO,
    EmployeePayRunSummary,
    PayRunSummary,
    SummaryLine,
)


class SummaryCalculator:
    """Aggregates pay run items into summary totals."""

    @staticmethod
    def _as_line(item: Any) -> SummaryLine:
        if isinstance(item, SummaryLine):
            return item
        return SummaryLine(
            employee_id=item.employee_id,
            compensation_type=item.compensation_type,
            amount=Decimal(item.amount),
            is_paid=bool(item.is_paid),
        )

    @staticmethod
    def _totals(
        lines: list[SummaryLine], run_status: str
    ) -> tuple[Decimal, Decimal, Decimal, Decimal, Decimal]:
        earnings = sum((l.amount for l in lines if l.compensation_type in EARNING_TYPES), ZERO)
        other = sum((l.amount for l in lines if l.compensation_type not in EARNING_TYPES), ZERO)
        total = earnings + other

        if run_status == PAID_STATUS:
            paid = total
        else:
            paid = sum((l.amount for l in lines if l.is_paid), ZERO)
        to_pay = ZERO if run_status == PAID_STATUS else total - paid

        round_ = LineItemBuilder.round_to_cents
        return round_(earnings), round_(other), round_(total), round_(paid), round_(to_pay)

    @classmethod
    def summarize(cls, items: Iterable[Any], run_status: str) -> PayRunSummary:
        """Compute the run-level summary for a collection of items."""
        lines = [cls._as_line(item) for item in items]
        earnings, other, total, paid, to_pay = cls._totals(lines, run_status)
        return PayRunSummary(
            earnings=earnings,
            other=other,
            total=total,
            paid=paid,
            to_pay=to_pay,
            total_employees=len({l.employee_id for l in lines}),
        )

    @classmethod
    def summarize_by_employee(
        cls, items: Iterable[Any], run_status: str
    ) -> list[EmployeePayRunSummary]:
        """Apply the same formula to each employee's partition of the items.

        Results are ordered by employee id for stable comparison.
        """
        partitions: dict[UUID, list[SummaryLine]] = {}
        for item in items:
            line = cls._as_line(item)
            partitions.setdefault(line.employee_id, []).append(line)

        summaries = []
        for employee_id in sorted(partitions, key=str):
            lines = partitions[employee_id]
            earnings, other, total, paid, to_pay = cls._totals(lines, run_status)
            summaries.append(
                EmployeePayRunSummary(
                    employee_id=employee_id,
                    earnings=earnings,
                    other=other,
                    total=total,
                    paid=paid,
                    to_pay=to_pay,
                    item_count=len(lines),
                )
            )
        return summaries

"""Pay run summaries, computed locally or by a delegated SQL aggregate."""

from __future__ import annotations

import logging
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Select, case, distinct, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from payrun_engine.calculators.line_builder import LineItemBuilder
from payrun_engine.calculators.summary import SummaryCalculator
from payrun_engine.calculators.types import (
    EARNING_TYPES,
    PAID_STATUS,
    ZERO,
    EmployeePayRunSummary,
    PayRunSummary,
)
from payrun_engine.config import get_settings
from payrun_engine.errors import NotFoundError, ValidationError
from payrun_engine.models import PayRun, PayRunItem

logger = logging.getLogger(__name__)

STRATEGIES = ("local", "delegated")


def _to_decimal(value: object) -> Decimal:
    """Normalise an aggregate result to a cent-quantized Decimal."""
    if value is None:
        return LineItemBuilder.round_to_cents(ZERO)
    return LineItemBuilder.round_to_cents(Decimal(str(value)))


class SummaryService:
    """Serves pay run summaries.

    The local strategy applies SummaryCalculator to the loaded items and
    is the reference. The delegated strategy pushes the same formula into
    one aggregate query so large runs are not loaded into memory; it must
    match the local result exactly. If the delegated query fails, the
    local formula is used instead.
    """

    def __init__(self, session: AsyncSession, strategy: str | None = None):
        self.session = session
        self.strategy = strategy or get_settings().summary_strategy
        if self.strategy not in STRATEGIES:
            raise ValidationError(f"Unknown summary strategy '{self.strategy}'")

    async def get_pay_run_summary(
        self, pay_run_id: UUID, strategy: str | None = None
    ) -> PayRunSummary:
        status = await self._get_status(pay_run_id)
        if self._resolve(strategy) == "delegated":
            try:
                return await self.compute_delegated(pay_run_id, status)
            except SQLAlchemyError:
                logger.warning(
                    "Delegated summary failed for pay run %s, using local calculation",
                    pay_run_id,
                    exc_info=True,
                )
        return await self.compute_local(pay_run_id, status)

    async def get_employee_pay_run_summaries(
        self, pay_run_id: UUID, strategy: str | None = None
    ) -> list[EmployeePayRunSummary]:
        status = await self._get_status(pay_run_id)
        if self._resolve(strategy) == "delegated":
            try:
                return await self.compute_employee_delegated(pay_run_id, status)
            except SQLAlchemyError:
                logger.warning(
                    "Delegated employee summaries failed for pay run %s, using local calculation",
                    pay_run_id,
                    exc_info=True,
                )
        return await self.compute_employee_local(pay_run_id, status)

    # ----- local (reference) -----

    async def compute_local(self, pay_run_id: UUID, status: str) -> PayRunSummary:
        items = await self._load_items(pay_run_id)
        return SummaryCalculator.summarize(items, status)

    async def compute_employee_local(
        self, pay_run_id: UUID, status: str
    ) -> list[EmployeePayRunSummary]:
        items = await self._load_items(pay_run_id)
        return SummaryCalculator.summarize_by_employee(items, status)

    # ----- delegated (SQL aggregate) -----

    async def compute_delegated(self, pay_run_id: UUID, status: str) -> PayRunSummary:
        query = self._aggregate_query(pay_run_id).add_columns(
            func.count(distinct(PayRunItem.employee_id)).label("total_employees")
        )
        row = (await self.session.execute(query)).one()
        earnings, other, paid = (_to_decimal(v) for v in (row.earnings, row.other, row.paid))
        total = earnings + other
        if status == PAID_STATUS:
            paid = total
        to_pay = ZERO if status == PAID_STATUS else total - paid
        return PayRunSummary(
            earnings=earnings,
            other=other,
            total=total,
            paid=paid,
            to_pay=LineItemBuilder.round_to_cents(to_pay),
            total_employees=int(row.total_employees or 0),
        )

    async def compute_employee_delegated(
        self, pay_run_id: UUID, status: str
    ) -> list[EmployeePayRunSummary]:
        query = (
            self._aggregate_query(pay_run_id)
            .add_columns(PayRunItem.employee_id, func.count().label("item_count"))
            .group_by(PayRunItem.employee_id)
        )
        rows = (await self.session.execute(query)).all()

        summaries = []
        for row in sorted(rows, key=lambda r: str(r.employee_id)):
            earnings, other, paid = (_to_decimal(v) for v in (row.earnings, row.other, row.paid))
            total = earnings + other
            if status == PAID_STATUS:
                paid = total
            to_pay = ZERO if status == PAID_STATUS else total - paid
            summaries.append(
                EmployeePayRunSummary(
                    employee_id=row.employee_id,
                    earnings=earnings,
                    other=other,
                    total=total,
                    paid=paid,
                    to_pay=LineItemBuilder.round_to_cents(to_pay),
                    item_count=int(row.item_count),
                )
            )
        return summaries

    def _aggregate_query(self, pay_run_id: UUID) -> Select:
        is_earning = PayRunItem.compensation_type.in_(sorted(EARNING_TYPES))
        return select(
            func.sum(case((is_earning, PayRunItem.amount), else_=0)).label("earnings"),
            func.sum(case((~is_earning, PayRunItem.amount), else_=0)).label("other"),
            func.sum(case((PayRunItem.is_paid.is_(True), PayRunItem.amount), else_=0)).label(
                "paid"
            ),
        ).where(PayRunItem.pay_run_id == pay_run_id)

    # ----- helpers -----

    def _resolve(self, strategy: str | None) -> str:
        resolved = strategy or self.strategy
        if resolved not in STRATEGIES:
            raise ValidationError(f"Unknown summary strategy '{resolved}'")
        return resolved

    async def _get_status(self, pay_run_id: UUID) -> str:
        result = await self.session.execute(
            select(PayRun.status).where(PayRun.pay_run_id == pay_run_id)
        )
        status = result.scalar_one_or_none()
        if status is None:
            raise NotFoundError("PayRun", pay_run_id)
        return status

    async def _load_items(self, pay_run_id: UUID) -> list[PayRunItem]:
        result = await self.session.execute(
            select(PayRunItem)
            .where(PayRunItem.pay_run_id == pay_run_id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

"""In-process populator and reconciler for local development and testing.

Replace with adapters for the booking system's bulk population and
payment-flag services in production.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from datetime import date, timedelta
from decimal import Decimal
from uuid import NAMESPACE_URL, UUID, uuid5

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from payrun_engine.calculators.line_builder import LineItemBuilder
from payrun_engine.calculators.types import (
    CompensationType,
    PopulationResult,
    SourceRecord,
    SourceType,
)
from payrun_engine.models import CompensationSetting, PayPeriod, PayRun, PayRunItem
from payrun_engine.services.closed_period_service import ClosedPeriodRegistry
from payrun_engine.services.compensation_ledger import CompensationLedger

logger = logging.getLogger(__name__)

_SALARY_NAMESPACE = uuid5(NAMESPACE_URL, "payrun-engine/salary")

ItemKey = tuple[str, UUID, UUID]


def salary_source_id(pay_period_id: UUID, employee_id: UUID) -> UUID:
    """Deterministic source id for an employee's salary in a pay period."""
    return uuid5(_SALARY_NAMESPACE, f"{pay_period_id}:{employee_id}")


class StubPopulator:
    """Populator over in-memory source records.

    Salary comes from the compensation ledger; commissions and tips come
    from the SourceRecord list, which stands in for completed bookings.
    """

    provider_name = "stub"

    def __init__(
        self,
        sources: Iterable[SourceRecord] = (),
        employee_locations: dict[UUID, set[UUID]] | None = None,
        fail_with: Exception | None = None,
        delay_seconds: float = 0,
    ):
        """Initialize stub populator.

        Args:
            sources: Completed bookings that may earn commission or tips.
            employee_locations: Locations each employee works at. Employees
                missing from the map are only eligible for runs without a
                location.
            fail_with: If set, every call raises this exception.
            delay_seconds: Artificial latency, for timeout handling.
        """
        self._sources: dict[UUID, SourceRecord] = {s.source_id: s for s in sources}
        self.employee_locations = employee_locations or {}
        self.fail_with = fail_with
        self.delay_seconds = delay_seconds
        self.calls = 0

    @property
    def sources(self) -> list[SourceRecord]:
        return list(self._sources.values())

    def upsert_source(self, record: SourceRecord) -> None:
        self._sources[record.source_id] = record

    def remove_source(self, source_id: UUID) -> None:
        self._sources.pop(source_id, None)

    async def populate(
        self,
        session: AsyncSession,
        pay_run: PayRun,
        *,
        only_unpaid: bool = False,
    ) -> PopulationResult:
        await self._before_call()
        period = await self._get_period(session, pay_run)
        existing = await self._existing_keys(session, pay_run.pay_run_id)
        result = PopulationResult()

        await self._populate_salaries(session, pay_run, period, existing, only_unpaid, result)
        await self._populate_services(
            session,
            pay_run,
            period,
            existing,
            only_unpaid,
            result,
            types=(CompensationType.COMMISSION.value, CompensationType.TIP.value),
        )
        await session.flush()

        logger.info(
            "Populated pay run %s: %d created, %d skipped",
            pay_run.pay_run_id,
            result.items_created,
            result.items_skipped,
        )
        return result

    async def recalculate_commissions(
        self,
        session: AsyncSession,
        pay_run: PayRun,
    ) -> PopulationResult:
        await self._before_call()
        period = await self._get_period(session, pay_run)

        await session.execute(
            delete(PayRunItem)
            .where(
                PayRunItem.pay_run_id == pay_run.pay_run_id,
                PayRunItem.compensation_type == CompensationType.COMMISSION.value,
                PayRunItem.source_type == SourceType.SERVICE.value,
                PayRunItem.is_paid.is_(False),
            )
            .execution_options(synchronize_session="fetch")
        )

        existing = await self._existing_keys(session, pay_run.pay_run_id)
        result = PopulationResult()
        await self._populate_services(
            session,
            pay_run,
            period,
            existing,
            pay_run.is_supplementary,
            result,
            types=(CompensationType.COMMISSION.value,),
        )
        await session.flush()
        return result

    async def _before_call(self) -> None:
        self.calls += 1
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if self.fail_with is not None:
            raise self.fail_with

    async def _get_period(self, session: AsyncSession, pay_run: PayRun) -> PayPeriod:
        period = await session.get(PayPeriod, pay_run.pay_period_id)
        if period is None:
            raise LookupError(f"Pay period {pay_run.pay_period_id} not found")
        return period

    async def _populate_salaries(
        self,
        session: AsyncSession,
        pay_run: PayRun,
        period: PayPeriod,
        existing: set[ItemKey],
        only_unpaid: bool,
        result: PopulationResult,
    ) -> None:
        ledger = CompensationLedger(session)
        registry = ClosedPeriodRegistry(session)

        by_employee: dict[UUID, list[CompensationSetting]] = {}
        for setting in await ledger.list_effective_in_range(period.start_date, period.end_date):
            by_employee.setdefault(setting.employee_id, []).append(setting)

        eligible = {
            employee_id: settings
            for employee_id, settings in by_employee.items()
            if self._is_eligible(employee_id, pay_run.location_id)
        }
        candidates = {
            employee_id: salary_source_id(period.pay_period_id, employee_id)
            for employee_id in eligible
        }
        blocked = await self._blocked_sources(
            session, pay_run, set(candidates.values()), only_unpaid
        )

        for employee_id, settings in eligible.items():
            source_id = candidates[employee_id]
            key = (SourceType.COMPENSATION.value, source_id, employee_id)
            if key in existing or source_id in blocked:
                result.items_skipped += 1
                continue

            scope = self._location_scope(employee_id, pay_run.location_id)
            closed = await registry.closed_dates(scope, period.start_date, period.end_date)
            amount, payable_days = self._prorated_salary(period, settings, closed)
            if payable_days == 0:
                result.items_skipped += 1
                continue

            current = settings[-1]
            session.add(
                PayRunItem(
                    pay_run_id=pay_run.pay_run_id,
                    employee_id=employee_id,
                    compensation_type=CompensationType.SALARY.value,
                    amount=amount,
                    description=(
                        f"Base pay {current.base_amount} for {payable_days} of "
                        f"{period.length_days} days"
                    ),
                    source_type=SourceType.COMPENSATION.value,
                    source_id=source_id,
                    is_paid=False,
                )
            )
            existing.add(key)
            result.items_created += 1
            result.employees.add(employee_id)

    async def _populate_services(
        self,
        session: AsyncSession,
        pay_run: PayRun,
        period: PayPeriod,
        existing: set[ItemKey],
        only_unpaid: bool,
        result: PopulationResult,
        types: Sequence[str],
    ) -> None:
        registry = ClosedPeriodRegistry(session)
        qualifying = [
            record
            for record in self._sources.values()
            if record.completed
            and record.paid_for
            and record.compensation_type in types
            and period.start_date <= record.service_date <= period.end_date
            and (pay_run.location_id is None or record.location_id == pay_run.location_id)
            and self._is_eligible(record.employee_id, pay_run.location_id)
        ]
        blocked = await self._blocked_sources(
            session, pay_run, {r.source_id for r in qualifying}, only_unpaid
        )

        closed_cache: dict[UUID | None, set[date]] = {}
        for record in sorted(qualifying, key=lambda r: (r.service_date, str(r.source_id))):
            key = (SourceType.SERVICE.value, record.source_id, record.employee_id)
            if key in existing or record.source_id in blocked:
                result.items_skipped += 1
                continue

            if record.location_id not in closed_cache:
                scope = {record.location_id} if record.location_id else set()
                closed_cache[record.location_id] = await registry.closed_dates(
                    scope, period.start_date, period.end_date
                )
            if record.service_date in closed_cache[record.location_id]:
                result.items_skipped += 1
                continue

            session.add(
                PayRunItem(
                    pay_run_id=pay_run.pay_run_id,
                    employee_id=record.employee_id,
                    compensation_type=record.compensation_type,
                    amount=LineItemBuilder.round_to_cents(abs(record.amount)),
                    description=record.description
                    or f"{record.compensation_type.title()} for service on {record.service_date}",
                    source_type=SourceType.SERVICE.value,
                    source_id=record.source_id,
                    is_paid=False,
                )
            )
            existing.add(key)
            result.items_created += 1
            result.employees.add(record.employee_id)

    async def _existing_keys(self, session: AsyncSession, pay_run_id: UUID) -> set[ItemKey]:
        result = await session.execute(
            select(PayRunItem.source_type, PayRunItem.source_id, PayRunItem.employee_id).where(
                PayRunItem.pay_run_id == pay_run_id,
                PayRunItem.source_id.is_not(None),
            )
        )
        return {(row[0], row[1], row[2]) for row in result.all()}

    async def _blocked_sources(
        self,
        session: AsyncSession,
        pay_run: PayRun,
        source_ids: set[UUID],
        only_unpaid: bool,
    ) -> set[UUID]:
        """Sources owned by another live regular run, or already paid when only_unpaid."""
        if not source_ids:
            return set()

        attached = await session.execute(
            select(PayRunItem.source_id)
            .join(PayRun, PayRun.pay_run_id == PayRunItem.pay_run_id)
            .where(
                PayRunItem.source_id.in_(source_ids),
                PayRun.pay_run_id != pay_run.pay_run_id,
                PayRun.is_supplementary.is_(False),
                PayRun.status != "cancelled",
            )
        )
        blocked = set(attached.scalars().all())

        # Supplementary runs never re-pay a source, even when recalculating
        if only_unpaid or pay_run.is_supplementary:
            paid = await session.execute(
                select(PayRunItem.source_id).where(
                    PayRunItem.source_id.in_(source_ids),
                    PayRunItem.is_paid.is_(True),
                )
            )
            blocked.update(paid.scalars().all())

        return blocked

    def _is_eligible(self, employee_id: UUID, location_id: UUID | None) -> bool:
        if location_id is None:
            return True
        return location_id in self.employee_locations.get(employee_id, set())

    def _location_scope(self, employee_id: UUID, location_id: UUID | None) -> set[UUID]:
        if location_id is not None:
            return {location_id}
        return set(self.employee_locations.get(employee_id, set()))

    @staticmethod
    def _prorated_salary(
        period: PayPeriod,
        settings: list[CompensationSetting],
        closed: set[date],
    ) -> tuple[Decimal, int]:
        """Sum each payable day's share of the rate in force that day."""
        period_days = period.length_days
        total = Decimal("0")
        payable_days = 0

        day = period.start_date
        while day <= period.end_date:
            if day not in closed:
                setting = next((s for s in settings if s.is_active_on(day)), None)
                if setting is not None:
                    total += Decimal(setting.base_amount) / Decimal(period_days)
                    payable_days += 1
            day += timedelta(days=1)

        return LineItemBuilder.round_to_cents(total), payable_days


class StubReconciler:
    """Reconciler that records which sources were marked paid."""

    provider_name = "stub"

    def __init__(self, fail_with: Exception | None = None, delay_seconds: float = 0):
        self.fail_with = fail_with
        self.delay_seconds = delay_seconds
        self.marked: set[UUID] = set()
        self.calls = 0

    async def mark_sources_paid(self, source_ids: Sequence[UUID]) -> None:
        self.calls += 1
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if self.fail_with is not None:
            raise self.fail_with
        self.marked.update(source_ids)

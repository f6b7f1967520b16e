"""Pay run service - lifecycle orchestration for pay runs."""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from payrun_engine.calculators.types import PopulationResult, SourceType
from payrun_engine.config import get_settings
from payrun_engine.errors import (
    ExternalServiceError,
    ImmutableRunError,
    NotFoundError,
    ValidationError,
)
from payrun_engine.models import PayPeriod, PayRun, PayRunItem
from payrun_engine.models.base import utcnow
from payrun_engine.services.audit_service import AuditService
from payrun_engine.services.locking_service import LockingService
from payrun_engine.services.state_machine import (
    InvalidTransitionError,
    PayRunStateMachine,
    PayRunStatus,
    ReconciliationStatus,
)

if TYPE_CHECKING:
    from payrun_engine.populators.base import PayRunItemPopulator

logger = logging.getLogger(__name__)

SUPPLEMENTARY_SUFFIX = " (Supplementary)"


class PayRunService:
    """Service for managing pay run lifecycle.

    Operations:
    - create_pay_run: Insert a draft run and populate it (all-or-nothing)
    - update_status: Validated status transitions; paying freezes items
    - list_by_period / get_details / get_employee_items: Read-only queries
    - repopulate: Re-run the populator on a draft run
    - delete_pay_run: Remove a run that has not been paid
    """

    def __init__(
        self,
        session: AsyncSession,
        populator: PayRunItemPopulator | None = None,
        populator_timeout: float | None = None,
    ):
        self.session = session
        self.populator = populator
        self.populator_timeout = (
            populator_timeout
            if populator_timeout is not None
            else get_settings().populator_timeout_seconds
        )
        self.locking = LockingService(session)
        self.audit = AuditService(session)

    async def get_pay_run(
        self,
        pay_run_id: UUID,
        load_items: bool = True,
        load_period: bool = True,
    ) -> PayRun:
        """Load a pay run with optional relationships."""
        options = []
        if load_items:
            options.append(selectinload(PayRun.items))
        if load_period:
            options.append(selectinload(PayRun.pay_period))

        result = await self.session.execute(
            select(PayRun)
            .where(PayRun.pay_run_id == pay_run_id)
            .options(*options)
            .execution_options(populate_existing=True)
        )
        pay_run = result.scalar_one_or_none()
        if pay_run is None:
            raise NotFoundError("PayRun", pay_run_id)
        return pay_run

    async def create_pay_run(
        self,
        pay_period_id: UUID,
        name: str,
        location_id: UUID | None = None,
        only_unpaid: bool = False,
    ) -> PayRun:
        """Create a draft pay run and populate its items.

        Supplementary runs (only_unpaid=True) are restricted to source records
        that have never been paid. If population fails or times out, the run
        and any items written are removed and ExternalServiceError is raised.
        """
        if not name or not name.strip():
            raise ValidationError("Pay run name is required")

        period = await self.session.get(PayPeriod, pay_period_id)
        if period is None:
            raise NotFoundError("PayPeriod", pay_period_id)
        if period.status != "active":
            raise ValidationError(
                f"Cannot create a pay run for {period.status} pay period",
                {"pay_period_id": str(pay_period_id)},
            )

        suffix = SUPPLEMENTARY_SUFFIX if only_unpaid else ""
        pay_run = PayRun(
            name=name.strip() + suffix,
            pay_period_id=pay_period_id,
            location_id=location_id,
            status=PayRunStatus.DRAFT.value,
            is_supplementary=only_unpaid,
        )
        self.session.add(pay_run)
        await self.session.flush()
        pay_run_id = pay_run.pay_run_id

        try:
            await self._run_populator(pay_run, only_unpaid=only_unpaid)
        except ExternalServiceError:
            await self._remove_run(pay_run_id)
            self.session.expunge(pay_run)
            raise

        await self.audit.record(
            entity_type="pay_run",
            entity_id=pay_run_id,
            action="created",
            details={
                "pay_period_id": str(pay_period_id),
                "location_id": str(location_id) if location_id else None,
                "is_supplementary": only_unpaid,
            },
        )
        logger.info("Created pay run %s for period %s", pay_run_id, pay_period_id)
        return pay_run

    async def repopulate(self, pay_run_id: UUID) -> PopulationResult:
        """Re-run the populator on a draft run. Existing sources are not duplicated."""
        pay_run = await self.locking.lock_pay_run(pay_run_id)
        if not PayRunStateMachine.can_populate(pay_run.status):
            raise InvalidTransitionError(
                pay_run.status, pay_run.status, "items can only be populated on draft runs"
            )
        return await self._run_populator(pay_run, only_unpaid=pay_run.is_supplementary)

    async def update_status(self, pay_run_id: UUID, new_status: str) -> PayRun:
        """Transition a pay run to a new status.

        Moving to paid stamps paid_date and marks every item paid in the same
        transaction as the status write. A run holding service items is left
        with reconciliation pending until its sources are marked paid.

        Raises InvalidTransitionError if the transition is not allowed.
        """
        pay_run = await self.locking.lock_pay_run(pay_run_id)
        from_status = pay_run.status
        PayRunStateMachine.validate_transition(from_status, new_status)

        details: dict[str, str | int | None] = {}
        if new_status == PayRunStatus.PAID:
            pay_run.paid_date = utcnow()
            pay_run.reconciliation_status = (
                ReconciliationStatus.PENDING
                if await self._has_service_sources(pay_run_id)
                else ReconciliationStatus.NOT_REQUIRED
            )
            frozen = await self._freeze_items(pay_run_id)
            details["items_frozen"] = frozen
            details["items_hash"] = await self._items_hash(pay_run_id)
            details["reconciliation_status"] = pay_run.reconciliation_status

        pay_run.status = PayRunStatus(new_status).value
        await self.session.flush()

        await self.audit.record(
            entity_type="pay_run",
            entity_id=pay_run_id,
            action=f"status_change:{from_status}:{pay_run.status}",
            details=details or None,
        )
        logger.info("Pay run %s moved from %s to %s", pay_run_id, from_status, pay_run.status)
        return pay_run

    async def list_by_period(
        self,
        start: date,
        end: date,
        location_id: UUID | None = None,
    ) -> list[PayRun]:
        """List runs of the pay period with exactly these dates (empty if none)."""
        period_result = await self.session.execute(
            select(PayPeriod.pay_period_id).where(
                PayPeriod.start_date == start,
                PayPeriod.end_date == end,
            )
        )
        period_ids = list(period_result.scalars().all())
        if not period_ids:
            return []

        query = (
            select(PayRun)
            .where(PayRun.pay_period_id.in_(period_ids))
            .options(selectinload(PayRun.pay_period))
        )
        if location_id is not None:
            query = query.where(PayRun.location_id == location_id)

        result = await self.session.execute(query.order_by(PayRun.created_at))
        return list(result.scalars().all())

    async def get_details(self, pay_run_id: UUID) -> PayRun:
        """Get a pay run with its pay period and items."""
        return await self.get_pay_run(pay_run_id)

    async def get_employee_items(self, pay_run_id: UUID, employee_id: UUID) -> list[PayRunItem]:
        """Get all items for one employee in a pay run."""
        await self.get_pay_run(pay_run_id, load_items=False, load_period=False)
        result = await self.session.execute(
            select(PayRunItem)
            .where(
                PayRunItem.pay_run_id == pay_run_id,
                PayRunItem.employee_id == employee_id,
            )
            .order_by(PayRunItem.created_at)
        )
        return list(result.scalars().all())

    async def delete_pay_run(self, pay_run_id: UUID) -> None:
        """Delete a pay run and its items. Paid runs cannot be deleted."""
        pay_run = await self.locking.lock_pay_run(pay_run_id)
        if pay_run.status == PayRunStatus.PAID:
            raise ImmutableRunError(pay_run_id, pay_run.status, "delete pay run")

        await self._remove_run(pay_run_id)
        self.session.expunge(pay_run)
        await self.audit.record(entity_type="pay_run", entity_id=pay_run_id, action="deleted")
        logger.info("Deleted pay run %s", pay_run_id)

    async def _run_populator(self, pay_run: PayRun, only_unpaid: bool) -> PopulationResult:
        """Run the populator inside a savepoint.

        A failed population (including a failed flush) rolls back only the
        savepoint, so the session stays usable for cleanup.
        """
        pay_run_id = pay_run.pay_run_id
        if self.populator is None:
            raise ExternalServiceError("populator", "no populator configured")
        try:
            async with self.session.begin_nested():
                return await asyncio.wait_for(
                    self.populator.populate(self.session, pay_run, only_unpaid=only_unpaid),
                    timeout=self.populator_timeout,
                )
        except asyncio.TimeoutError as e:
            logger.error("Populator timed out for pay run %s", pay_run_id)
            raise ExternalServiceError(
                "populator", f"timed out after {self.populator_timeout}s"
            ) from e
        except ExternalServiceError:
            raise
        except Exception as e:
            logger.exception("Populator failed for pay run %s", pay_run_id)
            raise ExternalServiceError("populator", str(e)) from e

    async def _remove_run(self, pay_run_id: UUID) -> None:
        # Items the populator added but never flushed
        for obj in list(self.session.new):
            if isinstance(obj, PayRunItem) and obj.pay_run_id == pay_run_id:
                self.session.expunge(obj)

        await self.session.execute(
            delete(PayRunItem)
            .where(PayRunItem.pay_run_id == pay_run_id)
            .execution_options(synchronize_session="fetch")
        )
        await self.session.execute(
            delete(PayRun)
            .where(PayRun.pay_run_id == pay_run_id)
            .execution_options(synchronize_session=False)
        )

    async def _has_service_sources(self, pay_run_id: UUID) -> bool:
        result = await self.session.execute(
            select(PayRunItem.pay_run_item_id)
            .where(
                PayRunItem.pay_run_id == pay_run_id,
                PayRunItem.source_type == SourceType.SERVICE.value,
                PayRunItem.source_id.is_not(None),
            )
            .limit(1)
        )
        return result.first() is not None

    async def _freeze_items(self, pay_run_id: UUID) -> int:
        result = await self.session.execute(
            update(PayRunItem)
            .where(PayRunItem.pay_run_id == pay_run_id, PayRunItem.is_paid.is_(False))
            .values(is_paid=True)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0

    async def _items_hash(self, pay_run_id: UUID) -> str:
        result = await self.session.execute(
            select(PayRunItem).where(PayRunItem.pay_run_id == pay_run_id)
        )
        return self.locking.compute_items_hash(result.scalars().all())

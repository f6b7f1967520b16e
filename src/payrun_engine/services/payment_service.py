"""Payment processing: paying a run, reconciling its sources, recalculating commissions."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payrun_engine.calculators.types import SourceType
from payrun_engine.config import get_settings
from payrun_engine.errors import (
    EmptySelectionError,
    ExternalServiceError,
    ImmutableRunError,
    ValidationError,
)
from payrun_engine.models import PayRunItem
from payrun_engine.services.audit_service import AuditService
from payrun_engine.services.locking_service import LockingService
from payrun_engine.services.pay_run_service import PayRunService
from payrun_engine.services.state_machine import (
    PayRunStateMachine,
    PayRunStatus,
    ReconciliationStatus,
)

if TYPE_CHECKING:
    from payrun_engine.calculators.types import PopulationResult
    from payrun_engine.populators.base import PayRunItemPopulator, SourceReconciler

logger = logging.getLogger(__name__)


@dataclass
class PaymentResult:
    """Outcome of paying a run."""

    success: bool
    pay_run_id: UUID
    items_paid: int = 0
    reconciliation_status: str = ReconciliationStatus.NOT_REQUIRED
    errors: list[str] = field(default_factory=list)


class PaymentProcessor:
    """Pays approved runs and keeps source bookkeeping in step.

    Paying is all-or-nothing at the run level: every item is frozen as paid
    in the same transaction as the status change. That transaction is
    committed, releasing the run's row lock, before the underlying sources
    are marked paid by an external call. The outcome of that call is then
    recorded in a second short transaction. When it fails the run stays paid
    and the failure is reported through reconciliation_status so it can be
    retried.
    """

    def __init__(
        self,
        session: AsyncSession,
        reconciler: SourceReconciler | None = None,
        populator: PayRunItemPopulator | None = None,
        reconciliation_timeout: float | None = None,
        populator_timeout: float | None = None,
    ):
        settings = get_settings()
        self.session = session
        self.reconciler = reconciler
        self.populator = populator
        self.reconciliation_timeout = (
            reconciliation_timeout
            if reconciliation_timeout is not None
            else settings.reconciliation_timeout_seconds
        )
        self.populator_timeout = (
            populator_timeout if populator_timeout is not None else settings.populator_timeout_seconds
        )
        self.locking = LockingService(session)
        self.audit = AuditService(session)

    async def process_payments(
        self, pay_run_id: UUID, employee_ids: Sequence[UUID]
    ) -> PaymentResult:
        """Mark an approved run paid for the selected employees.

        Every selected employee must have at least one item in the run.
        The whole run is frozen, not only the selection. The paid state is
        committed before the reconciler is called.

        Raises:
            EmptySelectionError: If no employees are selected.
            ValidationError: If a selected employee has no items in the run.
            InvalidTransitionError: If the run is not approved.
        """
        if not employee_ids:
            raise EmptySelectionError("At least one employee must be selected for payment")

        await self.locking.lock_pay_run(pay_run_id)
        result = await self.session.execute(
            select(PayRunItem.employee_id)
            .where(PayRunItem.pay_run_id == pay_run_id)
            .distinct()
        )
        in_run = set(result.scalars().all())
        missing = sorted(str(e) for e in set(employee_ids) - in_run)
        if missing:
            raise ValidationError(
                "Selected employees have no items in this pay run",
                {"employee_ids": missing},
            )

        pay_runs = PayRunService(self.session)
        pay_run = await pay_runs.update_status(pay_run_id, PayRunStatus.PAID.value)

        items_result = await self.session.execute(
            select(PayRunItem).where(PayRunItem.pay_run_id == pay_run_id)
        )
        items = list(items_result.scalars().all())
        source_ids = self._service_source_ids(items)

        payment = PaymentResult(
            success=True,
            pay_run_id=pay_run_id,
            items_paid=len(items),
            reconciliation_status=pay_run.reconciliation_status,
        )
        await self.audit.record(
            entity_type="pay_run",
            entity_id=pay_run_id,
            action="payment_processed",
            details={
                "employee_ids": sorted(str(e) for e in set(employee_ids)),
                "items_paid": payment.items_paid,
                "source_count": len(source_ids),
            },
        )
        await self.session.commit()
        logger.info("Paid pay run %s: %d items", pay_run_id, payment.items_paid)

        if source_ids:
            await self._reconcile(pay_run_id, source_ids, payment)
        return payment

    async def retry_reconciliation(self, pay_run_id: UUID) -> PaymentResult:
        """Mark sources paid for a paid run whose reconciliation is pending or failed."""
        pay_run = await self.locking.lock_pay_run(pay_run_id, load_items=True)
        if pay_run.status != PayRunStatus.PAID:
            raise ValidationError(
                "Only paid pay runs can be reconciled", {"status": pay_run.status}
            )
        if pay_run.reconciliation_status not in ReconciliationStatus.RETRYABLE:
            raise ValidationError(
                f"Reconciliation is {pay_run.reconciliation_status}, nothing to retry",
                {"reconciliation_status": pay_run.reconciliation_status},
            )
        source_ids = self._service_source_ids(pay_run.items)
        # Release the row lock before the external call
        await self.session.commit()

        payment = PaymentResult(
            success=True,
            pay_run_id=pay_run_id,
            items_paid=0,
            reconciliation_status=pay_run.reconciliation_status,
        )
        await self._reconcile(pay_run_id, source_ids, payment)

        await self.audit.record(
            entity_type="pay_run",
            entity_id=pay_run_id,
            action="reconciliation_retried",
            details={"reconciliation_status": payment.reconciliation_status},
        )
        return payment

    async def recalculate_commissions(self, pay_run_id: UUID) -> PopulationResult:
        """Re-derive unpaid commission items from current source data.

        Raises:
            ImmutableRunError: If the run is paid or cancelled.
            ExternalServiceError: If the populator fails or times out.
        """
        pay_run = await self.locking.lock_pay_run(pay_run_id)
        if not PayRunStateMachine.can_modify_items(pay_run.status):
            raise ImmutableRunError(pay_run_id, pay_run.status, "recalculate commissions")
        if self.populator is None:
            raise ExternalServiceError("populator", "no populator configured")

        try:
            async with self.session.begin_nested():
                result = await asyncio.wait_for(
                    self.populator.recalculate_commissions(self.session, pay_run),
                    timeout=self.populator_timeout,
                )
        except asyncio.TimeoutError as e:
            logger.error("Commission recalculation timed out for pay run %s", pay_run_id)
            raise ExternalServiceError(
                "populator", f"timed out after {self.populator_timeout}s"
            ) from e
        except Exception as e:
            logger.exception("Commission recalculation failed for pay run %s", pay_run_id)
            raise ExternalServiceError("populator", str(e)) from e

        await self.audit.record(
            entity_type="pay_run",
            entity_id=pay_run_id,
            action="commissions_recalculated",
            details={"items_created": result.items_created},
        )
        logger.info(
            "Recalculated commissions for pay run %s: %d items", pay_run_id, result.items_created
        )
        return result

    async def _reconcile(
        self, pay_run_id: UUID, source_ids: list[UUID], payment: PaymentResult
    ) -> None:
        """Call the reconciler, then record the outcome on the run and the result.

        No row lock is held during the call. The run is locked again only to
        write the outcome.
        """
        error: str | None = None
        if self.reconciler is None:
            error = "no reconciler configured"
        else:
            try:
                await asyncio.wait_for(
                    self.reconciler.mark_sources_paid(source_ids),
                    timeout=self.reconciliation_timeout,
                )
            except asyncio.TimeoutError:
                error = f"reconciliation timed out after {self.reconciliation_timeout}s"
            except Exception as e:
                error = f"reconciliation failed: {e}"

        pay_run = await self.locking.lock_pay_run(pay_run_id)
        if error is None:
            pay_run.reconciliation_status = ReconciliationStatus.RECONCILED
        else:
            logger.error(
                "Could not mark %d sources paid for pay run %s: %s",
                len(source_ids),
                pay_run_id,
                error,
            )
            pay_run.reconciliation_status = ReconciliationStatus.FAILED
            payment.success = False
            payment.errors.append(error)
        payment.reconciliation_status = pay_run.reconciliation_status
        await self.session.flush()

    @staticmethod
    def _service_source_ids(items: Sequence[PayRunItem]) -> list[UUID]:
        return sorted(
            {
                item.source_id
                for item in items
                if item.source_type == SourceType.SERVICE.value and item.source_id is not None
            },
            key=str,
        )

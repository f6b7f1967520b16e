"""Manual adjustments (bonuses, deductions, corrections) on pay runs."""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from uuid import UUID

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from payrun_engine.calculators.line_builder import LineItemBuilder
from payrun_engine.calculators.types import AdjustmentRequest, SourceType
from payrun_engine.errors import (
    ImmutableRunError,
    NotFoundError,
    NotManualItemError,
    ValidationError,
)
from payrun_engine.models import PayRunItem
from payrun_engine.services.audit_service import AuditService
from payrun_engine.services.locking_service import LockingService
from payrun_engine.services.state_machine import PayRunStateMachine

logger = logging.getLogger(__name__)


class AdjustmentService:
    """Inserts and removes manually entered pay run items.

    Only items with source_type 'manual' are created or deleted here.
    Populated items are never touched. New adjustments are always unpaid;
    they become paid only when the whole run is paid.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.locking = LockingService(session)
        self.audit = AuditService(session)

    async def add_adjustment(
        self, pay_run_id: UUID, adjustment: AdjustmentRequest
    ) -> PayRunItem:
        """Add a manual item to a pay run.

        Raises:
            ImmutableRunError: If the run is paid or cancelled.
            ValidationError: If the amount is zero or the description is blank.
        """
        try:
            raw_amount = Decimal(adjustment.amount)
        except (InvalidOperation, TypeError, ValueError) as e:
            raise ValidationError(f"Invalid amount '{adjustment.amount}'") from e
        amount = LineItemBuilder.signed_amount(raw_amount, adjustment.is_addition)
        if amount == 0:
            raise ValidationError("Adjustment amount must be non-zero")
        description = (adjustment.description or "").strip()
        if not description:
            raise ValidationError("Adjustment description is required")

        pay_run = await self.locking.lock_pay_run(pay_run_id)
        if not PayRunStateMachine.can_modify_items(pay_run.status):
            raise ImmutableRunError(pay_run_id, pay_run.status, "add adjustment")

        item = PayRunItem(
            pay_run_id=pay_run_id,
            employee_id=adjustment.employee_id,
            compensation_type=LineItemBuilder.normalize_compensation_type(
                adjustment.compensation_type
            ),
            amount=amount,
            description=description,
            source_type=SourceType.MANUAL.value,
            source_id=None,
            is_paid=False,
        )
        self.session.add(item)
        await self.session.flush()

        await self.audit.record(
            entity_type="pay_run",
            entity_id=pay_run_id,
            action="adjustment_added",
            details={
                "item_id": str(item.pay_run_item_id),
                "employee_id": str(item.employee_id),
                "compensation_type": item.compensation_type,
                "amount": str(amount),
            },
        )
        logger.info(
            "Added %s adjustment of %s for employee %s to pay run %s",
            item.compensation_type,
            amount,
            item.employee_id,
            pay_run_id,
        )
        return item

    async def delete_adjustment(self, item_id: UUID) -> UUID:
        """Delete a manual item. Returns the owning pay run id.

        Raises:
            NotFoundError: If the item does not exist.
            NotManualItemError: If the item was populated rather than entered.
            ImmutableRunError: If the owning run is paid or cancelled.
        """
        item = await self.session.get(PayRunItem, item_id)
        if item is None:
            raise NotFoundError("PayRunItem", item_id)
        if item.source_type != SourceType.MANUAL.value:
            logger.warning(
                "Refused to delete %s item %s as an adjustment", item.source_type, item_id
            )
            raise NotManualItemError(item_id, item.source_type)

        pay_run_id = item.pay_run_id
        pay_run = await self.locking.lock_pay_run(pay_run_id)
        if not PayRunStateMachine.can_modify_items(pay_run.status):
            raise ImmutableRunError(pay_run_id, pay_run.status, "delete adjustment")

        await self.session.execute(
            delete(PayRunItem)
            .where(PayRunItem.pay_run_item_id == item_id)
            .execution_options(synchronize_session="fetch")
        )

        await self.audit.record(
            entity_type="pay_run",
            entity_id=pay_run_id,
            action="adjustment_deleted",
            details={"item_id": str(item_id), "amount": str(item.amount)},
        )
        logger.info("Deleted adjustment %s from pay run %s", item_id, pay_run_id)
        return pay_run_id

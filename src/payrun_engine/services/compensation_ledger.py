"""Append-only, effective-dated compensation history."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payrun_engine.calculators.line_builder import LineItemBuilder
from payrun_engine.errors import ValidationError
from payrun_engine.models import CompensationSetting
from payrun_engine.services.audit_service import AuditService

logger = logging.getLogger(__name__)


class CompensationLedger:
    """Versioned base-pay records per employee.

    Records are never updated except to close them: adding a record sets
    the previous open record's effective_to to the new effective_from, so
    an employee's history is a gap-free chain with exactly one open row.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.audit = AuditService(session)

    async def add_compensation(
        self,
        employee_id: UUID,
        base_amount: Decimal,
        effective_from: date,
    ) -> CompensationSetting:
        """Append a new current rate, closing the previous one.

        Raises:
            ValidationError: If the amount is negative or the new record does
                not start after the current one.
        """
        amount = LineItemBuilder.round_to_cents(Decimal(base_amount))
        if amount < 0:
            raise ValidationError(
                "Base amount cannot be negative", {"base_amount": str(base_amount)}
            )

        current = await self._get_open_record(employee_id, for_update=True)
        if current is not None:
            if effective_from <= current.effective_from:
                raise ValidationError(
                    f"New compensation must start after {current.effective_from}",
                    {
                        "employee_id": str(employee_id),
                        "effective_from": effective_from.isoformat(),
                    },
                )
            current.effective_to = effective_from
            # Close before inserting so the one-open-row index never sees two
            await self.session.flush()

        setting = CompensationSetting(
            employee_id=employee_id,
            base_amount=amount,
            effective_from=effective_from,
            effective_to=None,
        )
        self.session.add(setting)
        await self.session.flush()

        await self.audit.record(
            entity_type="compensation_setting",
            entity_id=setting.compensation_setting_id,
            action="created",
            details={
                "employee_id": str(employee_id),
                "base_amount": str(amount),
                "effective_from": effective_from.isoformat(),
                "superseded": str(current.compensation_setting_id) if current else None,
            },
        )
        logger.info(
            "Compensation for employee %s set to %s from %s",
            employee_id,
            amount,
            effective_from,
        )
        return setting

    async def get_current(self, employee_id: UUID) -> CompensationSetting | None:
        """Get the open (current) record for an employee."""
        return await self._get_open_record(employee_id)

    async def get_history(self, employee_id: UUID) -> list[CompensationSetting]:
        """Get an employee's full history, newest first."""
        result = await self.session.execute(
            select(CompensationSetting)
            .where(CompensationSetting.employee_id == employee_id)
            .order_by(CompensationSetting.effective_from.desc())
        )
        return list(result.scalars().all())

    async def get_effective(
        self, employee_id: UUID, as_of: date
    ) -> CompensationSetting | None:
        """Get the record in force for an employee on a date."""
        result = await self.session.execute(
            select(CompensationSetting).where(
                CompensationSetting.employee_id == employee_id,
                CompensationSetting.effective_from <= as_of,
                (
                    CompensationSetting.effective_to.is_(None)
                    | (CompensationSetting.effective_to > as_of)
                ),
            )
        )
        return result.scalar_one_or_none()

    async def list_effective_in_range(
        self, start: date, end: date
    ) -> list[CompensationSetting]:
        """Get every record in force on at least one day of [start, end]."""
        result = await self.session.execute(
            select(CompensationSetting)
            .where(
                CompensationSetting.effective_from <= end,
                (
                    CompensationSetting.effective_to.is_(None)
                    | (CompensationSetting.effective_to > start)
                ),
            )
            .order_by(CompensationSetting.employee_id, CompensationSetting.effective_from)
        )
        return list(result.scalars().all())

    async def _get_open_record(
        self, employee_id: UUID, for_update: bool = False
    ) -> CompensationSetting | None:
        query = select(CompensationSetting).where(
            CompensationSetting.employee_id == employee_id,
            CompensationSetting.effective_to.is_(None),
        )
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

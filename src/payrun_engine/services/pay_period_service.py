"""Pay period scheduling."""

from __future__ import annotations

import calendar
import logging
from datetime import date, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payrun_engine.errors import NotFoundError, ValidationError
from payrun_engine.models import PayPeriod, PayPeriodSettings
from payrun_engine.services.audit_service import AuditService
from payrun_engine.services.locking_service import LockingService

logger = logging.getLogger(__name__)

FREQUENCIES = ("monthly", "custom")


def _month_day(year: int, month: int, day: int) -> date:
    """Build a date, clamping day to the last day of the month."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last_day))


def next_month_start(current: date, start_day_of_month: int) -> date:
    """Return start_day_of_month in the month after current's month."""
    year = current.year + (1 if current.month == 12 else 0)
    month = 1 if current.month == 12 else current.month + 1
    return _month_day(year, month, start_day_of_month)


def compute_period_range(
    frequency: str,
    start: date,
    start_day_of_month: int | None = None,
    custom_days: int | None = None,
) -> tuple[date, date]:
    """Compute [start, end] of the period starting on `start`.

    monthly: end is the day before next month's start_day_of_month.
    custom: end is start + custom_days - 1.
    """
    if frequency == "monthly":
        if start_day_of_month is None:
            raise ValidationError("Monthly cadence requires start_day_of_month")
        end = next_month_start(start, start_day_of_month) - timedelta(days=1)
    elif frequency == "custom":
        if custom_days is None:
            raise ValidationError("Custom cadence requires custom_days")
        end = start + timedelta(days=custom_days - 1)
    else:
        raise ValidationError(f"Unknown pay period frequency '{frequency}'")
    return start, end


def default_period_name(start: date, end: date) -> str:
    return f"{start:%b} {start.day}, {start.year} - {end:%b} {end.day}, {end.year}"


class PayPeriodScheduler:
    """Creates, generates and archives pay periods.

    Generated periods are contiguous: each period starts the day after the
    previous one ends. The cadence lives in a single settings row that is
    row-locked while a period is generated.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.locking = LockingService(session)
        self.audit = AuditService(session)

    async def create_pay_period(self, start: date, end: date, name: str) -> PayPeriod:
        """Create an active pay period.

        Raises:
            ValidationError: If start >= end or the range overlaps an active period.
        """
        if start >= end:
            raise ValidationError(
                "Pay period start must be before end",
                {"start_date": start.isoformat(), "end_date": end.isoformat()},
            )
        if not name or not name.strip():
            raise ValidationError("Pay period name is required")

        overlapping = await self._find_overlapping_active(start, end)
        if overlapping is not None:
            raise ValidationError(
                f"Pay period overlaps active period '{overlapping.name}' "
                f"({overlapping.start_date} to {overlapping.end_date})",
                {"overlapping_pay_period_id": str(overlapping.pay_period_id)},
            )

        period = PayPeriod(name=name.strip(), start_date=start, end_date=end, status="active")
        self.session.add(period)
        await self.session.flush()

        await self.audit.record(
            entity_type="pay_period",
            entity_id=period.pay_period_id,
            action="created",
            details={"start_date": start.isoformat(), "end_date": end.isoformat()},
        )
        logger.info("Created pay period %s (%s to %s)", period.pay_period_id, start, end)
        return period

    async def generate_next_pay_period(self) -> PayPeriod:
        """Create the next period from the cadence settings and advance them.

        Raises:
            NotFoundError: If no cadence settings exist.
            ValidationError: If the computed period overlaps an active one.
        """
        settings = await self.locking.lock_pay_period_settings()
        if settings is None:
            raise NotFoundError("PayPeriodSettings", "default")

        start, end = compute_period_range(
            settings.frequency,
            settings.next_start_date,
            start_day_of_month=settings.start_day_of_month,
            custom_days=settings.custom_days,
        )
        period = await self.create_pay_period(start, end, default_period_name(start, end))

        settings.next_start_date = end + timedelta(days=1)
        await self.session.flush()

        logger.info(
            "Generated %s pay period %s; next period starts %s",
            settings.frequency,
            period.pay_period_id,
            settings.next_start_date,
        )
        return period

    async def archive_pay_period(self, pay_period_id: UUID) -> PayPeriod:
        """Archive a pay period. Its pay runs are left untouched."""
        period = await self.get_pay_period(pay_period_id)
        if period.status != "archived":
            period.status = "archived"
            await self.session.flush()
            await self.audit.record(
                entity_type="pay_period",
                entity_id=period.pay_period_id,
                action="archived",
            )
            logger.info("Archived pay period %s", pay_period_id)
        return period

    async def get_pay_period(self, pay_period_id: UUID) -> PayPeriod:
        period = await self.session.get(PayPeriod, pay_period_id)
        if period is None:
            raise NotFoundError("PayPeriod", pay_period_id)
        return period

    async def list_pay_periods(self, status: str | None = None) -> list[PayPeriod]:
        """List pay periods, newest first, optionally filtered by status."""
        query = select(PayPeriod)
        if status:
            query = query.where(PayPeriod.status == status)
        result = await self.session.execute(query.order_by(PayPeriod.start_date.desc()))
        return list(result.scalars().all())

    async def get_settings(self) -> PayPeriodSettings | None:
        result = await self.session.execute(
            select(PayPeriodSettings).order_by(PayPeriodSettings.updated_at).limit(1)
        )
        return result.scalar_one_or_none()

    async def update_settings(
        self,
        frequency: str,
        next_start_date: date,
        start_day_of_month: int | None = None,
        custom_days: int | None = None,
    ) -> PayPeriodSettings:
        """Insert or update the single cadence settings row."""
        if frequency not in FREQUENCIES:
            raise ValidationError(f"Unknown pay period frequency '{frequency}'")
        if frequency == "monthly":
            if start_day_of_month is None or not 1 <= start_day_of_month <= 31:
                raise ValidationError("start_day_of_month must be between 1 and 31")
            custom_days = None
        else:
            if custom_days is None or custom_days < 2:
                raise ValidationError("custom_days must be at least 2")
            start_day_of_month = None

        start, end = compute_period_range(
            frequency,
            next_start_date,
            start_day_of_month=start_day_of_month,
            custom_days=custom_days,
        )
        if start >= end:
            raise ValidationError(
                "Cadence would generate a period that ends on the day it starts",
                {"next_start_date": next_start_date.isoformat(), "end_date": end.isoformat()},
            )

        settings = await self.locking.lock_pay_period_settings()
        if settings is None:
            settings = PayPeriodSettings(
                frequency=frequency,
                start_day_of_month=start_day_of_month,
                custom_days=custom_days,
                next_start_date=next_start_date,
            )
            self.session.add(settings)
        else:
            settings.frequency = frequency
            settings.start_day_of_month = start_day_of_month
            settings.custom_days = custom_days
            settings.next_start_date = next_start_date
        await self.session.flush()
        return settings

    async def _find_overlapping_active(self, start: date, end: date) -> PayPeriod | None:
        result = await self.session.execute(
            select(PayPeriod)
            .where(
                PayPeriod.status == "active",
                PayPeriod.start_date <= end,
                PayPeriod.end_date >= start,
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

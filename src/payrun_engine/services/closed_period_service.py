"""Closed-period (blackout date) registry."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payrun_engine.errors import NotFoundError, ValidationError
from payrun_engine.models import ClosedPeriod, ClosedPeriodLocation
from payrun_engine.services.audit_service import AuditService

logger = logging.getLogger(__name__)


class ClosedPeriodRegistry:
    """Maintains blackout ranges per set of locations.

    The populator only reads from the registry (via closed_dates); the
    create/update/delete operations back the settings screens.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.audit = AuditService(session)

    async def create_closed_period(
        self,
        start_date: date,
        end_date: date,
        description: str,
        location_ids: Iterable[UUID],
    ) -> ClosedPeriod:
        locations = self._validate(start_date, end_date, location_ids)
        closed = ClosedPeriod(
            start_date=start_date,
            end_date=end_date,
            description=description or "",
            locations=[ClosedPeriodLocation(location_id=loc) for loc in locations],
        )
        self.session.add(closed)
        await self.session.flush()

        await self.audit.record(
            entity_type="closed_period",
            entity_id=closed.closed_period_id,
            action="created",
            details={"locations": sorted(str(loc) for loc in locations)},
        )
        logger.info(
            "Closed period %s to %s registered for %d location(s)",
            start_date,
            end_date,
            len(locations),
        )
        return closed

    async def update_closed_period(
        self,
        closed_period_id: UUID,
        start_date: date,
        end_date: date,
        description: str,
        location_ids: Iterable[UUID],
    ) -> ClosedPeriod:
        locations = self._validate(start_date, end_date, location_ids)
        closed = await self.get_closed_period(closed_period_id)
        closed.start_date = start_date
        closed.end_date = end_date
        closed.description = description or ""

        existing = {loc.location_id: loc for loc in closed.locations}
        for location_id, link in existing.items():
            if location_id not in locations:
                closed.locations.remove(link)
        for location_id in locations - existing.keys():
            closed.locations.append(ClosedPeriodLocation(location_id=location_id))
        await self.session.flush()

        await self.audit.record(
            entity_type="closed_period",
            entity_id=closed.closed_period_id,
            action="updated",
        )
        return closed

    async def delete_closed_period(self, closed_period_id: UUID) -> None:
        closed = await self.get_closed_period(closed_period_id)
        await self.session.delete(closed)
        await self.session.flush()
        await self.audit.record(
            entity_type="closed_period",
            entity_id=closed_period_id,
            action="deleted",
        )

    async def get_closed_period(self, closed_period_id: UUID) -> ClosedPeriod:
        result = await self.session.execute(
            select(ClosedPeriod).where(ClosedPeriod.closed_period_id == closed_period_id)
        )
        closed = result.scalar_one_or_none()
        if closed is None:
            raise NotFoundError("ClosedPeriod", closed_period_id)
        return closed

    async def list_closed_periods(
        self,
        location_id: UUID | None = None,
        start: date | None = None,
        end: date | None = None,
    ) -> list[ClosedPeriod]:
        """List closed periods, newest first, optionally filtered by location and range."""
        query = select(ClosedPeriod)
        if location_id is not None:
            query = query.where(
                ClosedPeriod.locations.any(ClosedPeriodLocation.location_id == location_id)
            )
        if start is not None:
            query = query.where(ClosedPeriod.end_date >= start)
        if end is not None:
            query = query.where(ClosedPeriod.start_date <= end)
        result = await self.session.execute(query.order_by(ClosedPeriod.start_date.desc()))
        return list(result.scalars().all())

    async def closed_dates(
        self, location_ids: Iterable[UUID], start: date, end: date
    ) -> set[date]:
        """Days in [start, end] on which every given location is closed.

        An employee who works at several locations still works on a day when
        only some of them are closed. No locations means no closed days.
        """
        scope = set(location_ids)
        if not scope:
            return set()

        periods = await self.list_closed_periods(start=start, end=end)
        closed_by_day: dict[date, set[UUID]] = {}
        for period in periods:
            applicable = period.location_ids & scope
            if not applicable:
                continue
            day = max(period.start_date, start)
            last = min(period.end_date, end)
            while day <= last:
                closed_by_day.setdefault(day, set()).update(applicable)
                day += timedelta(days=1)

        return {day for day, locations in closed_by_day.items() if locations >= scope}

    @staticmethod
    def _validate(
        start_date: date, end_date: date, location_ids: Iterable[UUID]
    ) -> set[UUID]:
        if start_date > end_date:
            raise ValidationError(
                "Closed period start must not be after end",
                {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
            )
        locations = set(location_ids)
        if not locations:
            raise ValidationError("Select at least one location")
        return locations

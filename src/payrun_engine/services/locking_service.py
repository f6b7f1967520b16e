"""Row locking for per-run and scheduler-settings serialization."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from payrun_engine.errors import NotFoundError
from payrun_engine.models import PayPeriodSettings, PayRun, PayRunItem


class LockingService:
    """Service for serializing writers on shared rows.

    Population, adjustment, status and payment writes on one pay run take
    a row lock on the pay_run row first (SELECT ... FOR UPDATE), so two
    concurrent writers to the same run queue behind each other while runs
    with different ids proceed in parallel. The scheduler settings row is
    locked the same way because generating a period reads then advances
    next_start_date.

    Locks are held until the surrounding transaction ends. Dialects
    without row locks (SQLite) compile FOR UPDATE away and rely on their
    single-writer database lock instead.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def lock_pay_run(self, pay_run_id: UUID, load_items: bool = False) -> PayRun:
        """Lock and load a pay run, raising NotFoundError if it does not exist."""
        query = (
            select(PayRun)
            .where(PayRun.pay_run_id == pay_run_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        if load_items:
            query = query.options(selectinload(PayRun.items))

        result = await self.session.execute(query)
        pay_run = result.scalar_one_or_none()
        if pay_run is None:
            raise NotFoundError("PayRun", pay_run_id)
        return pay_run

    async def lock_pay_period_settings(self) -> PayPeriodSettings | None:
        """Lock and load the single scheduler settings row."""
        result = await self.session.execute(
            select(PayPeriodSettings)
            .order_by(PayPeriodSettings.updated_at)
            .limit(1)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    def compute_items_hash(self, items: Iterable[PayRunItem]) -> str:
        """Compute a deterministic hash of a run's item set.

        Used to record exactly what was frozen when a run is paid.
        """
        canonical = sorted(
            (
                {
                    "employee_id": str(item.employee_id),
                    "compensation_type": item.compensation_type,
                    "amount": str(item.amount),
                    "source_type": item.source_type,
                    "source_id": str(item.source_id) if item.source_id else None,
                }
                for item in items
            ),
            key=lambda d: json.dumps(d, sort_keys=True),
        )
        return self._compute_hash({"items": canonical})

    def _compute_hash(self, data: dict[str, Any]) -> str:
        """Compute a deterministic hash of data."""
        # Sort keys for deterministic JSON
        json_str = json.dumps(data, sort_keys=True, default=str)
        return hashlib.sha256(json_str.encode()).hexdigest()[:32]

"""Contracts for the external item population and reconciliation services.

The engine never sources line items itself. It calls a populator that
must satisfy the contract below, and a reconciler that updates payment
bookkeeping on source records once a run is paid.

Populator contract:

- populate() is only called on a draft run.
- For each employee eligible at the run's location (all locations when
  the run has none) it creates one 'salary' item from the compensation
  ledger, pro-rated over payable days, where days closed for the
  employee's locations are not payable.
- It creates one 'commission' or 'tip' item per completed, paid-for
  source record in the period that is not already attached to another
  non-supplementary run.
- With only_unpaid=True it skips any source that has an item marked
  is_paid anywhere.
- It is idempotent per (pay_period_id, location_id, source_id): running it
  again on the same run creates no duplicates.
- recalculate_commissions() replaces the run's unpaid commission items
  with ones derived from current source data, leaving other items alone.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from payrun_engine.calculators.types import PopulationResult
from payrun_engine.models import PayRun


class PayRunItemPopulator(Protocol):
    """Protocol for services that fill a draft pay run with computed items."""

    async def populate(
        self,
        session: AsyncSession,
        pay_run: PayRun,
        *,
        only_unpaid: bool = False,
    ) -> PopulationResult:
        """Create items for a draft pay run."""
        ...

    async def recalculate_commissions(
        self,
        session: AsyncSession,
        pay_run: PayRun,
    ) -> PopulationResult:
        """Re-derive the run's commission items from current source data."""
        ...


class SourceReconciler(Protocol):
    """Protocol for services that mark source records (bookings) as paid out."""

    async def mark_sources_paid(self, source_ids: Sequence[UUID]) -> None:
        """Record that the given source records have been paid out."""
        ...

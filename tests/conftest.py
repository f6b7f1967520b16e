"""Pytest fixtures for pay-run engine tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from payrun_engine.calculators.types import SourceRecord
from payrun_engine.models import Base, PayPeriod, PayRun
from payrun_engine.populators import StubPopulator, StubReconciler
from payrun_engine.services.compensation_ledger import CompensationLedger
from payrun_engine.services.pay_period_service import PayPeriodScheduler
from payrun_engine.services.pay_run_service import PayRunService

# In-memory SQLite shared by every connection of one engine
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

EMPLOYEE_1 = UUID("00000000-0000-0000-0000-0000000000e1")
EMPLOYEE_2 = UUID("00000000-0000-0000-0000-0000000000e2")
LOCATION_A = UUID("00000000-0000-0000-0000-00000000000a")
LOCATION_B = UUID("00000000-0000-0000-0000-00000000000b")

MAY_START = date(2025, 5, 1)
MAY_END = date(2025, 5, 31)


def service_record(
    employee_id: UUID,
    amount: str,
    service_date: date = date(2025, 5, 10),
    location_id: UUID | None = LOCATION_A,
    compensation_type: str = "commission",
    source_id: UUID | None = None,
    **kwargs,
) -> SourceRecord:
    """Build a completed, paid-for booking that earns commission or tips."""
    return SourceRecord(
        source_id=source_id or uuid4(),
        employee_id=employee_id,
        location_id=location_id,
        service_date=service_date,
        amount=Decimal(amount),
        compensation_type=compensation_type,
        **kwargs,
    )


STATUS_PATH = ["draft", "pending", "approved", "paid"]


async def advance_to(session: AsyncSession, pay_run_id: UUID, target: str) -> PayRun:
    """Walk a run forward along draft -> pending -> approved -> paid up to target."""
    service = PayRunService(session)
    pay_run = await service.get_pay_run(pay_run_id, load_items=False, load_period=False)
    start = STATUS_PATH.index(pay_run.status)
    for status in STATUS_PATH[start + 1 : STATUS_PATH.index(target) + 1]:
        pay_run = await service.update_status(pay_run_id, status)
    return pay_run


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create a fresh test database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def populator() -> StubPopulator:
    """Populator with both employees working at location A and E2 also at B."""
    return StubPopulator(
        employee_locations={
            EMPLOYEE_1: {LOCATION_A},
            EMPLOYEE_2: {LOCATION_A, LOCATION_B},
        }
    )


@pytest.fixture
def reconciler() -> StubReconciler:
    return StubReconciler()


@pytest.fixture
async def may_period(session: AsyncSession) -> PayPeriod:
    """Create the May 2025 pay period."""
    period = await PayPeriodScheduler(session).create_pay_period(MAY_START, MAY_END, "May 2025")
    await session.flush()
    return period


@pytest.fixture
async def salaried_employee(session: AsyncSession) -> UUID:
    """E1 on a base amount of 50000 per period since January."""
    await CompensationLedger(session).add_compensation(
        EMPLOYEE_1, Decimal("50000"), date(2025, 1, 1)
    )
    return EMPLOYEE_1


@pytest.fixture
async def draft_run(
    session: AsyncSession,
    may_period: PayPeriod,
    salaried_employee: UUID,
    populator: StubPopulator,
) -> PayRun:
    """A populated draft run for May holding E1's 50000 salary."""
    return await PayRunService(session, populator=populator).create_pay_run(
        may_period.pay_period_id, "May Payroll"
    )

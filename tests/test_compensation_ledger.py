"""Tests for the append-only compensation ledger."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from payrun_engine.errors import ValidationError
from payrun_engine.models import AuditEvent, CompensationSetting
from payrun_engine.services.compensation_ledger import CompensationLedger

from .conftest import EMPLOYEE_1, EMPLOYEE_2


async def count_open(session: AsyncSession, employee_id) -> int:
    return await session.scalar(
        select(func.count())
        .select_from(CompensationSetting)
        .where(
            CompensationSetting.employee_id == employee_id,
            CompensationSetting.effective_to.is_(None),
        )
    )


class TestAddCompensation:
    async def test_first_record_is_open(self, session: AsyncSession):
        ledger = CompensationLedger(session)
        setting = await ledger.add_compensation(EMPLOYEE_1, Decimal("3000"), date(2025, 1, 1))

        assert setting.effective_to is None
        assert setting.base_amount == Decimal("3000.00")
        assert (await ledger.get_current(EMPLOYEE_1)).compensation_setting_id == (
            setting.compensation_setting_id
        )

    async def test_at_most_one_open_record_after_many_changes(self, session: AsyncSession):
        """After N sequential changes exactly one record per employee is open."""
        ledger = CompensationLedger(session)
        for month in range(1, 9):
            await ledger.add_compensation(
                EMPLOYEE_1, Decimal(1000 * month), date(2025, month, 1)
            )
            await ledger.add_compensation(
                EMPLOYEE_2, Decimal(500 * month), date(2025, month, 15)
            )
            assert await count_open(session, EMPLOYEE_1) == 1
            assert await count_open(session, EMPLOYEE_2) == 1

        history = await ledger.get_history(EMPLOYEE_1)
        assert len(history) == 8
        assert history[0].effective_from == date(2025, 8, 1)

    async def test_previous_record_closed_at_new_start(self, session: AsyncSession):
        ledger = CompensationLedger(session)
        first = await ledger.add_compensation(EMPLOYEE_1, Decimal("3000"), date(2025, 1, 1))
        await ledger.add_compensation(EMPLOYEE_1, Decimal("3500"), date(2025, 4, 1))

        assert first.effective_to == date(2025, 4, 1)

    async def test_history_ranges_are_contiguous(self, session: AsyncSession):
        ledger = CompensationLedger(session)
        for start in (date(2025, 1, 1), date(2025, 3, 1), date(2025, 6, 1)):
            await ledger.add_compensation(EMPLOYEE_1, Decimal("1000"), start)

        history = list(reversed(await ledger.get_history(EMPLOYEE_1)))
        for earlier, later in zip(history, history[1:]):
            assert earlier.effective_to == later.effective_from

    async def test_new_record_must_start_after_current(self, session: AsyncSession):
        ledger = CompensationLedger(session)
        await ledger.add_compensation(EMPLOYEE_1, Decimal("3000"), date(2025, 3, 1))

        with pytest.raises(ValidationError):
            await ledger.add_compensation(EMPLOYEE_1, Decimal("3100"), date(2025, 3, 1))
        with pytest.raises(ValidationError):
            await ledger.add_compensation(EMPLOYEE_1, Decimal("3100"), date(2025, 2, 1))

    async def test_negative_amount_rejected(self, session: AsyncSession):
        with pytest.raises(ValidationError):
            await CompensationLedger(session).add_compensation(
                EMPLOYEE_1, Decimal("-1"), date(2025, 1, 1)
            )

    async def test_change_is_audited(self, session: AsyncSession):
        setting = await CompensationLedger(session).add_compensation(
            EMPLOYEE_1, Decimal("3000"), date(2025, 1, 1)
        )
        await session.flush()

        events = (
            await session.execute(
                select(AuditEvent).where(AuditEvent.entity_id == setting.compensation_setting_id)
            )
        ).scalars().all()
        assert [e.action for e in events] == ["created"]


class TestEffectiveLookups:
    async def test_get_effective(self, session: AsyncSession):
        ledger = CompensationLedger(session)
        await ledger.add_compensation(EMPLOYEE_1, Decimal("3000"), date(2025, 1, 1))
        await ledger.add_compensation(EMPLOYEE_1, Decimal("3500"), date(2025, 5, 16))

        assert (await ledger.get_effective(EMPLOYEE_1, date(2024, 12, 31))) is None
        assert (await ledger.get_effective(EMPLOYEE_1, date(2025, 5, 15))).base_amount == Decimal(
            "3000.00"
        )
        # effective_to is exclusive
        assert (await ledger.get_effective(EMPLOYEE_1, date(2025, 5, 16))).base_amount == Decimal(
            "3500.00"
        )

    async def test_list_effective_in_range(self, session: AsyncSession):
        ledger = CompensationLedger(session)
        await ledger.add_compensation(EMPLOYEE_1, Decimal("3000"), date(2025, 1, 1))
        await ledger.add_compensation(EMPLOYEE_1, Decimal("3500"), date(2025, 5, 16))
        await ledger.add_compensation(EMPLOYEE_2, Decimal("2000"), date(2025, 6, 1))

        in_may = await ledger.list_effective_in_range(date(2025, 5, 1), date(2025, 5, 31))

        assert [(s.employee_id, s.base_amount) for s in in_may] == [
            (EMPLOYEE_1, Decimal("3000.00")),
            (EMPLOYEE_1, Decimal("3500.00")),
        ]

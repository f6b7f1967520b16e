"""Tests for the in-process populator."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from payrun_engine.models import PayPeriod, PayRun
from payrun_engine.populators import StubPopulator, salary_source_id
from payrun_engine.services.closed_period_service import ClosedPeriodRegistry
from payrun_engine.services.compensation_ledger import CompensationLedger
from payrun_engine.services.pay_run_service import PayRunService

from .conftest import EMPLOYEE_1, EMPLOYEE_2, LOCATION_A, LOCATION_B, advance_to, service_record


async def items_of(session: AsyncSession, pay_run: PayRun) -> list[tuple]:
    details = await PayRunService(session).get_details(pay_run.pay_run_id)
    return sorted(
        (str(i.employee_id), i.compensation_type, i.amount, i.source_type) for i in details.items
    )


class TestSalaries:
    async def test_full_period(self, session: AsyncSession, draft_run: PayRun):
        assert await items_of(session, draft_run) == [
            (str(EMPLOYEE_1), "salary", Decimal("50000.00"), "compensation")
        ]

    async def test_salary_source_id_is_deterministic(self, may_period: PayPeriod):
        assert salary_source_id(may_period.pay_period_id, EMPLOYEE_1) == salary_source_id(
            may_period.pay_period_id, EMPLOYEE_1
        )
        assert salary_source_id(may_period.pay_period_id, EMPLOYEE_1) != salary_source_id(
            may_period.pay_period_id, EMPLOYEE_2
        )

    async def test_rate_change_mid_period(
        self, session: AsyncSession, may_period: PayPeriod, populator: StubPopulator
    ):
        ledger = CompensationLedger(session)
        await ledger.add_compensation(EMPLOYEE_1, Decimal("3100"), date(2025, 1, 1))
        await ledger.add_compensation(EMPLOYEE_1, Decimal("6200"), date(2025, 5, 16))

        pay_run = await PayRunService(session, populator=populator).create_pay_run(
            may_period.pay_period_id, "May Payroll"
        )

        # 15 days at 100/day, then 16 days at 200/day
        assert await items_of(session, pay_run) == [
            (str(EMPLOYEE_1), "salary", Decimal("4700.00"), "compensation")
        ]

    async def test_employee_hired_mid_period(
        self, session: AsyncSession, may_period: PayPeriod, populator: StubPopulator
    ):
        await CompensationLedger(session).add_compensation(
            EMPLOYEE_2, Decimal("3100"), date(2025, 5, 22)
        )

        pay_run = await PayRunService(session, populator=populator).create_pay_run(
            may_period.pay_period_id, "May Payroll"
        )

        assert await items_of(session, pay_run) == [
            (str(EMPLOYEE_2), "salary", Decimal("1000.00"), "compensation")
        ]

    async def test_closed_days_are_not_paid(
        self,
        session: AsyncSession,
        may_period: PayPeriod,
        salaried_employee,
        populator: StubPopulator,
    ):
        await CompensationLedger(session).add_compensation(
            EMPLOYEE_2, Decimal("50000"), date(2025, 1, 1)
        )
        await ClosedPeriodRegistry(session).create_closed_period(
            date(2025, 5, 1), date(2025, 5, 10), "Refurbishment", [LOCATION_A]
        )

        pay_run = await PayRunService(session, populator=populator).create_pay_run(
            may_period.pay_period_id, "May Payroll"
        )

        # E1 only works at A; E2 can still work at B
        assert await items_of(session, pay_run) == [
            (str(EMPLOYEE_1), "salary", Decimal("33870.97"), "compensation"),
            (str(EMPLOYEE_2), "salary", Decimal("50000.00"), "compensation"),
        ]

    async def test_location_run_only_includes_local_staff(
        self,
        session: AsyncSession,
        may_period: PayPeriod,
        salaried_employee,
        populator: StubPopulator,
    ):
        await CompensationLedger(session).add_compensation(
            EMPLOYEE_2, Decimal("3100"), date(2025, 1, 1)
        )

        pay_run = await PayRunService(session, populator=populator).create_pay_run(
            may_period.pay_period_id, "Location B", location_id=LOCATION_B
        )

        assert await items_of(session, pay_run) == [
            (str(EMPLOYEE_2), "salary", Decimal("3100.00"), "compensation")
        ]


class TestServices:
    async def test_only_completed_paid_services_in_period(
        self,
        session: AsyncSession,
        may_period: PayPeriod,
        populator: StubPopulator,
    ):
        populator.upsert_source(service_record(EMPLOYEE_1, "40"))
        populator.upsert_source(service_record(EMPLOYEE_1, "99", completed=False))
        populator.upsert_source(service_record(EMPLOYEE_1, "98", paid_for=False))
        populator.upsert_source(service_record(EMPLOYEE_1, "97", service_date=date(2025, 6, 1)))
        populator.upsert_source(service_record(EMPLOYEE_1, "5", compensation_type="tip"))

        pay_run = await PayRunService(session, populator=populator).create_pay_run(
            may_period.pay_period_id, "May Payroll"
        )

        assert await items_of(session, pay_run) == [
            (str(EMPLOYEE_1), "commission", Decimal("40.00"), "service"),
            (str(EMPLOYEE_1), "tip", Decimal("5.00"), "service"),
        ]

    async def test_services_on_closed_days_skipped(
        self, session: AsyncSession, may_period: PayPeriod, populator: StubPopulator
    ):
        await ClosedPeriodRegistry(session).create_closed_period(
            date(2025, 5, 10), date(2025, 5, 10), "Holiday", [LOCATION_A]
        )
        populator.upsert_source(service_record(EMPLOYEE_1, "40", service_date=date(2025, 5, 10)))
        populator.upsert_source(
            service_record(EMPLOYEE_1, "50", service_date=date(2025, 5, 10), location_id=LOCATION_B)
        )

        pay_run = await PayRunService(session, populator=populator).create_pay_run(
            may_period.pay_period_id, "May Payroll"
        )

        assert await items_of(session, pay_run) == [
            (str(EMPLOYEE_1), "commission", Decimal("50.00"), "service")
        ]

    async def test_location_run_only_includes_local_services(
        self, session: AsyncSession, may_period: PayPeriod, populator: StubPopulator
    ):
        populator.upsert_source(service_record(EMPLOYEE_2, "40", location_id=LOCATION_A))
        populator.upsert_source(service_record(EMPLOYEE_2, "50", location_id=LOCATION_B))

        pay_run = await PayRunService(session, populator=populator).create_pay_run(
            may_period.pay_period_id, "Location B", location_id=LOCATION_B
        )

        assert await items_of(session, pay_run) == [
            (str(EMPLOYEE_2), "commission", Decimal("50.00"), "service")
        ]


class TestSourceOwnership:
    async def test_second_regular_run_skips_owned_sources(
        self, session: AsyncSession, draft_run: PayRun, populator: StubPopulator
    ):
        second = await PayRunService(session, populator=populator).create_pay_run(
            draft_run.pay_period_id, "Duplicate"
        )

        assert await items_of(session, second) == []

    async def test_cancelled_run_releases_sources(
        self, session: AsyncSession, draft_run: PayRun, populator: StubPopulator
    ):
        service = PayRunService(session, populator=populator)
        await service.update_status(draft_run.pay_run_id, "cancelled")

        replacement = await service.create_pay_run(draft_run.pay_period_id, "May Payroll v2")

        assert await items_of(session, replacement) == [
            (str(EMPLOYEE_1), "salary", Decimal("50000.00"), "compensation")
        ]

    async def test_supplementary_run_only_picks_up_unpaid_sources(
        self, session: AsyncSession, draft_run: PayRun, populator: StubPopulator
    ):
        paid_source = uuid4()
        populator.upsert_source(service_record(EMPLOYEE_1, "40", source_id=paid_source))
        service = PayRunService(session, populator=populator)
        await service.repopulate(draft_run.pay_run_id)
        await advance_to(session, draft_run.pay_run_id, "paid")

        # A booking completed after the regular run was paid
        populator.upsert_source(service_record(EMPLOYEE_1, "25", service_date=date(2025, 5, 30)))
        supplementary = await service.create_pay_run(
            draft_run.pay_period_id, "May top-up", only_unpaid=True
        )

        assert supplementary.name == "May top-up (Supplementary)"
        assert await items_of(session, supplementary) == [
            (str(EMPLOYEE_1), "commission", Decimal("25.00"), "service")
        ]

    async def test_populate_twice_creates_no_duplicates(
        self, session: AsyncSession, draft_run: PayRun, populator: StubPopulator
    ):
        populator.upsert_source(service_record(EMPLOYEE_1, "40"))
        service = PayRunService(session, populator=populator)

        first = await service.repopulate(draft_run.pay_run_id)
        items = await items_of(session, draft_run)
        second = await service.repopulate(draft_run.pay_run_id)

        assert first.items_created == 1
        assert second.items_created == 0
        assert second.items_skipped == 2
        assert await items_of(session, draft_run) == items

"""API endpoint tests over an in-memory database."""

import logging
from collections.abc import AsyncGenerator
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payrun_engine.api.app import create_app
from payrun_engine.api.dependencies import get_db_session
from payrun_engine.populators import StubPopulator, StubReconciler

from .conftest import EMPLOYEE_1, EMPLOYEE_2, LOCATION_A, service_record


@pytest.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    populator: StubPopulator,
    reconciler: StubReconciler,
) -> AsyncGenerator[AsyncClient, None]:
    app = create_app(populator=populator, reconciler=reconciler)

    async def override_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def create_may_run(client: AsyncClient) -> dict:
    response = await client.post(
        f"/api/v1/compensation/{EMPLOYEE_1}",
        json={"base_amount": "50000", "effective_from": "2025-01-01"},
    )
    assert response.status_code == 201
    response = await client.post(
        "/api/v1/pay-periods",
        json={"name": "May 2025", "start_date": "2025-05-01", "end_date": "2025-05-31"},
    )
    assert response.status_code == 201
    response = await client.post(
        "/api/v1/pay-runs",
        json={"pay_period_id": response.json()["pay_period_id"], "name": "May Payroll"},
    )
    assert response.status_code == 201
    return response.json()


async def move_to(client: AsyncClient, pay_run_id: str, *statuses: str) -> None:
    for status in statuses:
        response = await client.post(f"/api/v1/pay-runs/{pay_run_id}/status", json={"status": status})
        assert response.status_code == 200, response.text


class TestHealth:
    async def test_health(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["database"] == "healthy"

    async def test_probes(self, client: AsyncClient):
        assert (await client.get("/ready")).json() == {"status": "ready"}
        assert (await client.get("/live")).json() == {"status": "alive"}


class TestAppFactory:
    def test_missing_adapters_fall_back_to_stubs_with_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="payrun_engine.api.app"):
            app = create_app()

        assert isinstance(app.state.populator, StubPopulator)
        assert isinstance(app.state.reconciler, StubReconciler)
        messages = [r.getMessage() for r in caplog.records]
        assert any("No populator configured" in m for m in messages)
        assert any("No reconciler configured" in m for m in messages)

    def test_explicit_adapters_are_used_quietly(
        self, caplog, populator: StubPopulator, reconciler: StubReconciler
    ):
        with caplog.at_level(logging.WARNING, logger="payrun_engine.api.app"):
            app = create_app(populator=populator, reconciler=reconciler)

        assert app.state.populator is populator
        assert app.state.reconciler is reconciler
        assert caplog.records == []


class TestPayPeriodEndpoints:
    async def test_generate_from_settings(self, client: AsyncClient):
        response = await client.put(
            "/api/v1/pay-periods/settings",
            json={"frequency": "monthly", "next_start_date": "2025-05-01", "start_day_of_month": 1},
        )
        assert response.status_code == 200

        first = (await client.post("/api/v1/pay-periods/generate")).json()
        second = (await client.post("/api/v1/pay-periods/generate")).json()

        assert (first["start_date"], first["end_date"]) == ("2025-05-01", "2025-05-31")
        assert (second["start_date"], second["end_date"]) == ("2025-06-01", "2025-06-30")
        settings = (await client.get("/api/v1/pay-periods/settings")).json()
        assert settings["next_start_date"] == "2025-07-01"

    async def test_generate_without_settings(self, client: AsyncClient):
        response = await client.post("/api/v1/pay-periods/generate")

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    async def test_overlap_is_bad_request(self, client: AsyncClient):
        body = {"name": "May", "start_date": "2025-05-01", "end_date": "2025-05-31"}
        assert (await client.post("/api/v1/pay-periods", json=body)).status_code == 201

        response = await client.post("/api/v1/pay-periods", json=body)

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    async def test_archive(self, client: AsyncClient):
        body = {"name": "May", "start_date": "2025-05-01", "end_date": "2025-05-31"}
        period = (await client.post("/api/v1/pay-periods", json=body)).json()

        response = await client.post(f"/api/v1/pay-periods/{period['pay_period_id']}/archive")

        assert response.json()["status"] == "archived"
        listed = (await client.get("/api/v1/pay-periods", params={"status": "active"})).json()
        assert listed == []


class TestPayRunEndpoints:
    async def test_scenario(self, client: AsyncClient):
        pay_run = await create_may_run(client)
        pay_run_id = pay_run["pay_run_id"]

        response = await client.post(
            f"/api/v1/pay-runs/{pay_run_id}/adjustments",
            json={
                "employee_id": str(EMPLOYEE_1),
                "compensation_type": "other",
                "amount": "2000",
                "description": "Spot bonus",
            },
        )
        assert response.status_code == 201

        summary = (await client.get(f"/api/v1/pay-runs/{pay_run_id}/summary")).json()
        assert summary == {
            "earnings": "50000.00",
            "other": "2000.00",
            "total": "52000.00",
            "paid": "0.00",
            "to_pay": "52000.00",
            "total_employees": 1,
        }

        await move_to(client, pay_run_id, "pending", "approved")
        response = await client.post(
            f"/api/v1/pay-runs/{pay_run_id}/payments", json={"employee_ids": [str(EMPLOYEE_1)]}
        )
        assert response.status_code == 200
        assert response.json()["success"] is True

        summary = (
            await client.get(f"/api/v1/pay-runs/{pay_run_id}/summary", params={"strategy": "delegated"})
        ).json()
        assert (summary["paid"], summary["to_pay"]) == ("52000.00", "0.00")
        detail = (await client.get(f"/api/v1/pay-runs/{pay_run_id}")).json()
        assert detail["status"] == "paid"
        assert all(item["is_paid"] for item in detail["items"])

    async def test_list_by_period_dates(self, client: AsyncClient):
        pay_run = await create_may_run(client)

        listed = (
            await client.get("/api/v1/pay-runs", params={"start": "2025-05-01", "end": "2025-05-31"})
        ).json()

        assert [r["pay_run_id"] for r in listed] == [pay_run["pay_run_id"]]

    async def test_skipping_to_paid_is_conflict(self, client: AsyncClient):
        pay_run = await create_may_run(client)

        response = await client.post(
            f"/api/v1/pay-runs/{pay_run['pay_run_id']}/status", json={"status": "paid"}
        )

        assert response.status_code == 409
        assert response.json()["code"] == "INVALID_TRANSITION"

    async def test_unknown_run(self, client: AsyncClient):
        response = await client.get(f"/api/v1/pay-runs/{uuid4()}")

        assert response.status_code == 404

    async def test_populator_failure_is_bad_gateway(
        self, client: AsyncClient, populator: StubPopulator
    ):
        populator.fail_with = RuntimeError("booking service down")
        body = {"name": "May", "start_date": "2025-05-01", "end_date": "2025-05-31"}
        period = (await client.post("/api/v1/pay-periods", json=body)).json()

        response = await client.post(
            "/api/v1/pay-runs", json={"pay_period_id": period["pay_period_id"], "name": "May"}
        )

        assert response.status_code == 502
        listed = (
            await client.get("/api/v1/pay-runs", params={"start": "2025-05-01", "end": "2025-05-31"})
        ).json()
        assert listed == []

    async def test_delete_run(self, client: AsyncClient):
        pay_run = await create_may_run(client)

        response = await client.delete(f"/api/v1/pay-runs/{pay_run['pay_run_id']}")

        assert response.status_code == 204
        assert (await client.get(f"/api/v1/pay-runs/{pay_run['pay_run_id']}")).status_code == 404

    async def test_employee_summaries(self, client: AsyncClient):
        pay_run = await create_may_run(client)

        summaries = (
            await client.get(f"/api/v1/pay-runs/{pay_run['pay_run_id']}/employee-summaries")
        ).json()

        assert [(s["employee_id"], s["total"]) for s in summaries] == [
            (str(EMPLOYEE_1), "50000.00")
        ]


class TestAdjustmentEndpoints:
    async def test_delete_adjustment(self, client: AsyncClient):
        pay_run = await create_may_run(client)
        item = (
            await client.post(
                f"/api/v1/pay-runs/{pay_run['pay_run_id']}/adjustments",
                json={"employee_id": str(EMPLOYEE_2), "amount": "10", "description": "Parking"},
            )
        ).json()

        response = await client.delete(f"/api/v1/adjustments/{item['pay_run_item_id']}")

        assert response.status_code == 200
        assert response.json() == {"pay_run_id": pay_run["pay_run_id"]}

    async def test_delete_populated_item_is_conflict(self, client: AsyncClient):
        pay_run = await create_may_run(client)
        detail = (await client.get(f"/api/v1/pay-runs/{pay_run['pay_run_id']}")).json()

        response = await client.delete(f"/api/v1/adjustments/{detail['items'][0]['pay_run_item_id']}")

        assert response.status_code == 409
        assert response.json()["code"] == "NOT_MANUAL_ITEM"

    async def test_adjusting_paid_run_is_conflict(self, client: AsyncClient):
        pay_run = await create_may_run(client)
        await move_to(client, pay_run["pay_run_id"], "pending", "approved", "paid")

        response = await client.post(
            f"/api/v1/pay-runs/{pay_run['pay_run_id']}/adjustments",
            json={"employee_id": str(EMPLOYEE_1), "amount": "10", "description": "Late"},
        )

        assert response.status_code == 409
        assert response.json()["code"] == "IMMUTABLE_RUN"


class TestPaymentEndpoints:
    async def test_empty_selection(self, client: AsyncClient):
        pay_run = await create_may_run(client)
        await move_to(client, pay_run["pay_run_id"], "pending", "approved")

        response = await client.post(
            f"/api/v1/pay-runs/{pay_run['pay_run_id']}/payments", json={"employee_ids": []}
        )

        assert response.status_code == 400
        assert response.json()["code"] == "EMPTY_SELECTION"

    async def test_failed_reconciliation_and_retry(
        self, client: AsyncClient, populator: StubPopulator, reconciler: StubReconciler
    ):
        populator.upsert_source(service_record(EMPLOYEE_1, "40", location_id=LOCATION_A))
        pay_run = await create_may_run(client)
        pay_run_id = pay_run["pay_run_id"]
        await move_to(client, pay_run_id, "pending", "approved")
        reconciler.fail_with = ConnectionError("bookings unavailable")

        paid = (
            await client.post(
                f"/api/v1/pay-runs/{pay_run_id}/payments", json={"employee_ids": [str(EMPLOYEE_1)]}
            )
        ).json()
        assert (paid["success"], paid["reconciliation_status"]) == (False, "failed")
        assert (await client.get(f"/api/v1/pay-runs/{pay_run_id}")).json()["status"] == "paid"

        reconciler.fail_with = None
        retried = (await client.post(f"/api/v1/pay-runs/{pay_run_id}/reconciliation/retry")).json()
        assert retried["reconciliation_status"] == "reconciled"

    async def test_recalculate_commissions(self, client: AsyncClient, populator: StubPopulator):
        source = service_record(EMPLOYEE_1, "40", location_id=LOCATION_A)
        populator.upsert_source(source)
        pay_run = await create_may_run(client)
        populator.upsert_source(service_record(EMPLOYEE_1, "45", source_id=source.source_id))

        response = await client.post(
            f"/api/v1/pay-runs/{pay_run['pay_run_id']}/recalculate-commissions"
        )

        assert response.status_code == 200
        assert response.json()["items_created"] == 1
        summary = (await client.get(f"/api/v1/pay-runs/{pay_run['pay_run_id']}/summary")).json()
        assert summary["earnings"] == "50045.00"


class TestCompensationEndpoints:
    async def test_history(self, client: AsyncClient):
        for amount, start in (("3000", "2025-01-01"), ("3500", "2025-04-01")):
            response = await client.post(
                f"/api/v1/compensation/{EMPLOYEE_1}",
                json={"base_amount": amount, "effective_from": start},
            )
            assert response.status_code == 201

        history = (await client.get(f"/api/v1/compensation/{EMPLOYEE_1}")).json()

        assert [(h["base_amount"], h["effective_to"]) for h in history] == [
            ("3500.00", None),
            ("3000.00", "2025-04-01"),
        ]

    async def test_backdated_change_rejected(self, client: AsyncClient):
        body = {"base_amount": "3000", "effective_from": "2025-04-01"}
        await client.post(f"/api/v1/compensation/{EMPLOYEE_1}", json=body)

        response = await client.post(
            f"/api/v1/compensation/{EMPLOYEE_1}",
            json={"base_amount": "2000", "effective_from": "2025-03-01"},
        )

        assert response.status_code == 400


class TestClosedPeriodEndpoints:
    async def test_crud(self, client: AsyncClient):
        created = (
            await client.post(
                "/api/v1/closed-periods",
                json={
                    "start_date": "2025-12-25",
                    "end_date": "2025-12-26",
                    "description": "Christmas",
                    "location_ids": [str(LOCATION_A)],
                },
            )
        ).json()
        closed_period_id = created["closed_period_id"]
        assert created["location_ids"] == [str(LOCATION_A)]

        updated = (
            await client.put(
                f"/api/v1/closed-periods/{closed_period_id}",
                json={
                    "start_date": "2025-12-24",
                    "end_date": "2025-12-26",
                    "description": "Christmas",
                    "location_ids": [str(LOCATION_A)],
                },
            )
        ).json()
        assert updated["start_date"] == "2025-12-24"

        listed = (
            await client.get("/api/v1/closed-periods", params={"location_id": str(LOCATION_A)})
        ).json()
        assert [c["closed_period_id"] for c in listed] == [closed_period_id]

        response = await client.delete(f"/api/v1/closed-periods/{closed_period_id}")
        assert response.status_code == 204
        assert (await client.get("/api/v1/closed-periods")).json() == []

    async def test_no_locations_is_bad_request(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/closed-periods",
            json={"start_date": "2025-12-25", "end_date": "2025-12-25", "location_ids": []},
        )

        assert response.status_code == 400

"""Pay run API endpoints."""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from payrun_engine.api.dependencies import DbSession, Populator, Reconciler
from payrun_engine.api.schemas import (
    AdjustmentCreate,
    EmployeeSummaryResponse,
    ErrorResponse,
    PaymentRequest,
    PaymentResponse,
    PayRunCreate,
    PayRunDetailResponse,
    PayRunItemResponse,
    PayRunResponse,
    PayRunSummaryResponse,
    PopulationResponse,
    StatusUpdateRequest,
)
from payrun_engine.calculators.types import AdjustmentRequest
from payrun_engine.services.adjustment_service import AdjustmentService
from payrun_engine.services.pay_run_service import PayRunService
from payrun_engine.services.payment_service import PaymentProcessor
from payrun_engine.services.summary_service import SummaryService

router = APIRouter(prefix="/pay-runs", tags=["pay-runs"])


# ============================================================================
# Pay Run CRUD
# ============================================================================


@router.post(
    "",
    response_model=PayRunResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def create_pay_run(
    db: DbSession,
    populator: Populator,
    payload: PayRunCreate,
) -> PayRunResponse:
    """Create a draft pay run and populate its items."""
    service = PayRunService(db, populator=populator)
    pay_run = await service.create_pay_run(
        pay_period_id=payload.pay_period_id,
        name=payload.name,
        location_id=payload.location_id,
        only_unpaid=payload.only_unpaid,
    )
    await db.commit()
    return PayRunResponse.model_validate(pay_run)


@router.get("", response_model=list[PayRunResponse])
async def list_pay_runs(
    db: DbSession,
    start: Annotated[date, Query()],
    end: Annotated[date, Query()],
    location_id: UUID | None = None,
) -> list[PayRunResponse]:
    """List pay runs of the pay period with exactly these dates."""
    pay_runs = await PayRunService(db).list_by_period(start, end, location_id)
    return [PayRunResponse.model_validate(pr) for pr in pay_runs]


@router.get(
    "/{pay_run_id}",
    response_model=PayRunDetailResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_pay_run(
    db: DbSession,
    pay_run_id: Annotated[UUID, Path()],
    employee_id: UUID | None = None,
) -> PayRunDetailResponse:
    """Get a pay run with its period and items, optionally for one employee."""
    service = PayRunService(db)
    pay_run = await service.get_details(pay_run_id)
    response = PayRunDetailResponse.model_validate(pay_run)
    if employee_id is not None:
        items = await service.get_employee_items(pay_run_id, employee_id)
        response.items = [PayRunItemResponse.model_validate(i) for i in items]
    return response


@router.delete(
    "/{pay_run_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def delete_pay_run(
    db: DbSession,
    pay_run_id: Annotated[UUID, Path()],
) -> None:
    """Delete a pay run that has not been paid."""
    await PayRunService(db).delete_pay_run(pay_run_id)
    await db.commit()


# ============================================================================
# Pay Run State Transitions
# ============================================================================


@router.post(
    "/{pay_run_id}/status",
    response_model=PayRunResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def update_pay_run_status(
    db: DbSession,
    pay_run_id: Annotated[UUID, Path()],
    payload: StatusUpdateRequest,
) -> PayRunResponse:
    """Move a pay run to a new status."""
    pay_run = await PayRunService(db).update_status(pay_run_id, payload.status)
    await db.commit()
    return PayRunResponse.model_validate(pay_run)


# ============================================================================
# Summaries
# ============================================================================


@router.get(
    "/{pay_run_id}/summary",
    response_model=PayRunSummaryResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_pay_run_summary(
    db: DbSession,
    pay_run_id: Annotated[UUID, Path()],
    strategy: str | None = None,
) -> PayRunSummaryResponse:
    """Get earnings, other, total, paid and to-pay totals for a pay run."""
    summary = await SummaryService(db).get_pay_run_summary(pay_run_id, strategy)
    return PayRunSummaryResponse.model_validate(summary)


@router.get(
    "/{pay_run_id}/employee-summaries",
    response_model=list[EmployeeSummaryResponse],
    responses={404: {"model": ErrorResponse}},
)
async def get_employee_summaries(
    db: DbSession,
    pay_run_id: Annotated[UUID, Path()],
    strategy: str | None = None,
) -> list[EmployeeSummaryResponse]:
    """Get per-employee totals for a pay run."""
    summaries = await SummaryService(db).get_employee_pay_run_summaries(pay_run_id, strategy)
    return [EmployeeSummaryResponse.model_validate(s) for s in summaries]


# ============================================================================
# Adjustments
# ============================================================================


@router.post(
    "/{pay_run_id}/adjustments",
    response_model=PayRunItemResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def add_adjustment(
    db: DbSession,
    pay_run_id: Annotated[UUID, Path()],
    payload: AdjustmentCreate,
) -> PayRunItemResponse:
    """Add a manual adjustment to a pay run."""
    item = await AdjustmentService(db).add_adjustment(
        pay_run_id,
        AdjustmentRequest(
            employee_id=payload.employee_id,
            compensation_type=payload.compensation_type,
            amount=payload.amount,
            description=payload.description,
            is_addition=payload.is_addition,
        ),
    )
    await db.commit()
    return PayRunItemResponse.model_validate(item)


# ============================================================================
# Payments
# ============================================================================


@router.post(
    "/{pay_run_id}/payments",
    response_model=PaymentResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def process_payments(
    db: DbSession,
    reconciler: Reconciler,
    pay_run_id: Annotated[UUID, Path()],
    payload: PaymentRequest,
) -> PaymentResponse:
    """Pay an approved run for the selected employees."""
    result = await PaymentProcessor(db, reconciler=reconciler).process_payments(
        pay_run_id, payload.employee_ids
    )
    await db.commit()
    return PaymentResponse.model_validate(result)


@router.post(
    "/{pay_run_id}/reconciliation/retry",
    response_model=PaymentResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def retry_reconciliation(
    db: DbSession,
    reconciler: Reconciler,
    pay_run_id: Annotated[UUID, Path()],
) -> PaymentResponse:
    """Retry marking source records paid after a failed reconciliation."""
    result = await PaymentProcessor(db, reconciler=reconciler).retry_reconciliation(pay_run_id)
    await db.commit()
    return PaymentResponse.model_validate(result)


@router.post(
    "/{pay_run_id}/recalculate-commissions",
    response_model=PopulationResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def recalculate_commissions(
    db: DbSession,
    populator: Populator,
    pay_run_id: Annotated[UUID, Path()],
) -> PopulationResponse:
    """Replace unpaid commission items with ones derived from current source data."""
    result = await PaymentProcessor(db, populator=populator).recalculate_commissions(pay_run_id)
    await db.commit()
    return PopulationResponse(
        items_created=result.items_created,
        items_skipped=result.items_skipped,
        employees=len(result.employees),
    )

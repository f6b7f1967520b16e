"""Pay period API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, HTTPException, Path, Query, status

from payrun_engine.api.dependencies import DbSession
from payrun_engine.api.schemas import (
    ErrorResponse,
    PayPeriodCreate,
    PayPeriodResponse,
    PayPeriodSettingsResponse,
    PayPeriodSettingsUpdate,
)
from payrun_engine.services.pay_period_service import PayPeriodScheduler

router = APIRouter(prefix="/pay-periods", tags=["pay-periods"])


@router.get("", response_model=list[PayPeriodResponse])
async def list_pay_periods(
    db: DbSession,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> list[PayPeriodResponse]:
    """List pay periods, newest first."""
    periods = await PayPeriodScheduler(db).list_pay_periods(status_filter)
    return [PayPeriodResponse.model_validate(p) for p in periods]


@router.post(
    "",
    response_model=PayPeriodResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
async def create_pay_period(db: DbSession, payload: PayPeriodCreate) -> PayPeriodResponse:
    """Create a pay period with explicit dates."""
    period = await PayPeriodScheduler(db).create_pay_period(
        payload.start_date, payload.end_date, payload.name
    )
    await db.commit()
    return PayPeriodResponse.model_validate(period)


@router.post(
    "/generate",
    response_model=PayPeriodResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def generate_pay_period(db: DbSession) -> PayPeriodResponse:
    """Generate the next pay period from the schedule settings."""
    period = await PayPeriodScheduler(db).generate_next_pay_period()
    await db.commit()
    return PayPeriodResponse.model_validate(period)


@router.get(
    "/settings",
    response_model=PayPeriodSettingsResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_pay_period_settings(db: DbSession) -> PayPeriodSettingsResponse:
    """Get the pay period schedule."""
    settings = await PayPeriodScheduler(db).get_settings()
    if settings is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Pay period settings have not been configured",
        )
    return PayPeriodSettingsResponse.model_validate(settings)


@router.put(
    "/settings",
    response_model=PayPeriodSettingsResponse,
    responses={400: {"model": ErrorResponse}},
)
async def update_pay_period_settings(
    db: DbSession, payload: PayPeriodSettingsUpdate
) -> PayPeriodSettingsResponse:
    """Create or replace the pay period schedule."""
    settings = await PayPeriodScheduler(db).update_settings(
        frequency=payload.frequency,
        next_start_date=payload.next_start_date,
        start_day_of_month=payload.start_day_of_month,
        custom_days=payload.custom_days,
    )
    await db.commit()
    return PayPeriodSettingsResponse.model_validate(settings)


@router.post(
    "/{pay_period_id}/archive",
    response_model=PayPeriodResponse,
    responses={404: {"model": ErrorResponse}},
)
async def archive_pay_period(
    db: DbSession,
    pay_period_id: Annotated[UUID, Path()],
) -> PayPeriodResponse:
    """Archive a pay period."""
    period = await PayPeriodScheduler(db).archive_pay_period(pay_period_id)
    await db.commit()
    return PayPeriodResponse.model_validate(period)

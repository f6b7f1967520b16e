"""Closed period API endpoints."""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, status

from payrun_engine.api.dependencies import DbSession
from payrun_engine.api.schemas import ClosedPeriodCreate, ClosedPeriodResponse, ErrorResponse
from payrun_engine.models import ClosedPeriod
from payrun_engine.services.closed_period_service import ClosedPeriodRegistry

router = APIRouter(prefix="/closed-periods", tags=["closed-periods"])


def _to_response(closed: ClosedPeriod) -> ClosedPeriodResponse:
    return ClosedPeriodResponse(
        closed_period_id=closed.closed_period_id,
        start_date=closed.start_date,
        end_date=closed.end_date,
        description=closed.description,
        location_ids=sorted(closed.location_ids, key=str),
    )


@router.get("", response_model=list[ClosedPeriodResponse])
async def list_closed_periods(
    db: DbSession,
    location_id: UUID | None = None,
    start: date | None = None,
    end: date | None = None,
) -> list[ClosedPeriodResponse]:
    """List closed periods, optionally filtered by location and date range."""
    closed = await ClosedPeriodRegistry(db).list_closed_periods(location_id, start, end)
    return [_to_response(c) for c in closed]


@router.post(
    "",
    response_model=ClosedPeriodResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
async def create_closed_period(
    db: DbSession,
    payload: ClosedPeriodCreate,
) -> ClosedPeriodResponse:
    """Register days on which the given locations are closed."""
    closed = await ClosedPeriodRegistry(db).create_closed_period(
        payload.start_date, payload.end_date, payload.description or "", payload.location_ids
    )
    await db.commit()
    return _to_response(closed)


@router.put(
    "/{closed_period_id}",
    response_model=ClosedPeriodResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def update_closed_period(
    db: DbSession,
    closed_period_id: Annotated[UUID, Path()],
    payload: ClosedPeriodCreate,
) -> ClosedPeriodResponse:
    """Replace a closed period's dates, description and locations."""
    closed = await ClosedPeriodRegistry(db).update_closed_period(
        closed_period_id,
        payload.start_date,
        payload.end_date,
        payload.description or "",
        payload.location_ids,
    )
    await db.commit()
    return _to_response(closed)


@router.delete(
    "/{closed_period_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}},
)
async def delete_closed_period(
    db: DbSession,
    closed_period_id: Annotated[UUID, Path()],
) -> None:
    """Delete a closed period."""
    await ClosedPeriodRegistry(db).delete_closed_period(closed_period_id)
    await db.commit()

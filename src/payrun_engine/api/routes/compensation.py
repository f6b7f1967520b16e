"""Compensation ledger API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, status

from payrun_engine.api.dependencies import DbSession
from payrun_engine.api.schemas import CompensationCreate, CompensationResponse, ErrorResponse
from payrun_engine.services.compensation_ledger import CompensationLedger

router = APIRouter(prefix="/compensation", tags=["compensation"])


@router.get("/{employee_id}", response_model=list[CompensationResponse])
async def get_compensation_history(
    db: DbSession,
    employee_id: Annotated[UUID, Path()],
) -> list[CompensationResponse]:
    """Get an employee's compensation history, newest first."""
    history = await CompensationLedger(db).get_history(employee_id)
    return [CompensationResponse.model_validate(c) for c in history]


@router.post(
    "/{employee_id}",
    response_model=CompensationResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
async def add_compensation(
    db: DbSession,
    employee_id: Annotated[UUID, Path()],
    payload: CompensationCreate,
) -> CompensationResponse:
    """Record a new base rate, closing the current one."""
    setting = await CompensationLedger(db).add_compensation(
        employee_id, payload.base_amount, payload.effective_from
    )
    await db.commit()
    return CompensationResponse.model_validate(setting)

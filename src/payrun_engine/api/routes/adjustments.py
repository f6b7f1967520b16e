"""Adjustment API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path

from payrun_engine.api.dependencies import DbSession
from payrun_engine.api.schemas import AdjustmentDeleteResponse, ErrorResponse
from payrun_engine.services.adjustment_service import AdjustmentService

router = APIRouter(prefix="/adjustments", tags=["adjustments"])


@router.delete(
    "/{item_id}",
    response_model=AdjustmentDeleteResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def delete_adjustment(
    db: DbSession,
    item_id: Annotated[UUID, Path()],
) -> AdjustmentDeleteResponse:
    """Delete a manual adjustment. Populated items cannot be deleted here."""
    pay_run_id = await AdjustmentService(db).delete_adjustment(item_id)
    await db.commit()
    return AdjustmentDeleteResponse(pay_run_id=pay_run_id)

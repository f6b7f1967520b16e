"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Pay Period schemas
# ============================================================================


class PayPeriodCreate(BaseModel):
    """Schema for creating a pay period by hand."""

    name: str = Field(min_length=1)
    start_date: date
    end_date: date


class PayPeriodResponse(BaseModel):
    """Schema for pay period response."""

    model_config = ConfigDict(from_attributes=True)

    pay_period_id: UUID
    name: str
    start_date: date
    end_date: date
    status: str
    created_at: datetime


class PayPeriodSettingsUpdate(BaseModel):
    """Schema for updating the pay period schedule."""

    frequency: Literal["monthly", "custom"]
    next_start_date: date
    start_day_of_month: int | None = Field(default=None, ge=1, le=31)
    custom_days: int | None = Field(default=None, ge=2)


class PayPeriodSettingsResponse(BaseModel):
    """Schema for pay period schedule response."""

    model_config = ConfigDict(from_attributes=True)

    frequency: str
    start_day_of_month: int | None = None
    custom_days: int | None = None
    next_start_date: date
    updated_at: datetime


# ============================================================================
# Pay Run schemas
# ============================================================================


class PayRunCreate(BaseModel):
    """Schema for creating a new pay run."""

    pay_period_id: UUID
    name: str = Field(min_length=1)
    location_id: UUID | None = None
    only_unpaid: bool = False


class PayRunResponse(BaseModel):
    """Schema for pay run response."""

    model_config = ConfigDict(from_attributes=True)

    pay_run_id: UUID
    name: str
    pay_period_id: UUID
    location_id: UUID | None = None
    status: str
    is_supplementary: bool
    paid_date: datetime | None = None
    reconciliation_status: str
    created_at: datetime


class PayRunItemResponse(BaseModel):
    """Schema for pay run item response."""

    model_config = ConfigDict(from_attributes=True)

    pay_run_item_id: UUID
    pay_run_id: UUID
    employee_id: UUID
    compensation_type: str
    amount: Decimal
    description: str | None = None
    source_type: str
    source_id: UUID | None = None
    is_paid: bool
    created_at: datetime


class PayRunDetailResponse(PayRunResponse):
    """Schema for a pay run with its period and items."""

    pay_period: PayPeriodResponse
    items: list[PayRunItemResponse]


class StatusUpdateRequest(BaseModel):
    """Schema for a status transition request."""

    status: str


# ============================================================================
# Summary schemas
# ============================================================================


class PayRunSummaryResponse(BaseModel):
    """Schema for pay run totals."""

    model_config = ConfigDict(from_attributes=True)

    earnings: Decimal
    other: Decimal
    total: Decimal
    paid: Decimal
    to_pay: Decimal
    total_employees: int


class EmployeeSummaryResponse(BaseModel):
    """Schema for one employee's totals within a pay run."""

    model_config = ConfigDict(from_attributes=True)

    employee_id: UUID
    earnings: Decimal
    other: Decimal
    total: Decimal
    paid: Decimal
    to_pay: Decimal
    item_count: int


# ============================================================================
# Adjustment schemas
# ============================================================================


class AdjustmentCreate(BaseModel):
    """Schema for a manual adjustment."""

    employee_id: UUID
    compensation_type: str = "adjustment"
    amount: Decimal
    description: str = Field(min_length=1)
    is_addition: bool = True


class AdjustmentDeleteResponse(BaseModel):
    """Schema for adjustment deletion response."""

    pay_run_id: UUID


# ============================================================================
# Payment schemas
# ============================================================================


class PaymentRequest(BaseModel):
    """Schema for paying a run."""

    employee_ids: list[UUID]


class PaymentResponse(BaseModel):
    """Schema for payment and reconciliation results."""

    model_config = ConfigDict(from_attributes=True)

    success: bool
    pay_run_id: UUID
    items_paid: int
    reconciliation_status: str
    errors: list[str] = Field(default_factory=list)


class PopulationResponse(BaseModel):
    """Schema for populator results."""

    items_created: int
    items_skipped: int
    employees: int


# ============================================================================
# Compensation schemas
# ============================================================================


class CompensationCreate(BaseModel):
    """Schema for a new compensation rate."""

    base_amount: Decimal = Field(ge=0)
    effective_from: date


class CompensationResponse(BaseModel):
    """Schema for a compensation ledger row."""

    model_config = ConfigDict(from_attributes=True)

    compensation_setting_id: UUID
    employee_id: UUID
    base_amount: Decimal
    effective_from: date
    effective_to: date | None = None


# ============================================================================
# Closed Period schemas
# ============================================================================


class ClosedPeriodCreate(BaseModel):
    """Schema for creating or replacing a closed period."""

    start_date: date
    end_date: date
    description: str | None = None
    location_ids: list[UUID]


class ClosedPeriodResponse(BaseModel):
    """Schema for closed period response."""

    model_config = ConfigDict(from_attributes=True)

    closed_period_id: UUID
    start_date: date
    end_date: date
    description: str | None = None
    location_ids: list[UUID]


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None

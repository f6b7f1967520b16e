"""Pay period, pay run, and pay run item models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payrun_engine.models.base import Base, TimestampMixin, utcnow


# ===== Pay Periods =====


class PayPeriod(Base, TimestampMixin):
    """Named date range payroll is computed over."""

    __tablename__ = "pay_period"

    pay_period_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'archived')",
            name="pay_period_status_check",
        ),
        CheckConstraint("start_date < end_date", name="pay_period_dates_check"),
        Index("pay_period_dates_idx", "start_date", "end_date"),
    )

    # Relationships
    pay_runs: Mapped[list[PayRun]] = relationship(back_populates="pay_period")

    def overlaps(self, start: date, end: date) -> bool:
        """Check if [start, end] intersects this period (inclusive bounds)."""
        return self.start_date <= end and self.end_date >= start

    @property
    def length_days(self) -> int:
        return (self.end_date - self.start_date).days + 1


class PayPeriodSettings(Base):
    """Single-row cadence settings for generating the next pay period."""

    __tablename__ = "pay_period_settings"

    pay_period_settings_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    frequency: Mapped[str] = mapped_column(String, nullable=False)
    start_day_of_month: Mapped[int | None] = mapped_column(Integer, nullable=True)
    custom_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    next_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint(
            "frequency IN ('monthly', 'custom')",
            name="pay_period_settings_frequency_check",
        ),
        CheckConstraint(
            "(frequency = 'monthly' AND start_day_of_month BETWEEN 1 AND 31) "
            "OR (frequency = 'custom' AND custom_days >= 2)",
            name="pay_period_settings_cadence_check",
        ),
    )


# ===== Pay Runs =====


class PayRun(Base, TimestampMixin):
    """One batch of payroll computation and payment for a pay period."""

    __tablename__ = "pay_run"

    pay_run_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    pay_period_id: Mapped[UUID] = mapped_column(
        ForeignKey("pay_period.pay_period_id"),
        nullable=False,
        index=True,
    )
    location_id: Mapped[UUID | None] = mapped_column(nullable=True, index=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")
    is_supplementary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    paid_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reconciliation_status: Mapped[str] = mapped_column(
        String, nullable=False, default="not_required"
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'pending', 'approved', 'paid', 'cancelled')",
            name="pay_run_status_check",
        ),
        CheckConstraint(
            "reconciliation_status IN ('not_required', 'pending', 'reconciled', 'failed')",
            name="pay_run_reconciliation_status_check",
        ),
        CheckConstraint(
            "status != 'paid' OR paid_date IS NOT NULL",
            name="pay_run_paid_date_check",
        ),
    )

    # Relationships
    pay_period: Mapped[PayPeriod] = relationship(back_populates="pay_runs")
    items: Mapped[list[PayRunItem]] = relationship(
        back_populates="pay_run",
        order_by="PayRunItem.created_at",
    )


class PayRunItem(Base, TimestampMixin):
    """One signed monetary line attributed to one employee within a pay run.

    `amount` sign encodes addition (positive) vs. deduction (negative).
    Only `source_type = 'manual'` items are owned by the adjustment manager;
    every other source type belongs to the populator.
    """

    __tablename__ = "pay_run_item"

    pay_run_item_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    pay_run_id: Mapped[UUID] = mapped_column(
        ForeignKey("pay_run.pay_run_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    employee_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    compensation_type: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    source_type: Mapped[str] = mapped_column(String, nullable=False)
    source_id: Mapped[UUID | None] = mapped_column(nullable=True, index=True)
    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        CheckConstraint(
            "compensation_type IN ('salary', 'commission', 'tip', 'adjustment')",
            name="pay_run_item_compensation_type_check",
        ),
        # One populated item per source within a run
        Index(
            "pay_run_item_source_unique",
            "pay_run_id",
            "source_type",
            "source_id",
            "employee_id",
            unique=True,
            postgresql_where=text("source_id IS NOT NULL"),
            sqlite_where=text("source_id IS NOT NULL"),
        ),
    )

    # Relationships
    pay_run: Mapped[PayRun] = relationship(back_populates="items")

    @property
    def is_manual(self) -> bool:
        return self.source_type == "manual"

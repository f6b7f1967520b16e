"""Employee compensation history."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Date, Index, Numeric, text
from sqlalchemy.orm import Mapped, mapped_column

from payrun_engine.models.base import Base, TimestampMixin


class CompensationSetting(Base, TimestampMixin):
    """Effective-dated base pay for an employee.

    Rows are append-only. `effective_to` is exclusive and equals the
    `effective_from` of the row that superseded this one; the open row
    (`effective_to IS NULL`) is the employee's current rate.
    """

    __tablename__ = "compensation_setting"

    compensation_setting_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    base_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    effective_to: Mapped[date | None] = mapped_column(Date, nullable=True)

    __table_args__ = (
        CheckConstraint("base_amount >= 0", name="compensation_amount_check"),
        CheckConstraint(
            "effective_to IS NULL OR effective_to > effective_from",
            name="compensation_dates_check",
        ),
        Index(
            "compensation_one_open_per_employee",
            "employee_id",
            unique=True,
            postgresql_where=text("effective_to IS NULL"),
            sqlite_where=text("effective_to IS NULL"),
        ),
    )

    def is_active_on(self, as_of_date: date) -> bool:
        """Check if this setting is effective on a given date."""
        if as_of_date < self.effective_from:
            return False
        if self.effective_to is not None and as_of_date >= self.effective_to:
            return False
        return True

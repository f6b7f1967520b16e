"""Closed (blackout) periods per location."""

from __future__ import annotations

from datetime import date
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Date, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payrun_engine.models.base import Base, TimestampMixin


class ClosedPeriod(Base, TimestampMixin):
    """Date range (inclusive) during which the listed locations are closed."""

    __tablename__ = "closed_period"

    closed_period_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(String, nullable=False, default="")

    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="closed_period_dates_check"),
    )

    # Relationships
    locations: Mapped[list[ClosedPeriodLocation]] = relationship(
        back_populates="closed_period",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def location_ids(self) -> set[UUID]:
        return {loc.location_id for loc in self.locations}

    def covers(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


class ClosedPeriodLocation(Base):
    """Association of a closed period with one location."""

    __tablename__ = "closed_period_location"

    closed_period_id: Mapped[UUID] = mapped_column(
        ForeignKey("closed_period.closed_period_id", ondelete="CASCADE"),
        primary_key=True,
    )
    location_id: Mapped[UUID] = mapped_column(primary_key=True)

    # Relationships
    closed_period: Mapped[ClosedPeriod] = relationship(back_populates="locations")

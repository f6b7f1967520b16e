"""ORM models for the pay-run engine."""

from payrun_engine.models.audit import AuditEvent
from payrun_engine.models.base import Base, TimestampMixin
from payrun_engine.models.closed_period import ClosedPeriod, ClosedPeriodLocation
from payrun_engine.models.compensation import CompensationSetting
from payrun_engine.models.payroll import PayPeriod, PayPeriodSettings, PayRun, PayRunItem

__all__ = [
    "AuditEvent",
    "Base",
    "TimestampMixin",
    "ClosedPeriod",
    "ClosedPeriodLocation",
    "CompensationSetting",
    "PayPeriod",
    "PayPeriodSettings",
    "PayRun",
    "PayRunItem",
]

"""Pay-run engine services."""

from payrun_engine.services.adjustment_service import AdjustmentService
from payrun_engine.services.audit_service import AuditService
from payrun_engine.services.closed_period_service import ClosedPeriodRegistry
from payrun_engine.services.compensation_ledger import CompensationLedger
from payrun_engine.services.locking_service import LockingService
from payrun_engine.services.pay_period_service import PayPeriodScheduler
from payrun_engine.services.pay_run_service import PayRunService
from payrun_engine.services.payment_service import PaymentProcessor, PaymentResult
from payrun_engine.services.state_machine import (
    InvalidTransitionError,
    PayRunStateMachine,
    PayRunStatus,
    ReconciliationStatus,
)
from payrun_engine.services.summary_service import SummaryService

__all__ = [
    "AdjustmentService",
    "AuditService",
    "ClosedPeriodRegistry",
    "CompensationLedger",
    "InvalidTransitionError",
    "LockingService",
    "PayPeriodScheduler",
    "PayRunService",
    "PayRunStateMachine",
    "PayRunStatus",
    "PaymentProcessor",
    "PaymentResult",
    "ReconciliationStatus",
    "SummaryService",
]

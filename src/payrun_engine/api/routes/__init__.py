"""API routes."""

from payrun_engine.api.routes.adjustments import router as adjustments_router
from payrun_engine.api.routes.closed_periods import router as closed_periods_router
from payrun_engine.api.routes.compensation import router as compensation_router
from payrun_engine.api.routes.health import router as health_router
from payrun_engine.api.routes.pay_periods import router as pay_periods_router
from payrun_engine.api.routes.pay_runs import router as pay_runs_router

__all__ = [
    "adjustments_router",
    "closed_periods_router",
    "compensation_router",
    "health_router",
    "pay_periods_router",
    "pay_runs_router",
]

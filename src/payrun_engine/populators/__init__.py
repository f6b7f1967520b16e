"""Pay run item population and source reconciliation adapters."""

from payrun_engine.populators.base import PayRunItemPopulator, SourceReconciler
from payrun_engine.populators.stub import StubPopulator, StubReconciler, salary_source_id

__all__ = [
    "PayRunItemPopulator",
    "SourceReconciler",
    "StubPopulator",
    "StubReconciler",
    "salary_source_id",
]

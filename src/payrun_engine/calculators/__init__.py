"""Pay run calculations."""

from payrun_engine.calculators.line_builder import LineItemBuilder
from payrun_engine.calculators.summary import SummaryCalculator

__all__ = [
    "LineItemBuilder",
    "SummaryCalculator",
]

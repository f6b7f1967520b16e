"""Helpers for building pay run item values with consistent rounding and signs."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from payrun_engine.calculators.types import CompensationType


class LineItemBuilder:
    """Builds pay run item amounts and types.

    Sign conventions:
    - salary, commission, tip: positive
    - adjustment: positive for additions, negative for deductions

    Rounding:
    - Persisted amounts are quantized to cents (half-up)
    - Pro-ration is computed at full Decimal precision and rounded once
    """

    OUTPUT_PRECISION = Decimal("0.01")

    # UI labels accepted in addition to the stored values
    COMPENSATION_TYPE_ALIASES: dict[str, str] = {
        "wages": CompensationType.SALARY.value,
        "tips": CompensationType.TIP.value,
        "other": CompensationType.ADJUSTMENT.value,
    }

    @staticmethod
    def round_to_cents(amount: Decimal) -> Decimal:
        """Round amount to 2 decimal places (cents)."""
        return amount.quantize(LineItemBuilder.OUTPUT_PRECISION, rounding=ROUND_HALF_UP)

    @staticmethod
    def signed_amount(amount: Decimal, is_addition: bool) -> Decimal:
        """Return +|amount| for additions and -|amount| for deductions."""
        magnitude = LineItemBuilder.round_to_cents(abs(Decimal(amount)))
        return magnitude if is_addition else -magnitude

    @classmethod
    def normalize_compensation_type(cls, value: str) -> str:
        """Map a UI or stored compensation type to its stored value.

        Unknown values are stored as 'adjustment'.
        """
        key = (value or "").strip().lower()
        if key in {t.value for t in CompensationType}:
            return key
        return cls.COMPENSATION_TYPE_ALIASES.get(key, CompensationType.ADJUSTMENT.value)

    @staticmethod
    def prorate(base_amount: Decimal, payable_days: int, period_days: int) -> Decimal:
        """Pro-rate a per-period amount over the payable days of the period."""
        if period_days <= 0:
            raise ValueError("period_days must be positive")
        return LineItemBuilder.round_to_cents(
            Decimal(base_amount) * Decimal(payable_days) / Decimal(period_days)
        )

"""Tunable thresholds for the receipt text parser and reconciliation.

These values were fitted to a small set of restaurant receipts. They are kept
together so deployments can override them from configuration (see
``splitbill.runtime.settings``) instead of editing parser code.
"""

from dataclasses import dataclass, fields, replace
from decimal import Decimal
from typing import Any


@dataclass(frozen=True)
class ParserThresholds:
    # Reconciliation: tolerance = max(floor, net_total * ratio)
    reconciliation_floor: Decimal = Decimal("2")
    reconciliation_ratio: Decimal = Decimal("0.05")

    # Charge magnitude correction: divide by 10 while |amount| > limit_ratio * |Total Amount|
    magnitude_limit_ratio: Decimal = Decimal("1.2")
    magnitude_max_steps: int = 5

    # Tax line correction: override OCR value when it deviates by more than max(floor, expected * ratio)
    tax_tolerance_floor: Decimal = Decimal("0.25")
    tax_tolerance_ratio: Decimal = Decimal("0.15")

    # Item quantity plausibility
    max_quantity: int = 20
    preferred_max_quantity: int = 10

    # Numeric deduction
    duplicate_epsilon: Decimal = Decimal("0.01")
    product_tolerance_ratio: Decimal = Decimal("0.02")

    # Lines ending with an integer at least this large (no decimal point) are ids/pin codes
    artifact_min_integer: Decimal = Decimal("10000")

    # Wrapped description lines shorter than this are merged with the next priced line
    wrap_merge_max_length: int = 40

    def with_overrides(self, overrides: dict[str, Any]) -> "ParserThresholds":
        """Return a copy with values from a config table; unknown keys are rejected."""
        known = {f.name: f for f in fields(self)}
        unknown = sorted(set(overrides) - set(known))
        if unknown:
            raise ValueError(f"Unknown parser threshold(s): {', '.join(unknown)}")
        converted: dict[str, Any] = {}
        for key, value in overrides.items():
            current = getattr(self, key)
            if isinstance(current, Decimal):
                converted[key] = Decimal(str(value))
            else:
                converted[key] = int(value)
        return replace(self, **converted)


DEFAULT_THRESHOLDS = ParserThresholds()

"""Core domain models for splitbill.

This module provides the data models used throughout the project:
- BillItem, BillCharge: bill lines produced by parsing or manual entry
- ParseResult, ReconciliationVerdict, EngineAttempt: parsing pipeline outputs
- BillState: the long-lived bill with allocation bookkeeping

Usage:
    from splitbill.domain import BillItem, BillState
"""

from splitbill.domain.bill import (
    BillCharge,
    BillItem,
    EngineAttempt,
    ParseResult,
    ReconciliationVerdict,
    to_cents,
    to_decimal,
)
from splitbill.domain.bill_state import DEFAULT_COLORS, BillState

__all__ = [
    "BillCharge",
    "BillItem",
    "BillState",
    "DEFAULT_COLORS",
    "EngineAttempt",
    "ParseResult",
    "ReconciliationVerdict",
    "to_cents",
    "to_decimal",
]

"""Acceptance gate: does the parsed item sum agree with the bill total?"""

from collections.abc import Iterable
from decimal import Decimal

from splitbill.domain.bill import BillItem, ReconciliationVerdict, to_cents

from .parser_config import DEFAULT_THRESHOLDS, ParserThresholds


def items_sum(items: Iterable[BillItem]) -> Decimal:
    """Sum of unit price times original quantity, rounded to cents."""
    return to_cents(sum((item.unit_price * item.original_quantity for item in items), Decimal("0")))


def evaluate(
    items: Iterable[BillItem],
    net_total: Decimal | None,
    thresholds: ParserThresholds = DEFAULT_THRESHOLDS,
) -> ReconciliationVerdict:
    """
    Check a parse against its detected total.

    The tolerance is ``max(reconciliation_floor, net_total * reconciliation_ratio)``,
    which absorbs taxes and service charges that are not items. A parse without a
    total is never accepted.

    Args:
        items: Parsed items
        net_total: Bill total detected on the receipt, if any
        thresholds: Heuristic limits

    Returns:
        ReconciliationVerdict with the computed item sum
    """
    total = items_sum(items)
    if net_total is None:
        return ReconciliationVerdict(items_sum=total, accepted=False)
    tolerance = max(thresholds.reconciliation_floor, abs(net_total) * thresholds.reconciliation_ratio)
    return ReconciliationVerdict(
        items_sum=total,
        accepted=abs(total - net_total) <= tolerance,
        tolerance=tolerance,
    )

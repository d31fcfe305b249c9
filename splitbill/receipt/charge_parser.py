"""Charge, tax and bill-total extraction from the summary block of a receipt."""

import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

from splitbill.domain.bill import BillCharge, to_cents

from .parser_config import DEFAULT_THRESHOLDS, ParserThresholds

TOTAL_AMOUNT = re.compile(r"^total\s*amount\b", re.IGNORECASE)
NET_TOTAL = re.compile(r"^(net\s*amount|net\s*amt|bill\s*total|grand\s*total)\b", re.IGNORECASE)
BARE_TOTAL = re.compile(r"^total\b", re.IGNORECASE)
BARE_TOTAL_EXCLUDED = re.compile(r"^total\s*(amount|qty|quantity|items?|no|number|discount|savings?)\b", re.IGNORECASE)
SERVICE_CHARGE = re.compile(r"\bserc\b|\bservc\b|service\s*(charge|chg)\b", re.IGNORECASE)
TAX = re.compile(r"\b(state|central)\s*gst\b|\b[csi]?gst\b|\bvat\b|\btax\b", re.IGNORECASE)
ROUND_OFF = re.compile(r"round\s*-?\s*off", re.IGNORECASE)

TAIL_NUMBER = re.compile(r"(?:^|\s|[:=])(-?\s?\d[\d,]*(?:\.\d+)?)\s*$")
PERCENT = re.compile(r"(\d+(?:\.\d+)?)\s*%")
TRAILING_AMOUNT_TEXT = re.compile(r"[\s:=]*-?\s?\d[\d,]*(?:\.\d+)?\s*$")


@dataclass
class ChargeParse:
    """Charges plus the totals found alongside them."""

    charges: list[BillCharge] = field(default_factory=list)
    net_total: Decimal | None = None
    # "Total Amount" line: magnitude reference only, never emitted as a charge
    total_amount: Decimal | None = None


def parse_tail_number(line: str) -> Decimal | None:
    """Return the number at the end of a line, e.g. "Round Off -0.25" -> -0.25."""
    match = TAIL_NUMBER.search(line)
    if not match:
        return None
    try:
        return Decimal(re.sub(r"[\s,]", "", match.group(1)))
    except InvalidOperation:
        return None


def correct_magnitude(
    amount: Decimal,
    reference: Decimal | None,
    thresholds: ParserThresholds = DEFAULT_THRESHOLDS,
) -> Decimal:
    """
    Undo OCR-inserted digits on a charge amount.

    While the amount exceeds ``magnitude_limit_ratio`` times the reference total it is
    divided by 10, at most ``magnitude_max_steps`` times.

    Args:
        amount: Charge amount as read by OCR
        reference: The bill's "Total Amount", or None if not seen yet

    Returns:
        Corrected amount rounded to cents
    """
    if reference is None:
        return to_cents(amount)
    limit = abs(reference) * thresholds.magnitude_limit_ratio
    value = amount
    steps = 0
    while abs(value) > limit and steps < thresholds.magnitude_max_steps:
        value = value / 10
        steps += 1
    return to_cents(value)


def _tax_label(line: str) -> str:
    label = TRAILING_AMOUNT_TEXT.sub("", line).strip()
    return label or "Tax"


def parse_charges(lines: list[str], thresholds: ParserThresholds = DEFAULT_THRESHOLDS) -> ChargeParse:
    """
    Extract charges and the bill total from normalized receipt lines.

    Recognized lines:
    - "Total Amount": magnitude reference for later charges
    - "Net Amount" / "Bill Total" / "Grand Total": the bill total, first match wins
    - "Service Charge" / "SERC": allocatable service charge
    - GST / CGST / SGST / VAT / Tax: tax line, recomputed from its percentage when the
      OCR value is implausible
    - "Round Off": rounding adjustment, may be negative
    A bare "Total" line is used as the bill total only when no labeled total exists.
    """
    result = ChargeParse()
    service_total = Decimal("0")
    bare_total: Decimal | None = None

    for line in lines:
        if TOTAL_AMOUNT.match(line):
            amount = parse_tail_number(line)
            if amount is not None:
                result.total_amount = amount
            continue

        if NET_TOTAL.match(line):
            amount = parse_tail_number(line)
            if amount is not None and result.net_total is None:
                result.net_total = to_cents(amount)
            continue

        if SERVICE_CHARGE.search(line):
            amount = parse_tail_number(line)
            if amount is not None:
                corrected = correct_magnitude(amount, result.total_amount, thresholds)
                result.charges.append(BillCharge("Service Charge", corrected))
                service_total += corrected
            continue

        if TAX.search(line):
            raw = parse_tail_number(line)
            tax = correct_magnitude(raw, result.total_amount, thresholds) if raw is not None else None
            pct_match = PERCENT.search(line)
            if pct_match and result.total_amount is not None:
                base = result.total_amount + service_total
                expected = to_cents(base * Decimal(pct_match.group(1)) / 100)
                tolerance = max(thresholds.tax_tolerance_floor, expected * thresholds.tax_tolerance_ratio)
                if tax is None or abs(tax - expected) > tolerance:
                    tax = expected
            if tax is not None:
                result.charges.append(BillCharge(_tax_label(line), tax))
            continue

        if ROUND_OFF.search(line):
            amount = parse_tail_number(line)
            if amount is not None:
                result.charges.append(
                    BillCharge("Round Off", correct_magnitude(amount, result.total_amount, thresholds))
                )
            continue

        if BARE_TOTAL.match(line) and not BARE_TOTAL_EXCLUDED.match(line):
            amount = parse_tail_number(line)
            if amount is not None:
                # Last one wins: the payable total sits at the bottom
                bare_total = amount

    if result.net_total is None and bare_total is not None:
        result.net_total = to_cents(bare_total)
    return result

"""Item row extraction from normalized receipt lines.

Each line is tried against an ordered list of strategies; the first one that yields a
valid item wins. The last strategy deduces quantity and price from whatever numeric
tokens survived OCR, for rows where the column layout is too damaged for a regex.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from splitbill.domain.bill import BillItem

from .line_classifier import (
    NUMBER,
    find_item_region,
    is_address_line,
    is_stop_line,
    merge_wrapped_lines,
)
from .parser_config import DEFAULT_THRESHOLDS, ParserThresholds

STRUCTURED_ROW = re.compile(rf"^(?:(\d+)\s+)?(.+?)\s+(\d+)\s+({NUMBER})\s+({NUMBER})$")
QUANTITY_AMOUNT_ROW = re.compile(rf"^(.+?)\s+(\d+)\s+({NUMBER})$")
QUANTITY_PREFIXED_ROW = re.compile(rf"^(\d+)\s*[xX]?\s+(.+?)[\s-]+({NUMBER})$")

# Whitespace-delimited numeric token; "250ml" stays part of the description
NUMERIC_TOKEN = re.compile(rf"(?<!\S){NUMBER}(?!\S)")
TRAILING_TOKEN = re.compile(rf"(?<!\S)({NUMBER})\s*$")
LEADING_INDEX = re.compile(r"^\d{1,3}[.)]?\s+(?=\S*[A-Za-z])")


@dataclass(frozen=True)
class ItemCandidate:
    """Description/quantity/unit price proposed by one strategy."""

    description: str
    quantity: int
    unit_price: Decimal


ItemStrategy = Callable[[str, ParserThresholds], ItemCandidate | None]


def _to_number(raw: str) -> Decimal | None:
    try:
        return Decimal(raw.replace(",", ""))
    except InvalidOperation:
        return None


def _as_quantity(value: Decimal, raw: str, upper: int) -> int | None:
    """Return value as an int quantity when it is a plain integer in [1, upper]."""
    if "." in raw or value != value.to_integral_value():
        return None
    quantity = int(value)
    return quantity if 1 <= quantity <= upper else None


def _clean_description(text: str) -> str:
    """Drop OCR noise tokens (no letters or digits) and dangling separators."""
    tokens = [t for t in text.split() if re.search(r"[A-Za-z0-9]", t)]
    cleaned = " ".join(tokens)
    cleaned = re.sub(r"^[^A-Za-z0-9(]+", "", cleaned)
    cleaned = re.sub(r"[\s\-–:.,@/]+$", "", cleaned)
    return cleaned.strip()


def _has_trailing_number(text: str) -> bool:
    return TRAILING_TOKEN.search(text) is not None


def structured_rate_amount(line: str, thresholds: ParserThresholds) -> ItemCandidate | None:
    """``[index] description qty rate amount``; unit price comes from amount / qty.

    The rate column is often rounded on print, so the amount column is the
    authoritative figure.
    """
    match = STRUCTURED_ROW.match(line)
    if not match:
        return None
    _, desc, qty_raw, _rate_raw, amount_raw = match.groups()
    quantity = int(qty_raw)
    amount = _to_number(amount_raw)
    if not 1 <= quantity <= thresholds.max_quantity or amount is None:
        return None
    return ItemCandidate(_clean_description(desc), quantity, amount / quantity)


def quantity_amount(line: str, thresholds: ParserThresholds) -> ItemCandidate | None:
    """``description qty amount`` with no rate column."""
    match = QUANTITY_AMOUNT_ROW.match(line)
    if not match:
        return None
    desc, qty_raw, amount_raw = match.groups()
    quantity = int(qty_raw)
    amount = _to_number(amount_raw)
    if not 1 <= quantity <= thresholds.max_quantity or amount is None:
        return None
    return ItemCandidate(_clean_description(desc), quantity, amount / quantity)


def quantity_prefixed(line: str, thresholds: ParserThresholds) -> ItemCandidate | None:
    """``qty [x] description [-] price`` where price is per unit."""
    match = QUANTITY_PREFIXED_ROW.match(line)
    if not match:
        return None
    qty_raw, desc, price_raw = match.groups()
    quantity = int(qty_raw)
    price = _to_number(price_raw)
    # "1 Coke 19.90 59.70" is a damaged structured row, not "qty desc price"
    if not 1 <= quantity <= thresholds.max_quantity or price is None or _has_trailing_number(desc):
        return None
    return ItemCandidate(_clean_description(desc), quantity, price)


@dataclass(frozen=True)
class _Token:
    value: Decimal
    raw: str
    start: int


def _trailing_tokens(line: str) -> list[_Token]:
    """Numeric tokens forming the uninterrupted tail of the line."""
    tokens: list[_Token] = []
    for match in NUMERIC_TOKEN.finditer(line):
        value = _to_number(match.group(0))
        if value is not None:
            tokens.append(_Token(value, match.group(0), match.start()))
    tail: list[_Token] = []
    boundary = len(line.rstrip())
    for token in reversed(tokens):
        if line[token.start + len(token.raw) : boundary].strip():
            break
        tail.insert(0, token)
        boundary = token.start
    return tail


def numeric_deduction(line: str, thresholds: ParserThresholds) -> ItemCandidate | None:
    """Deduce quantity/price from trailing numbers of a badly corrupted row.

    Hypotheses, each consuming some trailing tokens:
    - last two numbers equal: a duplicated price/value column, quantity 1
    - small integer, price, value with qty * price ~= value
    - small integer followed by a value (description qty amount)
    - rate followed by total where total / rate is a small integer
    - a single price, quantity 1
    Candidates are scored and the best one wins; the description is the text before
    the consumed tokens.
    """
    tail = _trailing_tokens(line)
    if not tail:
        return None

    hypotheses: list[tuple[int, int, Decimal, bool]] = []  # (consumed, qty, unit price, verified)
    last = tail[-1]
    tolerance = last.value * thresholds.product_tolerance_ratio

    if len(tail) >= 2:
        prev = tail[-2]
        if abs(last.value - prev.value) <= thresholds.duplicate_epsilon:
            hypotheses.append((2, 1, last.value, True))

    if len(tail) >= 3:
        qty_token, price = tail[-3], tail[-2]
        qty = _as_quantity(qty_token.value, qty_token.raw, thresholds.max_quantity)
        if qty is not None and abs(qty * price.value - last.value) <= tolerance:
            hypotheses.append((3, qty, last.value / qty, True))

    if len(tail) >= 2:
        prev = tail[-2]
        qty = _as_quantity(prev.value, prev.raw, thresholds.max_quantity)
        if qty is not None:
            hypotheses.append((2, qty, last.value / qty, False))
        if prev.value > 0:
            ratio = int((last.value / prev.value).to_integral_value())
            if 1 <= ratio <= thresholds.max_quantity and abs(ratio * prev.value - last.value) <= tolerance:
                hypotheses.append((2, ratio, last.value / ratio, True))

    if "." in last.raw or last.value < thresholds.artifact_min_integer:
        hypotheses.append((1, 1, last.value, False))

    best: ItemCandidate | None = None
    best_score = -1
    for consumed, qty, unit_price, verified in hypotheses:
        prefix = line[: tail[-consumed].start]
        description = _clean_description(LEADING_INDEX.sub("", prefix.strip()))
        letters = sum(1 for c in description if c.isalpha())
        if letters == 0 or unit_price <= 0:
            continue
        score = 0
        if qty <= thresholds.preferred_max_quantity:
            score += 3
        elif qty <= thresholds.max_quantity:
            score += 1
        if verified:
            score += 4
        score += 2 if letters >= 3 else 1
        if not _has_trailing_number(description):
            score += 1
        if score > best_score:
            best, best_score = ItemCandidate(description, qty, unit_price), score
    return best


# First strategy that yields a valid item wins.
ITEM_STRATEGIES: tuple[tuple[str, ItemStrategy], ...] = (
    ("structured_rate_amount", structured_rate_amount),
    ("quantity_amount", quantity_amount),
    ("quantity_prefixed", quantity_prefixed),
    ("numeric_deduction", numeric_deduction),
)


def has_trailing_artifact(line: str, thresholds: ParserThresholds = DEFAULT_THRESHOLDS) -> bool:
    """Return True if the line ends in a large bare integer (invoice number, pin code)."""
    match = TRAILING_TOKEN.search(line)
    if not match or "." in match.group(1):
        return False
    value = _to_number(match.group(1))
    return value is not None and value >= thresholds.artifact_min_integer


def _is_valid_candidate(candidate: ItemCandidate, allow_address: bool) -> bool:
    desc = candidate.description
    if candidate.unit_price <= 0 or not desc or not re.search(r"[A-Za-z]", desc):
        return False
    if is_stop_line(desc):
        return False
    if not allow_address and is_address_line(desc):
        return False
    return True


def parse_item_line(
    line: str,
    *,
    thresholds: ParserThresholds = DEFAULT_THRESHOLDS,
    allow_address: bool = False,
) -> BillItem | None:
    """
    Parse one normalized line into a BillItem.

    Args:
        line: Normalized receipt line
        thresholds: Heuristic limits (max quantity, tolerances)
        allow_address: Accept descriptions with address words (inside a confirmed item section)

    Returns:
        BillItem with the full parsed quantity unallocated, or None if the line is not an item
    """
    if not line or has_trailing_artifact(line, thresholds):
        return None
    for _name, strategy in ITEM_STRATEGIES:
        candidate = strategy(line, thresholds)
        if candidate is not None and _is_valid_candidate(candidate, allow_address):
            return BillItem(
                description=candidate.description,
                quantity=candidate.quantity,
                unit_price=candidate.unit_price,
            )
    return None


def extract_items(lines: list[str], thresholds: ParserThresholds = DEFAULT_THRESHOLDS) -> list[BillItem]:
    """
    Extract bill items from normalized receipt lines.

    Only the detected item section is parsed. Address-like lines are dropped unless a
    header or item-shaped row confirmed the section start.
    """
    region = find_item_region(lines)
    section = merge_wrapped_lines(lines[region.start : region.end], thresholds.wrap_merge_max_length)

    items: list[BillItem] = []
    for line in section:
        if is_stop_line(line):
            continue
        if not region.confirmed and is_address_line(line):
            continue
        item = parse_item_line(line, thresholds=thresholds, allow_address=region.confirmed)
        if item is not None:
            items.append(item)
    return items

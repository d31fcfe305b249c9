"""Heuristic receipt text parser: raw OCR text to a ParseResult."""

from splitbill.domain.bill import ParseResult
from splitbill.runtime.logging import get_logger

from .charge_parser import parse_charges
from .item_parser import extract_items
from .parser_config import DEFAULT_THRESHOLDS, ParserThresholds
from .text_normalizer import normalize_text

logger = get_logger(__name__)


def parse_receipt_text(text: str, thresholds: ParserThresholds = DEFAULT_THRESHOLDS) -> ParseResult:
    """
    Parse OCR text into items, charges and the bill total.

    Never raises on malformed text; unrecognised lines are skipped.

    Args:
        text: Raw OCR text, one receipt line per text line
        thresholds: Heuristic limits

    Returns:
        ParseResult with ``raw_text`` set to the input text
    """
    lines = normalize_text(text)
    items = extract_items(lines, thresholds)
    charges = parse_charges(lines, thresholds)
    logger.debug(
        "Parsed %d line(s): %d item(s), %d charge(s), net total %s",
        len(lines),
        len(items),
        len(charges.charges),
        charges.net_total,
    )
    return ParseResult(
        items=tuple(items),
        charges=tuple(charges.charges),
        net_total=charges.net_total,
        raw_text=text,
    )

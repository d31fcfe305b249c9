"""Lexical/positional line labels and item-section detection."""

import re
from dataclasses import dataclass

# Labels that never describe an item: dates, table info, tax and total labels, column headers
STOPWORDS = (
    "bill no",
    "date",
    "time",
    "table",
    "covers",
    "gst",
    "gstin",
    "cgst",
    "sgst",
    "igst",
    "tax",
    "vat",
    "round off",
    "round-off",
    "roundoff",
    "total amount",
    "total",
    "net amount",
    "grand total",
    "bill total",
    "balance",
    "kot",
    "user id",
    "server",
    "steward",
    "service charge",
    "servc",
    "serc",
    "rate",
    "qty",
    "amount",
    "snc",
    "sno",
    "description",
    "subtotal",
    "plan",
    "pvt ltd",
    "cashier",
    "thank you",
)

ADDRESS_WORDS = (
    "layout",
    "road",
    "rd",
    "main",
    "cross",
    "street",
    "nagar",
    "bengaluru",
    "bangalore",
    "banashankari",
    "siddanna",
    "india",
    "pin",
    "pincode",
    "gstin",
    "phone",
    "ph",
    "tel",
    "mob",
    "mobile",
    "email",
    "fssai",
)


def _lexicon_pattern(words: tuple[str, ...]) -> re.Pattern[str]:
    # Longest first so "total amount" wins over "total"; \s+ tolerates OCR spacing.
    alternatives = (r"\s+".join(map(re.escape, w.split())) for w in sorted(words, key=len, reverse=True))
    return re.compile(r"(?<![a-z0-9])(?:" + "|".join(alternatives) + r")(?![a-z0-9])", re.IGNORECASE)


STOP_PATTERN = _lexicon_pattern(STOPWORDS)
ADDRESS_PATTERN = _lexicon_pattern(ADDRESS_WORDS)

HEADER_INDEX = re.compile(r"\b(sn|sno|snc|s\.\s?no|sl\.?\s?no)\b", re.IGNORECASE)
HEADER_DESCRIPTION = re.compile(r"\b(desc|description|item|items|particulars)\b", re.IGNORECASE)
HEADER_COLUMNS = re.compile(r"\b(qty|quantity|rate|amount|amt|price)\b", re.IGNORECASE)

NUMBER = r"\d[\d,]*(?:\.\d+)?"
ITEM_START_PATTERNS = (
    # "1 GINGER ALE 3 130.00 390.00"
    re.compile(rf"^\d+\s+\D+\s+\d+\s+{NUMBER}\s+{NUMBER}$"),
    # "1 GINGER ALE 390.00"
    re.compile(rf"^\d+\s+\D+\s+{NUMBER}$"),
)

# Lines that close the item section
SECTION_END_TOTAL = re.compile(
    r"^(bill\s*total|grand\s*total|net\s*amount|total\s*amount|sub\s*total|total)\b", re.IGNORECASE
)
DIVIDER = re.compile(r"^[-=_\s]{3,}$")

TRAILING_NUMBER = re.compile(rf"{NUMBER}\s*$")


@dataclass(frozen=True)
class LineClass:
    """Non-exclusive labels for one normalized line."""

    is_stop: bool
    is_header: bool
    is_item_start: bool
    is_address: bool


@dataclass(frozen=True)
class ItemRegion:
    """Half-open [start, end) line range holding item rows."""

    start: int
    end: int
    # True when a column header or an item-shaped row marked the start
    confirmed: bool


def is_stop_line(line: str) -> bool:
    return STOP_PATTERN.search(line) is not None


def is_address_line(line: str) -> bool:
    return ADDRESS_PATTERN.search(line) is not None


def looks_like_header(line: str) -> bool:
    """Return True for a column-header row such as "SNo Description Qty Rate Amount"."""
    has_description = HEADER_DESCRIPTION.search(line) is not None
    if HEADER_INDEX.search(line) and has_description:
        return True
    return has_description and HEADER_COLUMNS.search(line) is not None


def looks_like_item_start(line: str) -> bool:
    return any(pattern.match(line) for pattern in ITEM_START_PATTERNS)


def is_divider(line: str) -> bool:
    return DIVIDER.match(line) is not None and any(c in line for c in "-=_")


def classify_line(line: str) -> LineClass:
    return LineClass(
        is_stop=is_stop_line(line),
        is_header=looks_like_header(line),
        is_item_start=looks_like_item_start(line),
        is_address=is_address_line(line),
    )


def find_item_region(lines: list[str]) -> ItemRegion:
    """Locate the item section of a receipt.

    Start: the line after a column header, else the first item-shaped row, else the
    top of the text (unconfirmed). End: the first total line, or a divider row that
    follows at least one content line; else the end of the text.
    """
    start = 0
    confirmed = False
    for i, line in enumerate(lines):
        if looks_like_header(line):
            start, confirmed = i + 1, True
            break
        if looks_like_item_start(line):
            start, confirmed = i, True
            break

    end = len(lines)
    seen_content = False
    for i in range(start, len(lines)):
        line = lines[i]
        if is_divider(line):
            # Dividers directly under the header only frame the column titles
            if seen_content:
                end = i
                break
            continue
        if SECTION_END_TOTAL.match(line):
            end = i
            break
        seen_content = True

    return ItemRegion(start=start, end=end, confirmed=confirmed)


def merge_wrapped_lines(lines: list[str], max_length: int = 40) -> list[str]:
    """Join description lines that wrapped onto a following priced line.

    "2 VEG MANCHOW" + "SOUP 2 120.00 240.00" -> "2 VEG MANCHOW SOUP 2 120.00 240.00".
    Only short lines without a trailing number are joined, and never onto a line that
    is itself a complete item row.
    """
    merged: list[str] = []
    i = 0
    while i < len(lines):
        current = lines[i]
        following = lines[i + 1] if i + 1 < len(lines) else None
        if (
            following is not None
            and not TRAILING_NUMBER.search(current)
            and len(current) < max_length
            and TRAILING_NUMBER.search(following)
            and not looks_like_item_start(following)
            and not is_divider(current)
            and not is_divider(following)
        ):
            merged.append(f"{current} {following}")
            i += 2
            continue
        merged.append(current)
        i += 1
    return merged

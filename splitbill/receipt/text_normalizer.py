"""OCR text cleanup applied to every receipt line before pattern matching."""

import re
from collections.abc import Sequence

CorrectionRule = tuple[re.Pattern[str], str]

# Ordered (pattern, replacement) table of known OCR misreads.
DEFAULT_OCR_CORRECTIONS: tuple[CorrectionRule, ...] = (
    # Currency glyphs and rupee prefixes: "₹120.00", "Rs.120", "Rs 120"
    (re.compile(r"[₹₨$€£¥]"), ""),
    (re.compile(r"\bRs\.?\s*(?=\d)", re.IGNORECASE), ""),
    # Letter O read inside a number: "1O.50", "10.O0", "10.0O"
    (re.compile(r"(?<=\d)[Oo](?=[\d.,])|(?<=\d[.,])[Oo]|(?<=\d\.\d)[Oo]\b"), "0"),
    # I/l/| read inside a number: "1l0.00", "4I.50"
    (re.compile(r"(?<=\d)[Il|](?=\d|\.\d)"), "1"),
    # Colon standing in for a decimal point: "12:50"
    (re.compile(r"(?<=\d):(?=\d{2}\b)"), "."),
    # Doubled decimal point: "12..50"
    (re.compile(r"(?<=\d)\.{2,}(?=\d)"), "."),
    # Comma decimal at end of line: "12,50"
    (re.compile(r"(?<=\d),(?=\d{2}\s*$)"), "."),
    # Runs of stray symbols. Dashes, equals and underscores are kept for divider rows.
    (re.compile(r"[*~|#\"]{2,}"), " "),
    (re.compile(r"\s+"), " "),
)


class TextNormalizer:
    """Pure line normalizer driven by an immutable correction table."""

    def __init__(self, rules: Sequence[CorrectionRule] = DEFAULT_OCR_CORRECTIONS) -> None:
        self.rules: tuple[CorrectionRule, ...] = tuple(rules)

    def _apply_once(self, line: str) -> str:
        for pattern, replacement in self.rules:
            line = pattern.sub(replacement, line)
        return line.strip()

    def normalize(self, line: str) -> str:
        """Normalize one OCR line.

        Rules are re-applied until the line stops changing, so
        ``normalize(normalize(x)) == normalize(x)`` holds for any input.
        """
        # Each pass either shortens the line or turns a letter/separator into a digit
        # or dot, so this terminates.
        current = self._apply_once(line)
        while True:
            following = self._apply_once(current)
            if following == current:
                return current
            current = following

    def normalize_text(self, text: str) -> list[str]:
        """Split raw OCR text into normalized, non-empty lines."""
        lines = (self.normalize(raw) for raw in re.split(r"\n+", text))
        return [line for line in lines if line]


_default_normalizer = TextNormalizer()


def normalize_line(line: str) -> str:
    """Normalize one line with the default OCR correction table."""
    return _default_normalizer.normalize(line)


def normalize_text(text: str) -> list[str]:
    """Normalize raw OCR text into cleaned lines with the default table."""
    return _default_normalizer.normalize_text(text)

"""Shared pytest fixtures for splitbill tests."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from decimal import Decimal
from pathlib import Path

import pytest

from splitbill.domain.bill import BillCharge, BillItem, ParseResult
from splitbill.engines.base import ProgressCallback
from splitbill.runtime import reset_paths

ISOLATED_ENV_VARS = (
    "SPLITBILL_ENGINES",
    "SPLITBILL_OCR_ONLY",
    "SPLITBILL_OCR_FIRST",
    "SPLITBILL_REQUEST_TIMEOUT",
    "OCR_SERVICE_URL",
    "VERYFI_CLIENT_ID",
    "VERYFI_USERNAME",
    "VERYFI_API_KEY",
    "OPENAI_API_KEY",
    "MINDEE_API_KEY",
    "MINDEE_MODEL_ID",
    "MINDEE_PRODUCT_OWNER",
    "MINDEE_MODEL_NAME",
    "MINDEE_MODEL_VERSION",
    "MINDEE_ENDPOINT",
    "VERYFI_ENDPOINT",
    "OPENAI_MODEL",
    "OPENAI_ENDPOINT",
)

RESTAURANT_RECEIPT = """\
HOTEL SIDDANNA REFRESHMENTS
12th Main Road, Banashankari
Bengaluru 560070
GSTIN: 29ABCDE1234F1Z5
Bill No: 1234 Date: 12/03/2024
Table: 7 Covers: 4
SNo Description Qty Rate Amount
1 GINGER ALE 3 130.00 390.00
2 VEG MANCHOW
SOUP 2 120.00 240.00
3 PANEER TIKKA 1 280.00 280.00
4 Coke 3 19.90 59.70
----------------------------------
Total Amount 969.70
CGST 2.5% 24.24
SGST 2.5% 24.24
Round Off -0.18
Net Amount 1018.00
Thank you, visit again
"""


@pytest.fixture(autouse=True)
def isolated_state_root(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Point the state root at a temp dir so no test reads or writes a real config."""
    root = tmp_path / "splitbill-home"
    monkeypatch.setenv("SPLITBILL_HOME", str(root))
    monkeypatch.delenv("SPLITBILL_CONFIG", raising=False)
    for name in ISOLATED_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_paths()
    yield root
    reset_paths()


@pytest.fixture
def restaurant_receipt() -> str:
    return RESTAURANT_RECEIPT


def make_result(
    prices: Sequence[tuple[str, int, str]],
    net_total: str | None,
    charges: Sequence[tuple[str, str]] = (),
) -> ParseResult:
    """Build a ParseResult from (description, quantity, unit price) tuples."""
    return ParseResult(
        items=tuple(BillItem(desc, qty, Decimal(price)) for desc, qty, price in prices),
        charges=tuple(BillCharge(label, Decimal(amount)) for label, amount in charges),
        net_total=None if net_total is None else Decimal(net_total),
    )


class FakeEngine:
    """Engine double: returns a canned result or raises, counting calls."""

    def __init__(
        self,
        name: str,
        result: ParseResult | None = None,
        *,
        error: Exception | None = None,
        progress: Sequence[float] = (),
    ) -> None:
        self.name = name
        self.result = result
        self.error = error
        self.progress = progress
        self.calls = 0

    async def call(self, image: bytes, report_progress: ProgressCallback) -> ParseResult | None:
        self.calls += 1
        for value in self.progress:
            report_progress(value)
        if self.error is not None:
            raise self.error
        return self.result

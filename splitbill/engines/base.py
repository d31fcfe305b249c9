"""Base class and shared helpers for receipt engine adapters.

An engine takes image bytes and returns a ParseResult, or fails. Failure is either
``None`` or an ``EngineUnavailable`` exception; callers treat both the same way.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Protocol

import httpx

from splitbill.domain.bill import BillItem, ParseResult, to_cents, to_decimal
from splitbill.runtime import get_logger

logger = get_logger(__name__)

ProgressCallback = Callable[[float], None]

CURRENCY_PREFIX = re.compile(r"^\s*(?:Rs\.?|R)\s*")


class EngineUnavailable(RuntimeError):
    """Raised when an engine cannot be reached, rejects the request, or answers garbage."""


class EngineAdapter(Protocol):
    name: str

    async def call(self, image: bytes, report_progress: ProgressCallback) -> ParseResult | None: ...


def money(value: Any) -> Decimal | None:
    """Read a JSON money value; ``{"value": ...}`` wrappers, commas and a leading R/Rs are tolerated."""
    if isinstance(value, dict):
        value = value.get("value")
    if isinstance(value, str):
        value = CURRENCY_PREFIX.sub("", value).replace(" ", "")
    if value is None or value == "":
        return None
    amount = to_decimal(value, default=Decimal("NaN"))
    return None if amount.is_nan() or amount.is_infinite() else amount


def quantity(value: Any) -> int:
    """Round a JSON quantity half-up, never below 1."""
    amount = money(value)
    if amount is None:
        return 1
    return max(1, int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP)))


def priced_items(items: list[BillItem]) -> tuple[BillItem, ...]:
    """Drop items without a positive unit price."""
    return tuple(item for item in items if item.unit_price > 0)


class HttpEngine:
    """Base class for engines that make one HTTP request per image.

    Subclasses should define:
        name: str - engine identifier used in prompts and logs

    And implement:
        build_request(client, image) -> httpx.Request
        map_response(payload) -> ParseResult | None
    """

    name: str = "http"

    def __init__(self, *, timeout: float = 60.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
        """
        Args:
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests pass ``httpx.MockTransport``)
        """
        self.timeout = timeout
        self.transport = transport

    def build_request(self, client: httpx.AsyncClient, image: bytes) -> httpx.Request:
        raise NotImplementedError

    def map_response(self, payload: Any) -> ParseResult | None:
        raise NotImplementedError

    async def call(self, image: bytes, report_progress: ProgressCallback) -> ParseResult | None:
        report_progress(10)
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            request = self.build_request(client, image)
            logger.info("%s: sending %d byte image to %s", self.name, len(image), request.url.host)
            try:
                response = await client.send(request)
            except httpx.HTTPError as e:
                logger.warning("%s: request failed: %s", self.name, e)
                raise EngineUnavailable(f"{self.name}: request failed: {e}") from e

        logger.info("%s: HTTP %s", self.name, response.status_code)
        if response.is_error:
            logger.debug("%s: error body: %s", self.name, response.text[:500])
            raise EngineUnavailable(f"{self.name}: HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise EngineUnavailable(f"{self.name}: response is not JSON") from e

        report_progress(90)
        result = self.map_response(payload)
        if result is None:
            logger.warning("%s: response could not be mapped to a bill", self.name)
            return None
        return ParseResult(
            items=priced_items(list(result.items)),
            charges=result.charges,
            net_total=None if result.net_total is None else to_cents(result.net_total),
            raw_text=result.raw_text,
        )

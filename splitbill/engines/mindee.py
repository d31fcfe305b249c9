"""Mindee prediction API engine."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

import httpx

from splitbill.domain.bill import BillItem, ParseResult, to_cents
from splitbill.receipt.image_helpers import sniff_mime_type
from splitbill.runtime import get_logger
from splitbill.runtime.settings import MindeeSettings

from .base import HttpEngine, money, quantity

logger = get_logger(__name__)


def _field_text(value: Any) -> str:
    """Mindee fields come as plain values, ``{"value": ...}`` or ``{"content"/"raw": ...}``."""
    if isinstance(value, dict):
        inner = value.get("value")
        if isinstance(inner, (str, int, float)):
            return str(inner)
        return str(value.get("content") or value.get("raw") or "")
    if isinstance(value, (str, int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


def _line_items(data: dict[str, Any]) -> tuple[list[Any], dict[str, Any]]:
    """Return (line items, prediction) from either the document or top-level inference."""
    document = data.get("document") or {}
    inference = document.get("inference") or data.get("inference") or {}
    prediction = inference.get("prediction") or {}
    lines = prediction.get("line_items") or prediction.get("items") or []
    if not isinstance(lines, list) or not lines:
        # Some products only return per-page predictions
        lines = [entry for page in inference.get("pages") or [] for entry in (page or {}).get("predictions") or []]
    return lines, prediction


def map_mindee_response(data: Any) -> ParseResult | None:
    """
    Map a Mindee prediction response to a ParseResult.

    The bill total is ``prediction.total`` when positive, else the sum of line totals,
    else the computed item sum. Mindee charges are not mapped.
    """
    if not isinstance(data, dict):
        return None
    lines, prediction = _line_items(data)

    items: list[BillItem] = []
    line_totals = Decimal("0")
    for line in lines:
        if not isinstance(line, dict):
            continue
        qty = quantity(line.get("quantity", line.get("qty")))
        unit_price = money(line.get("unit_price", line.get("price"))) or Decimal("0")
        line_total = money(line.get("total")) or Decimal("0")
        line_totals += line_total
        if unit_price <= 0 and line_total > 0:
            unit_price = line_total / qty
        description = (
            _field_text(line.get("description")) or _field_text(line.get("product")) or _field_text(line.get("text"))
        )
        items.append(
            BillItem(description=description.strip() or "Item", quantity=qty, unit_price=to_cents(unit_price))
        )
    items = [item for item in items if item.unit_price > 0]
    if not items:
        logger.warning("Mindee response has no usable line items")

    net_total: Decimal | None = None
    predicted_total = money(prediction.get("total"))
    if predicted_total is not None and predicted_total > 0:
        net_total = predicted_total
    elif line_totals > 0:
        net_total = line_totals
    else:
        computed = sum((item.unit_price * item.quantity for item in items), Decimal("0"))
        if computed > 0:
            net_total = computed

    return ParseResult(items=tuple(items), charges=(), net_total=net_total)


class MindeeEngine(HttpEngine):
    name = "mindee"

    def __init__(
        self,
        settings: MindeeSettings,
        *,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(timeout=timeout, transport=transport)
        self.settings = settings

    def build_request(self, client: httpx.AsyncClient, image: bytes) -> httpx.Request:
        return client.build_request(
            "POST",
            self.settings.url,
            files={"document": ("receipt.jpg", image, sniff_mime_type(image))},
            headers={"Authorization": f"Token {self.settings.api_key}"},
        )

    def map_response(self, payload: Any) -> ParseResult | None:
        return map_mindee_response(payload)

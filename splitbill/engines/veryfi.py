"""Veryfi document API engine."""

from __future__ import annotations

import base64
from typing import Any

import httpx

from splitbill.domain.bill import BillCharge, BillItem, ParseResult, to_cents
from splitbill.runtime.settings import VeryfiSettings

from .base import HttpEngine, money, quantity


def map_veryfi_response(data: Any) -> ParseResult | None:
    """
    Map a Veryfi document response to a ParseResult.

    ``line_items`` become items (unit price from ``price``, else ``total / quantity``);
    ``tax`` and ``tip`` become charges when non-zero and ``discount`` becomes a negative
    charge. ``total`` is the bill total.
    """
    if not isinstance(data, dict):
        return None

    items: list[BillItem] = []
    for line in data.get("line_items") or []:
        if not isinstance(line, dict):
            continue
        qty = quantity(line.get("quantity"))
        unit_price = money(line.get("price"))
        if unit_price is None:
            line_total = money(line.get("total"))
            unit_price = line_total / qty if line_total else None
        if unit_price is None:
            continue
        description = str(line.get("description") or line.get("category") or "Item").strip()
        items.append(BillItem(description=description, quantity=qty, unit_price=to_cents(unit_price)))

    charges: list[BillCharge] = []
    for label, key in (("Tax", "tax"), ("Tip", "tip")):
        amount = money(data.get(key))
        if amount:
            charges.append(BillCharge(label, to_cents(amount)))
    discount = money(data.get("discount"))
    if discount:
        charges.append(BillCharge("Discount", -to_cents(abs(discount))))

    total = money(data.get("total"))
    return ParseResult(items=tuple(items), charges=tuple(charges), net_total=total)


class VeryfiEngine(HttpEngine):
    name = "veryfi"

    def __init__(
        self,
        settings: VeryfiSettings,
        *,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(timeout=timeout, transport=transport)
        self.settings = settings

    def build_request(self, client: httpx.AsyncClient, image: bytes) -> httpx.Request:
        return client.build_request(
            "POST",
            self.settings.endpoint,
            json={"file_name": "receipt.jpg", "file_data": base64.b64encode(image).decode("ascii")},
            headers={
                "Client-Id": self.settings.client_id,
                "Authorization": f"apikey {self.settings.username}:{self.settings.api_key}",
            },
        )

    def map_response(self, payload: Any) -> ParseResult | None:
        return map_veryfi_response(payload)

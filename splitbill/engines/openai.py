"""OpenAI chat-completions engine: a vision model asked to return the bill as JSON."""

from __future__ import annotations

import json
import re
from decimal import Decimal
from typing import Any

import httpx

from splitbill.domain.bill import BillCharge, BillItem, ParseResult, to_cents
from splitbill.receipt.image_helpers import encode_data_url
from splitbill.runtime import get_logger
from splitbill.runtime.settings import OpenAISettings

from .base import HttpEngine, money, quantity

logger = get_logger(__name__)

SYSTEM_PROMPT = (
    "You are a receipt parser. Return pure JSON: "
    "{ items:[{description, quantity, unitPrice}], charges:[{label, amount}], netTotal } "
    "with numbers as decimals."
)
USER_PROMPT = "Parse this receipt image and return JSON only."

FENCED_JSON = re.compile(r"```(?:json)?\s*(.*?)```", re.IGNORECASE | re.DOTALL)
BARE_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Pull the JSON object out of model output, fenced or bare."""
    fenced = FENCED_JSON.search(text)
    if fenced:
        candidate = fenced.group(1)
    else:
        bare = BARE_OBJECT.search(text)
        candidate = bare.group(0) if bare else text
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError:
        logger.warning("Model output is not valid JSON")
        return None
    return parsed if isinstance(parsed, dict) else None


def map_openai_response(data: Any) -> ParseResult | None:
    """Map a chat-completions response whose message content is the bill JSON."""
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return None
    if not isinstance(content, str) or not content.strip():
        return None

    parsed = extract_json_object(content)
    if parsed is None:
        return None

    items: list[BillItem] = []
    for entry in parsed.get("items") or []:
        if not isinstance(entry, dict):
            continue
        unit_price = money(entry.get("unitPrice")) or Decimal("0")
        items.append(
            BillItem(
                description=str(entry.get("description") or "Item").strip(),
                quantity=quantity(entry.get("quantity")),
                unit_price=to_cents(unit_price),
            )
        )

    charges = [
        BillCharge(label=str(entry.get("label") or "Charge"), amount=to_cents(money(entry.get("amount")) or Decimal("0")))
        for entry in parsed.get("charges") or []
        if isinstance(entry, dict)
    ]

    net_total = money(parsed.get("netTotal"))
    return ParseResult(items=tuple(items), charges=tuple(charges), net_total=net_total)


class OpenAIEngine(HttpEngine):
    name = "openai"

    def __init__(
        self,
        settings: OpenAISettings,
        *,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(timeout=timeout, transport=transport)
        self.settings = settings

    def build_request(self, client: httpx.AsyncClient, image: bytes) -> httpx.Request:
        body = {
            "model": self.settings.model,
            "temperature": 0,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": USER_PROMPT},
                        {"type": "image_url", "image_url": {"url": encode_data_url(image)}},
                    ],
                },
            ],
        }
        return client.build_request(
            "POST",
            self.settings.endpoint,
            json=body,
            headers={"Authorization": f"Bearer {self.settings.api_key}"},
        )

    def map_response(self, payload: Any) -> ParseResult | None:
        return map_openai_response(payload)

"""Local OCR service engine: detections from the OCR service, parsed heuristically."""

from __future__ import annotations

import asyncio
from typing import Any

import httpx

from splitbill.domain.bill import ParseResult
from splitbill.receipt.image_helpers import resize_image_bytes
from splitbill.receipt.ocr_lines import detections_to_text
from splitbill.receipt.parser_config import DEFAULT_THRESHOLDS, ParserThresholds
from splitbill.receipt.text_parser import parse_receipt_text
from splitbill.runtime import get_logger

from .base import EngineUnavailable, HttpEngine, ProgressCallback

logger = get_logger(__name__)


class LocalOcrEngine(HttpEngine):
    """Posts the resized image to ``{ocr_url}/ocr`` and runs the receipt text parser."""

    name = "local"

    def __init__(
        self,
        ocr_url: str,
        *,
        thresholds: ParserThresholds = DEFAULT_THRESHOLDS,
        resize: bool = True,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(timeout=timeout, transport=transport)
        self.ocr_url = ocr_url.rstrip("/")
        self.thresholds = thresholds
        self.resize = resize

    def build_request(self, client: httpx.AsyncClient, image: bytes) -> httpx.Request:
        return client.build_request(
            "POST",
            f"{self.ocr_url}/ocr",
            files={"file": ("receipt.jpg", image, "image/jpeg")},
        )

    def map_response(self, payload: Any) -> ParseResult | None:
        if not isinstance(payload, dict):
            return None
        text = detections_to_text(payload)
        logger.debug("OCR text has %d line(s)", text.count("\n") + 1 if text else 0)
        return parse_receipt_text(text, self.thresholds)

    async def call(self, image: bytes, report_progress: ProgressCallback) -> ParseResult | None:
        if self.resize:
            # Pillow work is CPU bound; keep the event loop responsive
            try:
                image = await asyncio.to_thread(resize_image_bytes, image)
            except OSError as e:
                raise EngineUnavailable(f"{self.name}: unreadable image: {e}") from e
        return await super().call(image, report_progress)

"""Build the engine fallback chain from settings."""

from __future__ import annotations

import httpx

from splitbill.runtime import get_logger
from splitbill.runtime.settings import Settings

from .base import EngineAdapter
from .local import LocalOcrEngine
from .mindee import MindeeEngine
from .openai import OpenAIEngine
from .veryfi import VeryfiEngine

logger = get_logger(__name__)


def build_engine(
    name: str, settings: Settings, transport: httpx.AsyncBaseTransport | None = None
) -> EngineAdapter | None:
    """Create one engine, or None when its credentials are missing."""
    timeout = settings.request_timeout
    if name == "local":
        return LocalOcrEngine(
            settings.ocr_service_url, thresholds=settings.thresholds, timeout=timeout, transport=transport
        )
    if name == "veryfi":
        if not settings.veryfi.configured:
            return None
        return VeryfiEngine(settings.veryfi, timeout=timeout, transport=transport)
    if name == "openai":
        if not settings.openai.configured:
            return None
        return OpenAIEngine(settings.openai, timeout=timeout, transport=transport)
    if name == "mindee":
        if not settings.mindee.configured:
            return None
        return MindeeEngine(settings.mindee, timeout=timeout, transport=transport)
    raise ValueError(f"Unknown engine: {name}")


def build_engines(settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> list[EngineAdapter]:
    """
    Create engines in the configured order.

    Engines without credentials are skipped with a warning, so the chain only holds
    engines that can actually be called.
    """
    engines: list[EngineAdapter] = []
    for name in settings.engines:
        engine = build_engine(name, settings, transport)
        if engine is None:
            logger.warning("Skipping engine %s: credentials not configured", name)
            continue
        engines.append(engine)
    logger.info("Engine order: %s", ", ".join(engine.name for engine in engines) or "(none)")
    return engines

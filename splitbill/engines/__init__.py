"""Receipt engine adapters.

Usage:
    from splitbill.engines import build_engines
    engines = build_engines(load_settings())
"""

from splitbill.engines.base import EngineAdapter, EngineUnavailable, HttpEngine, ProgressCallback
from splitbill.engines.local import LocalOcrEngine
from splitbill.engines.mindee import MindeeEngine, map_mindee_response
from splitbill.engines.openai import OpenAIEngine, map_openai_response
from splitbill.engines.registry import build_engine, build_engines
from splitbill.engines.veryfi import VeryfiEngine, map_veryfi_response

__all__ = [
    "EngineAdapter",
    "EngineUnavailable",
    "HttpEngine",
    "ProgressCallback",
    "LocalOcrEngine",
    "VeryfiEngine",
    "OpenAIEngine",
    "MindeeEngine",
    "map_veryfi_response",
    "map_openai_response",
    "map_mindee_response",
    "build_engine",
    "build_engines",
]

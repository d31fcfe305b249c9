"""Runtime configuration: TOML file overlaid with environment variables.

Example ``splitbill.toml``::

    engines = ["local", "veryfi", "openai", "mindee"]
    ocr_service_url = "http://localhost:8001"
    request_timeout = 60

    [parser]
    reconciliation_floor = 2
    max_quantity = 20

    [openai]
    model = "gpt-4o-mini"

Credentials are normally supplied through the environment (``OPENAI_API_KEY``,
``VERYFI_CLIENT_ID`` ...) rather than the file.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from splitbill.receipt.parser_config import DEFAULT_THRESHOLDS, ParserThresholds
from splitbill.runtime.paths import get_paths

ENGINE_NAMES = ("local", "veryfi", "openai", "mindee")
ENGINE_ALIASES = {"tesseract": "local", "ocr": "local"}

DEFAULT_OCR_SERVICE_URL = "http://localhost:8001"
DEFAULT_VERYFI_ENDPOINT = "https://api.veryfi.com/api/v8/partner/documents"
DEFAULT_OPENAI_ENDPOINT = "https://api.openai.com/v1/chat/completions"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
MINDEE_API_BASE = "https://api.mindee.net/v1/products"


class SettingsError(ValueError):
    """Raised when the configuration file or environment holds invalid values."""


@dataclass(frozen=True)
class VeryfiSettings:
    client_id: str = ""
    username: str = ""
    api_key: str = ""
    endpoint: str = DEFAULT_VERYFI_ENDPOINT

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.username and self.api_key)


@dataclass(frozen=True)
class OpenAISettings:
    api_key: str = ""
    model: str = DEFAULT_OPENAI_MODEL
    endpoint: str = DEFAULT_OPENAI_ENDPOINT

    @property
    def configured(self) -> bool:
        return bool(self.api_key)


@dataclass(frozen=True)
class MindeeSettings:
    api_key: str = ""
    model_id: str = ""
    product_owner: str = ""
    model_name: str = ""
    model_version: str = "v1"
    endpoint: str = ""

    @property
    def url(self) -> str:
        """Explicit endpoint, else a URL built from the model id or owner/name/version."""
        if self.endpoint:
            return self.endpoint
        if self.model_id:
            return f"{MINDEE_API_BASE}/{self.model_id}/predict"
        if self.product_owner and self.model_name:
            return f"{MINDEE_API_BASE}/{self.product_owner}/{self.model_name}/{self.model_version}/predict"
        return ""

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.url)


@dataclass(frozen=True)
class Settings:
    engines: tuple[str, ...] = ENGINE_NAMES
    ocr_service_url: str = DEFAULT_OCR_SERVICE_URL
    request_timeout: float = 60.0
    thresholds: ParserThresholds = DEFAULT_THRESHOLDS
    veryfi: VeryfiSettings = field(default_factory=VeryfiSettings)
    openai: OpenAISettings = field(default_factory=OpenAISettings)
    mindee: MindeeSettings = field(default_factory=MindeeSettings)


def _load_toml(path: Path) -> dict[str, Any]:
    """Load TOML file and return parsed dict; missing files map to empty dict."""
    try:
        import tomllib
    except ImportError:
        import tomli as tomllib  # type: ignore[no-redef]

    if not path.exists():
        return {}

    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise SettingsError(f"Invalid TOML in {path}: {e}") from e
    return data if isinstance(data, dict) else {}


def canonical_engine_name(name: str) -> str:
    """Lower-case an engine name and resolve aliases; unknown names raise SettingsError."""
    key = name.strip().lower()
    key = ENGINE_ALIASES.get(key, key)
    if key not in ENGINE_NAMES:
        raise SettingsError(f"Unknown engine {name!r}; expected one of: {', '.join(ENGINE_NAMES)}")
    return key


def resolve_engine_order(
    engines: list[str] | tuple[str, ...], only: str = "", first: str = ""
) -> tuple[str, ...]:
    """
    Build the fallback chain.

    Args:
        engines: Configured order
        only: Run just this engine (wins over ``first``)
        first: Move this engine to the front, keeping the rest in order

    Returns:
        De-duplicated engine names
    """
    if only.strip():
        return (canonical_engine_name(only),)

    ordered: list[str] = []
    for name in engines:
        key = canonical_engine_name(name)
        if key not in ordered:
            ordered.append(key)
    if first.strip():
        head = canonical_engine_name(first)
        ordered = [head] + [name for name in ordered if name != head]
    if not ordered:
        raise SettingsError("No engines configured")
    return tuple(ordered)


def _section(data: Mapping[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name, {})
    if not isinstance(value, dict):
        raise SettingsError(f"[{name}] must be a table")
    return value


def _string_fields(section: dict[str, Any], env: Mapping[str, str], prefix: str, names: tuple[str, ...]) -> dict[str, str]:
    """Collect string fields from a TOML table, overridden by PREFIX_NAME env vars."""
    values: dict[str, str] = {}
    for name in names:
        env_value = env.get(f"{prefix}_{name.upper()}", "").strip()
        if env_value:
            values[name] = env_value
        elif name in section:
            values[name] = str(section[name])
    return values


def load_settings(path: Path | None = None, env: Mapping[str, str] | None = None) -> Settings:
    """
    Load settings from the config file and the environment.

    Args:
        path: TOML file; defaults to the configured state root's ``splitbill.toml``
        env: Environment mapping; defaults to ``os.environ``

    Returns:
        Settings

    Raises:
        SettingsError: On unknown engines, malformed tables or bad parser overrides
    """
    env = os.environ if env is None else env
    data = _load_toml(path if path is not None else get_paths().config_file)

    engines_raw: Any = data.get("engines", list(ENGINE_NAMES))
    if env.get("SPLITBILL_ENGINES", "").strip():
        engines_raw = [name for name in env["SPLITBILL_ENGINES"].split(",") if name.strip()]
    if not isinstance(engines_raw, list):
        raise SettingsError("engines must be a list of engine names")
    engines = resolve_engine_order(
        [str(name) for name in engines_raw],
        only=env.get("SPLITBILL_OCR_ONLY", ""),
        first=env.get("SPLITBILL_OCR_FIRST", ""),
    )

    try:
        thresholds = DEFAULT_THRESHOLDS.with_overrides(_section(data, "parser"))
    except (ValueError, ArithmeticError) as e:
        raise SettingsError(f"Invalid [parser] value: {e}") from e

    try:
        timeout = float(env.get("SPLITBILL_REQUEST_TIMEOUT", "").strip() or data.get("request_timeout", 60.0))
    except (TypeError, ValueError) as e:
        raise SettingsError(f"Invalid request_timeout: {e}") from e

    veryfi = replace(
        VeryfiSettings(),
        **_string_fields(_section(data, "veryfi"), env, "VERYFI", ("client_id", "username", "api_key", "endpoint")),
    )
    openai = replace(
        OpenAISettings(),
        **_string_fields(_section(data, "openai"), env, "OPENAI", ("api_key", "model", "endpoint")),
    )
    mindee = replace(
        MindeeSettings(),
        **_string_fields(
            _section(data, "mindee"),
            env,
            "MINDEE",
            ("api_key", "model_id", "product_owner", "model_name", "model_version", "endpoint"),
        ),
    )

    return Settings(
        engines=engines,
        ocr_service_url=(env.get("OCR_SERVICE_URL", "").strip() or str(data.get("ocr_service_url", DEFAULT_OCR_SERVICE_URL))).rstrip("/"),
        request_timeout=timeout,
        thresholds=thresholds,
        veryfi=veryfi,
        openai=openai,
        mindee=mindee,
    )

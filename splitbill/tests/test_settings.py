from __future__ import annotations

from decimal import Decimal
from pathlib import Path

import pytest

from splitbill.runtime import get_paths
from splitbill.runtime.settings import (
    ENGINE_NAMES,
    MINDEE_API_BASE,
    MindeeSettings,
    SettingsError,
    canonical_engine_name,
    load_settings,
    resolve_engine_order,
)


def _write_config(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def test_defaults_without_config_file() -> None:
    settings = load_settings(env={})

    assert settings.engines == ENGINE_NAMES
    assert settings.ocr_service_url == "http://localhost:8001"
    assert settings.request_timeout == 60.0
    assert not settings.veryfi.configured
    assert not settings.openai.configured
    assert not settings.mindee.configured


def test_config_file_is_read_from_state_root() -> None:
    paths = get_paths()
    paths.root.mkdir(parents=True)
    _write_config(paths.config_file, 'engines = ["openai", "local"]\nocr_service_url = "http://ocr:9000/"\n')

    settings = load_settings(env={})

    assert settings.engines == ("openai", "local")
    assert settings.ocr_service_url == "http://ocr:9000"


def test_environment_overrides_file(tmp_path: Path) -> None:
    config = _write_config(
        tmp_path / "splitbill.toml",
        'engines = ["local"]\nrequest_timeout = 30\n[openai]\nmodel = "gpt-4o"\napi_key = "from-file"\n',
    )
    env = {
        "SPLITBILL_ENGINES": "veryfi, openai",
        "SPLITBILL_REQUEST_TIMEOUT": "5",
        "OPENAI_API_KEY": "from-env",
        "VERYFI_CLIENT_ID": "cid",
        "VERYFI_USERNAME": "user",
        "VERYFI_API_KEY": "key",
    }

    settings = load_settings(config, env=env)

    assert settings.engines == ("veryfi", "openai")
    assert settings.request_timeout == 5.0
    assert settings.openai.api_key == "from-env"
    assert settings.openai.model == "gpt-4o"
    assert settings.veryfi.configured


def test_only_and_first_engine_overrides() -> None:
    assert load_settings(env={"SPLITBILL_OCR_FIRST": "mindee"}).engines == ("mindee", "local", "veryfi", "openai")
    assert load_settings(env={"SPLITBILL_OCR_ONLY": "Tesseract", "SPLITBILL_OCR_FIRST": "openai"}).engines == (
        "local",
    )


def test_parser_thresholds_from_config(tmp_path: Path) -> None:
    config = _write_config(tmp_path / "c.toml", "[parser]\nreconciliation_floor = 5\nmax_quantity = 12\n")

    thresholds = load_settings(config, env={}).thresholds

    assert thresholds.reconciliation_floor == Decimal("5")
    assert thresholds.max_quantity == 12
    assert thresholds.reconciliation_ratio == Decimal("0.05")


@pytest.mark.parametrize(
    "text",
    [
        "engines = [\n",
        'engines = "local"\n',
        'engines = ["abacus"]\n',
        "[parser]\nunknown_knob = 1\n",
        "parser = 3\n",
        'request_timeout = "soon"\n',
    ],
)
def test_invalid_config_raises_settings_error(tmp_path: Path, text: str) -> None:
    config = _write_config(tmp_path / "bad.toml", text)
    with pytest.raises(SettingsError):
        load_settings(config, env={})


def test_engine_aliases_and_order() -> None:
    assert canonical_engine_name(" OCR ") == "local"
    assert resolve_engine_order(["openai", "local", "OpenAI"]) == ("openai", "local")
    assert resolve_engine_order(["local", "veryfi"], first="veryfi") == ("veryfi", "local")
    with pytest.raises(SettingsError):
        resolve_engine_order([])
    with pytest.raises(SettingsError):
        canonical_engine_name("abacus")


def test_mindee_url_variants() -> None:
    assert MindeeSettings(api_key="k").url == ""
    assert not MindeeSettings(api_key="k").configured
    assert MindeeSettings(api_key="k", model_id="abc").url == f"{MINDEE_API_BASE}/abc/predict"
    assert (
        MindeeSettings(api_key="k", product_owner="acme", model_name="bills").url
        == f"{MINDEE_API_BASE}/acme/bills/v1/predict"
    )
    assert MindeeSettings(api_key="k", endpoint="https://x/predict", model_id="abc").url == "https://x/predict"

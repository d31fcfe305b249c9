"""Runtime infrastructure for splitbill.

This package provides process/runtime services including:
- Logging setup via get_logger()
- Path resolution via get_paths(), ProjectPaths
- Configuration via load_settings(), Settings
- Bill state persistence via BillStore

Usage:
    from splitbill.runtime import get_logger, get_paths, load_settings

    logger = get_logger(__name__)
    settings = load_settings()
"""

from splitbill.runtime.logging import (
    DEFAULT_LOG_LEVEL,
    LOG_FORMAT,
    LOG_FORMAT_DEBUG,
    configure_logging,
    get_logger,
    set_log_level,
)
from splitbill.runtime.paths import ProjectPaths, get_paths, reset_paths
from splitbill.runtime.settings import (
    MindeeSettings,
    OpenAISettings,
    Settings,
    SettingsError,
    VeryfiSettings,
    load_settings,
)
from splitbill.runtime.bill_storage import PERSISTED_KEYS, BillStore

__all__ = [
    # Logging
    "get_logger",
    "configure_logging",
    "set_log_level",
    "DEFAULT_LOG_LEVEL",
    "LOG_FORMAT",
    "LOG_FORMAT_DEBUG",
    # Paths
    "get_paths",
    "reset_paths",
    "ProjectPaths",
    # Settings
    "load_settings",
    "Settings",
    "SettingsError",
    "VeryfiSettings",
    "OpenAISettings",
    "MindeeSettings",
    # Storage
    "BillStore",
    "PERSISTED_KEYS",
]

"""Logging configuration for splitbill.

Usage:
    from splitbill.runtime import get_logger
    logger = get_logger(__name__)

    logger.info("Engine accepted")

Environment variables:
    SPLITBILL_LOG_LEVEL: Set log level (DEBUG, INFO, WARNING, ERROR). Default: INFO
"""

import logging
import os
import sys

DEFAULT_LOG_LEVEL = logging.INFO

LOG_NAMESPACE = "splitbill"
LOG_FORMAT = "%(levelname)s [%(name)s] %(message)s"
LOG_FORMAT_DEBUG = "%(levelname)s [%(name)s:%(lineno)d] %(message)s"

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
}

_logging_configured = False


def level_from_env(default: int = DEFAULT_LOG_LEVEL) -> int:
    """Read SPLITBILL_LOG_LEVEL; unknown or empty values give ``default``."""
    return _LEVELS.get(os.environ.get("SPLITBILL_LOG_LEVEL", "").strip().upper(), default)


def configure_logging(level: int | None = None) -> None:
    """Attach a stderr handler to the splitbill namespace logger, once per process.

    Args:
        level: Log level to use. If None, reads SPLITBILL_LOG_LEVEL.
    """
    global _logging_configured

    if _logging_configured:
        return

    if level is None:
        level = level_from_env()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT_DEBUG if level == logging.DEBUG else LOG_FORMAT))

    namespace_logger = logging.getLogger(LOG_NAMESPACE)
    namespace_logger.setLevel(level)
    namespace_logger.addHandler(handler)
    namespace_logger.propagate = False

    _logging_configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the splitbill namespace.

    Module names already inside the package (``splitbill.receipt.text_parser``) are
    used as-is; anything else is nested below ``splitbill``.
    """
    configure_logging()
    if name == LOG_NAMESPACE or name.startswith(f"{LOG_NAMESPACE}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{LOG_NAMESPACE}.{name}")


def set_log_level(level: int) -> None:
    """Change the log level at runtime, switching the format to/from DEBUG."""
    logger = logging.getLogger(LOG_NAMESPACE)
    logger.setLevel(level)
    for handler in logger.handlers:
        handler.setFormatter(logging.Formatter(LOG_FORMAT_DEBUG if level == logging.DEBUG else LOG_FORMAT))

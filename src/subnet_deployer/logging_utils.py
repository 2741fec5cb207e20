"""Logging helpers for the subnet deployer."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from subnet_deployer.config import load_settings

RUN_LOGGER_NAME = "subnet_deployer.run"

_logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


def _resolve_level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def _build_handlers(log_file: str | None) -> list[logging.Handler]:
    formatter = logging.Formatter(_LOG_FORMAT, datefmt=_DATE_FORMAT)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        try:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(log_file))
        except OSError as exc:
            _logger.warning("Failed to open log file %s: %s", log_file, exc)
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def configure_logging(level: str | None = None) -> logging.Logger:
    """Install the handlers for one CLI run and return the run logger.

    ``level`` overrides the configured ``LOG_LEVEL`` (the CLI passes ``--log-level``).
    The returned logger is handed to the orchestrator, so calling this again
    replaces the handlers instead of stacking them.
    """
    settings = load_settings()
    resolved_level = _resolve_level(level or settings.logging.level)

    logging.basicConfig(
        level=resolved_level,
        handlers=_build_handlers(settings.logging.file),
        force=True,
    )
    # botocore never logs below INFO, even with --log-level debug.
    logging.getLogger("botocore").setLevel(max(resolved_level, logging.INFO))
    return logging.getLogger(RUN_LOGGER_NAME)

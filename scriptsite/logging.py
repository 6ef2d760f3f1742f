"""Loggers for the build pipeline.

Every component logs under ``scriptsite.<component>``. Script warnings go
through ``scriptsite.warnings``; the CLI prints those itself once the build
ends, so the console only echoes them as they happen in verbose mode. A log
file, when requested, records everything.
"""

from __future__ import annotations

import logging
from pathlib import Path

_LOGGER_NAME = "scriptsite"
WARNINGS_LOGGER = f"{_LOGGER_NAME}.warnings"

_CONSOLE_FORMAT = "[scriptsite] %(levelname)s %(message)s"
_VERBOSE_CONSOLE_FORMAT = "[scriptsite] %(levelname)s %(name)s: %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_logger(name: str | None = None) -> logging.Logger:
    """Logger for one pipeline component, e.g. ``get_logger("loader")``."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


class _SkipScriptWarnings(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return record.name != WARNINGS_LOGGER


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Attach a console handler (and optionally a file handler) to the build logger."""
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(logging.DEBUG if log_file is not None else level)
    logger.propagate = False

    # One build per call; a second call in the same process replaces the handlers.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(logging.Formatter(_VERBOSE_CONSOLE_FORMAT if verbose else _CONSOLE_FORMAT))
    if not verbose:
        console.addFilter(_SkipScriptWarnings())
    logger.addHandler(console)

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        logger.addHandler(file_handler)

    return logger


__all__ = ["WARNINGS_LOGGER", "configure_logging", "get_logger"]

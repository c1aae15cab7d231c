"""
Logging configuration for buildgate.

Text logging for consoles and JSON lines for machines. Every builder run binds
its run id to ``correlation_id_var`` so all records of one run can be joined.

Usage:
    from buildgate.logging_config import configure_logging

    configure_logging(run_id="build-42", structured=True)

Environment Variables:
    BUILDGATE_LOG_DIR - Override default log directory
    BUILDGATE_LOG_LEVEL - Set log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
"""

from __future__ import annotations

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime
from pathlib import Path
from typing import Optional

LOGGER_NAME = "buildgate"
TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
TEXT_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Correlation id of the builder run currently executing in this context
correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

_STANDARD_ATTRS = set(logging.LogRecord("", 0, "", 0, "", None, None).__dict__) | {"message", "asctime"}


class StructuredFormatter(logging.Formatter):
    """JSON formatter: one object per record with correlation id and extras.

    Anything passed through ``extra=`` (``event``, counts, paths) becomes a
    top-level key.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = dict(
            timestamp=self.formatTime(record, self.datefmt),
            level=record.levelname,
            logger=record.name,
            message=record.getMessage(),
            correlation_id=correlation_id_var.get(),
        )
        entry.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _STANDARD_ATTRS and key not in entry
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def get_default_log_dir(workspace: Optional[Path] = None) -> Path:
    """Directory for builder run logs.

    ``$BUILDGATE_LOG_DIR`` wins; otherwise ``.buildgate/logs`` under the
    workspace (or the current directory).
    """
    override = os.environ.get("BUILDGATE_LOG_DIR")
    if override:
        return Path(override)
    return Path(workspace or Path.cwd()) / ".buildgate" / "logs"


def _make_formatter(structured: bool) -> logging.Formatter:
    if structured:
        return StructuredFormatter()
    return logging.Formatter(TEXT_FORMAT, datefmt=TEXT_DATEFMT)


def _run_log_path(log_dir: Path, run_id: Optional[str], structured: bool) -> Path:
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return log_dir / f"{run_id or LOGGER_NAME}_{stamp}.{'jsonl' if structured else 'log'}"


def configure_logging(
    run_id: Optional[str] = None,
    workspace: Optional[Path] = None,
    log_dir: Optional[Path] = None,
    log_level: Optional[str] = None,
    log_to_console: bool = True,
    log_to_file: bool = True,
    structured: bool = False,
) -> logging.Logger:
    """
    Attach console and/or file handlers to the ``buildgate`` logger.

    Existing handlers are replaced, so calling this once per builder run is
    safe. The file handler always records DEBUG; the console follows
    ``log_level`` (``$BUILDGATE_LOG_LEVEL``, then INFO).

    Args:
        run_id: Prefix of the log filename
        workspace: Root used for the default log directory
        log_dir: Explicit log directory
        log_level: Level name for the logger and console
        log_to_console: Emit to stdout
        log_to_file: Emit to ``<log_dir>/<run_id>_<timestamp>.log|jsonl``
        structured: JSON lines instead of text
    """
    level_name = (log_level or os.environ.get("BUILDGATE_LOG_LEVEL") or "INFO").upper()
    level = getattr(logging, level_name)

    root = logging.getLogger(LOGGER_NAME)
    root.handlers.clear()
    root.setLevel(level)
    formatter = _make_formatter(structured)

    handlers = []
    if log_to_console:
        stream = logging.StreamHandler(sys.stdout)
        stream.setLevel(level)
        handlers.append(stream)

    log_path = None
    if log_to_file:
        target_dir = Path(log_dir) if log_dir is not None else get_default_log_dir(workspace)
        target_dir.mkdir(parents=True, exist_ok=True)
        log_path = _run_log_path(target_dir, run_id, structured)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        handlers.append(file_handler)

    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    if log_path is not None:
        root.info("[Logging] Writing builder logs to %s", log_path, extra={"event": "logging_configured"})
    return root

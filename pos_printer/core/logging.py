"""
Logging utilities for the POS Printer service.

- RequestIdFilter attaches request_id and path when in a Flask request context
- JsonFormatter for structured logs when POSPRINTER_JSON_LOGS=true
- configure_logging() initializes root logging with journald or console,
  optional rotating log files, and integrates with Flask's logger
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, List, Optional

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


class RequestIdFilter(logging.Filter):
    """
    Attach request-scoped metadata (request_id, path) to log records.
    Safely degrades outside of a Flask request context.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        try:
            from flask import g, has_request_context, request  # lazy import

            if has_request_context():
                record.request_id = getattr(g, "request_id", "-")
                record.path = request.path
            else:
                record.request_id = "-"
                record.path = "-"
        except Exception:
            record.request_id = "-"
            record.path = "-"
        return True


class JsonFormatter(logging.Formatter):
    """
    Minimal JSON formatter that includes timestamp, level, logger, message, request_id, and path.
    """

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        from json import dumps

        base = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "request_id": getattr(record, "request_id", "-"),
        }
        path = getattr(record, "path", None)
        if path is not None:
            base["path"] = path
        if record.exc_info:
            base["exc"] = self.formatException(record.exc_info)
        return dumps(base, ensure_ascii=False)


def _console_handler() -> logging.Handler:
    # Prefer systemd journal when available
    try:
        from systemd.journal import JournalHandler  # type: ignore

        return JournalHandler(SYSLOG_IDENTIFIER="pos-printer")
    except Exception:
        return logging.StreamHandler()


def _file_handlers(directory: str) -> List[logging.Handler]:
    log_dir = Path(directory)
    log_dir.mkdir(parents=True, exist_ok=True)
    combined = RotatingFileHandler(
        log_dir / "combined.log", maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS, encoding="utf-8"
    )
    errors = RotatingFileHandler(
        log_dir / "error.log", maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS, encoding="utf-8"
    )
    errors.setLevel(logging.ERROR)
    return [combined, errors]


def configure_logging(settings: Optional[Mapping[str, Any]] = None) -> logging.Logger:
    """
    Configure root logging for the service.

    Behavior:
    - Sets root logger to POSPRINTER_LOG_LEVEL (default INFO)
    - Clears any existing handlers to avoid duplicates on reload
    - Chooses JSON or plain formatter based on POSPRINTER_JSON_LOGS
    - Prefer systemd's JournalHandler, fallback to StreamHandler
    - Adds combined.log/error.log rotating files when a log directory is configured
    - Adds RequestIdFilter so formatters can reference %(request_id)s
    - Ensures Flask app logger propagates to root (no separate handlers)

    Returns the configured root logger.
    """
    root = logging.getLogger()
    level_name = os.environ.get("POSPRINTER_LOG_LEVEL", "INFO").upper()
    root.setLevel(getattr(logging, level_name, logging.INFO))

    # Avoid duplicate logs in dev reloads or repeated factory calls
    for old in list(root.handlers):
        root.removeHandler(old)
        try:
            old.close()
        except Exception:
            pass

    json_logs = os.environ.get("POSPRINTER_JSON_LOGS", "false").lower() in ("1", "true", "yes")
    formatter: logging.Formatter
    if json_logs:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter("[%(asctime)s] %(levelname)s %(request_id)s %(message)s")

    handlers = [_console_handler()]
    directory = ((settings or {}).get("logging") or {}).get("directory")
    if directory:
        handlers.extend(_file_handlers(str(directory)))

    request_filter = RequestIdFilter()
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(request_filter)
        root.addHandler(handler)

    # The app logger propagates to root (avoid double formatting)
    app_logger = logging.getLogger("pos_printer")
    app_logger.handlers = []
    app_logger.propagate = True

    return root


__all__ = ["JsonFormatter", "RequestIdFilter", "configure_logging"]

"""
Logging setup: rich console output for interactive use, JSON lines in production.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict

from rich.logging import RichHandler


class JSONFormatter(logging.Formatter):
    """Structured log entries with consistent fields for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        log_entry: Dict[str, Any] = {
            "timestamp": timestamp.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in ("quiz_id", "class_label", "path", "status_code"):
            if hasattr(record, key):
                log_entry[key] = getattr(record, key)

        if record.levelno >= logging.ERROR:
            log_entry["source"] = f"{record.pathname}:{record.lineno}"
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level: str = "INFO", *, json_format: bool = False) -> None:
    """
    Configure the root logger once for the process.

    Replaces previously installed handlers so repeated calls (tests, the CLI
    calling into the API) do not duplicate output.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler: logging.Handler
    if json_format:
        handler = logging.StreamHandler()
        handler.setFormatter(JSONFormatter())
    else:
        handler = RichHandler(rich_tracebacks=True, show_path=False, markup=False)
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(log_level)

    # Third-party loggers that are chatty at INFO.
    logging.getLogger("uvicorn.access").setLevel(max(log_level, logging.WARNING))

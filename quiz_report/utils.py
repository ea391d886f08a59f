"""
Small file and timestamp helpers shared across the package.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import yaml

DATE_FORMAT = "%d/%m/%Y"


def ensure_directory(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


def write_json(path: Path, data: Any) -> None:
    path.write_text(
        json.dumps(data, ensure_ascii=False, indent=2, default=_json_default),
        encoding="utf-8",
    )


def read_yaml(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle)


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serialisable")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Convert a timestamp-like value into an aware UTC ``datetime``.

    Accepts ``datetime`` objects, epoch seconds or milliseconds, ISO 8601
    strings, and exported Firestore timestamps (``{"_seconds": ...}`` or
    ``{"seconds": ...}``). Returns ``None`` when the value cannot be read.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        seconds = float(value)
        if seconds > 1e12:
            seconds /= 1000.0
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, dict):
        seconds = value.get("_seconds", value.get("seconds"))
        if seconds is None:
            return None
        return parse_timestamp(seconds)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def format_date(value: Any) -> str:
    """Format a timestamp-like value as ``DD/MM/YYYY``; empty string if unreadable."""
    parsed = parse_timestamp(value)
    if parsed is None:
        return ""
    return parsed.strftime(DATE_FORMAT)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)

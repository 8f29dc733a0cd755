"""
lexintake Utilities
====================

Shared helper functions for logging, canonical hashing, timestamps
and text processing used across both pipelines.
"""

from __future__ import annotations

import hashlib
import json
import logging
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


# ── Identifiers ────────────────────────────────────────────────────

def generate_id() -> str:
    """Random UUID4 string used for evaluation records and AI runs."""
    return str(uuid.uuid4())


# ── Hashing ────────────────────────────────────────────────────────

def canonical_json(obj: Any) -> str:
    """
    Serialize an object to canonical JSON.

    Keys are sorted at every level and separators carry no whitespace,
    so two structurally equal objects always produce the same string
    regardless of insertion order.
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def compute_content_hash(obj: Any) -> str:
    """
    Compute a content-addressable SHA-256 hash for any JSON-serializable object.

    Used for run idempotency: the hash of (snapshots + prompts + task
    catalog) identifies one logical AI run.
    """
    return hashlib.sha256(canonical_json(obj).encode("utf-8")).hexdigest()


# ── Time ───────────────────────────────────────────────────────────

def utc_now_iso() -> str:
    """Current UTC time as an ISO 8601 string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso_timestamp(value: str) -> datetime:
    """
    Parse an ISO 8601 timestamp, accepting a trailing ``Z``.

    Naive timestamps are taken to be UTC.
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def month_start_utc(now: datetime | None = None) -> datetime:
    """First instant of the current calendar month in UTC."""
    now = now or datetime.now(timezone.utc)
    return datetime(now.year, now.month, 1, tzinfo=timezone.utc)


# ── Logging ────────────────────────────────────────────────────────

class JsonFormatter(logging.Formatter):
    """One JSON object per line, timestamped in UTC."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def setup_logging(level: str = "INFO", format_style: str = "text") -> logging.Logger:
    """
    Configure the ``lexintake`` logger tree on stderr.

    Args:
        level: Log level name; unknown names fall back to INFO.
        format_style: "json" for one JSON object per line, anything else
            for a human-readable line.

    Returns:
        The package root logger.
    """
    logger = logging.getLogger("lexintake")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.handlers.clear()

    # stdout carries command output
    handler = logging.StreamHandler(sys.stderr)
    if format_style == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)-7s %(name)s: %(message)s", datefmt="%H:%M:%S"))
    logger.addHandler(handler)
    return logger


# ── Text Processing Helpers ────────────────────────────────────────

def normalize_whitespace(text: str) -> str:
    """Collapse multiple whitespace characters into single spaces and strip."""
    return " ".join(text.split())


def truncate(text: str, max_chars: int) -> str:
    """Cut text to at most ``max_chars`` characters."""
    return text if len(text) <= max_chars else text[:max_chars]


# ── File I/O Helpers ───────────────────────────────────────────────

def save_json(data: Any, path: str | Path, indent: int = 2) -> Path:
    """Save data as formatted JSON file with UTF-8 encoding."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=indent, ensure_ascii=False, default=str)
    return path


def load_json(path: str | Path) -> Any:
    """Load a JSON file."""
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)

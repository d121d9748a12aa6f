"""Shared helpers — hashing, timestamps, ids, display formatting."""

from __future__ import annotations

import hashlib
import secrets
import time
from datetime import datetime, timezone
from pathlib import Path


def sha256_file(path: Path) -> str:
    """Return the hex SHA-256 digest of *path*."""
    h = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(8192), b""):
            h.update(chunk)
    return h.hexdigest()


def utcnow_iso() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def new_report_id() -> str:
    """Return a unique id like ``1729300000000_k3j9x2a1q``."""
    return f"{int(time.time() * 1000)}_{secrets.token_hex(5)[:9]}"


def format_number(value: int | float) -> str:
    """``1234567`` -> ``'1,234,567'``."""
    if isinstance(value, float) and not value.is_integer():
        return f"{value:,.2f}"
    return f"{int(value):,}"


def format_percent(value: float) -> str:
    """Percent points with two decimals, e.g. ``3.3333`` -> ``'3.33%'``."""
    return f"{value:.2f}%"

"""I/O helpers — read input text, write JSON artifacts, record handoff files."""

from __future__ import annotations

import json
from collections.abc import Sequence
from datetime import date, datetime
from pathlib import Path
from typing import Any

from blacklist_stats.models import Record, records_from_dicts

_ENCODINGS = ("utf-8-sig", "utf-8", "gb18030")

# ── Loading ──────────────────────────────────────────────────────


def load_text(path: Path) -> str:
    """Return the decoded text of a CSV file.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    ValueError
        If *path* is a directory or cannot be decoded.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")
    if path.is_dir():
        raise ValueError(f"Input is a directory, not a file: {path}")

    raw = path.read_bytes()
    last_exc: Exception | None = None
    for encoding in _ENCODINGS:
        try:
            return raw.decode(encoding)
        except UnicodeDecodeError as exc:
            last_exc = exc
    raise ValueError(f"Could not decode {path} (tried {', '.join(_ENCODINGS)})") from last_exc


def load_records_json(path: Path) -> list[Record]:
    """Load a records handoff file written by :func:`write_records_json`."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Records file not found: {path}")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValueError(f"Could not read records file {path}") from exc

    rows = payload.get("records") if isinstance(payload, dict) else None
    if not isinstance(rows, list) or not all(isinstance(row, dict) for row in rows):
        raise ValueError(f"Records file {path} has no 'records' list")
    try:
        return records_from_dicts(rows)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid record in {path}: {exc}") from exc


# ── Writing ──────────────────────────────────────────────────────


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    item = getattr(obj, "item", None)
    if callable(item):
        converted = item()
        if isinstance(converted, (str, int, float, bool)) or converted is None:
            return converted
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def write_json(path: Path, data: Any) -> Path:
    """Write *data* as pretty-printed JSON to *path* (atomic + deterministic)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    payload = json.dumps(
        data,
        indent=2,
        sort_keys=True,
        ensure_ascii=False,
        default=_json_default,
    ) + "\n"
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(payload, encoding="utf-8")
    tmp_path.replace(path)
    return path


def write_records_json(
    path: Path, records: Sequence[Record], *, file_name: str = ""
) -> Path:
    """Persist *records* as plain JSON so a later run can re-aggregate them."""
    return write_json(
        path,
        {
            "file_name": file_name,
            "records": [r.to_dict() for r in records],
        },
    )

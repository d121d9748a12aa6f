"""Record parser — delimited text in, validated records out.

Never raises on bad data: structural CSV errors give an empty result and
every field-level problem is coerced to a default. What was coerced is
described in the accompanying :class:`QCReport`.
"""

from __future__ import annotations

import io
import logging
import re
from collections.abc import Mapping
from typing import Any

import pandas as pd

from blacklist_stats import (
    COUNTER_COLUMNS,
    DIMENSION_COLUMNS,
    REQUIRED_COLUMNS,
    UNKNOWN_LABEL,
)
from blacklist_stats.models import QCReport, Record

logger = logging.getLogger(__name__)

_LEADING_INT_RE = re.compile(r"^\s*([+-]?[0-9]+)")

# Blank values fall back to these; anything not listed falls back to "".
_DIMENSION_DEFAULTS: dict[str, str] = {
    "account": UNKNOWN_LABEL,
    "province": UNKNOWN_LABEL,
}


# ── Field coercion ───────────────────────────────────────────────


def parse_count(value: object) -> int | None:
    """Parse the leading base-10 integer of *value*.

    ``"12"`` -> 12, ``" 7 calls"`` -> 7, ``"1.9"`` -> 1, ``"abc"`` -> None.
    """
    if value is None:
        return None
    match = _LEADING_INT_RE.match(str(value))
    if match is None:
        return None
    return int(match.group(1))


def _coerce_counter(values: pd.Series) -> tuple[list[int], int, int]:
    """Return ``(counts, coerced, clamped)`` for one counter column."""
    counts: list[int] = []
    coerced = 0
    clamped = 0
    for raw in values:
        parsed = parse_count(raw)
        if parsed is None:
            if str(raw).strip():
                coerced += 1
            parsed = 0
        elif parsed < 0:
            clamped += 1
            parsed = 0
        counts.append(parsed)
    return counts, coerced, clamped


def _coerce_dimension(values: pd.Series, column: str) -> list[str]:
    default = _DIMENSION_DEFAULTS.get(column, "")
    return [str(v) or default for v in values]


# ── Row splitting ────────────────────────────────────────────────


def find_duplicate_columns(columns: pd.Index) -> list[str]:
    return sorted({str(name) for name in columns[columns.duplicated(keep=False)]})


def _read_frame(text: str) -> pd.DataFrame:
    # Empty fields stay ""; only fields absent from short rows come back as NA.
    return pd.read_csv(
        io.StringIO(text),
        sep=",",
        dtype="string",
        index_col=False,
        keep_default_na=False,
        skip_blank_lines=True,
    )


# ── Public API ───────────────────────────────────────────────────


def parse_records_with_report(
    text: str,
    column_map: Mapping[str, str] | None = None,
) -> tuple[list[Record], QCReport]:
    """Parse CSV *text* into records plus an advisory QC report.

    *column_map* renames source headers (``{source: target}``) before
    field lookup. Header names are matched exactly.
    """
    qc = QCReport()
    text = text.lstrip("\ufeff")

    try:
        frame = _read_frame(text)
    except pd.errors.EmptyDataError:
        qc.warnings.append("Input has no header row")
        return [], qc
    except pd.errors.ParserError as exc:
        qc.warnings.append(f"Could not split rows: {exc}")
        return [], qc

    qc.rows_in = qc.rows_out = len(frame)
    short_rows = [int(i) + 1 for i in frame.index[frame.isna().any(axis=1)]]
    if short_rows:
        qc.rows_out = 0
        qc.dropped_rows = qc.rows_in
        shown = ", ".join(str(n) for n in short_rows[:5])
        more = f" (+{len(short_rows) - 5} more)" if len(short_rows) > 5 else ""
        qc.warnings.append(
            f"Too few fields in data row(s) {shown}{more}; expected {len(frame.columns)}"
        )
        return [], qc

    if column_map:
        frame = frame.rename(columns=dict(column_map))
        duplicates = find_duplicate_columns(frame.columns)
        if duplicates:
            qc.rows_out = 0
            qc.dropped_rows = qc.rows_in
            qc.warnings.append(
                f"Mapping produced duplicate columns: {', '.join(duplicates)}"
            )
            return [], qc

    if frame.empty:
        qc.warnings.append("Input has no data rows")
        return [], qc

    present = set(frame.columns)
    qc.missing_columns = [c for c in REQUIRED_COLUMNS if c not in present]
    if qc.missing_columns:
        qc.warnings.append(f"Missing columns defaulted: {', '.join(qc.missing_columns)}")

    blank = pd.Series([""] * len(frame), index=frame.index, dtype="string")
    fields: dict[str, list[Any]] = {}

    for column in DIMENSION_COLUMNS:
        source = frame[column] if column in present else blank
        fields[column] = _coerce_dimension(source, column)

    for column in COUNTER_COLUMNS:
        if column not in present:
            fields[column] = [0] * len(frame)
            continue
        counts, coerced, clamped = _coerce_counter(frame[column])
        fields[column] = counts
        if coerced:
            suffix = "" if coerced == 1 else "s"
            qc.warnings.append(
                f"Coerced {coerced} non-numeric value{suffix} in {column} to 0"
            )
        if clamped:
            suffix = "" if clamped == 1 else "s"
            qc.warnings.append(
                f"Clamped {clamped} negative value{suffix} in {column} to 0"
            )

    names = list(fields)
    records = [Record(**dict(zip(names, row))) for row in zip(*fields.values())]
    logger.debug("Parsed %d records (%d columns in header)", len(records), len(present))
    return records, qc


def parse_records(text: str, column_map: Mapping[str, str] | None = None) -> list[Record]:
    """Parse CSV *text* into records; empty list when nothing parses."""
    records, _qc = parse_records_with_report(text, column_map)
    return records

"""Data models used across the package."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from numbers import Integral
from typing import Any

from blacklist_stats import COUNTER_COLUMNS, DIMENSION_COLUMNS


def _to_non_negative_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise TypeError(f"{field_name} must be an integer")
    result = int(value)
    if result < 0:
        raise ValueError(f"{field_name} must be >= 0")
    return result


def _to_str(value: Any, field_name: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{field_name} must be a string")
    return value


def _to_string_list(values: Sequence[Any] | None, field_name: str) -> list[str]:
    if values is None:
        return []
    if isinstance(values, str):
        raise TypeError(f"{field_name} must be a sequence of strings")
    normalized: list[str] = []
    for item in values:
        if not isinstance(item, str):
            raise TypeError(f"{field_name} items must be strings")
        normalized.append(item)
    return normalized


def compute_rate(black: int, total: int) -> float:
    """Black share of *total* in percent points; 0.0 when *total* is 0.

    Not clamped: ``black > total`` yields a value above 100.
    """
    return (black / total) * 100 if total > 0 else 0.0


# ── Records ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class Record:
    """One parsed input row.

    Field names are the input column names, so ``to_dict`` round-trips
    through plain JSON.
    """

    dt: str = ""
    account: str = ""
    province: str = ""
    group: str = ""
    total_outbound_count: int = 0
    black_outbound_count: int = 0
    total_pickup_count: int = 0
    black_pickup_count: int = 0
    total_pay_count: int = 0
    black_pay_count: int = 0
    total_complain_count: int = 0
    black_complain_count: int = 0

    def __post_init__(self) -> None:
        for name in DIMENSION_COLUMNS:
            _to_str(getattr(self, name), name)
        for name in COUNTER_COLUMNS:
            object.__setattr__(self, name, _to_non_negative_int(getattr(self, name), name))

    def to_dict(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in (*DIMENSION_COLUMNS, *COUNTER_COLUMNS)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Record:
        unknown = sorted(set(data) - set(DIMENSION_COLUMNS) - set(COUNTER_COLUMNS))
        if unknown:
            raise ValueError(f"Unknown record fields: {', '.join(unknown)}")
        return cls(**data)


# ── Reduction results ────────────────────────────────────────────

# (StatsRow attribute, Record column) pairs, totals before black subsets.
METRIC_FIELDS: list[tuple[str, str]] = [
    ("total_outbound", "total_outbound_count"),
    ("black_outbound", "black_outbound_count"),
    ("total_pickup", "total_pickup_count"),
    ("black_pickup", "black_pickup_count"),
    ("total_pay", "total_pay_count"),
    ("black_pay", "black_pay_count"),
    ("total_complain", "total_complain_count"),
    ("black_complain", "black_complain_count"),
]

METRICS: list[str] = ["outbound", "pickup", "pay", "complain"]

KEY_FIELDS: list[str] = ["group", "account", "province"]


@dataclass(frozen=True)
class StatsRow:
    """Summed counters for one grouping key plus derived black rates.

    Key fields that are not part of the reduction stay ``None``.
    """

    group: str | None = None
    account: str | None = None
    province: str | None = None
    total_outbound: int = 0
    black_outbound: int = 0
    total_pickup: int = 0
    black_pickup: int = 0
    total_pay: int = 0
    black_pay: int = 0
    total_complain: int = 0
    black_complain: int = 0
    black_outbound_rate: float = 0.0
    black_pickup_rate: float = 0.0
    black_pay_rate: float = 0.0
    black_complain_rate: float = 0.0

    @classmethod
    def from_sums(cls, sums: Mapping[str, Any], **keys: str) -> StatsRow:
        """Build a row from per-column sums keyed by Record column name."""
        counters = {attr: int(sums.get(column, 0)) for attr, column in METRIC_FIELDS}
        rates = {
            f"black_{metric}_rate": compute_rate(
                counters[f"black_{metric}"], counters[f"total_{metric}"]
            )
            for metric in METRICS
        }
        return cls(**keys, **counters, **rates)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            name: getattr(self, name) for name in KEY_FIELDS if getattr(self, name) is not None
        }
        for attr, _column in METRIC_FIELDS:
            payload[attr] = getattr(self, attr)
        for metric in METRICS:
            payload[f"black_{metric}_rate"] = getattr(self, f"black_{metric}_rate")
        return payload


@dataclass(frozen=True)
class BatchFileResult:
    """Overall summary of one file in a batch, with its records retained."""

    file_name: str
    stats: StatsRow
    records: tuple[Record, ...] = ()

    def __post_init__(self) -> None:
        _to_str(self.file_name, "file_name")
        object.__setattr__(self, "records", tuple(self.records))


def records_from_dicts(rows: Iterable[Mapping[str, Any]]) -> list[Record]:
    return [Record.from_dict(row) for row in rows]


# ── Run artifacts ────────────────────────────────────────────────


@dataclass
class QCReport:
    """Advisory parse report emitted alongside every run.

    Contract invariant: ``dropped_rows == rows_in - rows_out``.
    """

    rows_in: int = 0
    rows_out: int = 0
    dropped_rows: int = 0
    missing_columns: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.rows_in = _to_non_negative_int(self.rows_in, "rows_in")
        self.rows_out = _to_non_negative_int(self.rows_out, "rows_out")
        self.dropped_rows = _to_non_negative_int(self.dropped_rows, "dropped_rows")
        self.missing_columns = _to_string_list(self.missing_columns, "missing_columns")
        self.warnings = _to_string_list(self.warnings, "warnings")
        if self.rows_out > self.rows_in:
            raise ValueError("rows_out must be <= rows_in")
        expected_dropped = self.rows_in - self.rows_out
        if self.dropped_rows != expected_dropped:
            raise ValueError("dropped_rows must equal rows_in - rows_out")

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows_in": self.rows_in,
            "rows_out": self.rows_out,
            "dropped_rows": self.dropped_rows,
            "missing_columns": list(self.missing_columns),
            "warnings": list(self.warnings),
        }


@dataclass
class RunManifest:
    """Audit-trail manifest for a single CLI run."""

    tool: str = "blacklist-stats"
    version: str = ""
    run_id: str = ""
    command: str = ""
    input_paths: list[str] = field(default_factory=list)
    output_dir: str = ""
    created_at_utc: str = ""
    rows_in: int = 0
    rows_out: int = 0
    sha256: dict[str, str] = field(default_factory=dict)
    status: str = "success"
    error_code: int | None = None
    error_message: str = ""

    def __post_init__(self) -> None:
        self.rows_in = _to_non_negative_int(self.rows_in, "rows_in")
        self.rows_out = _to_non_negative_int(self.rows_out, "rows_out")
        self.input_paths = _to_string_list(self.input_paths, "input_paths")
        if self.status not in {"success", "failed"}:
            raise ValueError("status must be 'success' or 'failed'")

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "version": self.version,
            "run_id": self.run_id,
            "command": self.command,
            "input_paths": list(self.input_paths),
            "output_dir": self.output_dir,
            "created_at_utc": self.created_at_utc,
            "rows_in": self.rows_in,
            "rows_out": self.rows_out,
            "sha256": dict(self.sha256),
            "status": self.status,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }

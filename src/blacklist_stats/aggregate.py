"""Aggregation engine — pure reductions over record sequences.

Every reduction builds a fresh frame from its input, so calls share no
state and may be repeated freely. Grouped reductions go through one
primitive, :func:`_reduce_by`; a new slicing dimension is one more key
column in :func:`records_to_frame` plus a one-line wrapper.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence

import pandas as pd

from blacklist_stats import (
    COUNTER_COLUMNS,
    DIMENSION_COLUMNS,
    NOT_TRIGGERED_GROUP,
    UNKNOWN_LABEL,
)
from blacklist_stats.models import Record, StatsRow

logger = logging.getLogger(__name__)

_NUMERIC_GROUP_RE = re.compile(r"[0-9]+")

# Outbound volume ranks province/account rows for the ranked charts.
RANK_COLUMN = "total_outbound_count"


# ── Frame building ───────────────────────────────────────────────


def _default_unknown(value: str) -> str:
    return value or UNKNOWN_LABEL


def records_to_frame(records: Sequence[Record]) -> pd.DataFrame:
    """Return *records* as a DataFrame with defaulted key columns.

    Counters stay Python ints (object dtype) so sums never overflow int64.
    """
    frame = pd.DataFrame(
        [r.to_dict() for r in records],
        columns=[*DIMENSION_COLUMNS, *COUNTER_COLUMNS],
        dtype=object,
    )
    frame["account"] = frame["account"].map(_default_unknown)
    frame["province"] = frame["province"].map(_default_unknown)
    return frame


def _reduce_by(frame: pd.DataFrame, keys: list[str], *, ranked: bool) -> list[StatsRow]:
    """Sum counters per distinct *keys* combination.

    Rows come out in first-seen key order, or stably sorted by total
    outbound (descending) when *ranked*.
    """
    if frame.empty:
        return []
    summed = frame.groupby(keys, sort=False, as_index=False)[COUNTER_COLUMNS].sum()
    if ranked:
        summed = summed.sort_values(RANK_COLUMN, ascending=False, kind="stable")
    rows = [
        StatsRow.from_sums(entry, **{k: str(entry[k]) for k in keys})
        for entry in summed.to_dict("records")
    ]
    logger.debug("Reduced %d records into %d rows by %s", len(frame), len(rows), keys)
    return rows


# ── Reductions ───────────────────────────────────────────────────


def aggregate_overall(records: Sequence[Record]) -> StatsRow:
    """Sum every counter across *records* into one row with rates."""
    frame = records_to_frame(records)
    return StatsRow.from_sums(frame[COUNTER_COLUMNS].sum().to_dict())


def aggregate_by_group(records: Sequence[Record]) -> list[StatsRow]:
    """One row per distinct ``group`` value, in first-seen order."""
    return _reduce_by(records_to_frame(records), ["group"], ranked=False)


def aggregate_by_province(
    records: Sequence[Record], group: str | None = None
) -> list[StatsRow]:
    """One row per province, ranked by total outbound.

    When *group* is non-empty, only records with exactly that group count.
    """
    frame = records_to_frame(records)
    if group:
        frame = frame[frame["group"] == group]
    return _reduce_by(frame, ["province"], ranked=True)


def aggregate_by_account(records: Sequence[Record]) -> list[StatsRow]:
    """One row per account, ranked by total outbound."""
    return _reduce_by(records_to_frame(records), ["account"], ranked=True)


def aggregate_by_account_province(
    records: Sequence[Record], account: str | None = None
) -> list[StatsRow]:
    """One row per (account, province) pair, ranked by total outbound.

    When *account* is non-empty, only records with exactly that account count.
    """
    frame = records_to_frame(records)
    if account:
        frame = frame[frame["account"] == account]
    return _reduce_by(frame, ["account", "province"], ranked=True)


def top_n(rows: Sequence[StatsRow], n: int) -> list[StatsRow]:
    """First *n* rows of a ranked reduction."""
    if n < 0:
        raise ValueError("n must be >= 0")
    return list(rows[:n])


# ── Distinct values ──────────────────────────────────────────────


def unique_groups(records: Sequence[Record]) -> list[str]:
    """Distinct groups; the not-triggered label first, the rest sorted."""
    groups = {r.group for r in records}
    ordered = sorted(groups - {NOT_TRIGGERED_GROUP})
    if NOT_TRIGGERED_GROUP in groups:
        ordered.insert(0, NOT_TRIGGERED_GROUP)
    return ordered


def unique_provinces(records: Sequence[Record]) -> list[str]:
    return sorted({_default_unknown(r.province) for r in records})


def unique_accounts(records: Sequence[Record]) -> list[str]:
    return sorted({_default_unknown(r.account) for r in records})


def numeric_groups(records: Sequence[Record]) -> list[str]:
    """Distinct all-digit group labels, sorted."""
    return sorted({r.group for r in records if _NUMERIC_GROUP_RE.fullmatch(r.group)})


def has_multiple_numeric_groups(records: Sequence[Record]) -> bool:
    """Heuristic: more than one all-digit group suggests mixed rule sets."""
    return len(numeric_groups(records)) > 1

"""Batch orchestrator — one independent summary per input file.

Files are never merged: each result carries only its own overall row and
its own records. A file that yields no records is skipped; only a batch in
which every file is skipped is an error.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

from blacklist_stats.aggregate import aggregate_overall
from blacklist_stats.io import load_text
from blacklist_stats.models import BatchFileResult
from blacklist_stats.parser import parse_records

logger = logging.getLogger(__name__)

_CSV_SUFFIX_RE = re.compile(r"\.csv$", re.IGNORECASE)
NO_ROWS_REASON = "no parseable rows"


@dataclass(frozen=True)
class SkippedFile:
    """A batch input that produced no result, and why."""

    name: str
    reason: str


class InvalidBatchError(ValueError):
    """Raised when no file in a batch produced any records."""

    def __init__(self, skipped: Sequence[str]) -> None:
        self.skipped = list(skipped)
        detail = f": {', '.join(self.skipped)}" if self.skipped else ""
        super().__init__(f"No valid CSV data in batch{detail}")


def display_name(file_name: str) -> str:
    """``'north.CSV'`` -> ``'north'``."""
    return _CSV_SUFFIX_RE.sub("", file_name)


def summarize_file(file_name: str, text: str) -> BatchFileResult | None:
    """Parse one file and reduce it to its overall row; None if nothing parses."""
    records = parse_records(text)
    if not records:
        return None
    return BatchFileResult(
        file_name=display_name(file_name),
        stats=aggregate_overall(records),
        records=tuple(records),
    )


def summarize_batch(
    files: Iterable[tuple[str, str]],
) -> tuple[list[BatchFileResult], list[str]]:
    """Summarize ``(file_name, text)`` pairs in order; return ``(results, skipped)``."""
    results: list[BatchFileResult] = []
    skipped: list[str] = []
    for file_name, text in files:
        result = summarize_file(file_name, text)
        if result is None:
            logger.warning("Skipping %s: %s", file_name, NO_ROWS_REASON)
            skipped.append(file_name)
            continue
        results.append(result)
    logger.debug("Batch summarized %d files, skipped %d", len(results), len(skipped))
    return results, skipped


def run_batch(files: Iterable[tuple[str, str]]) -> list[BatchFileResult]:
    """Summarize ``(file_name, text)`` pairs in order.

    Raises
    ------
    InvalidBatchError
        If no file produced records (an empty batch included).
    """
    results, skipped = summarize_batch(files)
    if not results:
        raise InvalidBatchError(skipped)
    return results


def load_batch(paths: Iterable[Path]) -> tuple[list[BatchFileResult], list[SkippedFile]]:
    """Read and summarize *paths* in order; return ``(results, skipped)``.

    Unreadable files count as skipped, with the read error as the reason.
    Raises :class:`InvalidBatchError` when nothing survives.
    """
    results: list[BatchFileResult] = []
    skipped: list[SkippedFile] = []
    for path in paths:
        path = Path(path)
        try:
            text = load_text(path)
        except (FileNotFoundError, ValueError, OSError) as exc:
            reason = str(exc)
        else:
            result = summarize_file(path.name, text)
            if result is not None:
                results.append(result)
                continue
            reason = NO_ROWS_REASON
        logger.warning("Skipping %s: %s", path.name, reason)
        skipped.append(SkippedFile(path.name, reason))

    if not results:
        raise InvalidBatchError([s.name for s in skipped])
    return results, skipped

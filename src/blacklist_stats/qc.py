"""QC report persistence."""

from __future__ import annotations

from pathlib import Path

from blacklist_stats.io import write_json
from blacklist_stats.models import QCReport


def write_qc_report(out_dir: Path, qc: QCReport, name: str = "qc_report.json") -> Path:
    """Write *name* (default ``qc_report.json``) into *out_dir* and return the path."""
    return write_json(out_dir / name, qc.to_dict())

"""CLI integration smoke tests for blacklist-stats."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from openpyxl import load_workbook
from typer.testing import CliRunner

import blacklist_stats.cli as cli_mod
from blacklist_stats import __version__
from blacklist_stats.cli import app

runner = CliRunner()

HEADER = "dt,account,province,group,total_outbound_count,black_outbound_count\n"


def _write_csv(tmp_path: Path, name: str, rows: str) -> Path:
    path = tmp_path / name
    path.write_text(rows, encoding="utf-8")
    return path


def _read_json(path: Path) -> dict:  # type: ignore[type-arg]
    return json.loads(path.read_text(encoding="utf-8"))


@pytest.fixture
def calls_csv(tmp_path: Path) -> Path:
    return _write_csv(
        tmp_path,
        "calls.csv",
        HEADER
        + "2024-06-01,a1,广东,31,1000,100\n"
        + "2024-06-01,a2,浙江,未触发黑名单部分,2000,0\n"
        + "2024-06-01,a2,广东,31,500,50\n",
    )


# ── report ───────────────────────────────────────────────────────


def test_report_success_writes_all_artifacts(tmp_path: Path, calls_csv: Path) -> None:
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app, ["report", "--input", str(calls_csv), "--out-dir", str(out_dir), "--quiet"]
    )

    assert result.exit_code == 0
    assert (out_dir / "Blacklist_Report.xlsx").exists()
    qc = _read_json(out_dir / "qc_report.json")
    manifest = _read_json(out_dir / "run_manifest.json")
    assert qc["rows_out"] == 3
    assert manifest["status"] == "success"
    assert manifest["command"] == "report"
    assert manifest["rows_out"] == 3
    assert "calls.csv" in manifest["sha256"]
    assert manifest["run_id"]

    summary = (out_dir / "summary.txt").read_text(encoding="utf-8")
    assert "total_outbound: 3500" in summary
    assert "black_outbound: 150" in summary
    assert "black_outbound_rate: 4.29" in summary
    assert "groups: 未触发黑名单部分, 31" in summary


def test_report_nonquiet_shows_tables(tmp_path: Path, calls_csv: Path) -> None:
    result = runner.invoke(
        app, ["report", "--input", str(calls_csv), "--out-dir", str(tmp_path / "o")]
    )

    assert result.exit_code == 0
    assert "Overall" in result.stdout
    assert "Report Complete" in result.stdout


def test_report_empty_csv_exits_2_with_artifacts(tmp_path: Path) -> None:
    csv_path = _write_csv(tmp_path, "empty.csv", HEADER)
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app, ["report", "--input", str(csv_path), "--out-dir", str(out_dir), "--quiet"]
    )

    assert result.exit_code == 2
    assert not (out_dir / "Blacklist_Report.xlsx").exists()
    qc = _read_json(out_dir / "qc_report.json")
    assert any("no data rows found" in w for w in qc["warnings"])
    manifest = _read_json(out_dir / "run_manifest.json")
    assert manifest["status"] == "failed"
    assert manifest["error_code"] == 2
    assert manifest["rows_out"] == 0


def test_report_group_filter_limits_province_sheet(tmp_path: Path, calls_csv: Path) -> None:
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        [
            "report", "--input", str(calls_csv), "--out-dir", str(out_dir),
            "--group", "31", "--quiet",
        ],
    )

    assert result.exit_code == 0
    ws = load_workbook(out_dir / "Blacklist_Report.xlsx")["Provinces"]
    assert ws.max_row == 2
    assert ws.cell(row=2, column=1).value == "广东"
    assert ws.cell(row=2, column=2).value == 1500


def test_report_missing_group_is_noted(tmp_path: Path, calls_csv: Path) -> None:
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        [
            "report", "--input", str(calls_csv), "--out-dir", str(out_dir),
            "--group", "99", "--quiet",
        ],
    )

    assert result.exit_code == 0
    summary = (out_dir / "summary.txt").read_text(encoding="utf-8")
    assert "Group '99' not present" in summary


def test_report_account_filter(tmp_path: Path, calls_csv: Path) -> None:
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        [
            "report", "--input", str(calls_csv), "--out-dir", str(out_dir),
            "--account", "a2", "--quiet",
        ],
    )

    assert result.exit_code == 0
    ws = load_workbook(out_dir / "Blacklist_Report.xlsx")["Account_Province"]
    assert [ws.cell(row=r, column=2).value for r in (2, 3)] == ["浙江", "广东"]
    assert ws.max_row == 3


def test_report_map_renames_headers(tmp_path: Path) -> None:
    csv_path = _write_csv(
        tmp_path,
        "renamed.csv",
        "Agent,Region,group,total_outbound_count,black_outbound_count\na1,广东,31,10,1\n",
    )
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        [
            "report", "--input", str(csv_path), "--out-dir", str(out_dir),
            "--map", "account=Agent", "--map", "province=Region", "--quiet",
        ],
    )

    assert result.exit_code == 0
    ws = load_workbook(out_dir / "Blacklist_Report.xlsx")["Accounts"]
    assert ws.cell(row=2, column=1).value == "a1"


def test_report_invalid_map_exits_2(tmp_path: Path, calls_csv: Path) -> None:
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        ["report", "--input", str(calls_csv), "--out-dir", str(out_dir), "--map", "nonsense"],
    )

    assert result.exit_code == 2
    manifest = _read_json(out_dir / "run_manifest.json")
    assert "Invalid --map value" in manifest["error_message"]


def test_report_notes_multiple_numeric_groups(tmp_path: Path) -> None:
    csv_path = _write_csv(
        tmp_path,
        "mixed.csv",
        HEADER + "2024-06-01,a1,广东,31,10,1\n2024-06-01,a1,广东,42,10,2\n",
    )
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app, ["report", "--input", str(csv_path), "--out-dir", str(out_dir), "--quiet"]
    )

    assert result.exit_code == 0
    summary = (out_dir / "summary.txt").read_text(encoding="utf-8")
    assert "Multiple numeric groups present (31, 42)" in summary


def test_report_unexpected_error_exits_1(
    tmp_path: Path, calls_csv: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    def _boom(*_args: object, **_kwargs: object) -> Path:
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(cli_mod, "write_report", _boom)
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app, ["report", "--input", str(calls_csv), "--out-dir", str(out_dir), "--quiet"]
    )

    assert result.exit_code == 1
    manifest = _read_json(out_dir / "run_manifest.json")
    assert manifest["status"] == "failed"
    assert manifest["error_code"] == 1
    assert "disk on fire" in manifest["error_message"]


# ── batch ────────────────────────────────────────────────────────


def test_batch_skips_bad_file_and_writes_records(tmp_path: Path, calls_csv: Path) -> None:
    bad = _write_csv(tmp_path, "bad.csv", HEADER)
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        [
            "batch", "--input", str(bad), "--input", str(calls_csv),
            "--out-dir", str(out_dir), "--quiet",
        ],
    )

    assert result.exit_code == 0
    ws = load_workbook(out_dir / "Batch_Report.xlsx")["Batch"]
    assert ws.max_row == 2
    assert ws.cell(row=2, column=1).value == "calls"

    qc = _read_json(out_dir / "qc_report.json")
    assert qc["rows_in"] == 3
    assert qc["rows_out"] == 3
    assert qc["dropped_rows"] == 0
    assert qc["warnings"] == ["Skipped bad.csv: no parseable rows"]

    payload = _read_json(out_dir / "records" / "calls.json")
    assert payload["file_name"] == "calls"
    assert len(payload["records"]) == 3
    assert not (out_dir / "records" / "bad.json").exists()


def test_batch_missing_file_is_skipped(tmp_path: Path, calls_csv: Path) -> None:
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        [
            "batch", "--input", str(tmp_path / "nope.csv"), "--input", str(calls_csv),
            "--out-dir", str(out_dir), "--quiet",
        ],
    )

    assert result.exit_code == 0
    qc = _read_json(out_dir / "qc_report.json")
    [warning] = qc["warnings"]
    assert warning.startswith("Skipped nope.csv: Input file not found")


def test_batch_all_invalid_exits_2(tmp_path: Path) -> None:
    bad = _write_csv(tmp_path, "bad.csv", "")
    worse = _write_csv(tmp_path, "worse.csv", HEADER)
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        [
            "batch", "--input", str(bad), "--input", str(worse),
            "--out-dir", str(out_dir), "--quiet",
        ],
    )

    assert result.exit_code == 2
    assert not (out_dir / "Batch_Report.xlsx").exists()
    manifest = _read_json(out_dir / "run_manifest.json")
    assert manifest["status"] == "failed"
    assert manifest["error_message"] == "No valid CSV data in batch: bad.csv, worse.csv"


def test_report_accepts_batch_records_json(tmp_path: Path, calls_csv: Path) -> None:
    batch_out = tmp_path / "batch"
    runner.invoke(
        app, ["batch", "--input", str(calls_csv), "--out-dir", str(batch_out), "--quiet"]
    )
    records_path = batch_out / "records" / "calls.json"
    out_dir = tmp_path / "report"

    result = runner.invoke(
        app, ["report", "--input", str(records_path), "--out-dir", str(out_dir), "--quiet"]
    )

    assert result.exit_code == 0
    summary = (out_dir / "summary.txt").read_text(encoding="utf-8")
    assert "total_outbound: 3500" in summary
    assert _read_json(out_dir / "qc_report.json")["rows_out"] == 3


def test_report_rejects_malformed_records_json(tmp_path: Path) -> None:
    bad_json = tmp_path / "broken.json"
    bad_json.write_text("{not json", encoding="utf-8")
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app, ["report", "--input", str(bad_json), "--out-dir", str(out_dir), "--quiet"]
    )

    assert result.exit_code == 2
    manifest = _read_json(out_dir / "run_manifest.json")
    assert "Could not read records file" in manifest["error_message"]


# ── validate ─────────────────────────────────────────────────────


def test_validate_pass_writes_artifacts(tmp_path: Path, calls_csv: Path) -> None:
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app, ["validate", "--input", str(calls_csv), "--out-dir", str(out_dir), "--quiet"]
    )

    assert result.exit_code == 0
    qc = _read_json(out_dir / "qc_report.json")
    assert "total_pickup_count" in qc["missing_columns"]
    assert "account" not in qc["missing_columns"]
    assert _read_json(out_dir / "run_manifest.json")["rows_out"] == 3
    assert not (out_dir / "Blacklist_Report.xlsx").exists()


def test_validate_nonquiet_shows_summary_table(tmp_path: Path, calls_csv: Path) -> None:
    result = runner.invoke(
        app, ["validate", "--input", str(calls_csv), "--out-dir", str(tmp_path / "o")]
    )

    assert result.exit_code == 0
    assert "Validation Summary" in result.stdout
    assert "PASS" in result.stdout


def test_validate_unparseable_exits_2(tmp_path: Path) -> None:
    csv_path = _write_csv(tmp_path, "empty.csv", "")
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app, ["validate", "--input", str(csv_path), "--out-dir", str(out_dir), "--quiet"]
    )

    assert result.exit_code == 2
    assert _read_json(out_dir / "run_manifest.json")["status"] == "failed"


def test_validate_profile_loads_mappings(tmp_path: Path) -> None:
    profile_path = tmp_path / "profile.txt"
    profile_path.write_text("# agents\naccount=Agent\n\n", encoding="utf-8")
    csv_path = _write_csv(
        tmp_path,
        "agents.csv",
        "Agent,province,group,total_outbound_count\na1,广东,31,5\n",
    )
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        [
            "validate", "--input", str(csv_path), "--out-dir", str(out_dir),
            "--profile", str(profile_path), "--quiet",
        ],
    )

    assert result.exit_code == 0
    qc = _read_json(out_dir / "qc_report.json")
    assert "account" not in qc["missing_columns"]


def test_validate_missing_profile_exits_2(tmp_path: Path, calls_csv: Path) -> None:
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        [
            "validate", "--input", str(calls_csv), "--out-dir", str(out_dir),
            "--profile", str(tmp_path / "missing.txt"), "--quiet",
        ],
    )

    assert result.exit_code == 2
    assert "Profile not found" in _read_json(out_dir / "run_manifest.json")["error_message"]


def test_version_flag_prints_and_exits() -> None:
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert f"blacklist-stats v{__version__}" in result.stdout


def test_report_empty_group_option_means_no_filter(tmp_path: Path, calls_csv: Path) -> None:
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        [
            "report", "--input", str(calls_csv), "--out-dir", str(out_dir),
            "--group", "", "--quiet",
        ],
    )

    assert result.exit_code == 0
    ws = load_workbook(out_dir / "Blacklist_Report.xlsx")["Provinces"]
    assert [ws.cell(row=r, column=1).value for r in (2, 3)] == ["浙江", "广东"]
    assert "not present" not in (out_dir / "summary.txt").read_text(encoding="utf-8")

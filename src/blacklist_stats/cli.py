"""CLI entry point for blacklist-stats."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table as RichTable

from blacklist_stats import REQUIRED_COLUMNS, __version__
from blacklist_stats.aggregate import (
    aggregate_by_account,
    aggregate_by_account_province,
    aggregate_by_group,
    aggregate_by_province,
    aggregate_overall,
    has_multiple_numeric_groups,
    numeric_groups,
    top_n,
    unique_accounts,
    unique_groups,
)
from blacklist_stats.batch import InvalidBatchError, load_batch
from blacklist_stats.io import load_records_json, load_text, write_json, write_records_json
from blacklist_stats.models import (
    METRICS,
    BatchFileResult,
    QCReport,
    Record,
    RunManifest,
    StatsRow,
)
from blacklist_stats.parser import parse_records_with_report
from blacklist_stats.qc import write_qc_report
from blacklist_stats.report import write_batch_report, write_report
from blacklist_stats.utils import (
    format_number,
    format_percent,
    new_report_id,
    sha256_file,
    utcnow_iso,
)

app = typer.Typer(
    name="blstats",
    help="blacklist-stats — Slice call-center blacklist activity into summary reports.",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()


def _noop(*_args: object, **_kwargs: object) -> None:
    return None


def _printer(quiet: bool) -> Callable[..., None]:
    return _noop if quiet else console.print


def _err(msg: str) -> None:
    console.print(f"[red]x[/red] {msg}")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


# ── Helpers ──────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"blacklist-stats v{__version__}")
        raise typer.Exit()


def _parse_column_map(raw: list[str] | None, *, quiet: bool = False) -> dict[str, str]:
    """Parse ``--map target=source`` pairs into ``{source: target}``."""
    if not raw:
        return {}
    mapping: dict[str, str] = {}
    for item in raw:
        if "=" not in item:
            raise ValueError(f"Invalid --map value: {item!r}  (expected target=source)")
        target, source = (part.strip() for part in item.split("=", 1))
        if not target or not source:
            raise ValueError("--map entries must have non-empty target and source (target=source)")
        if source in mapping and not quiet:
            console.print(f"[yellow]![/yellow] Overriding mapping for source {source!r}")
        mapping[source] = target
    return mapping


def _load_profile_map(profile: Path | None) -> list[str]:
    """Return list of ``target=source`` strings from a profile file."""
    if not profile:
        return []
    if not profile.exists():
        raise ValueError(f"Profile not found: {profile} (expected lines like account=Agent)")
    if profile.is_dir():
        raise ValueError(f"Profile is a directory, not a file: {profile}")
    try:
        text = profile.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"Cannot read profile {profile}: {exc}") from exc

    lines: list[str] = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        lines.append(stripped)
    return lines


def _write_manifest(
    out_dir: Path,
    input_files: Sequence[Path],
    run_id: str,
    created_at: str,
    qc: QCReport,
    *,
    command: str,
    status: str = "success",
    error_code: int | None = None,
    error_message: str = "",
) -> Path:
    hashes: dict[str, str] = {}
    for input_file in input_files:
        try:
            hashes[input_file.name] = sha256_file(input_file)
        except OSError:
            continue

    manifest = RunManifest(
        run_id=run_id,
        command=command,
        version=__version__,
        input_paths=[str(p.resolve()) for p in input_files],
        output_dir=str(out_dir.resolve()),
        created_at_utc=created_at,
        rows_in=qc.rows_in,
        rows_out=qc.rows_out,
        sha256=hashes,
        status=status,
        error_code=error_code,
        error_message=error_message,
    )
    return write_json(out_dir / "run_manifest.json", manifest.to_dict())


def _fail(
    out_dir: Path,
    input_files: Sequence[Path],
    run_id: str,
    created_at: str,
    *,
    command: str,
    message: str,
    qc: QCReport | None = None,
    error_code: int = 2,
) -> typer.Exit:
    """Write QC + manifest for a failed run, report it, return the Exit to raise."""
    if qc is None:
        qc = QCReport()
    qc.warnings.append(message)
    qc_path = write_qc_report(out_dir, qc)
    manifest_path = _write_manifest(
        out_dir,
        input_files,
        run_id,
        created_at,
        qc,
        command=command,
        status="failed",
        error_code=error_code,
        error_message=message,
    )
    _err(message)
    console.print(f"  QC report -> {qc_path}")
    console.print(f"  Manifest  -> {manifest_path}")
    return typer.Exit(code=error_code)


def _write_text_artifact(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(text, encoding="utf-8")
    tmp_path.replace(path)
    return path


def _write_summary_artifact(
    *,
    out_dir: Path,
    input_file: Path,
    qc: QCReport,
    overall: StatsRow,
    groups: Sequence[str],
    notes: Sequence[str],
    max_warnings: int = 5,
) -> Path:
    warnings = [*qc.warnings, *notes]
    lines: list[str] = [
        "blacklist-stats summary",
        f"tool_version: blacklist-stats v{__version__}",
        f"input_file: {input_file.name}",
        f"rows_in: {qc.rows_in}",
        f"records: {qc.rows_out}",
        f"warning_count: {len(warnings)}",
    ]
    for idx, warning in enumerate(warnings[:max_warnings], start=1):
        lines.append(f"warning_{idx}: {warning}")
    if len(warnings) > max_warnings:
        lines.append(f"warning_more: {len(warnings) - max_warnings}")

    lines.append(f"groups: {', '.join(groups) if groups else 'N/A'}")
    for metric in METRICS:
        lines.extend(
            [
                f"total_{metric}: {getattr(overall, f'total_{metric}')}",
                f"black_{metric}: {getattr(overall, f'black_{metric}')}",
                f"black_{metric}_rate: {getattr(overall, f'black_{metric}_rate'):.2f}",
            ]
        )
    payload = "\n".join(lines) + "\n"
    return _write_text_artifact(out_dir / "summary.txt", payload)


def _stats_table(title: str, rows: Sequence[StatsRow], keys: Sequence[str]) -> RichTable:
    tbl = RichTable(title=title)
    for key in keys:
        tbl.add_column(key.capitalize(), style="bold")
    for label in ("Outbound", "Black", "Black %", "Pickup", "Black", "Black %"):
        tbl.add_column(label, justify="right")
    for row in rows:
        tbl.add_row(
            *(str(getattr(row, key)) or '""' for key in keys),
            format_number(row.total_outbound),
            format_number(row.black_outbound),
            format_percent(row.black_outbound_rate),
            format_number(row.total_pickup),
            format_number(row.black_pickup),
            format_percent(row.black_pickup_rate),
        )
    return tbl


def _overall_table(overall: StatsRow) -> RichTable:
    tbl = RichTable(title="Overall", show_lines=True)
    tbl.add_column("Metric", style="bold")
    tbl.add_column("Total", justify="right")
    tbl.add_column("Black", justify="right")
    tbl.add_column("Black %", justify="right", style="yellow")
    for metric in METRICS:
        tbl.add_row(
            metric.capitalize(),
            format_number(getattr(overall, f"total_{metric}")),
            format_number(getattr(overall, f"black_{metric}")),
            format_percent(getattr(overall, f"black_{metric}_rate")),
        )
    return tbl


def _load_input_records(
    input_file: Path, mapping: dict[str, str]
) -> tuple[list[Record], QCReport]:
    """Load a CSV, or a records JSON written by ``blstats batch``."""
    if input_file.suffix.lower() == ".json":
        records = load_records_json(input_file)
        return records, QCReport(rows_in=len(records), rows_out=len(records))
    return parse_records_with_report(load_text(input_file), mapping)


def _unique_stem(name: str, used: set[str]) -> str:
    candidate = name or "file"
    suffix = 1
    while candidate in used:
        candidate = f"{name}_{suffix}"
        suffix += 1
    used.add(candidate)
    return candidate


def _write_batch_records(out_dir: Path, results: Sequence[BatchFileResult]) -> list[Path]:
    used: set[str] = set()
    paths: list[Path] = []
    for result in results:
        stem = _unique_stem(result.file_name, used)
        paths.append(
            write_records_json(
                out_dir / "records" / f"{stem}.json",
                result.records,
                file_name=result.file_name,
            )
        )
    return paths


# ── Callbacks ────────────────────────────────────────────────────


@app.callback()
def main(
    version: bool | None = typer.Option(
        None, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """blacklist-stats CLI."""


# ── report command ───────────────────────────────────────────────


@app.command()
def report(
    input_file: Path = typer.Option(
        ..., "--input", "-i",
        help="Path to a CSV file, or a records JSON written by 'blstats batch'.",
        exists=True, readable=True,
    ),
    out_dir: Path = typer.Option(
        Path("output"), "--out-dir", "-o",
        help="Output directory for report + QC + manifest.",
    ),
    group: str | None = typer.Option(
        None, "--group", "-g",
        help="Only count this group in the province breakdown.",
    ),
    account: str | None = typer.Option(
        None, "--account", "-a",
        help="Only count this account in the account x province breakdown.",
    ),
    col_map: list[str] | None = typer.Option(
        None, "--map", "-m",
        help=(
            "Column mapping: target=source (rename source->target). "
            "E.g. --map account=Agent --map dt=Date"
        ),
    ),
    profile: Path | None = typer.Option(
        None, "--profile",
        help="Profile file containing column mappings (target=source lines).",
    ),
    top: int = typer.Option(
        15, "--top", min=1,
        help="Rows shown per ranked table in the console.",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output; still writes all artifacts.",
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Show debug logging.",
    ),
) -> None:
    """Aggregate one file into overall, group, province and account statistics."""
    _configure_logging(verbose)
    echo = _printer(quiet)
    created_at = utcnow_iso()
    run_id = new_report_id()
    out_dir.mkdir(parents=True, exist_ok=True)
    inputs = [input_file]

    try:
        mapping = _parse_column_map(_load_profile_map(profile) + (col_map or []), quiet=quiet)
    except ValueError as exc:
        raise _fail(out_dir, inputs, run_id, created_at, command="report", message=str(exc))

    if not quiet:
        console.print(Panel(
            f"[bold]blacklist-stats[/bold] v{__version__}\n"
            f"Input:  {input_file}\nOutput: {out_dir}",
            title="Report", border_style="blue",
        ))
        if mapping:
            console.print(f"  Column map: {mapping}")

    # ── Load ─────────────────────────────────────────────────────
    echo("[blue]>[/blue] Parsing input file …")
    try:
        records, qc = _load_input_records(input_file, mapping)
    except (FileNotFoundError, ValueError, OSError) as exc:
        raise _fail(out_dir, inputs, run_id, created_at, command="report", message=str(exc))

    try:
        if not records:
            raise _fail(
                out_dir, inputs, run_id, created_at,
                command="report",
                message="Cannot parse CSV file: no data rows found. Check the file format.",
                qc=qc,
            )

        qc_path = write_qc_report(out_dir, qc)
        echo(f"  {qc.rows_out} records")
        echo(f"  QC report -> {qc_path}")
        if qc.missing_columns:
            echo(f"  [yellow]![/yellow] Expected columns: {', '.join(REQUIRED_COLUMNS)}")
            echo("  Hint: use --map target=source to rename headers")

        notes: list[str] = []
        if has_multiple_numeric_groups(records):
            notes.append(
                "Multiple numeric groups present "
                f"({', '.join(numeric_groups(records))}); data may mix rule sets"
            )
        if not quiet:
            for w in [*qc.warnings, *notes]:
                console.print(f"  [yellow]![/yellow] {w}")

        groups = unique_groups(records)
        if group and group not in groups:
            notes.append(f"Group {group!r} not present; province breakdown is empty")
        if account and account not in unique_accounts(records):
            notes.append(f"Account {account!r} not present; account x province breakdown is empty")

        # ── Aggregate ────────────────────────────────────────────
        echo("[blue]>[/blue] Aggregating …")
        overall = aggregate_overall(records)
        by_group = aggregate_by_group(records)
        by_province = aggregate_by_province(records, group)
        by_account = aggregate_by_account(records)
        by_account_province = aggregate_by_account_province(records, account)

        if not quiet:
            console.print(_overall_table(overall))
            console.print(_stats_table("Groups", by_group, ["group"]))
            console.print(_stats_table(
                f"Provinces{f' (group {group})' if group else ''}",
                top_n(by_province, top), ["province"],
            ))
            console.print(_stats_table(f"Accounts (top {top})", top_n(by_account, top), ["account"]))
            console.print(_stats_table(
                f"Account x Province (top {top})",
                top_n(by_account_province, top), ["account", "province"],
            ))

        # ── Write report ─────────────────────────────────────────
        echo("[blue]>[/blue] Writing report …")
        report_path = write_report(
            out_dir, overall, by_group, by_province, by_account, by_account_province,
            records, qc=qc, notes=notes,
        )
        echo(f"  Report   -> {report_path}")

        manifest_path = _write_manifest(
            out_dir, inputs, run_id, created_at, qc, command="report"
        )
        echo(f"  Manifest -> {manifest_path}")

        summary_path = _write_summary_artifact(
            out_dir=out_dir,
            input_file=input_file,
            qc=qc,
            overall=overall,
            groups=groups,
            notes=notes,
        )
        echo(f"  Summary  -> {summary_path}")

        if not quiet:
            console.print(Panel(
                f"[green]Done[/green] — {qc.rows_out} records -> {report_path}",
                title="Report Complete", border_style="green",
            ))
    except typer.Exit:
        raise
    except Exception as exc:
        raise _fail(
            out_dir, inputs, run_id, created_at,
            command="report",
            message=f"Unexpected internal error: {exc}",
            qc=QCReport(rows_in=qc.rows_in, rows_out=0, dropped_rows=qc.rows_in),
            error_code=1,
        ) from exc


# ── batch command ────────────────────────────────────────────────


@app.command()
def batch(
    input_files: list[Path] = typer.Option(
        ..., "--input", "-i",
        help="CSV files to summarize independently (repeat the option).",
    ),
    out_dir: Path = typer.Option(
        Path("output"), "--out-dir", "-o",
        help="Output directory for the batch report, records and manifest.",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output; still writes all artifacts.",
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Show debug logging.",
    ),
) -> None:
    """Summarize several files, one overall row per file (no merging)."""
    _configure_logging(verbose)
    echo = _printer(quiet)
    created_at = utcnow_iso()
    run_id = new_report_id()
    out_dir.mkdir(parents=True, exist_ok=True)

    echo(f"[blue]>[/blue] Summarizing {len(input_files)} files …")
    try:
        results, skipped = load_batch(input_files)
    except InvalidBatchError as exc:
        raise _fail(out_dir, input_files, run_id, created_at, command="batch", message=str(exc))

    # Row counts cover the summarized files; skipped files appear as warnings.
    record_count = sum(len(result.records) for result in results)
    qc = QCReport(
        rows_in=record_count,
        rows_out=record_count,
        warnings=[f"Skipped {s.name}: {s.reason}" for s in skipped],
    )
    try:
        report_path = write_batch_report(out_dir, results)
        record_paths = _write_batch_records(out_dir, results)
        qc_path = write_qc_report(out_dir, qc)
        manifest_path = _write_manifest(
            out_dir, input_files, run_id, created_at, qc, command="batch"
        )
    except OSError as exc:
        raise _fail(
            out_dir, input_files, run_id, created_at,
            command="batch",
            message=f"Unexpected internal error: {exc}",
            error_code=1,
        ) from exc

    if not quiet:
        for w in qc.warnings:
            console.print(f"  [yellow]![/yellow] {w}")
        tbl = RichTable(title="Batch Summary")
        tbl.add_column("File", style="bold")
        for label in ("Outbound", "Black %", "Pickup", "Black %", "Pay", "Black %",
                      "Complain", "Black %"):
            tbl.add_column(label, justify="right")
        for result in results:
            s = result.stats
            tbl.add_row(
                result.file_name,
                format_number(s.total_outbound), format_percent(s.black_outbound_rate),
                format_number(s.total_pickup), format_percent(s.black_pickup_rate),
                format_number(s.total_pay), format_percent(s.black_pay_rate),
                format_number(s.total_complain), format_percent(s.black_complain_rate),
            )
        console.print(tbl)
    echo(f"  Report   -> {report_path}")
    for path in record_paths:
        echo(f"  Records  -> {path}  (blstats report --input {path})")
    echo(f"  QC       -> {qc_path}")
    echo(f"  Manifest -> {manifest_path}")


# ── validate command ─────────────────────────────────────────────


@app.command()
def validate(
    input_file: Path = typer.Option(
        ..., "--input", "-i",
        help="Path to CSV input file.",
        exists=True, readable=True,
    ),
    out_dir: Path = typer.Option(
        Path("output"), "--out-dir", "-o",
        help="Output directory for QC + manifest.",
    ),
    col_map: list[str] | None = typer.Option(
        None, "--map", "-m",
        help="Column mapping: target=source (rename source->target).",
    ),
    profile: Path | None = typer.Option(
        None, "--profile",
        help="Profile file containing column mappings (target=source lines).",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output; still writes QC + manifest.",
    ),
) -> None:
    """Parse a file without producing the report.

    Writes qc_report.json + run_manifest.json only.
    Exit 0 = records parsed, exit 2 = nothing parseable.
    """
    created_at = utcnow_iso()
    run_id = new_report_id()
    out_dir.mkdir(parents=True, exist_ok=True)
    inputs = [input_file]
    try:
        mapping = _parse_column_map(_load_profile_map(profile) + (col_map or []), quiet=quiet)
        records, qc = parse_records_with_report(load_text(input_file), mapping)
    except (FileNotFoundError, ValueError, OSError) as exc:
        raise _fail(out_dir, inputs, run_id, created_at, command="validate", message=str(exc))

    if not records:
        raise _fail(
            out_dir, inputs, run_id, created_at,
            command="validate",
            message="Cannot parse CSV file: no data rows found. Check the file format.",
            qc=qc,
        )

    qc_path = write_qc_report(out_dir, qc)
    manifest_path = _write_manifest(
        out_dir, inputs, run_id, created_at, qc, command="validate"
    )

    if not quiet:
        tbl = RichTable(title="Validation Summary", show_lines=True)
        tbl.add_column("Check", style="bold")
        tbl.add_column("Result")
        tbl.add_row("Rows in", str(qc.rows_in))
        tbl.add_row("Records", str(qc.rows_out))
        if qc.missing_columns:
            tbl.add_row("Defaulted columns", ", ".join(qc.missing_columns))
        else:
            tbl.add_row("Defaulted columns", "[green]none[/green]")
        for w in qc.warnings:
            tbl.add_row("Warning", f"[yellow]{w}[/yellow]")
        if has_multiple_numeric_groups(records):
            tbl.add_row(
                "Warning",
                f"[yellow]Multiple numeric groups: {', '.join(numeric_groups(records))}[/yellow]",
            )
        tbl.add_row("Status", "[green]PASS[/green]")
        console.print(tbl)
    console.print(f"  QC       -> {qc_path}")
    console.print(f"  Manifest -> {manifest_path}")

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from ledger_doctor import __version__ as TOOL_VERSION
from ledger_doctor.audit import AuditResult, IngestError, render_audit_text
from ledger_doctor.contracts import build_run_summary, with_contract
from ledger_doctor.export import write_formatted_csv, write_formatted_workbook, write_sample_trial_balance
from ledger_doctor.normalizer import CanonicalRow, to_wire
from ledger_doctor.pipeline import ingest
from ledger_doctor.reports import FinancialReports, generate_reports, render_reports_text
from ledger_doctor.store import JsonDirectoryStore, default_store_dir, persist_results

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_PARSE_FAILED = 2
EXIT_AUDIT_ISSUES = 3

OUTPUT_STAMP_ENV = "LEDGER_DOCTOR_OUTPUT_STAMP"
DEFAULT_SAMPLE_NAME = "sample_trial_balance.xlsx"


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class LedgerDoctorArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def configure_logging(verbose: bool) -> None:
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            stream=sys.stderr,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True)


def timestamp_token() -> str:
    override = os.environ.get(OUTPUT_STAMP_ENV)
    if override:
        return override
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def default_output_dir(input_path: Path) -> Path:
    return Path.cwd() / "ledger-doctor-output" / f"{input_path.stem}-{timestamp_token()}"


def determine_output_dir(args: argparse.Namespace, input_path: Path) -> Path:
    if getattr(args, "out_dir", None):
        return Path(args.out_dir)
    return default_output_dir(input_path)


def write_text(path: Path, payload: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(payload, encoding="utf-8")


def write_json(path: Path, payload: Any) -> None:
    write_text(path, json_dumps(payload))


def maybe_emit_json_stdout(payload: Any, enabled: bool) -> None:
    if enabled:
        print(json_dumps(payload))


def safe_output_path(explicit: Optional[str], default_path: Path) -> Path:
    path = Path(explicit) if explicit else default_path
    if path.exists():
        raise CliError(f"Refusing to overwrite existing output: {path}", EXIT_COMMAND_ERROR)
    return path


def require_input(args: argparse.Namespace) -> Path:
    input_path = Path(args.input)
    if not input_path.exists():
        raise CliError(f"File not found: {input_path}", EXIT_COMMAND_ERROR)
    return input_path


def resolve_store(args: argparse.Namespace) -> Optional[JsonDirectoryStore]:
    store_dir = Path(args.store) if getattr(args, "store", None) else default_store_dir()
    return JsonDirectoryStore(store_dir) if store_dir else None


def classify_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, IngestError):
        return EXIT_PARSE_FAILED
    if isinstance(exc, (ImportError, UnicodeDecodeError)):
        return EXIT_PARSE_FAILED
    if isinstance(exc, FileNotFoundError):
        return EXIT_COMMAND_ERROR
    if isinstance(exc, ValueError):
        return EXIT_PARSE_FAILED
    return EXIT_COMMAND_ERROR


def exit_code_for_audit(audit: AuditResult) -> int:
    return EXIT_AUDIT_ISSUES if audit.issues else EXIT_SUCCESS


def report_ingest_failure(exc: IngestError, args: argparse.Namespace, out_dir: Optional[Path]) -> int:
    eprint(str(exc))
    if exc.audit is not None:
        if out_dir is not None:
            write_json(out_dir / "audit.json", with_contract("ledger_doctor.audit", exc.audit.to_dict()))
        emit_human(render_audit_text(exc.audit).rstrip(), quiet=args.quiet)
    return EXIT_PARSE_FAILED


def ingest_metrics(rows: list[CanonicalRow], audit: AuditResult) -> dict[str, Any]:
    return {
        "total_rows": audit.total_rows,
        "valid_rows": audit.valid_rows,
        "invalid_rows": audit.invalid_rows,
        "issues": len(audit.issues),
        "canonical_rows": len(rows),
    }


def run_ingest(args: argparse.Namespace) -> int:
    input_path = require_input(args)
    out_dir = determine_output_dir(args, input_path)
    try:
        rows, audit = ingest(input_path)
    except IngestError as exc:
        return report_ingest_failure(exc, args, out_dir)

    audit_path = out_dir / "audit.json"
    data_path = out_dir / "financial-data.json"
    write_json(audit_path, with_contract("ledger_doctor.audit", audit.to_dict()))
    write_text(data_path, json.dumps(to_wire(rows), indent=2, ensure_ascii=False))

    store = resolve_store(args)
    if store is not None:
        persist_results(store, rows)

    summary = build_run_summary(
        command="ingest",
        input_path=input_path,
        outputs={"audit": audit_path, "financial_data": data_path},
        metrics=ingest_metrics(rows, audit),
        warnings=audit.warnings,
    )
    if args.json:
        maybe_emit_json_stdout({"summary": summary, "audit": audit.to_dict(), "financialData": to_wire(rows)}, True)
    else:
        emit_human(render_audit_text(audit).rstrip(), quiet=args.quiet)
        emit_human(f"Audit written: {audit_path}", quiet=args.quiet)
        emit_human(f"Financial data written: {data_path}", quiet=args.quiet)
        if store is not None:
            emit_human(f"Results stored in: {store.root}", quiet=args.quiet)
    return exit_code_for_audit(audit)


def run_report(args: argparse.Namespace) -> int:
    input_path = require_input(args)
    out_dir = determine_output_dir(args, input_path)
    try:
        rows, audit = ingest(input_path)
    except IngestError as exc:
        return report_ingest_failure(exc, args, out_dir)

    reports: FinancialReports = generate_reports(rows)
    store = resolve_store(args)
    if store is not None:
        persist_results(store, rows, reports)

    if args.json:
        report_path = out_dir / "reports.json"
        payload = with_contract("ledger_doctor.reports", reports.to_dict())
        write_json(report_path, payload)
        maybe_emit_json_stdout(payload, True)
    else:
        report_path = out_dir / "reports.txt"
        text = render_reports_text(reports)
        write_text(report_path, text)
        emit_human(text.rstrip(), quiet=args.quiet)
        emit_human(f"Report written: {report_path}", quiet=args.quiet)
    return exit_code_for_audit(audit)


def run_clean(args: argparse.Namespace) -> int:
    input_path = require_input(args)
    suffix = ".csv" if args.format == "csv" else ".xlsx"
    output_path = safe_output_path(args.output, Path.cwd() / f"{input_path.stem}-formatted{suffix}")
    try:
        rows, audit = ingest(input_path)
    except IngestError as exc:
        return report_ingest_failure(exc, args, None)

    if args.format == "csv":
        write_formatted_csv(rows, output_path)
    else:
        write_formatted_workbook(rows, output_path)
    emit_human(f"Kept {len(rows)} of {audit.total_rows} rows", quiet=args.quiet)
    emit_human(f"Formatted data written: {output_path}", quiet=args.quiet)
    return exit_code_for_audit(audit)


def run_sample(args: argparse.Namespace) -> int:
    output_path = safe_output_path(args.output, Path.cwd() / DEFAULT_SAMPLE_NAME)
    write_sample_trial_balance(output_path)
    emit_human(f"Sample trial balance written: {output_path}", quiet=args.quiet)
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def build_parser() -> argparse.ArgumentParser:
    parser = LedgerDoctorArgumentParser(
        prog="ledger-doctor",
        description="Turn messy trial-balance CSV and Excel files into Particulars/Debit/Credit rows.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    ingest_cmd = subparsers.add_parser("ingest", help="Parse a file and write canonical rows plus the audit.")
    ingest_cmd.add_argument("input", help="Input file path")
    ingest_cmd.add_argument("-o", "--out", dest="out_dir", help="Output directory")
    ingest_cmd.add_argument("--store", help="JSON store directory for persisted results")
    ingest_cmd.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    ingest_cmd.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    ingest_cmd.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    report = subparsers.add_parser("report", help="Build profit & loss, balance sheet and ratios.")
    report.add_argument("input", help="Input file path")
    report.add_argument("-o", "--out", dest="out_dir", help="Output directory")
    report.add_argument("--store", help="JSON store directory for persisted results")
    report.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    report.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    report.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    clean = subparsers.add_parser("clean", help="Write the canonical rows as a formatted workbook or CSV.")
    clean.add_argument("input", help="Input file path")
    clean.add_argument("--output", help="Explicit output path")
    clean.add_argument("--format", choices=["xlsx", "csv"], default="xlsx", help="Output format")
    clean.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    clean.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sample = subparsers.add_parser("sample", help="Write a sample trial balance workbook.")
    sample.add_argument("--output", help="Explicit output path")
    sample.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")

    subparsers.add_parser("version", help="Print version")
    return parser


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        configure_logging(getattr(args, "verbose", False))
        if args.command == "ingest":
            return run_ingest(args)
        if args.command == "report":
            return run_report(args)
        if args.command == "clean":
            return run_clean(args)
        if args.command == "sample":
            return run_sample(args)
        if args.command == "version":
            return run_version()
        raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
    except CliError as exc:
        eprint(str(exc))
        return exc.code
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


if __name__ == "__main__":
    raise SystemExit(main())

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from sheet_intake import __version__ as TOOL_VERSION
from sheet_intake.check import CheckService
from sheet_intake.config import ScanConfig, load_scan_config, output_stamp_override
from sheet_intake.contracts import build_run_summary, contract_payload
from sheet_intake.errors import (
    EXIT_COMMAND_ERROR,
    EXIT_ROWS_FAILED,
    EXIT_SOURCE_UNREADABLE,
    EXIT_SUCCESS,
    EXIT_TEMPLATE_INVALID,
    IntakeError,
)
from sheet_intake.logging_utils import configure_logging
from sheet_intake.rows import Rows
from sheet_intake.scanner import BaseImportHandler, ImportScanner
from sheet_intake.schema import FieldKind, SchemaDescriptor
from sheet_intake.sources import RowSource, open_path_func, open_row_source, read_all_rows
from sheet_intake.workbook import write_error_workbook

STARTER_CONFIG = {
    "schema": [
        {"name": "sku", "kind": "string"},
        {"name": "name", "kind": "string"},
        {"name": "quantity", "kind": "int"},
        {"name": "price", "kind": "float"},
        {"name": "extras", "kind": "extra"},
    ],
    "skip_rows": 2,
    "max_rows": 20000,
    "unique_columns": [0],
    "write_back_mode": "any-row",
    "progress_interval": 100,
    "required": ["sku", "name"],
}


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class SheetIntakeArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


class RequiredFieldsHandler(BaseImportHandler):
    """Scan handler for the CLI: flags rows whose required fields are blank or zero."""

    def __init__(self, input_path: Path, config: ScanConfig, sheet_name: str | None = None) -> None:
        self.input_path = input_path
        self.config = config
        self.sheet_name = sheet_name
        self.submitted_units = 0

    def open_source(self) -> RowSource:
        return open_row_source(self.input_path, sheet_name=self.sheet_name)

    def schema(self) -> SchemaDescriptor:
        return self.config.schema

    def submit(self, rows: Rows) -> None:
        self.submitted_units += 1
        kinds = {spec.name: spec.kind for spec in self.config.schema.fields}
        for row in rows:
            for name in self.config.required:
                value = row.data.get(name)
                if kinds[name] is FieldKind.EXTRA:
                    missing = not value or not any(value.values)
                else:
                    missing = value in ("", 0, 0.0, None)
                if missing:
                    row.set_errors(f"{name} is required")


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True)


def maybe_emit_json_stdout(payload: Any, enabled: bool) -> None:
    if enabled:
        print(json_dumps(payload))


def timestamp_token() -> str:
    override = output_stamp_override()
    if override:
        return override
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def default_output_dir(input_path: Path) -> Path:
    return Path.cwd() / "sheet-intake-output" / f"{input_path.stem}-{timestamp_token()}"


def determine_output_dir(args: argparse.Namespace, input_path: Path) -> Path:
    if getattr(args, "out_dir", None):
        return Path(args.out_dir)
    return default_output_dir(input_path)


def classify_exception(exc: Exception) -> int:
    if isinstance(exc, (CliError, IntakeError)):
        return exc.code
    if isinstance(exc, (ImportError, UnicodeDecodeError)):
        return EXIT_SOURCE_UNREADABLE
    return EXIT_COMMAND_ERROR


def require_file(path: Path) -> Path:
    if not path.exists():
        raise CliError(f"File not found: {path}", EXIT_COMMAND_ERROR)
    return path


def render_check_text(payload: dict[str, Any]) -> str:
    lines = [
        "sheet-intake check",
        f"Template: {payload['template']}",
        f"Upload: {payload['input']}",
        f"Valid: {'yes' if payload['valid'] else 'no'}",
    ]
    if payload.get("total_rows") is not None:
        lines.append(f"Data rows: {payload['total_rows']}")
    if payload.get("error"):
        lines.append(f"Error: {payload['error']}")
    return "\n".join(lines) + "\n"


def render_scan_text(payload: dict[str, Any]) -> str:
    result = payload["result"]
    lines = [
        "sheet-intake scan",
        f"File: {payload['input']}",
        f"Rows read: {result['total_rows']} (incl. {result['skip_rows']} header rows)",
        f"Rows done: {result['done_rows']}",
        f"Blank rows: {result['empty_rows']}",
        f"Rows with errors: {result['error_rows']}",
    ]
    return "\n".join(lines) + "\n"


def build_parser() -> argparse.ArgumentParser:
    parser = SheetIntakeArgumentParser(prog="sheet-intake", description="Template-checked spreadsheet imports.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    check = subparsers.add_parser("check", help="Check an upload's header and row count against its template.")
    check.add_argument("template", help="Template file path")
    check.add_argument("input", help="Uploaded file path")
    check.add_argument("--skip-rows", dest="skip_rows", type=int, default=None, help="Header rows to compare (default 2)")
    check.add_argument("--max-rows", dest="max_rows", type=int, default=None, help="Maximum number of data rows")
    check.add_argument("--config", help="Scan config (.json) for header rules and limits")
    check.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    check.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")

    header = subparsers.add_parser("header", help="Validate an upload's first header row with the config's header rules.")
    header.add_argument("template", help="Template file path")
    header.add_argument("input", help="Uploaded file path")
    header.add_argument("--config", required=True, help="Scan config (.json) with header_rules")
    header.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    header.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")

    scan = subparsers.add_parser("scan", help="Decode an upload and write an error workbook for failing rows.")
    scan.add_argument("input", help="Uploaded file path")
    scan.add_argument("--config", required=True, help="Scan config (.json)")
    scan.add_argument("--template", help="Template file whose header rows the upload must match")
    scan.add_argument("--sheet", dest="sheet_name", help="Workbook sheet name")
    scan.add_argument("-o", "--out", dest="out_dir", help="Output directory")
    scan.add_argument("--error-file", dest="error_file", help="Explicit error workbook path")
    scan.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    scan.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    scan.add_argument("-v", "--verbose", action="store_true", help="More human logs")

    config = subparsers.add_parser("config", help="Generate configuration.")
    config_subparsers = config.add_subparsers(dest="config_command", required=True)
    config_init = config_subparsers.add_parser("init", help="Write a starter config file.")
    config_init.add_argument("--path", default="sheet-intake.json", help="Config output path")

    subparsers.add_parser("version", help="Print version")
    return parser


def run_check(args: argparse.Namespace) -> int:
    template_path = require_file(Path(args.template))
    input_path = require_file(Path(args.input))
    config = load_scan_config(Path(args.config)) if args.config else None

    skip_rows = args.skip_rows
    if skip_rows is None:
        skip_rows = config.options.skip_row_count if config else 2
    max_rows = args.max_rows
    if max_rows is None and config is not None:
        max_rows = config.options.max_row_count
    if max_rows is None:
        raise CliError("--max-rows is required (or set max_rows in --config)", EXIT_COMMAND_ERROR)

    service = CheckService(open_path_func(template_path), open_path_func(input_path), skip_rows, max_rows)
    if config is not None:
        service.set_header_rule(config.options.header_rule)

    payload = contract_payload(
        "sheet_intake.check",
        template=str(template_path),
        input=str(input_path),
        valid=True,
        total_rows=None,
        error=None,
    )
    code = EXIT_SUCCESS
    try:
        payload["total_rows"] = service.run()
    except IntakeError as exc:
        payload["valid"] = False
        payload["error"] = str(exc)
        code = exc.code
    payload["run_summary"] = build_run_summary(
        command="check",
        input_path=input_path,
        status="ok" if payload["valid"] else "failed",
        metrics={"total_rows": payload["total_rows"]},
        errors=[payload["error"]],
    )
    if args.json:
        maybe_emit_json_stdout(payload, True)
    else:
        emit_human(render_check_text(payload).rstrip(), quiet=args.quiet)
    return code


def run_header(args: argparse.Namespace) -> int:
    template_path = require_file(Path(args.template))
    input_path = require_file(Path(args.input))
    config = load_scan_config(Path(args.config))
    rule = config.options.header_rule
    if rule is None:
        raise CliError("Config has no header_rules", EXIT_COMMAND_ERROR)

    template_rows = read_all_rows(open_row_source(template_path))
    upload_rows = read_all_rows(open_row_source(input_path))
    template_header = template_rows[0] if template_rows else []
    upload_header = upload_rows[0] if upload_rows else []
    valid = rule.validate(template_header, upload_header)
    payload = contract_payload(
        "sheet_intake.header",
        template=str(template_path),
        input=str(input_path),
        valid=valid,
        template_header=template_header,
        upload_header=upload_header,
    )
    if args.json:
        maybe_emit_json_stdout(payload, True)
    else:
        emit_human(f"Header valid: {'yes' if valid else 'no'}", quiet=args.quiet)
    return EXIT_SUCCESS if valid else EXIT_TEMPLATE_INVALID


def run_scan(args: argparse.Namespace) -> int:
    input_path = require_file(Path(args.input))
    config = load_scan_config(Path(args.config))
    if args.verbose:
        logging.getLogger("sheet_intake").setLevel(logging.INFO)
    options = config.options
    if args.template:
        template_rows = read_all_rows(open_row_source(require_file(Path(args.template))))
        options = dataclasses.replace(options, template_rows=template_rows)

    handler = RequiredFieldsHandler(input_path, config, sheet_name=args.sheet_name)
    scanner = ImportScanner(handler, options)
    result = scanner.run()

    error_path: Path | None = None
    if result.artifact is not None:
        out_dir = determine_output_dir(args, input_path)
        error_path = Path(args.error_file) if args.error_file else out_dir / "errors.xlsx"
        write_error_workbook(result.artifact, error_path)

    payload = contract_payload(
        "sheet_intake.scan",
        input=str(input_path),
        result=result.to_dict(),
        error_file=str(error_path) if error_path else None,
        reasons=result.artifact.reasons() if result.artifact else [],
    )
    payload["run_summary"] = build_run_summary(
        command="scan",
        input_path=input_path,
        status="failed" if result.error_count else "ok",
        output_path=error_path,
        correlation_id=result.correlation_id,
        metrics=result.to_dict(),
    )
    if args.json:
        maybe_emit_json_stdout(payload, True)
    else:
        emit_human(render_scan_text(payload).rstrip(), quiet=args.quiet)
        if error_path:
            emit_human(f"Error workbook: {error_path}", quiet=args.quiet)
    return EXIT_ROWS_FAILED if result.error_count else EXIT_SUCCESS


def run_config_init(args: argparse.Namespace) -> int:
    config_path = Path(args.path)
    if config_path.exists():
        eprint(f"Refusing to overwrite existing config: {config_path}")
        return EXIT_COMMAND_ERROR
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json_dumps(STARTER_CONFIG) + "\n", encoding="utf-8")
    emit_human(f"Config written: {config_path}")
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        if args.command == "check":
            return run_check(args)
        if args.command == "header":
            return run_header(args)
        if args.command == "scan":
            return run_scan(args)
        if args.command == "config":
            if args.config_command == "init":
                return run_config_init(args)
        if args.command == "version":
            return run_version()
        raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
    except (CliError, IntakeError) as exc:
        eprint(str(exc))
        return exc.code
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


if __name__ == "__main__":
    raise SystemExit(main())

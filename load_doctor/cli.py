from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any

from load_doctor import __version__ as TOOL_VERSION
from load_doctor.analyzer import analyze, apply, plan
from load_doctor.autofix import ApplyOptions
from load_doctor.contracts import with_contract
from load_doctor.fields import FIELDS, REMAPPABLE_FIELDS
from load_doctor.grid import GridError, open_grid
from load_doctor.issues import ISSUE_DEFINITIONS
from load_doctor.preferences import NormalizationMaps, PreferenceStore
from load_doctor.ratelimit import SlidingWindowLimiter
from load_doctor.settings import ConfigError, Settings, load_settings
from load_doctor.suggestions import SuggestionClient

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_PARSE_FAILED = 2
EXIT_ANALYZE_ISSUES = 3

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class LoadDoctorArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True)


def write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json_dumps(payload), encoding="utf-8")


def configure_logging(args: argparse.Namespace) -> None:
    level = logging.INFO
    if getattr(args, "quiet", False) or getattr(args, "json", False):
        level = logging.WARNING
    elif getattr(args, "verbose", False):
        level = logging.DEBUG
    root = logging.getLogger("load_doctor")
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(level)
    root.propagate = False


def parse_overrides(pairs: list[str] | None) -> dict[str, str]:
    overrides: dict[str, str] = {}
    for pair in pairs or []:
        header, sep, target = pair.rpartition("=")
        if not sep or not header:
            raise CliError(f"--map expects HEADER=FIELD, got {pair!r}", EXIT_COMMAND_ERROR)
        if target not in FIELDS:
            raise CliError(f"Unknown field {target!r}. Fields: {', '.join(FIELDS)}", EXIT_COMMAND_ERROR)
        overrides[header] = target
    return overrides


def settings_from_args(args: argparse.Namespace) -> Settings:
    try:
        settings = load_settings(getattr(args, "config", None))
    except ConfigError as exc:
        raise CliError(str(exc), EXIT_COMMAND_ERROR) from exc
    max_rows = getattr(args, "max_rows", None)
    if max_rows is not None:
        if max_rows < 1:
            raise CliError("--max-rows must be at least 1", EXIT_COMMAND_ERROR)
        settings = replace(settings, max_rows=max_rows)
    return settings


def open_input(args: argparse.Namespace):
    input_path = Path(args.input)
    try:
        return open_grid(input_path, sheet_name=getattr(args, "sheet_name", None))
    except GridError as exc:
        code = EXIT_COMMAND_ERROR if not input_path.exists() else EXIT_PARSE_FAILED
        raise CliError(str(exc), code) from exc


def load_normalization_maps(settings: Settings, identity: str) -> NormalizationMaps:
    if not settings.preferences_dir:
        return NormalizationMaps()
    try:
        return PreferenceStore(settings.preferences_dir).load(identity)
    except ValueError as exc:
        raise CliError(str(exc), EXIT_COMMAND_ERROR) from exc


def render_analysis_text(result: dict[str, Any], input_path: str) -> str:
    issues = result["issues"]
    errors = sum(1 for issue in issues if issue["severity"] == "error")
    lines = [
        "load-doctor analyze",
        f"File: {input_path}",
        f"OK: {'yes' if result['ok'] else 'no'}",
        f"Rows analyzed: {result['meta']['analyzedRows']}",
        f"Issues: {len(issues)} ({errors} error(s), {len(issues) - errors} warning(s))",
    ]
    for issue in issues:
        where = ""
        if issue.get("rows"):
            where += f" rows {','.join(str(row) for row in issue['rows'])}"
        if issue.get("column"):
            where += f" [{issue['column']}]"
        lines.append(f"- {issue['severity']} {issue['code']}{where}: {issue['message']}")
    if result["ok"]:
        lines.append(f"Loads: {len(result['loads'])}")
    return "\n".join(lines) + "\n"


def render_plan_text(payload: dict[str, Any]) -> str:
    lines = ["load-doctor plan", payload["summary"]]
    for item in payload["missingColumns"]:
        lines.append(f"- create column '{item['suggestedHeader']}' for {item['field']}")
    for item in payload["dateFixes"]:
        action = "create and fill" if item["createColumn"] else "fill"
        lines.append(
            f"- {action} '{item['targetHeader']}': {item['fixableCount']} of {item['totalRows']} row(s) fixable"
        )
    return "\n".join(lines) + "\n"


def render_apply_text(payload: dict[str, Any]) -> str:
    lines = ["load-doctor apply", payload["message"]]
    for name in payload["createdColumns"]:
        lines.append(f"- created column '{name}'")
    for item in payload["normalized"]:
        lines.append(f"- {item['header']}: {item['rowsUpdated']} row(s) updated")
    return "\n".join(lines) + "\n"


def build_parser() -> argparse.ArgumentParser:
    parser = LoadDoctorArgumentParser(prog="load-doctor", description="Load sheet mapping, validation and UTC normalization.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("input", help="Input file path (.xlsx, .xlsm, .csv, .tsv, .txt)")
        sub.add_argument("--sheet", dest="sheet_name", help="Workbook sheet name")
        sub.add_argument("--map", dest="overrides", action="append", metavar="HEADER=FIELD", help="Explicit header mapping (repeatable)")
        sub.add_argument("--config", help="JSON settings file")
        sub.add_argument("--max-rows", dest="max_rows", type=int, help="Maximum data rows to read")
        sub.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
        sub.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
        sub.add_argument("-v", "--verbose", action="store_true", help="More human logs")

    analyze_cmd = subparsers.add_parser(
        "analyze",
        help="Map headers, validate rows and build loads.",
        description=(
            "Map headers, validate rows and build loads. rate_limit_per_minute only counts attempts "
            "made within one process, so a single CLI run is never rate limited."
        ),
    )
    add_common(analyze_cmd)
    analyze_cmd.add_argument("--user", default="anonymous", help="Identity used for saved normalization maps")
    analyze_cmd.add_argument("-o", "--output", help="Write the analysis JSON to this path")

    plan_cmd = subparsers.add_parser("plan", help="List safe auto-fixes without changing anything.")
    add_common(plan_cmd)

    apply_cmd = subparsers.add_parser("apply", help="Apply safe auto-fixes and write the result.")
    add_common(apply_cmd)
    apply_cmd.add_argument("--create-missing-columns", action="store_true", help="Append columns for unmapped required fields")
    apply_cmd.add_argument("--normalize-dates", action="store_true", help="Write canonical UTC appointment values")
    apply_cmd.add_argument("--timezone-offset", help="Fixed offset for split date/time columns, e.g. --timezone-offset=-06:00")
    apply_cmd.add_argument("-o", "--output", help="Write the fixed file here")
    apply_cmd.add_argument("--in-place", action="store_true", help="Overwrite the input file")

    remap = subparsers.add_parser("remap", help="Show or update saved status/broker literal remaps.")
    remap.add_argument("--user", default="anonymous", help="Identity the remaps belong to")
    remap.add_argument("--field", choices=REMAPPABLE_FIELDS, help="Field the pairs apply to")
    remap.add_argument("pairs", nargs="*", metavar="FROM=TO", help="Literal remaps to add; an empty TO removes FROM")
    remap.add_argument("--config", help="JSON settings file")
    remap.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    remap.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")

    explain = subparsers.add_parser("explain", help="Explain an issue code.")
    explain.add_argument("code", help="Issue code, e.g. TIMEZONE_MISSING")
    explain.add_argument("--json", action="store_true", help="Write machine JSON to stdout")

    subparsers.add_parser("version", help="Print version")
    return parser


def run_analyze(args: argparse.Namespace) -> int:
    settings = settings_from_args(args)
    grid = open_input(args)
    suggester = None
    if settings.suggestion_url:
        suggester = SuggestionClient(settings.suggestion_url, timeout=settings.suggestion_timeout)
    result = analyze(
        grid,
        identity=args.user,
        overrides=parse_overrides(args.overrides),
        settings=settings,
        normalization_maps=load_normalization_maps(settings, args.user),
        limiter=SlidingWindowLimiter(settings.rate_limit_per_minute),
        suggester=suggester,
    )
    payload = with_contract("load_doctor.analysis", result)
    if args.output:
        write_json(Path(args.output), payload)
        emit_human(f"Analysis written: {args.output}", quiet=args.quiet)
    if args.json:
        print(json_dumps(payload))
    else:
        emit_human(render_analysis_text(result, args.input).rstrip(), quiet=args.quiet)
    if any(issue["code"] == "GRID_READ_FAILED" for issue in result["issues"]):
        return EXIT_PARSE_FAILED
    return EXIT_SUCCESS if result["ok"] else EXIT_ANALYZE_ISSUES


def run_plan(args: argparse.Namespace) -> int:
    settings = settings_from_args(args)
    grid = open_input(args)
    try:
        payload = plan(grid, overrides=parse_overrides(args.overrides), settings=settings)
    except GridError as exc:
        raise CliError(str(exc), EXIT_PARSE_FAILED) from exc
    if args.json:
        print(json_dumps(with_contract("load_doctor.autofix_plan", payload)))
    else:
        emit_human(render_plan_text(payload).rstrip(), quiet=args.quiet)
    return EXIT_SUCCESS


def run_apply(args: argparse.Namespace) -> int:
    if not (args.create_missing_columns or args.normalize_dates):
        raise CliError("Nothing to apply: pass --create-missing-columns and/or --normalize-dates.")
    if not args.output and not args.in_place:
        raise CliError("Pass --output PATH, or --in-place to overwrite the input.")
    settings = settings_from_args(args)
    grid = open_input(args)
    options = ApplyOptions(
        create_missing_columns=args.create_missing_columns,
        normalize_dates=args.normalize_dates,
        timezone_offset=args.timezone_offset,
    )
    try:
        payload = apply(grid, options, overrides=parse_overrides(args.overrides), settings=settings)
    except GridError as exc:
        raise CliError(str(exc), EXIT_PARSE_FAILED) from exc
    except ValueError as exc:
        raise CliError(str(exc), EXIT_COMMAND_ERROR) from exc
    written = grid.save(args.output if args.output else None)
    emit_human(f"Output written: {written}", quiet=args.quiet)
    if args.json:
        print(json_dumps(with_contract("load_doctor.autofix_apply", payload)))
    else:
        emit_human(render_apply_text(payload).rstrip(), quiet=args.quiet)
    return EXIT_SUCCESS


def run_remap(args: argparse.Namespace) -> int:
    settings = settings_from_args(args)
    if not settings.preferences_dir:
        raise CliError("Set preferences_dir (config file or LOAD_DOCTOR_PREFERENCES_DIR) to store remaps.")
    if args.pairs and not args.field:
        raise CliError("Pass --field status or --field broker with FROM=TO pairs.")

    store = PreferenceStore(settings.preferences_dir)
    maps = load_normalization_maps(settings, args.user)
    if args.pairs:
        table = getattr(maps, args.field)
        for pair in args.pairs:
            source, sep, target = pair.partition("=")
            if not sep or not source:
                raise CliError(f"Remaps expect FROM=TO, got {pair!r}")
            if target:
                table[source] = target
            else:
                table.pop(source, None)
        store.save(args.user, maps)

    if args.json:
        print(json_dumps(maps.to_dict()))
    else:
        lines = [f"Remaps for {args.user}:"]
        for name, table in maps.to_dict().items():
            for source, target in sorted(table.items()):
                lines.append(f"- {name}: {source} -> {target}")
        emit_human("\n".join(lines), quiet=args.quiet)
    return EXIT_SUCCESS


def run_explain(args: argparse.Namespace) -> int:
    rule = ISSUE_DEFINITIONS.get(args.code.upper())
    if rule is None:
        eprint(f"Unknown issue code: {args.code}")
        return EXIT_COMMAND_ERROR
    payload = {"code": args.code.upper(), **rule}
    if args.json:
        print(json_dumps(payload))
    else:
        print(
            "\n".join(
                [
                    f"Code: {payload['code']}",
                    f"Severity: {payload['severity']}",
                    f"Category: {payload['category']}",
                    f"What it means: {payload['description']}",
                    f"How to fix it: {payload['fix_hint']}",
                ]
            )
        )
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        configure_logging(args)
        if args.command == "analyze":
            return run_analyze(args)
        if args.command == "plan":
            return run_plan(args)
        if args.command == "apply":
            return run_apply(args)
        if args.command == "remap":
            return run_remap(args)
        if args.command == "explain":
            return run_explain(args)
        if args.command == "version":
            return run_version()
        raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
    except CliError as exc:
        eprint(str(exc))
        return exc.code


if __name__ == "__main__":
    raise SystemExit(main())

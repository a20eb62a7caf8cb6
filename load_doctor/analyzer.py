"""One analysis invocation: gate, read, map, validate, build, gate output.

Public API:
    result = analyze(grid, identity="dispatch@example.com")
    result["ok"]        -> True only when no issue has error severity
    result["issues"]    -> every issue found, both severities
    result["mapping"]   -> header -> canonical field
    result["meta"]      -> analyzedRows, analyzedAt
    result["loads"]     -> present only when ok
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping

from load_doctor.autofix import ApplyOptions, apply_fixes, plan_fixes
from load_doctor.builder import build_loads
from load_doctor.cells import ingest_row
from load_doctor.contracts import utc_now_iso
from load_doctor.grid import GridError, GridSource, GridStore
from load_doctor.issues import Issue, ZoneAssumption, build_issue, has_errors
from load_doctor.mapping import resolve_mapping
from load_doctor.preferences import NormalizationMaps
from load_doctor.ratelimit import SlidingWindowLimiter
from load_doctor.settings import Settings
from load_doctor.suggestions import SuggestionClient, collect_suggestions
from load_doctor.validator import validate_rows

logger = logging.getLogger(__name__)


def _result(
    issues: list[Issue],
    mapping: Mapping[str, str],
    analyzed_rows: int,
    analyzed_at: str,
    loads: list[dict[str, str]] | None = None,
) -> dict[str, Any]:
    ok = not has_errors(issues)
    result: dict[str, Any] = {
        "ok": ok,
        "issues": [issue.to_dict() for issue in issues],
        "mapping": dict(mapping),
        "meta": {"analyzedRows": analyzed_rows, "analyzedAt": analyzed_at},
    }
    if ok and loads is not None:
        result["loads"] = loads
    return result


def analyze(
    source: GridSource,
    *,
    identity: str = "anonymous",
    overrides: Mapping[str, str] | None = None,
    settings: Settings | None = None,
    normalization_maps: NormalizationMaps | None = None,
    limiter: SlidingWindowLimiter | None = None,
    suggester: SuggestionClient | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    settings = settings or Settings()
    analyzed_at = utc_now_iso(now)

    if limiter is not None and not limiter.allow(identity):
        logger.warning("Rate limit reached for %s", identity)
        issue = build_issue(
            "RATE_LIMITED",
            f"More than {limiter.cap} analyses started in the last minute.",
            suggestion="Wait a minute and try again.",
        )
        return _result([issue], {}, 0, analyzed_at)

    try:
        snapshot = source.get_snapshot(settings.max_rows)
    except GridError as exc:
        logger.error("Could not read grid: %s", exc)
        issue = build_issue("GRID_READ_FAILED", str(exc))
        return _result([issue], {}, 0, analyzed_at)

    headers = snapshot.headers
    rows = [ingest_row(row, len(headers)) for row in snapshot.rows]
    zone = settings.default_zone

    mapping_result = resolve_mapping(headers, overrides)
    mapping = mapping_result.mapping
    issues = list(mapping_result.issues)

    assumption = ZoneAssumption(zone)
    issues.extend(validate_rows(headers, rows, mapping, assumption, zone, normalization_maps))

    # Records get their own accounting; the aggregate issue reflects this pass.
    assumption = ZoneAssumption(zone)
    loads = build_loads(headers, rows, mapping, assumption, zone, normalization_maps)
    aggregate = assumption.to_issue(settings.assumed_timezone_severity)
    if aggregate is not None:
        issues.append(aggregate)

    issues.extend(collect_suggestions(suggester, headers, rows, mapping))

    logger.info(
        "Analyzed %d row(s): %d issue(s), %d error(s)",
        len(rows),
        len(issues),
        sum(1 for issue in issues if issue.severity == "error"),
    )
    return _result(issues, mapping, len(rows), analyzed_at, [load.to_dict() for load in loads])


def plan(
    source: GridSource,
    *,
    overrides: Mapping[str, str] | None = None,
    settings: Settings | None = None,
) -> dict[str, Any]:
    settings = settings or Settings()
    return plan_fixes(source.get_snapshot(settings.max_rows), overrides, settings.default_zone)


def apply(
    store: GridStore,
    options: ApplyOptions,
    *,
    overrides: Mapping[str, str] | None = None,
    settings: Settings | None = None,
) -> dict[str, Any]:
    settings = settings or Settings()
    return apply_fixes(store, options, overrides, settings.default_zone, settings.max_rows)

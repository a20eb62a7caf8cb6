"""
Shared issue taxonomy.

Severity defaults and explain texts live in one place so the analyzer, the
auto-fix planner and the CLI do not drift.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

ERROR = "error"
WARN = "warn"
SEVERITIES = (ERROR, WARN)

ISSUE_DEFINITIONS = {
    "GRID_READ_FAILED": {
        "severity": ERROR,
        "category": "structural",
        "description": "The sheet could not be read, or it has no header row or no data rows.",
        "fix_hint": "Check that the sheet exists and holds a header row followed by at least one load.",
    },
    "RATE_LIMITED": {
        "severity": ERROR,
        "category": "structural",
        "description": "Too many analyses were started for this user within the last minute.",
        "fix_hint": "Wait a minute and run the analysis again.",
    },
    "MISSING_COLUMN": {
        "severity": ERROR,
        "category": "mapping",
        "description": "No header could be mapped to a required load field.",
        "fix_hint": "Rename a header, add a header override, or let auto-fix create the column.",
    },
    "AMBIGUOUS_HEADER": {
        "severity": WARN,
        "category": "mapping",
        "description": "A header matches the vocabulary of more than one load field and was left unmapped.",
        "fix_hint": "Rename the header or pass an explicit override for it.",
    },
    "EMPTY_REQUIRED_CELL": {
        "severity": ERROR,
        "category": "row",
        "description": "A required field is blank in a data row.",
        "fix_hint": "Fill the cell in the source sheet.",
    },
    "DUPLICATE_ID": {
        "severity": ERROR,
        "category": "row",
        "description": "A load id appears more than once; later occurrences are flagged.",
        "fix_hint": "Give every load a unique id or remove the repeated row.",
    },
    "BAD_DATE_FORMAT": {
        "severity": ERROR,
        "category": "row",
        "description": "An appointment value could not be read as a date and time.",
        "fix_hint": "Use YYYY-MM-DDTHH:MM:SSZ, or fill both the date and the time column.",
    },
    "TIMEZONE_MISSING": {
        "severity": ERROR,
        "category": "row",
        "description": "An appointment value has no explicit timezone offset.",
        "fix_hint": "Add a Z or +HH:MM offset, or run auto-fix with a fixed offset.",
    },
    "NON_ISO_OUTPUT": {
        "severity": WARN,
        "category": "row",
        "description": "An appointment value is readable but not in canonical UTC form.",
        "fix_hint": "Run auto-fix with date normalization enabled.",
    },
    "STATUS_VOCAB": {
        "severity": WARN,
        "category": "row",
        "description": "The status column uses more than one distinct literal.",
        "fix_hint": "Save a status normalization map to collapse equivalent literals.",
    },
    "ASSUMED_TIMEZONE": {
        "severity": ERROR,
        "category": "aggregate",
        "description": "Zone-less values were converted using the fallback timezone.",
        "fix_hint": "Store explicit offsets, or lower assumed_timezone_severity to warn.",
    },
    "MAPPING_SUGGESTION": {
        "severity": WARN,
        "category": "advisory",
        "description": "The suggestion service proposed a mapping for a header.",
        "fix_hint": "Suggestions are never applied automatically; add an override if it is right.",
    },
    "SUGGESTIONS_UNAVAILABLE": {
        "severity": WARN,
        "category": "advisory",
        "description": "The suggestion service could not be reached or answered badly.",
        "fix_hint": "The analysis itself is unaffected.",
    },
}


@dataclass
class Issue:
    code: str
    severity: str
    message: str
    rows: list[int] | None = None
    column: str | None = None
    suggestion: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "code": self.code,
            "severity": self.severity,
            "message": self.message,
        }
        if self.rows:
            payload["rows"] = list(self.rows)
        if self.column is not None:
            payload["column"] = self.column
        if self.suggestion is not None:
            payload["suggestion"] = self.suggestion
        return payload


def build_issue(
    code: str,
    message: str,
    *,
    rows: Iterable[int] | None = None,
    column: str | None = None,
    suggestion: str | None = None,
    severity: str | None = None,
) -> Issue:
    definition = ISSUE_DEFINITIONS[code]
    return Issue(
        code=code,
        severity=severity or definition["severity"],
        message=message,
        rows=sorted(set(rows)) if rows is not None else None,
        column=column,
        suggestion=suggestion,
    )


def has_errors(issues: Iterable[Issue]) -> bool:
    return any(issue.severity == ERROR for issue in issues)


@dataclass
class ZoneAssumption:
    """Record of zone-less values converted with the fallback zone during one pass."""

    fallback_zone: str
    used: bool = False
    affected_rows: set[int] = field(default_factory=set)

    def record(self, row_number: int) -> None:
        self.used = True
        self.affected_rows.add(row_number)

    def to_issue(self, severity: str = ERROR) -> Issue | None:
        if not self.used:
            return None
        rows = sorted(self.affected_rows)
        return build_issue(
            "ASSUMED_TIMEZONE",
            f"Assumed timezone {self.fallback_zone} for {len(rows)} row(s) without an explicit offset.",
            rows=rows,
            suggestion="Add explicit offsets or run auto-fix with a fixed timezone offset.",
            severity=severity,
        )

"""Row-level validation over the analyzed window.

Every check runs for every row; nothing short-circuits. The validator only
reports, it never builds records.
"""

from __future__ import annotations

from typing import Mapping, Sequence

from load_doctor.cells import Cell, cell_text, is_blank
from load_doctor.datetimes import ZoneLike, extract_date, extract_time, is_canonical_iso, normalize_to_iso
from load_doctor.fields import LOAD_ID, REQUIRED_FIELDS, STATUS, TIMESTAMP_FIELDS
from load_doctor.issues import Issue, ZoneAssumption, build_issue
from load_doctor.mapping import field_named_column, find_split_columns, resolve_columns
from load_doctor.preferences import NormalizationMaps

FIRST_DATA_ROW = 2


def _check_split(
    name: str,
    row: Sequence[Cell],
    row_number: int,
    headers: Sequence[str],
    date_index: int,
    time_index: int,
    tz: ZoneLike,
) -> Issue | None:
    date_cell, time_cell = row[date_index], row[time_index]
    date_ok = extract_date(date_cell, tz) is not None
    time_ok = extract_time(time_cell, tz) is not None
    if date_ok and time_ok:
        return None
    if is_blank(date_cell) and is_blank(time_cell):
        return None

    if not date_ok and not is_blank(date_cell):
        bad_index, problem = date_index, f"date '{cell_text(date_cell)}' is not readable"
    elif not time_ok and not is_blank(time_cell):
        bad_index, problem = time_index, f"time '{cell_text(time_cell)}' is not readable"
    elif not date_ok:
        bad_index, problem = date_index, "date is missing"
    else:
        bad_index, problem = time_index, "time is missing"
    return build_issue(
        "BAD_DATE_FORMAT",
        f"Row {row_number}: {name} {problem}; both a date and a time are needed.",
        rows=[row_number],
        column=headers[bad_index],
        suggestion="Fill both the date and the time column with readable values.",
    )


def _check_direct(
    name: str,
    cell: Cell,
    row_number: int,
    header: str,
    tz: ZoneLike,
    assumption: ZoneAssumption,
) -> list[Issue]:
    if is_blank(cell):
        return []
    iso, assumed = normalize_to_iso(cell, tz)
    if iso is None:
        return [
            build_issue(
                "BAD_DATE_FORMAT",
                f"Row {row_number}: {name} value '{cell_text(cell)}' is not a readable date and time.",
                rows=[row_number],
                column=header,
                suggestion="Use YYYY-MM-DDTHH:MM:SSZ.",
            )
        ]

    issues = []
    if assumed:
        assumption.record(row_number)
        issues.append(
            build_issue(
                "TIMEZONE_MISSING",
                f"Row {row_number}: {name} value '{cell_text(cell)}' has no timezone offset.",
                rows=[row_number],
                column=header,
                suggestion=f"Add an explicit offset; it would otherwise be read as {assumption.fallback_zone}.",
            )
        )
    if not (cell.is_text and is_canonical_iso(cell.value.strip())):
        issues.append(
            build_issue(
                "NON_ISO_OUTPUT",
                f"Row {row_number}: {name} value '{cell_text(cell)}' is not in canonical UTC form.",
                rows=[row_number],
                column=header,
                suggestion=f"Normalize to {iso}.",
            )
        )
    return issues


def validate_rows(
    headers: Sequence[str],
    rows: Sequence[Sequence[Cell]],
    mapping: Mapping[str, str],
    assumption: ZoneAssumption,
    tz: ZoneLike | None = None,
    normalization_maps: NormalizationMaps | None = None,
) -> list[Issue]:
    tz = tz or assumption.fallback_zone
    maps = normalization_maps or NormalizationMaps()
    columns = resolve_columns(headers, mapping)
    split = {
        name: indices
        for name, indices in find_split_columns(headers).items()
        if field_named_column(headers, name) is None
    }

    issues: list[Issue] = []
    first_seen: dict[str, int] = {}
    statuses: list[str] = []

    for position, row in enumerate(rows):
        row_number = position + FIRST_DATA_ROW

        for name in REQUIRED_FIELDS:
            index = columns.get(name)
            if index is not None and is_blank(row[index]):
                issues.append(
                    build_issue(
                        "EMPTY_REQUIRED_CELL",
                        f"Row {row_number}: required field '{name}' is empty.",
                        rows=[row_number],
                        column=headers[index],
                        suggestion=f"Fill in {name}.",
                    )
                )

        if LOAD_ID in columns:
            load_id = cell_text(row[columns[LOAD_ID]])
            if load_id:
                if load_id in first_seen:
                    issues.append(
                        build_issue(
                            "DUPLICATE_ID",
                            f"Row {row_number}: load id '{load_id}' already used in row {first_seen[load_id]}.",
                            rows=[row_number],
                            column=headers[columns[LOAD_ID]],
                            suggestion="Make the load id unique or remove the repeated row.",
                        )
                    )
                else:
                    first_seen[load_id] = row_number

        for name in TIMESTAMP_FIELDS:
            if name in split:
                date_index, time_index = split[name]
                issue = _check_split(name, row, row_number, headers, date_index, time_index, tz)
                if issue is not None:
                    issues.append(issue)
                continue
            index = columns.get(name)
            if index is not None:
                issues.extend(_check_direct(name, row[index], row_number, headers[index], tz, assumption))

        if STATUS in columns:
            status = maps.remap(STATUS, cell_text(row[columns[STATUS]]))
            if status and status not in statuses:
                statuses.append(status)

    if len(statuses) > 1:
        issues.append(
            build_issue(
                "STATUS_VOCAB",
                f"Status column uses {len(statuses)} different values: {', '.join(statuses)}.",
                column=headers[columns[STATUS]],
                suggestion="Save a status normalization map so equivalent values collapse to one literal.",
            )
        )
    return issues

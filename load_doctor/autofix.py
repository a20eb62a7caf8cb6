"""Auto-fix planning and application.

The planner only reads. The applier writes through a grid store, and only
when the caller opts in: it appends columns at the end of the header row and
writes normalized appointment values into the field-named column. A cell is
written only when a safe value was computed and differs from what is
already there, so running it twice changes nothing the second time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from load_doctor.cells import Cell, CellKind, EMPTY, cell_text, ingest_row, is_blank
from load_doctor.datetimes import (
    ZoneLike,
    combine,
    format_iso,
    is_placeholder_artifact,
    is_safe_value,
    normalize_to_iso,
    parse_utc_offset,
)
from load_doctor.fields import REQUIRED_FIELDS, TIMESTAMP_FIELDS
from load_doctor.grid import GridSnapshot, GridStore
from load_doctor.mapping import field_named_column, find_split_columns, resolve_mapping
from load_doctor.validator import FIRST_DATA_ROW

logger = logging.getLogger(__name__)


@dataclass
class ApplyOptions:
    create_missing_columns: bool = False
    normalize_dates: bool = False
    timezone_offset: str | int | None = None


class _Layout:
    """Headers, mapping and ingested rows, kept in step as columns are appended."""

    def __init__(self, snapshot: GridSnapshot, overrides: Mapping[str, str] | None) -> None:
        self.headers = list(snapshot.headers)
        self.rows = [ingest_row(row, len(self.headers)) for row in snapshot.rows]
        self.mapping = resolve_mapping(self.headers, overrides).mapping

    def missing_fields(self) -> list[str]:
        mapped = set(self.mapping.values())
        return [name for name in REQUIRED_FIELDS if name not in mapped]

    def add_column(self, header: str, index: int) -> None:
        while len(self.headers) < index:
            self.headers.append("")
            for row in self.rows:
                row.append(EMPTY)
        self.headers.append(header)
        for row in self.rows:
            row.append(EMPTY)
        self.mapping[header] = header

    def direct_indices(self, name: str) -> list[int]:
        indices = []
        named = field_named_column(self.headers, name)
        if named is not None:
            indices.append(named)
        for index, header in enumerate(self.headers):
            if self.mapping.get(header) == name and index not in indices:
                indices.append(index)
                break
        return indices

    def safe_timestamp(self, name: str, row: Sequence[Cell], tz: ZoneLike, split_tz: ZoneLike) -> str | None:
        split = find_split_columns(self.headers).get(name)
        if split is not None:
            instant = combine(row[split[0]], row[split[1]], split_tz)
            if instant is not None:
                iso = format_iso(instant)
                if not is_placeholder_artifact(iso):
                    return iso

        for index in self.direct_indices(name):
            if not is_blank(row[index]):
                return _safe_iso(row[index], tz)
        return None


def _safe_iso(cell: Cell, tz: ZoneLike) -> str | None:
    if not is_safe_value(cell):
        return None
    iso, _ = normalize_to_iso(cell, tz)
    if iso is None or is_placeholder_artifact(iso):
        return None
    return iso


def plan_fixes(
    snapshot: GridSnapshot,
    overrides: Mapping[str, str] | None = None,
    tz: ZoneLike = "UTC",
) -> dict[str, Any]:
    layout = _Layout(snapshot, overrides)
    missing = [{"field": name, "suggestedHeader": name} for name in layout.missing_fields()]

    date_fixes = []
    for name in TIMESTAMP_FIELDS:
        fixable = sum(1 for row in layout.rows if layout.safe_timestamp(name, row, tz, tz) is not None)
        if not fixable:
            continue
        date_fixes.append(
            {
                "field": name,
                "targetHeader": name,
                "createColumn": field_named_column(layout.headers, name) is None,
                "fixableCount": fixable,
                "totalRows": len(layout.rows),
            }
        )

    summary = (
        f"{len(missing)} required column(s) missing; "
        f"{sum(item['fixableCount'] for item in date_fixes)} appointment value(s) can be normalized safely."
    )
    return {"missingColumns": missing, "dateFixes": date_fixes, "summary": summary}


def apply_fixes(
    store: GridStore,
    options: ApplyOptions,
    overrides: Mapping[str, str] | None = None,
    tz: ZoneLike = "UTC",
    max_rows: int = 500,
) -> dict[str, Any]:
    split_tz: ZoneLike = tz
    if options.timezone_offset not in (None, ""):
        split_tz = parse_utc_offset(options.timezone_offset)

    layout = _Layout(store.get_snapshot(max_rows), overrides)
    created: list[str] = []

    if options.create_missing_columns:
        for name in layout.missing_fields():
            layout.add_column(name, store.append_column(name))
            created.append(name)
            logger.info("Created column %s", name)

    normalized = []
    if options.normalize_dates:
        for name in TIMESTAMP_FIELDS:
            values = []
            for position, row in enumerate(layout.rows):
                iso = layout.safe_timestamp(name, row, tz, split_tz)
                if iso is not None:
                    values.append((position, iso))
            if not values:
                continue
            target = field_named_column(layout.headers, name)
            if target is None:
                target = store.append_column(name)
                layout.add_column(name, target)
                created.append(name)
                logger.info("Created column %s for normalized values", name)

            updated = 0
            for position, iso in values:
                row = layout.rows[position]
                if cell_text(row[target]) == iso:
                    continue
                store.write_cell(position + FIRST_DATA_ROW, target, iso)
                row[target] = Cell(CellKind.TEXT, iso)
                updated += 1
            normalized.append({"field": name, "header": layout.headers[target], "rowsUpdated": updated})
            logger.info("Normalized %d value(s) into %s", updated, layout.headers[target])

    total = sum(item["rowsUpdated"] for item in normalized)
    message = f"Created {len(created)} column(s); normalized {total} cell(s)."
    return {"createdColumns": created, "normalized": normalized, "message": message}

"""Record construction: one Load per data row."""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Mapping, Sequence

from load_doctor.cells import EMPTY, Cell, cell_text, is_blank
from load_doctor.datetimes import (
    ZoneLike,
    combine,
    format_iso,
    has_explicit_zone,
    is_canonical_iso,
    normalize_to_iso,
)
from load_doctor.fields import FIELDS, REMAPPABLE_FIELDS, TIMESTAMP_FIELDS
from load_doctor.issues import ZoneAssumption
from load_doctor.mapping import field_named_column, find_split_columns, resolve_columns
from load_doctor.preferences import NormalizationMaps
from load_doctor.validator import FIRST_DATA_ROW


@dataclass
class Load:
    loadId: str = ""
    fromAddress: str = ""
    fromAppointmentDateTimeUTC: str = ""
    toAddress: str = ""
    toAppointmentDateTimeUTC: str = ""
    status: str = ""
    driverName: str = ""
    driverPhone: str = ""
    unitNumber: str = ""
    broker: str = ""

    def to_dict(self) -> dict[str, str]:
        return {item.name: getattr(self, item.name) for item in fields(self)}


class LoadBuilder:
    """Derives Load records from one row window.

    Column layout (resolved columns, field-named columns and split date/time
    pairs) is worked out once per window.
    """

    def __init__(
        self,
        headers: Sequence[str],
        mapping: Mapping[str, str],
        tz: ZoneLike,
        normalization_maps: NormalizationMaps | None = None,
    ) -> None:
        self.headers = list(headers)
        self.tz = tz
        self.maps = normalization_maps or NormalizationMaps()
        self.columns = resolve_columns(self.headers, mapping)
        self.split = find_split_columns(self.headers)
        self.named = {name: field_named_column(self.headers, name) for name in TIMESTAMP_FIELDS}

    def _timestamp(self, name: str, row: Sequence[Cell], row_number: int, assumption: ZoneAssumption) -> str:
        named_index = self.named[name]
        if named_index is not None:
            # The field-named column decides on its own, even when blank.
            cell = row[named_index]
            if is_blank(cell):
                return ""
            return self._best_effort(cell, row_number, assumption)

        if name in self.split:
            date_index, time_index = self.split[name]
            instant = combine(row[date_index], row[time_index], self.tz)
            if instant is not None:
                if not (has_explicit_zone(row[date_index]) or has_explicit_zone(row[time_index])):
                    assumption.record(row_number)
                return format_iso(instant)

        index = self.columns.get(name)
        cell = row[index] if index is not None else EMPTY
        if is_blank(cell):
            return ""
        if cell.is_text and (is_canonical_iso(cell.value.strip()) or has_explicit_zone(cell)):
            iso, _ = normalize_to_iso(cell, self.tz)
            if iso is not None:
                return iso
        return self._best_effort(cell, row_number, assumption)

    def _best_effort(self, cell: Cell, row_number: int, assumption: ZoneAssumption) -> str:
        iso, assumed = normalize_to_iso(cell, self.tz)
        if iso is None:
            return cell_text(cell)
        if assumed:
            assumption.record(row_number)
        return iso

    def build_row(self, row: Sequence[Cell], row_number: int, assumption: ZoneAssumption) -> Load:
        values: dict[str, str] = {}
        for name in FIELDS:
            if name in TIMESTAMP_FIELDS:
                values[name] = self._timestamp(name, row, row_number, assumption)
                continue
            index = self.columns.get(name)
            text = cell_text(row[index]) if index is not None else ""
            if name in REMAPPABLE_FIELDS:
                text = self.maps.remap(name, text)
            values[name] = text
        return Load(**values)


def build_loads(
    headers: Sequence[str],
    rows: Sequence[Sequence[Cell]],
    mapping: Mapping[str, str],
    assumption: ZoneAssumption,
    tz: ZoneLike | None = None,
    normalization_maps: NormalizationMaps | None = None,
) -> list[Load]:
    builder = LoadBuilder(headers, mapping, tz or assumption.fallback_zone, normalization_maps)
    return [
        builder.build_row(row, position + FIRST_DATA_ROW, assumption)
        for position, row in enumerate(rows)
    ]

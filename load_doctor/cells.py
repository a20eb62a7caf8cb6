"""Cell ingestion.

Raw grid values arrive as whatever the source produced (openpyxl scalars,
pandas scalars, plain strings). They are classified exactly once into a
:class:`Cell` so the rest of the pipeline can branch on ``kind`` instead of
probing types again.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Sequence

import pandas as pd


class CellKind(str, Enum):
    EMPTY = "empty"
    NUMBER = "number"
    TEXT = "text"
    TEMPORAL = "temporal"


@dataclass(frozen=True)
class Cell:
    kind: CellKind
    value: Any = None

    @property
    def is_text(self) -> bool:
        return self.kind is CellKind.TEXT


EMPTY = Cell(CellKind.EMPTY)


def _day_fraction(value: time) -> float:
    seconds = value.hour * 3600 + value.minute * 60 + value.second + value.microsecond / 1_000_000
    return seconds / 86400


def to_cell(value: Any) -> Cell:
    if value is None:
        return EMPTY
    if isinstance(value, Cell):
        return value
    if isinstance(value, str):
        text = value.replace("\x00", "")
        return Cell(CellKind.TEXT, text) if text else EMPTY
    if isinstance(value, bool):
        return Cell(CellKind.TEXT, "TRUE" if value else "FALSE")
    try:
        if pd.isna(value):
            return EMPTY
    except (TypeError, ValueError):
        pass
    if isinstance(value, pd.Timestamp):
        return Cell(CellKind.TEMPORAL, value.to_pydatetime())
    if isinstance(value, datetime):
        return Cell(CellKind.TEMPORAL, value)
    if isinstance(value, date):
        return Cell(CellKind.TEMPORAL, datetime(value.year, value.month, value.day))
    if isinstance(value, time):
        # openpyxl hands back time-only cells as datetime.time; keep the serial form.
        return Cell(CellKind.NUMBER, _day_fraction(value))
    if isinstance(value, (int, float)):
        if isinstance(value, float) and math.isnan(value):
            return EMPTY
        return Cell(CellKind.NUMBER, float(value))
    if getattr(getattr(value, "dtype", None), "kind", None) == "M":
        # numpy datetime64 .item() yields integer nanoseconds at ns precision.
        return to_cell(pd.Timestamp(value))
    if hasattr(value, "item"):
        return to_cell(value.item())
    return Cell(CellKind.TEXT, str(value))


def ingest_row(values: Sequence[Any], width: int) -> list[Cell]:
    cells = [to_cell(value) for value in list(values)[:width]]
    cells.extend(EMPTY for _ in range(width - len(cells)))
    return cells


def is_blank(cell: Cell) -> bool:
    if cell.kind is CellKind.EMPTY:
        return True
    return cell.kind is CellKind.TEXT and not cell.value.strip()


def cell_text(cell: Cell) -> str:
    """Plain string form of a cell, trimmed."""
    if cell.kind is CellKind.EMPTY:
        return ""
    if cell.kind is CellKind.NUMBER:
        number = cell.value
        if number.is_integer():
            return str(int(number))
        return repr(number)
    if cell.kind is CellKind.TEMPORAL:
        return cell.value.isoformat(sep=" ")
    return cell.value.strip()

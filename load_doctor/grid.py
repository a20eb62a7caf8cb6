"""
Grid sources and stores.

Public API:
    grid = open_grid("loads.xlsx")
    snapshot = grid.get_snapshot(max_rows=500)
    snapshot.headers   -> list of header strings
    snapshot.rows      -> list of raw value lists (data rows only)

Stores additionally support ``append_column`` and ``write_cell`` so the
auto-fix applier can write back. Sheet row numbers are 1-based with the
header on row 1; column indices are 0-based.
"""

from __future__ import annotations

import csv
import io
import logging
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, Sequence

import chardet
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

logger = logging.getLogger(__name__)

WORKBOOK_FORMATS = {".xlsx", ".xlsm"}
TEXT_FORMATS = {".csv", ".tsv", ".txt"}
ALL_FORMATS = WORKBOOK_FORMATS | TEXT_FORMATS


class GridError(Exception):
    """The grid could not be read, or holds no header or no data rows."""


@dataclass
class GridSnapshot:
    headers: list[str]
    rows: list[list[Any]] = field(default_factory=list)


class GridSource(Protocol):
    def get_snapshot(self, max_rows: int) -> GridSnapshot: ...


class GridStore(GridSource, Protocol):
    def append_column(self, header: str) -> int: ...

    def write_cell(self, row_number: int, column_index: int, value: Any) -> None: ...


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def _header_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def snapshot_from_rows(raw_rows: Sequence[Sequence[Any]], max_rows: int) -> GridSnapshot:
    rows = [list(row) for row in raw_rows]
    while rows and all(_is_empty(value) for value in rows[-1]):
        rows.pop()
    if len(rows) < 2:
        raise GridError("Sheet needs a header row and at least one data row.")

    headers = [_header_text(value) for value in rows[0]]
    while headers and not headers[-1]:
        headers.pop()
    if not headers:
        raise GridError("Header row is empty.")

    width = len(headers)
    data = []
    for row in rows[1 : max_rows + 1]:
        padded = row[:width] + [None] * (width - len(row[:width]))
        data.append(padded)
    return GridSnapshot(headers=headers, rows=data)


class MemoryGrid:
    """Grid held in a list of rows, header first."""

    def __init__(self, rows: Sequence[Sequence[Any]]) -> None:
        self.rows = [list(row) for row in rows]

    def get_snapshot(self, max_rows: int) -> GridSnapshot:
        return snapshot_from_rows(self.rows, max_rows)

    def append_column(self, header: str) -> int:
        if not self.rows:
            self.rows.append([])
        headers = self.rows[0]
        while headers and _is_empty(headers[-1]):
            headers.pop()
        headers.append(header)
        return len(headers) - 1

    def write_cell(self, row_number: int, column_index: int, value: Any) -> None:
        while len(self.rows) < row_number:
            self.rows.append([])
        row = self.rows[row_number - 1]
        if len(row) <= column_index:
            row.extend([None] * (column_index + 1 - len(row)))
        row[column_index] = value


class WorkbookGrid:
    """One sheet of an .xlsx/.xlsm workbook.

    Values are read from a cached-values view so formula cells show their
    results; writes go to the formula-preserving workbook that ``save`` writes.
    """

    def __init__(self, path: Path | str, sheet_name: str | None = None) -> None:
        self.path = Path(path)
        try:
            keep_vba = self.path.suffix.lower() == ".xlsm"
            self.workbook = load_workbook(self.path, keep_vba=keep_vba)
            self._values = load_workbook(self.path, data_only=True)
        except (InvalidFileException, zipfile.BadZipFile, OSError, KeyError) as exc:
            raise GridError(f"Could not read workbook {self.path}: {exc}") from exc
        if sheet_name is not None and sheet_name not in self.workbook.sheetnames:
            raise GridError(f"Sheet '{sheet_name}' not found in {self.path.name}")
        self.sheet_name = sheet_name or self.workbook.active.title
        self.dirty = False

    @property
    def sheet(self):
        return self.workbook[self.sheet_name]

    def get_snapshot(self, max_rows: int) -> GridSnapshot:
        values_sheet = self._values[self.sheet_name]
        raw = list(values_sheet.iter_rows(max_row=max_rows + 1, values_only=True))
        return snapshot_from_rows(raw, max_rows)

    def _header_width(self) -> int:
        headers = [cell.value for cell in self.sheet[1]] if self.sheet.max_row >= 1 else []
        while headers and _is_empty(headers[-1]):
            headers.pop()
        return len(headers)

    def append_column(self, header: str) -> int:
        index = self._header_width()
        self.write_cell(1, index, header)
        return index

    def write_cell(self, row_number: int, column_index: int, value: Any) -> None:
        self.sheet.cell(row=row_number, column=column_index + 1, value=value)
        self._values[self.sheet_name].cell(row=row_number, column=column_index + 1, value=value)
        self.dirty = True

    def save(self, path: Path | str | None = None) -> Path:
        target = Path(path) if path else self.path
        target.parent.mkdir(parents=True, exist_ok=True)
        self.workbook.save(target)
        logger.info("Workbook written: %s", target)
        return target


def _decode(raw: bytes) -> tuple[str, str]:
    if raw.startswith(b"\xef\xbb\xbf"):
        return raw[3:].decode("utf-8", errors="replace"), "utf-8-sig"
    try:
        return raw.decode("utf-8"), "utf-8"
    except UnicodeDecodeError:
        pass
    detected = chardet.detect(raw).get("encoding") or "cp1252"
    try:
        return raw.decode(detected), detected
    except (LookupError, UnicodeDecodeError):
        return raw.decode("cp1252", errors="replace"), "cp1252"


def _detect_delimiter(text: str, suffix: str) -> str:
    if suffix == ".tsv":
        return "\t"
    sample = "\n".join([line for line in text.splitlines() if line.strip()][:25])
    if sample:
        try:
            return csv.Sniffer().sniff(sample, delimiters=",;\t|").delimiter
        except csv.Error:
            pass
    return ","


class DelimitedGrid:
    """CSV/TSV file held in memory; ``save`` writes it back as UTF-8."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        try:
            raw = self.path.read_bytes()
        except OSError as exc:
            raise GridError(f"Could not read {self.path}: {exc}") from exc
        text, self.encoding = _decode(raw)
        self.delimiter = _detect_delimiter(text, self.path.suffix.lower())
        reader = csv.reader(io.StringIO(text.replace("\x00", "")), delimiter=self.delimiter)
        self._grid = MemoryGrid(list(reader))
        logger.debug("Read %s as %s, delimiter %r", self.path, self.encoding, self.delimiter)

    @property
    def rows(self) -> list[list[Any]]:
        return self._grid.rows

    def get_snapshot(self, max_rows: int) -> GridSnapshot:
        return self._grid.get_snapshot(max_rows)

    def append_column(self, header: str) -> int:
        return self._grid.append_column(header)

    def write_cell(self, row_number: int, column_index: int, value: Any) -> None:
        self._grid.write_cell(row_number, column_index, value)

    def save(self, path: Path | str | None = None) -> Path:
        target = Path(path) if path else self.path
        target.parent.mkdir(parents=True, exist_ok=True)
        buffer = io.StringIO()
        writer = csv.writer(buffer, delimiter=self.delimiter, lineterminator="\n")
        for row in self.rows:
            writer.writerow(["" if value is None else value for value in row])
        target.write_text(buffer.getvalue(), encoding="utf-8")
        logger.info("Delimited file written: %s", target)
        return target


def open_grid(path: Path | str, sheet_name: str | None = None) -> WorkbookGrid | DelimitedGrid:
    path = Path(path)
    suffix = path.suffix.lower()
    if not path.exists():
        raise GridError(f"File not found: {path}")
    if suffix in WORKBOOK_FORMATS:
        return WorkbookGrid(path, sheet_name=sheet_name)
    if suffix in TEXT_FORMATS:
        if sheet_name:
            raise GridError("--sheet only applies to .xlsx/.xlsm workbooks.")
        return DelimitedGrid(path)
    raise GridError(
        f"Unsupported file type '{suffix or '[missing extension]'}'. Supported: {', '.join(sorted(ALL_FORMATS))}"
    )

"""Header to canonical field resolution."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Mapping, Sequence

from load_doctor.fields import (
    DRIVER_PHONE,
    FIELD_SYNONYMS,
    FIELDS,
    REQUIRED_FIELDS,
    SPLIT_SYNONYMS,
    TIMESTAMP_FIELDS,
)
from load_doctor.issues import Issue, build_issue

logger = logging.getLogger(__name__)

NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


@dataclass
class MappingResult:
    mapping: dict[str, str]
    issues: list[Issue] = field(default_factory=list)


def canonicalize(text: str) -> str:
    return NON_ALNUM_RE.sub(" ", str(text or "").lower()).strip()


def build_synonym_index() -> dict[str, list[str]]:
    """Canonical synonym -> candidate fields, in field declaration order."""
    index: dict[str, list[str]] = {}
    for name in FIELDS:
        for synonym in (canonicalize(name), *FIELD_SYNONYMS[name]):
            candidates = index.setdefault(canonicalize(synonym), [])
            if name not in candidates:
                candidates.append(name)
    return index


SYNONYM_INDEX = build_synonym_index()
FIELDS_BY_LOWER = {name.lower(): name for name in FIELDS}


def _synonym_candidates(canonical: str) -> list[str]:
    candidates = list(SYNONYM_INDEX.get(canonical, ()))
    # The optional phone field never blocks another field's match.
    if len(candidates) > 1 and DRIVER_PHONE in candidates:
        candidates.remove(DRIVER_PHONE)
    return candidates


def resolve_mapping(
    headers: Sequence[str],
    overrides: Mapping[str, str] | None = None,
) -> MappingResult:
    overrides = dict(overrides or {})
    for header, target in list(overrides.items()):
        if target not in FIELDS:
            logger.warning("Ignoring override %r -> %r: not a load field", header, target)
            del overrides[header]

    mapping: dict[str, str] = {}
    issues: list[Issue] = []
    reported_ambiguous: set[str] = set()

    for header in headers:
        header = str(header or "")
        if not header.strip() or header in mapping:
            continue
        if header in overrides:
            mapping[header] = overrides[header]
            continue
        if header in FIELDS:
            mapping[header] = header
            continue
        lowered = header.strip().lower()
        if lowered in FIELDS_BY_LOWER:
            mapping[header] = FIELDS_BY_LOWER[lowered]
            continue

        candidates = _synonym_candidates(canonicalize(header))
        if len(candidates) == 1:
            mapping[header] = candidates[0]
        elif len(candidates) > 1 and header not in reported_ambiguous:
            reported_ambiguous.add(header)
            issues.append(
                build_issue(
                    "AMBIGUOUS_HEADER",
                    f"Header '{header}' could mean any of: {', '.join(candidates)}. It was left unmapped.",
                    column=header,
                    suggestion=f"Rename '{header}' or add an override naming one of {', '.join(candidates)}.",
                )
            )

    mapped_fields = set(mapping.values())
    for name in REQUIRED_FIELDS:
        if name not in mapped_fields:
            issues.append(
                build_issue(
                    "MISSING_COLUMN",
                    f"No column found for required field '{name}'.",
                    column=name,
                    suggestion=f"Add a column named '{name}' or map an existing header to it.",
                )
            )

    logger.debug("Resolved %d of %d headers", len(mapping), len(headers))
    return MappingResult(mapping=mapping, issues=issues)


def field_named_column(headers: Sequence[str], name: str) -> int | None:
    """Index of the column literally named after the field, if any."""
    lowered = name.lower()
    for index, header in enumerate(headers):
        if str(header or "").strip().lower() == lowered:
            return index
    return None


def resolve_columns(headers: Sequence[str], mapping: Mapping[str, str]) -> dict[str, int]:
    """Field -> column index. A field-named column beats any synonym column."""
    columns: dict[str, int] = {}
    for index, header in enumerate(headers):
        name = mapping.get(str(header or ""))
        if name is not None and name not in columns:
            columns[name] = index
    for name in list(columns):
        named = field_named_column(headers, name)
        if named is not None and mapping.get(str(headers[named] or "")) == name:
            columns[name] = named
    return columns


def find_split_columns(headers: Sequence[str]) -> dict[str, tuple[int, int]]:
    """Timestamp field -> (date column, time column) when both halves are present."""
    canonical = [canonicalize(header) for header in headers]
    split: dict[str, tuple[int, int]] = {}
    for name in TIMESTAMP_FIELDS:
        synonyms = SPLIT_SYNONYMS[name]
        date_index = next((i for i, c in enumerate(canonical) if c in synonyms["date"]), None)
        time_index = next((i for i, c in enumerate(canonical) if c in synonyms["time"]), None)
        if date_index is not None and time_index is not None:
            split[name] = (date_index, time_index)
    return split

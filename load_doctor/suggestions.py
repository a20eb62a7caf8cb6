"""Client for the optional header-suggestion service.

Suggestions are advisory: they come back as warning issues and are never
applied to the mapping or the records. Any failure of the service turns into
one warning; it never propagates to the caller.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

import requests

from load_doctor.cells import Cell, cell_text
from load_doctor.fields import FIELDS
from load_doctor.issues import Issue, build_issue

logger = logging.getLogger(__name__)

SAMPLE_ROWS = 5


class SuggestionError(Exception):
    """The suggestion service answered with something unusable."""


class SuggestionClient:
    def __init__(self, url: str, timeout: float = 10.0, session: requests.Session | None = None) -> None:
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def build_payload(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[Cell]],
        mapping: Mapping[str, str],
    ) -> dict[str, Any]:
        unmapped = [header for header in headers if header and header not in mapping]
        return {
            "fields": list(FIELDS),
            "headers": list(headers),
            "unmappedHeaders": unmapped,
            "mapping": dict(mapping),
            "sampleRows": [[cell_text(cell) for cell in row] for row in rows[:SAMPLE_ROWS]],
        }

    def suggest(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[Cell]],
        mapping: Mapping[str, str],
    ) -> list[Issue]:
        response = self.session.post(
            self.url,
            json=self.build_payload(headers, rows, mapping),
            timeout=self.timeout,
        )
        response.raise_for_status()
        try:
            payload = response.json()
        except ValueError as exc:
            raise SuggestionError("Suggestion service did not return JSON.") from exc
        if not isinstance(payload, dict) or not isinstance(payload.get("suggestions", []), list):
            raise SuggestionError("Suggestion payload must be an object with a 'suggestions' list.")

        issues = []
        for item in payload.get("suggestions", []):
            if not isinstance(item, dict):
                continue
            header = str(item.get("header") or "")
            target = str(item.get("field") or "")
            if not header or target not in FIELDS or mapping.get(header) == target:
                continue
            reason = str(item.get("reason") or "").strip()
            message = f"Header '{header}' may hold {target}."
            if reason:
                message = f"{message} {reason}"
            issues.append(
                build_issue(
                    "MAPPING_SUGGESTION",
                    message,
                    column=header,
                    suggestion=f"Add the override '{header}={target}' if this is right.",
                )
            )
        return issues


def collect_suggestions(
    client: SuggestionClient | None,
    headers: Sequence[str],
    rows: Sequence[Sequence[Cell]],
    mapping: Mapping[str, str],
) -> list[Issue]:
    if client is None:
        return []
    try:
        return client.suggest(headers, rows, mapping)
    except (requests.RequestException, SuggestionError) as exc:
        logger.warning("Suggestion service failed: %s", exc)
        return [
            build_issue(
                "SUGGESTIONS_UNAVAILABLE",
                f"Header suggestions are unavailable: {exc}",
            )
        ]

"""Per-user literal remaps for status and broker values."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

SAFE_IDENTITY_RE = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass
class NormalizationMaps:
    status: dict[str, str] = field(default_factory=dict)
    broker: dict[str, str] = field(default_factory=dict)

    def remap(self, field_name: str, value: str) -> str:
        table = getattr(self, field_name, None)
        if not table:
            return value
        return table.get(value, value)

    def to_dict(self) -> dict[str, dict[str, str]]:
        return {"status": dict(self.status), "broker": dict(self.broker)}

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "NormalizationMaps":
        maps = cls()
        for key in ("status", "broker"):
            table = payload.get(key) or {}
            if not isinstance(table, dict):
                raise ValueError(f"Normalization map '{key}' must be an object of literal -> literal.")
            setattr(maps, key, {str(src): str(dst) for src, dst in table.items()})
        return maps


class PreferenceStore:
    """One JSON file per identity under a directory."""

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)

    def path_for(self, identity: str) -> Path:
        safe = SAFE_IDENTITY_RE.sub("_", identity.strip()) or "anonymous"
        return self.directory / f"{safe}.json"

    def load(self, identity: str) -> NormalizationMaps:
        path = self.path_for(identity)
        if not path.exists():
            return NormalizationMaps()
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValueError(f"Could not read preferences {path}: {exc}") from exc
        if not isinstance(payload, dict):
            raise ValueError(f"Preferences root must be a JSON object: {path}")
        return NormalizationMaps.from_dict(payload)

    def save(self, identity: str, maps: NormalizationMaps) -> Path:
        path = self.path_for(identity)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(maps.to_dict(), indent=2, sort_keys=True), encoding="utf-8")
        logger.info("Saved normalization maps for %s to %s", identity, path)
        return path

"""Runtime settings: a JSON file plus LOAD_DOCTOR_* environment overrides."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from load_doctor.issues import SEVERITIES

ENV_PREFIX = "LOAD_DOCTOR_"


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class Settings:
    default_zone: str = "UTC"
    max_rows: int = 500
    assumed_timezone_severity: str = "error"
    rate_limit_per_minute: int = 30
    suggestion_url: str | None = None
    suggestion_timeout: float = 10.0
    preferences_dir: str | None = None


def _coerce(name: str, raw: Any) -> Any:
    if name in {"max_rows", "rate_limit_per_minute"}:
        try:
            value = int(raw)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc
        if value < 1:
            raise ConfigError(f"{name} must be at least 1")
        return value
    if name == "suggestion_timeout":
        try:
            return float(raw)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"{name} must be a number, got {raw!r}") from exc
    if name in {"suggestion_url", "preferences_dir"}:
        return str(raw) if raw not in (None, "") else None
    return str(raw)


def validate_settings(settings: Settings) -> Settings:
    try:
        ZoneInfo(settings.default_zone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigError(f"Unknown timezone: {settings.default_zone}") from exc
    if settings.assumed_timezone_severity not in SEVERITIES:
        raise ConfigError(
            f"assumed_timezone_severity must be one of {', '.join(SEVERITIES)}, "
            f"got {settings.assumed_timezone_severity!r}"
        )
    return settings


def load_settings(path: Path | str | None = None, env: Mapping[str, str] | None = None) -> Settings:
    env = os.environ if env is None else env
    known = {item.name for item in fields(Settings)}
    values: dict[str, Any] = {}

    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise ConfigError(f"Config not found: {config_path}")
        try:
            payload = json.loads(config_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigError(f"Could not read config: {exc}") from exc
        if not isinstance(payload, dict):
            raise ConfigError("Config root must be a JSON object.")
        unknown = sorted(set(payload) - known)
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")
        values.update({key: _coerce(key, value) for key, value in payload.items()})

    for name in known:
        raw = env.get(ENV_PREFIX + name.upper())
        if raw is not None:
            values[name] = _coerce(name, raw)

    return validate_settings(replace(Settings(), **values))

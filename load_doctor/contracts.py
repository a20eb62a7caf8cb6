"""Shared versioned contracts for load-doctor outputs."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

CONTRACT_VERSIONS = {
    "load_doctor.analysis": "1.0.0",
    "load_doctor.autofix_plan": "1.0.0",
    "load_doctor.autofix_apply": "1.0.0",
}


def utc_now_iso(now: datetime | None = None) -> str:
    moment = now or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def build_contract(name: str) -> dict[str, str]:
    version = CONTRACT_VERSIONS[name]
    return {"name": name, "version": version}


def with_contract(name: str, payload: dict[str, Any]) -> dict[str, Any]:
    return {"contract": build_contract(name), **payload}

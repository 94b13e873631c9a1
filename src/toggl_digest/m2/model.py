from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from toggl_digest.m1.clock import parse_ts


def _opt_int(v: Any) -> int | None:
    if v is None or isinstance(v, bool):
        return None
    try:
        return int(v)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class Workspace:
    id: int
    name: str

    @classmethod
    def from_json(cls, obj: dict) -> Workspace:
        return cls(id=int(obj["id"]), name=str(obj.get("name") or ""))


@dataclass(frozen=True)
class Project:
    id: int
    name: str
    client_id: int | None = None

    @classmethod
    def from_json(cls, obj: dict) -> Project:
        # v9 uses client_id; older payloads used cid.
        cid = obj.get("client_id", obj.get("cid"))
        return cls(id=int(obj["id"]), name=str(obj.get("name") or ""), client_id=_opt_int(cid))


@dataclass(frozen=True)
class Client:
    id: int
    name: str

    @classmethod
    def from_json(cls, obj: dict) -> Client:
        return cls(id=int(obj["id"]), name=str(obj.get("name") or ""))


@dataclass(frozen=True)
class TimeEntry:
    id: int
    project_id: int | None
    description: str
    start: datetime
    stop: datetime | None
    duration_seconds: int
    workspace_id: int | None = None

    @property
    def is_running(self) -> bool:
        return self.stop is None

    @classmethod
    def from_json(cls, obj: dict) -> TimeEntry:
        stop = obj.get("stop")
        return cls(
            id=int(obj["id"]),
            project_id=_opt_int(obj.get("project_id")),
            description=str(obj.get("description") or ""),
            start=parse_ts(str(obj["start"])),
            stop=parse_ts(str(stop)) if stop else None,
            duration_seconds=int(obj.get("duration") or 0),
            workspace_id=_opt_int(obj.get("workspace_id")),
        )


def parse_list(payload: Any, kind: type) -> list:
    """Decode a cached/remote JSON list, skipping items that do not parse."""
    if not isinstance(payload, list):
        return []
    out = []
    for obj in payload:
        if not isinstance(obj, dict):
            continue
        try:
            out.append(kind.from_json(obj))
        except (KeyError, TypeError, ValueError):
            continue
    return out

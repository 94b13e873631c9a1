from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from toggl_digest.m1.jsonfile import read_json, write_json_atomic
from toggl_digest.m1.quota import DEFAULT_DAILY_LIMIT
from toggl_digest.m3.rounding import RoundingConfig
from toggl_digest.m4.dates import WEEK_STARTS

DEFAULT_TZ = "Europe/Brussels"


@dataclass(frozen=True)
class Settings:
    reference_tz: str = DEFAULT_TZ
    daily_call_limit: int = DEFAULT_DAILY_LIMIT
    target_hours: float = 8.0
    week_start: str = "monday"
    include_weekends: bool = False
    rounding: RoundingConfig = field(default_factory=RoundingConfig)

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.reference_tz)

    def to_json(self) -> dict:
        return {
            "reference_tz": self.reference_tz,
            "daily_call_limit": self.daily_call_limit,
            "target_hours": self.target_hours,
            "week_start": self.week_start,
            "include_weekends": self.include_weekends,
            "rounding": {
                "enabled": self.rounding.enabled,
                "increment": self.rounding.increment,
                "mode": self.rounding.mode,
            },
        }


def default_config_path() -> Path:
    xdg = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg / "toggl-digest" / "config.json"


def _rounding_from(obj: object) -> RoundingConfig:
    if obj is None:
        return RoundingConfig()
    if not isinstance(obj, dict):
        raise ValueError("rounding must be an object")
    enabled = obj.get("enabled", False)
    increment = obj.get("increment", 0.25)
    mode = obj.get("mode", "closest")
    if not isinstance(enabled, bool):
        raise ValueError("rounding.enabled must be a boolean")
    if isinstance(increment, bool) or not isinstance(increment, (int, float)):
        raise ValueError("rounding.increment must be a number")
    if not isinstance(mode, str):
        raise ValueError("rounding.mode must be a string")
    return RoundingConfig(enabled=enabled, increment=float(increment), mode=mode)


def load_settings(path: Path | None = None) -> Settings:
    if path is None:
        path = default_config_path()

    if not path.exists():
        return Settings()

    obj = read_json(path)
    if not isinstance(obj, dict):
        raise ValueError("config must be a JSON object")

    tz = obj.get("reference_tz", DEFAULT_TZ)
    limit = obj.get("daily_call_limit", DEFAULT_DAILY_LIMIT)
    target = obj.get("target_hours", 8.0)
    week_start = obj.get("week_start", "monday")
    include_weekends = obj.get("include_weekends", False)

    if not isinstance(tz, str):
        raise ValueError("reference_tz must be a string")
    try:
        ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"unknown time zone: {tz}") from e
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 0:
        raise ValueError("daily_call_limit must be a non-negative integer")
    if isinstance(target, bool) or not isinstance(target, (int, float)) or target <= 0:
        raise ValueError("target_hours must be greater than 0")
    if week_start not in WEEK_STARTS:
        raise ValueError("week_start must be monday or sunday")
    if not isinstance(include_weekends, bool):
        raise ValueError("include_weekends must be a boolean")

    return Settings(
        reference_tz=tz,
        daily_call_limit=limit,
        target_hours=round(float(target), 2),
        week_start=week_start,
        include_weekends=include_weekends,
        rounding=_rounding_from(obj.get("rounding")),
    )


def save_settings(settings: Settings, path: Path | None = None) -> Path:
    path = path or default_config_path()
    # Keep keys written by other versions of the tool.
    existing: dict = {}
    if path.exists():
        obj = read_json(path)
        if isinstance(obj, dict):
            existing = obj
    existing.update(settings.to_json())
    write_json_atomic(path, existing)
    return path

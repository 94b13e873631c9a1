from __future__ import annotations

import os
from pathlib import Path


def xdg_data_home() -> Path:
    return Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))


def xdg_cache_home() -> Path:
    return Path(os.environ.get("XDG_CACHE_HOME", Path.home() / ".cache"))


def default_cache_db_path() -> Path:
    return xdg_cache_home() / "toggl-digest" / "cache.sqlite3"


def default_quota_path() -> Path:
    return xdg_data_home() / "toggl-digest" / "quota.json"


def default_non_working_days_path() -> Path:
    return xdg_data_home() / "toggl-digest" / "non_working_days.json"

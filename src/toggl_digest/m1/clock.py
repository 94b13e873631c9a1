from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, date, datetime
from zoneinfo import ZoneInfo

# Injected wherever "now" matters.
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


def today_in(tz: ZoneInfo, now: datetime) -> date:
    """Calendar date of `now` in the reference time zone."""
    if now.tzinfo is None:
        raise ValueError("now must be timezone-aware")
    return now.astimezone(tz).date()


def parse_ts(ts: str) -> datetime:
    # Toggl returns RFC 3339 with a trailing "Z" on older payloads.
    return datetime.fromisoformat(ts.replace("Z", "+00:00"))

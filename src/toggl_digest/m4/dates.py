from __future__ import annotations

import calendar
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from toggl_digest.m1.clock import today_in

WEEK_STARTS = ("monday", "sunday")


def parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value.strip())
    except ValueError as e:
        raise ValueError("Invalid date format. Use YYYY-MM-DD.") from e


def local_midnight(d: date, tz: ZoneInfo) -> datetime:
    return datetime.combine(d, time.min, tzinfo=tz)


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar-day range in the reference time zone."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError("end date is before start date")

    @classmethod
    def single(cls, d: date) -> DateRange:
        return cls(d, d)

    @classmethod
    def today(cls, tz: ZoneInfo, now: datetime) -> DateRange:
        return cls.single(today_in(tz, now))

    @classmethod
    def yesterday(cls, tz: ZoneInfo, now: datetime) -> DateRange:
        return cls.single(today_in(tz, now) - timedelta(days=1))

    @property
    def days_count(self) -> int:
        return (self.end - self.start).days + 1

    def days(self) -> Iterator[date]:
        d = self.start
        while d <= self.end:
            yield d
            d += timedelta(days=1)

    def bounds(self, tz: ZoneInfo) -> tuple[datetime, datetime]:
        """Half-open instants [start 00:00, day after end 00:00) in `tz`."""
        return local_midnight(self.start, tz), local_midnight(self.end + timedelta(days=1), tz)

    def shift(self, direction: int) -> DateRange:
        """Move by the range's own length (direction -1 or +1)."""
        step = timedelta(days=self.days_count * direction)
        return DateRange(self.start + step, self.end + step)

    @property
    def label(self) -> str:
        if self.start == self.end:
            return self.start.isoformat()
        return f"{self.start.isoformat()} → {self.end.isoformat()}"


def start_of_week(d: date, week_start: str = "monday") -> date:
    if week_start not in WEEK_STARTS:
        raise ValueError("week_start must be monday or sunday")
    offset = d.weekday() if week_start == "monday" else (d.weekday() + 1) % 7
    return d - timedelta(days=offset)


def week_of(d: date, week_start: str = "monday") -> DateRange:
    s = start_of_week(d, week_start)
    return DateRange(s, s + timedelta(days=6))


def month_of(d: date) -> DateRange:
    last = calendar.monthrange(d.year, d.month)[1]
    return DateRange(d.replace(day=1), d.replace(day=last))


def year_of(d: date) -> DateRange:
    return DateRange(date(d.year, 1, 1), date(d.year, 12, 31))


def is_weekend(d: date) -> bool:
    return d.weekday() >= 5

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from zoneinfo import ZoneInfo

from toggl_digest.m2.model import Client, Project, TimeEntry
from toggl_digest.m3.rounding import RoundingConfig
from toggl_digest.m3.summarise import completed_entries, summarise
from toggl_digest.m4.dates import DateRange, is_weekend, start_of_week

PERIOD_KINDS = ("week", "month", "year")


@dataclass(frozen=True)
class DayTotal:
    date: date
    total_seconds: int
    is_non_working: bool
    target_hours: float

    @property
    def total_hours(self) -> float:
        return self.total_seconds / 3600

    @property
    def delta_vs_target(self) -> float:
        return self.total_hours - self.target_hours


@dataclass(frozen=True)
class PeriodRollup:
    kind: str
    label: str
    start: date
    end: date
    days: list[DayTotal]
    total_seconds: int
    working_days: int
    target_hours: float

    @property
    def total_hours(self) -> float:
        return self.total_seconds / 3600

    @property
    def delta_vs_target(self) -> float:
        """Overtime when positive, hours still owed when negative."""
        return self.total_hours - self.target_hours


def daily_seconds(
    entries: Iterable[TimeEntry],
    day_range: DateRange,
    tz: ZoneInfo,
    projects: Iterable[Project] = (),
    clients: Iterable[Client] = (),
    *,
    rounding: RoundingConfig | None = None,
) -> list[tuple[date, int]]:
    """Aggregated total for every day of `day_range`, zero-filled.

    Each day is summarised on its own, so rounding applies per description
    per day, the same way the single-day summary does.
    """
    projects = list(projects)
    clients = list(clients)

    by_day: dict[date, list[TimeEntry]] = {}
    for e in completed_entries(entries):
        d = e.start.astimezone(tz).date()
        if day_range.start <= d <= day_range.end:
            by_day.setdefault(d, []).append(e)

    out: list[tuple[date, int]] = []
    for d in day_range.days():
        day_entries = by_day.get(d)
        if not day_entries:
            out.append((d, 0))
            continue
        start, end = DateRange.single(d).bounds(tz)
        s = summarise(day_entries, projects, clients, rounding=rounding, start=start, end=end)
        out.append((d, s.total_seconds))
    return out


def build_day_totals(
    daily: Sequence[tuple[date, int]],
    *,
    non_working_days: Iterable[date] = (),
    target_hours_per_day: float = 8.0,
    include_weekends: bool = False,
    as_of: date | None = None,
) -> list[DayTotal]:
    """Attach non-working flags and per-day targets to daily totals.

    A day carries a target unless it is marked non-working, is a weekend
    (when weekends are excluded) or lies after `as_of`.
    """
    marked = frozenset(non_working_days)
    out: list[DayTotal] = []
    for d, secs in daily:
        off = d in marked
        counts = not off and (include_weekends or not is_weekend(d))
        if as_of is not None and d > as_of:
            counts = False
        out.append(
            DayTotal(
                date=d,
                total_seconds=secs,
                is_non_working=off,
                target_hours=target_hours_per_day if counts else 0.0,
            )
        )
    return out


def _period_key(d: date, kind: str, week_start: str) -> tuple:
    if kind == "week":
        return (start_of_week(d, week_start),)
    if kind == "month":
        return (d.year, d.month)
    return (d.year,)


def _period_label(kind: str, start: date, end: date, week_start: str) -> str:
    if kind == "week":
        iso = start_of_week(start, week_start).isocalendar()
        return f"W{iso.week:02} {iso.year} ({start.isoformat()} → {end.isoformat()})"
    if kind == "month":
        return start.strftime("%b %Y")
    return str(start.year)


def build_rollups(
    days: Sequence[DayTotal],
    kind: str,
    *,
    week_start: str = "monday",
    include_non_working: bool = False,
) -> list[PeriodRollup]:
    """Group consecutive days into week/month/year periods.

    Period totals skip days marked non-working unless `include_non_working`;
    the target is the sum of the days' targets.
    """
    if kind not in PERIOD_KINDS:
        raise ValueError(f"kind must be one of {', '.join(PERIOD_KINDS)}")

    groups: dict[tuple, list[DayTotal]] = {}
    for day in sorted(days, key=lambda x: x.date):
        groups.setdefault(_period_key(day.date, kind, week_start), []).append(day)

    out: list[PeriodRollup] = []
    for members in groups.values():
        start, end = members[0].date, members[-1].date
        counted = [d for d in members if include_non_working or not d.is_non_working]
        out.append(
            PeriodRollup(
                kind=kind,
                label=_period_label(kind, start, end, week_start),
                start=start,
                end=end,
                days=members,
                total_seconds=sum(d.total_seconds for d in counted),
                working_days=sum(1 for d in members if d.target_hours > 0),
                target_hours=sum(d.target_hours for d in members),
            )
        )
    return out

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from toggl_digest.m2.model import Client, Project, TimeEntry
from toggl_digest.m3.model import (
    NO_CLIENT,
    NO_PROJECT,
    UNKNOWN_CLIENT,
    UNKNOWN_PROJECT,
    ClientSummary,
    GroupedEntry,
    ProjectSummary,
    Summary,
)
from toggl_digest.m3.rounding import RoundingConfig, round_seconds


@dataclass
class _ProjectAggregate:
    project_id: int | None
    # description -> summed seconds, in first-seen order
    seconds_by_description: dict[str, int] = field(default_factory=dict)

    def add(self, description: str, seconds: int) -> None:
        self.seconds_by_description[description] = (
            self.seconds_by_description.get(description, 0) + seconds
        )


def completed_entries(entries: Iterable[TimeEntry]) -> list[TimeEntry]:
    """Drop running entries; they never count toward hours."""
    return [e for e in entries if e.stop is not None]


def starts_within(entry: TimeEntry, start: datetime | None, end: datetime | None) -> bool:
    # Half-open: an entry starting exactly at `end` belongs to the next range.
    if start is not None and entry.start < start:
        return False
    if end is not None and entry.start >= end:
        return False
    return True


def group_entries(
    entries: Iterable[TimeEntry],
    projects: Iterable[Project] = (),
    clients: Iterable[Client] = (),
    *,
    rounding: RoundingConfig | None = None,
) -> list[ProjectSummary]:
    """Group completed entries by project, then by description.

    Output order is first-seen order of projects and descriptions, so the
    same input always produces the same summaries. Rounding is applied to
    each description bucket; project totals are sums of those buckets.
    """
    project_by_id = {p.id: p for p in projects}
    client_names = {c.id: c.name for c in clients}

    aggregates: dict[int | None, _ProjectAggregate] = {}
    for e in completed_entries(entries):
        agg = aggregates.get(e.project_id)
        if agg is None:
            agg = aggregates[e.project_id] = _ProjectAggregate(project_id=e.project_id)
        agg.add(e.description, e.duration_seconds)

    out: list[ProjectSummary] = []
    for pid, agg in aggregates.items():
        grouped = [
            GroupedEntry(
                description=desc,
                total_duration_seconds=secs,
                rounded_duration_seconds=(
                    round_seconds(secs, rounding) if rounding and rounding.enabled else None
                ),
            )
            for desc, secs in agg.seconds_by_description.items()
        ]

        project = project_by_id.get(pid) if pid is not None else None
        if pid is None:
            name = NO_PROJECT
        elif project is None or not project.name:
            name = UNKNOWN_PROJECT
        else:
            name = project.name

        client_id = project.client_id if project is not None else None
        if client_id is None:
            client_name = NO_CLIENT
        else:
            client_name = client_names.get(client_id) or UNKNOWN_CLIENT

        out.append(
            ProjectSummary(
                project_id=pid,
                project_name=name,
                entries=grouped,
                client_id=client_id,
                client_name=client_name,
            )
        )
    return out


def summarise(
    entries: Iterable[TimeEntry],
    projects: Iterable[Project] = (),
    clients: Iterable[Client] = (),
    *,
    rounding: RoundingConfig | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> Summary:
    """Project summaries plus the grand total for [start, end)."""
    entries = list(entries)
    projects = list(projects)
    clients = list(clients)

    groups = group_entries(entries, projects, clients, rounding=rounding)
    if start is None and end is None:
        total = sum(p.total_seconds for p in groups)
    else:
        in_range = [e for e in entries if starts_within(e, start, end)]
        total = sum(
            p.total_seconds
            for p in group_entries(in_range, projects, clients, rounding=rounding)
        )
    return Summary(projects=groups, total_seconds=total)


def group_by_client(projects: Iterable[ProjectSummary]) -> list[ClientSummary]:
    by_client: dict[int | None, list[ProjectSummary]] = {}
    names: dict[int | None, str] = {}
    for p in projects:
        by_client.setdefault(p.client_id, []).append(p)
        names.setdefault(p.client_id, p.client_name)
    return [
        ClientSummary(client_id=cid, client_name=names[cid], projects=ps)
        for cid, ps in by_client.items()
    ]

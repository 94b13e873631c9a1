from __future__ import annotations

from datetime import UTC, datetime, timedelta

from toggl_digest.m2.model import Client, Project, TimeEntry
from toggl_digest.m3.model import NO_CLIENT, NO_PROJECT, UNKNOWN_PROJECT
from toggl_digest.m3.report import summary_to_markdown
from toggl_digest.m3.rounding import RoundingConfig
from toggl_digest.m3.summarise import group_by_client, group_entries, summarise

T0 = datetime(2026, 2, 9, 8, 0, tzinfo=UTC)


def _entry(
    eid: int,
    project_id: int | None,
    desc: str,
    seconds: int,
    *,
    start: datetime = T0,
    running: bool = False,
) -> TimeEntry:
    return TimeEntry(
        id=eid,
        project_id=project_id,
        description=desc,
        start=start,
        stop=None if running else start + timedelta(seconds=seconds),
        duration_seconds=seconds,
    )


def test_same_description_is_merged() -> None:
    entries = [_entry(1, 1, "X", 972), _entry(2, 1, "X", 1200)]
    groups = group_entries(entries, [Project(id=1, name="Acme")])

    assert len(groups) == 1
    p = groups[0]
    assert p.project_name == "Acme"
    assert len(p.entries) == 1
    assert p.entries[0].description == "X"
    assert p.entries[0].total_duration_seconds == 2172
    assert round(p.entries[0].hours, 2) == 0.60
    assert round(p.total_hours, 2) == 0.60


def test_running_entries_are_excluded() -> None:
    s = summarise([_entry(1, 1, "X", 600), _entry(2, 1, "X", 0, running=True)])
    assert s.total_seconds == 600
    assert s.projects[0].entries[0].total_duration_seconds == 600


def test_first_seen_order_and_idempotence() -> None:
    entries = [
        _entry(1, 2, "b", 60),
        _entry(2, 1, "a", 60),
        _entry(3, 2, "a", 60),
        _entry(4, 2, "b", 60),
    ]
    first = group_entries(entries)
    assert [p.project_id for p in first] == [2, 1]
    assert [e.description for e in first[0].entries] == ["b", "a"]
    assert group_entries(entries) == first


def test_unknown_and_missing_projects_get_placeholders() -> None:
    groups = group_entries([_entry(1, None, "X", 60), _entry(2, 99, "Y", 60)], [])
    assert [p.project_name for p in groups] == [NO_PROJECT, UNKNOWN_PROJECT]


def test_empty_description_is_its_own_group() -> None:
    groups = group_entries([_entry(1, 1, "", 60), _entry(2, 1, "", 60), _entry(3, 1, "X", 60)])
    assert [e.description for e in groups[0].entries] == ["", "X"]
    assert groups[0].entries[0].label == "(no description)"
    assert groups[0].entries[0].total_duration_seconds == 120


def test_rounding_applies_per_description() -> None:
    cfg = RoundingConfig(enabled=True, increment=0.25, mode="up")
    groups = group_entries([_entry(1, 1, "X", 60), _entry(2, 1, "Y", 60)], rounding=cfg)
    assert [e.rounded_duration_seconds for e in groups[0].entries] == [900, 900]
    assert groups[0].total_seconds == 1800


def test_total_uses_half_open_range() -> None:
    start = datetime(2026, 2, 9, 0, 0, tzinfo=UTC)
    end = start + timedelta(days=1)
    entries = [
        _entry(1, 1, "X", 600, start=start),
        _entry(2, 1, "X", 600, start=end),
        _entry(3, 1, "X", 600, start=start - timedelta(seconds=1)),
    ]
    s = summarise(entries, start=start, end=end)
    assert s.total_seconds == 600
    # Groups still show everything they were given.
    assert s.projects[0].total_seconds == 1800


def test_group_by_client() -> None:
    projects = [
        Project(id=1, name="A", client_id=10),
        Project(id=2, name="B"),
        Project(id=3, name="C", client_id=10),
    ]
    clients = [Client(id=10, name="Acme")]
    groups = group_entries(
        [_entry(1, 1, "x", 3600), _entry(2, 2, "y", 1800), _entry(3, 3, "z", 1800)],
        projects,
        clients,
    )
    by_client = group_by_client(groups)
    assert [c.client_name for c in by_client] == ["Acme", NO_CLIENT]
    assert [p.project_name for p in by_client[0].projects] == ["A", "C"]
    assert by_client[0].total_hours == 1.5


def test_markdown_report() -> None:
    s = summarise([_entry(1, 1, "X", 972), _entry(2, 1, "X", 1200)], [Project(id=1, name="Acme")])
    md = summary_to_markdown(s, title="2026-02-09")
    assert md.startswith("# 2026-02-09\n")
    assert "## Acme" in md
    assert "- X (0.60)" in md
    assert "Total hours: 0.60" in md


def test_markdown_report_shows_raw_when_rounded() -> None:
    cfg = RoundingConfig(enabled=True, increment=0.25, mode="closest")
    s = summarise([_entry(1, 1, "X", 2172)], rounding=cfg)
    md = summary_to_markdown(s)
    assert "- X (0.50, raw 0.60)" in md


def test_markdown_report_empty() -> None:
    assert "(no completed entries in range)" in summary_to_markdown(summarise([]))

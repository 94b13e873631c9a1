from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from zoneinfo import ZoneInfo

from toggl_digest.m1.cache import CacheKey, CacheRecord, Scope
from toggl_digest.m1.db import StorageError
from toggl_digest.m2.model import Client, Project, TimeEntry, Workspace, parse_list
from toggl_digest.m2.toggl_api import TogglApiError, Unauthorized
from toggl_digest.m3.model import Summary
from toggl_digest.m3.summarise import summarise
from toggl_digest.m4.dates import DateRange
from toggl_digest.m4.rollup import PeriodRollup, build_day_totals, build_rollups, daily_seconds
from toggl_digest.m5.context import SyncContext
from toggl_digest.m5.sync import AuthError, Provenance, SyncResult, status_banner

logger = logging.getLogger(__name__)


class WorkspaceSelectionError(RuntimeError):
    pass


@dataclass(frozen=True)
class SummaryView:
    day_range: DateRange
    summary: Summary | None
    entries: SyncResult
    messages: list[str] = field(default_factory=list)

    @property
    def provenance(self) -> Provenance | None:
        return self.entries.provenance


@dataclass(frozen=True)
class RollupView:
    period: DateRange
    kind: str
    rollups: list[PeriodRollup]
    entries: SyncResult
    messages: list[str] = field(default_factory=list)


def _messages(ctx: SyncContext, *results: SyncResult, extra: Iterable[str] = ()) -> list[str]:
    out: list[str] = list(ctx.diagnostics())
    for r in results:
        out.extend(r.diagnostics)
        banner = status_banner(r, ctx.quota, ctx.settings.tz)
        if banner and r.provenance != Provenance.CACHED:
            out.append(banner)
    out.extend(extra)
    # Same banner can come from several results.
    return list(dict.fromkeys(out))


def pick_workspace(ctx: SyncContext, workspace_id: int | None = None) -> Workspace:
    res = ctx.orchestrator.workspaces(ctx.identity)
    if isinstance(res.error, AuthError):
        raise WorkspaceSelectionError(f"Invalid token: {res.error}")
    if not res.has_data:
        raise WorkspaceSelectionError(str(res.error or "no workspaces"))

    workspaces = parse_list(res.payload, Workspace)
    if workspace_id is not None:
        for w in workspaces:
            if w.id == workspace_id:
                return w
        raise WorkspaceSelectionError(f"workspace {workspace_id} not found")
    if len(workspaces) == 1:
        return workspaces[0]
    if not workspaces:
        raise WorkspaceSelectionError("No workspaces found.")
    raise WorkspaceSelectionError("several workspaces; pass --workspace-id")


def _metadata(ctx: SyncContext, workspace_id: int, *, force_refresh: bool):
    pres = ctx.orchestrator.projects(ctx.identity, workspace_id, force_refresh=force_refresh)
    cres = ctx.orchestrator.clients(ctx.identity, workspace_id, force_refresh=force_refresh)
    projects = parse_list(pres.payload, Project) if pres.has_data else []
    clients = parse_list(cres.payload, Client) if cres.has_data else []
    return pres, cres, projects, clients


def resolve_missing_projects(
    ctx: SyncContext,
    workspace_id: int,
    entries: Iterable[TimeEntry],
    projects: list[Project],
    payload: object = None,
) -> tuple[list[Project], list[str]]:
    """Look up projects referenced by entries but absent from the list.

    Refreshes the cached project list once, then asks for remaining ids one
    by one and writes them into the cached list, so later cached views name
    them the same way. `payload` is the cached list `projects` came from.
    Returns the projects plus messages for the caller (auth and storage
    failures).
    """
    known = {p.id for p in projects}
    missing = {e.project_id for e in entries if e.project_id is not None} - known
    if not missing:
        return projects, []

    raw = [p for p in payload if isinstance(p, dict)] if isinstance(payload, list) else []
    res = ctx.orchestrator.projects(ctx.identity, workspace_id, force_refresh=True)
    if isinstance(res.error, AuthError):
        return projects, [f"Invalid token: {res.error}"]
    if res.provenance == Provenance.LIVE:
        raw = list(res.payload)
        projects = parse_list(raw, Project)
        known = {p.id for p in projects}

    out = list(projects)
    notes: list[str] = []
    fetched: list[dict] = []
    for pid in sorted(missing - known):
        try:
            obj = ctx.orchestrator.client.fetch_project(workspace_id, pid)
            project = Project.from_json(obj)
        except Unauthorized as e:
            notes.append(f"Invalid token: {e}")
            break
        except (TogglApiError, KeyError, TypeError, ValueError) as e:
            logger.info("project %s stays unknown: %s", pid, e)
            continue
        fetched.append(obj)
        out.append(project)

    if fetched:
        key = CacheKey.metadata(ctx.identity, Scope.PROJECTS, workspace_id)
        try:
            ctx.cache.put(key, raw + fetched, ctx.clock())
        except StorageError as e:
            logger.warning("looked-up projects not cached: %s", e)
            notes.append(str(e))
    return out, notes


def load_summary(
    ctx: SyncContext,
    workspace_id: int,
    day_range: DateRange,
    *,
    force_refresh: bool = False,
) -> SummaryView:
    tz = ctx.settings.tz
    pres, cres, projects, clients = _metadata(ctx, workspace_id, force_refresh=False)
    eres = ctx.orchestrator.time_entries(
        ctx.identity, workspace_id, day_range, force_refresh=force_refresh
    )
    if not eres.has_data:
        return SummaryView(day_range, None, eres, _messages(ctx, pres, cres, eres))

    entries = parse_list(eres.payload, TimeEntry)
    notes: list[str] = []
    if eres.provenance == Provenance.LIVE:
        projects, notes = resolve_missing_projects(
            ctx, workspace_id, entries, projects, pres.payload
        )

    start, end = day_range.bounds(tz)
    summary = summarise(
        entries,
        projects,
        clients,
        rounding=ctx.settings.rounding,
        start=start,
        end=end,
    )
    return SummaryView(day_range, summary, eres, _messages(ctx, pres, cres, eres, extra=notes))


def merge_cached_entries(records: Iterable[CacheRecord], tz: ZoneInfo) -> list[TimeEntry]:
    """Combine overlapping cached ranges, newest record authoritative for its days.

    `records` must be ordered oldest first.
    """
    by_id: dict[int, TimeEntry] = {}
    for rec in records:
        lo, hi = rec.key.range_start, rec.key.range_end
        if lo is None or hi is None:
            continue
        for eid, e in list(by_id.items()):
            if lo <= e.start.astimezone(tz).date() <= hi:
                del by_id[eid]
        for e in parse_list(rec.payload, TimeEntry):
            by_id[e.id] = e
    return sorted(by_id.values(), key=lambda e: (e.start, e.id))


def load_rollups(
    ctx: SyncContext,
    workspace_id: int,
    period: DateRange,
    kind: str,
    *,
    include_non_working: bool = False,
    force_refresh: bool = False,
) -> RollupView:
    settings = ctx.settings
    tz = settings.tz
    pres, cres, projects, clients = _metadata(ctx, workspace_id, force_refresh=False)
    if force_refresh:
        eres = ctx.orchestrator.refetch(ctx.identity, workspace_id, period)
    else:
        eres = ctx.orchestrator.time_entries(ctx.identity, workspace_id, period)

    messages = _messages(ctx, pres, cres, eres)
    try:
        records = ctx.cache.overlapping_time_entries(
            ctx.identity, workspace_id, period.start, period.end
        )
    except StorageError as e:
        messages.append(str(e))
        records = []
    if eres.provenance == Provenance.LIVE:
        # Live payload owns its days, cached or not.
        records = [r for r in records if r.key != eres.key]
        records.append(CacheRecord(eres.key, eres.payload, eres.fetched_at))
    entries = merge_cached_entries(records, tz)
    if eres.provenance == Provenance.LIVE:
        projects, notes = resolve_missing_projects(
            ctx, workspace_id, entries, projects, pres.payload
        )
        messages.extend([n for n in notes if n not in messages])

    daily = daily_seconds(entries, period, tz, projects, clients, rounding=settings.rounding)
    days = build_day_totals(
        daily,
        non_working_days=ctx.non_working.days(),
        target_hours_per_day=settings.target_hours,
        include_weekends=settings.include_weekends,
        as_of=DateRange.today(tz, ctx.clock()).start,
    )
    rollups = build_rollups(
        days,
        kind,
        week_start=settings.week_start,
        include_non_working=include_non_working,
    )
    return RollupView(period, kind, rollups, eres, messages)


def refetch_period(
    ctx: SyncContext,
    workspace_id: int,
    period: DateRange,
    kind: str,
    *,
    include_non_working: bool = False,
) -> RollupView:
    """Force-refresh the selected period, then rebuild its rollups."""
    return load_rollups(
        ctx,
        workspace_id,
        period,
        kind,
        include_non_working=include_non_working,
        force_refresh=True,
    )

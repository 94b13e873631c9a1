from __future__ import annotations

import json
import logging
import os
from datetime import date
from pathlib import Path

import typer

from toggl_digest.m1.db import StorageError
from toggl_digest.m1.non_working import NonWorkingDays
from toggl_digest.m1.paths import default_non_working_days_path, default_quota_path
from toggl_digest.m1.quota import QuotaTracker
from toggl_digest.m2.model import Client, Project, Workspace, parse_list
from toggl_digest.m3.report import summary_to_markdown
from toggl_digest.m3.summarise import group_by_client
from toggl_digest.m4.dates import DateRange, month_of, parse_date, week_of, year_of
from toggl_digest.m4.report import rollups_to_markdown
from toggl_digest.m5.context import SyncContext
from toggl_digest.m5.sync import AuthError, Provenance, SyncResult, status_banner
from toggl_digest.m5.views import (
    WorkspaceSelectionError,
    load_rollups,
    load_summary,
    pick_workspace,
    refetch_period,
)
from toggl_digest.m6.config import default_config_path, load_settings
from toggl_digest.m6.credentials import load_credential_from_env

app = typer.Typer(add_completion=False, no_args_is_help=True)
nonworking_app = typer.Typer(add_completion=False, no_args_is_help=True)
config_app = typer.Typer(add_completion=False, no_args_is_help=True)
cache_app = typer.Typer(add_completion=False, no_args_is_help=True)
app.add_typer(nonworking_app, name="nonworking")
app.add_typer(config_app, name="config")
app.add_typer(cache_app, name="cache")

ROLLUP_KINDS = ("week", "month", "year")


@app.callback()
def _root(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output"),  # noqa: B008
) -> None:
    """toggl-digest: cached Toggl Track summaries under a daily API budget."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _settings(config: str):
    try:
        return load_settings(Path(config) if config else None)
    except ValueError as e:
        raise typer.BadParameter(f"bad config: {e}") from e


def _open(config: str) -> SyncContext:
    settings = _settings(config)
    cred = load_credential_from_env()
    return SyncContext.open(settings, cred)


def _parse_day(value: str, *, default: date) -> date:
    if not value:
        return default
    try:
        return parse_date(value)
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e


def _workspace(ctx: SyncContext, workspace_id: int | None) -> int:
    try:
        return pick_workspace(ctx, workspace_id).id
    except WorkspaceSelectionError as e:
        typer.echo(str(e))
        raise typer.Exit(code=1) from e


def _echo_messages(messages: list[str]) -> None:
    for m in messages:
        typer.echo(f"warning: {m}")


def _echo_banner(ctx: SyncContext, res: SyncResult) -> None:
    if res.provenance == Provenance.CACHED:
        return
    banner = status_banner(res, ctx.quota, ctx.settings.tz)
    if banner:
        typer.echo(f"warning: {banner}")


def _require_data(res: SyncResult) -> None:
    """Exit 1 unless `res` carries something to show; banners are already printed."""
    if res.has_data:
        return
    if isinstance(res.error, AuthError):
        typer.echo("Invalid token. Set a valid TOGGL_API_TOKEN.")
        if res.fallback is not None:
            typer.echo("(cached data exists; run with a valid token to refresh it)")
    raise typer.Exit(code=1)


config_opt = typer.Option(
    "",
    "--config",
    help="Settings JSON (default: XDG config path)",
)
workspace_opt = typer.Option(
    None,
    "--workspace-id",
    help="Toggl workspace id (default: the only workspace)",
    envvar="TOGGL_WORKSPACE_ID",
)
refresh_opt = typer.Option(
    False,
    "--refresh",
    help="Fetch from Toggl even when cached (spends quota for time entries)",
)


@app.command()
def workspaces(
    config: str = config_opt,  # noqa: B008
    refresh: bool = refresh_opt,  # noqa: B008
) -> None:
    """List workspaces (id<TAB>name)."""
    with _open(config) as ctx:
        res = ctx.orchestrator.workspaces(ctx.identity, force_refresh=refresh)
        _echo_banner(ctx, res)
        _require_data(res)
        for w in parse_list(res.payload, Workspace):
            typer.echo(f"{w.id}\t{w.name}")


@app.command()
def projects(
    workspace_id: int | None = workspace_opt,  # noqa: B008
    config: str = config_opt,  # noqa: B008
    refresh: bool = refresh_opt,  # noqa: B008
) -> None:
    """List projects of a workspace (id<TAB>name)."""
    with _open(config) as ctx:
        wid = _workspace(ctx, workspace_id)
        res = ctx.orchestrator.projects(ctx.identity, wid, force_refresh=refresh)
        _echo_banner(ctx, res)
        _require_data(res)
        for p in parse_list(res.payload, Project):
            typer.echo(f"{p.id}\t{p.name}")


@app.command()
def clients(
    workspace_id: int | None = workspace_opt,  # noqa: B008
    config: str = config_opt,  # noqa: B008
    refresh: bool = refresh_opt,  # noqa: B008
) -> None:
    """List clients of a workspace (id<TAB>name)."""
    with _open(config) as ctx:
        wid = _workspace(ctx, workspace_id)
        res = ctx.orchestrator.clients(ctx.identity, wid, force_refresh=refresh)
        _echo_banner(ctx, res)
        _require_data(res)
        for c in parse_list(res.payload, Client):
            typer.echo(f"{c.id}\t{c.name}")


@app.command()
def summary(
    date_: str = typer.Option("", "--date", help="Single day (YYYY-MM-DD, default today)"),
    start: str = typer.Option("", "--start", help="Range start (YYYY-MM-DD)"),
    end: str = typer.Option("", "--end", help="Range end, inclusive (default today)"),
    yesterday: bool = typer.Option(False, "--yesterday", help="Summarise yesterday"),
    workspace_id: int | None = workspace_opt,  # noqa: B008
    config: str = config_opt,  # noqa: B008
    refresh: bool = refresh_opt,  # noqa: B008
    by_client: bool = typer.Option(False, "--by-client", help="Group projects by client"),
    format: str = typer.Option("md", "--format", help="Output format: md|json"),
) -> None:
    """Hours per project and description for a day or range."""
    if format not in ("md", "json"):
        typer.echo("format must be md or json")
        raise typer.Exit(code=2)
    if end and not start:
        raise typer.BadParameter("Please provide a start date")

    with _open(config) as ctx:
        tz = ctx.settings.tz
        if yesterday:
            day_range = DateRange.yesterday(tz, ctx.clock())
        elif start:
            today = DateRange.today(tz, ctx.clock()).start
            try:
                day_range = DateRange(
                    _parse_day(start, default=today), _parse_day(end, default=today)
                )
            except ValueError as e:
                raise typer.BadParameter(str(e)) from e
        else:
            day_range = DateRange.single(
                _parse_day(date_, default=DateRange.today(tz, ctx.clock()).start)
            )

        wid = _workspace(ctx, workspace_id)
        view = load_summary(ctx, wid, day_range, force_refresh=refresh)
        _echo_messages(view.messages)
        _require_data(view.entries)
        assert view.summary is not None

        if format == "json":
            typer.echo(json.dumps(_summary_json(view.summary, by_client), ensure_ascii=False, indent=2))
            return
        typer.echo(summary_to_markdown(view.summary, title=day_range.label, by_client=by_client))


def _summary_json(s, by_client: bool) -> dict:
    def project(p) -> dict:
        return {
            "project_id": p.project_id,
            "project": p.project_name,
            "client": p.client_name,
            "total_hours": round(p.total_hours, 2),
            "entries": [
                {
                    "description": e.description,
                    "hours": round(e.hours, 2),
                    "raw_seconds": e.total_duration_seconds,
                }
                for e in p.entries
            ],
        }

    out: dict = {"total_hours": round(s.total_hours, 2)}
    if by_client:
        out["clients"] = [
            {
                "client": c.client_name,
                "total_hours": round(c.total_hours, 2),
                "projects": [project(p) for p in c.projects],
            }
            for c in group_by_client(s.projects)
        ]
    else:
        out["projects"] = [project(p) for p in s.projects]
    return out


def _period(kind: str, day: date, week_start: str) -> DateRange:
    if kind == "day":
        return DateRange.single(day)
    if kind == "week":
        return week_of(day, week_start)
    if kind == "month":
        return month_of(day)
    if kind == "year":
        return year_of(day)
    raise typer.BadParameter("kind must be day, week, month or year")


@app.command()
def rollup(
    kind: str = typer.Option("week", "--kind", help="Period kind: week|month|year"),
    date_: str = typer.Option("", "--date", help="Any day inside the period (default today)"),
    workspace_id: int | None = workspace_opt,  # noqa: B008
    config: str = config_opt,  # noqa: B008
    include_non_working: bool = typer.Option(
        False,
        "--include-non-working",
        help="Count hours booked on days marked non-working",
    ),  # noqa: B008
    days: bool = typer.Option(False, "--days", help="Show per-day totals"),
) -> None:
    """Period totals with overtime/undertime against the daily target."""
    if kind not in ROLLUP_KINDS:
        raise typer.BadParameter("kind must be week, month or year")

    with _open(config) as ctx:
        today = DateRange.today(ctx.settings.tz, ctx.clock()).start
        period = _period(kind, _parse_day(date_, default=today), ctx.settings.week_start)
        wid = _workspace(ctx, workspace_id)
        view = load_rollups(ctx, wid, period, kind, include_non_working=include_non_working)
        _echo_messages(view.messages)
        if not view.entries.has_data and not any(r.total_seconds for r in view.rollups):
            _require_data(view.entries)
        typer.echo(rollups_to_markdown(view.rollups, show_days=days))


@app.command()
def refetch(
    kind: str = typer.Option("day", "--kind", help="Period to refetch: day|week|month|year"),
    date_: str = typer.Option("", "--date", help="Any day inside the period (default today)"),
    workspace_id: int | None = workspace_opt,  # noqa: B008
    config: str = config_opt,  # noqa: B008
    yes: bool = typer.Option(False, "--yes", help="Do not ask for confirmation"),
) -> None:
    """Re-download one period, bypassing the cache (one quota call)."""
    with _open(config) as ctx:
        today = DateRange.today(ctx.settings.tz, ctx.clock()).start
        period = _period(kind, _parse_day(date_, default=today), ctx.settings.week_start)
        left = ctx.quota.remaining()
        if not yes:
            typer.confirm(
                f"Refetch {period.label} ({left}/{ctx.quota.limit} calls left today)?",
                abort=True,
            )
        wid = _workspace(ctx, workspace_id)
        rollup_kind = "week" if kind == "day" else kind
        view = refetch_period(ctx, wid, period, rollup_kind)
        _echo_messages(view.messages)
        _require_data(view.entries)
        if view.entries.is_stale:
            raise typer.Exit(code=1)
        typer.echo(f"Refetched {period.days_count} day(s) for {period.label}.")


@app.command("quota")
def quota_show(config: str = config_opt) -> None:  # noqa: B008
    """Show today's time-entry call budget."""
    settings = _settings(config)
    q = QuotaTracker(default_quota_path(), limit=settings.daily_call_limit, tz=settings.tz)
    _echo_messages(q.diagnostics)
    state = q.state
    typer.echo(f"used: {state.call_count}/{q.limit}")
    typer.echo(f"remaining: {q.remaining()}")
    typer.echo(f"day: {state.reset_day.isoformat()} ({settings.reference_tz})")


@nonworking_app.command("toggle")
def nonworking_toggle(
    date_: str = typer.Option(..., "--date", help="Day to mark/unmark (YYYY-MM-DD)"),
) -> None:
    """Mark or unmark a day as non-working."""
    d = _parse_day(date_, default=date.today())
    store = NonWorkingDays(default_non_working_days_path())
    try:
        marked = store.toggle(d)
    except StorageError as e:
        typer.echo(str(e))
        raise typer.Exit(code=1) from e
    typer.echo(f"{d.isoformat()}: {'non-working' if marked else 'working'}")


@nonworking_app.command("list")
def nonworking_list() -> None:
    """List days marked non-working."""
    store = NonWorkingDays(default_non_working_days_path())
    _echo_messages(store.diagnostics)
    for d in sorted(store.days()):
        typer.echo(d.isoformat())


@config_app.command("show")
def config_show(config: str = config_opt) -> None:  # noqa: B008
    """Show effective settings and credential presence."""
    path = Path(config) if config else default_config_path()
    settings = _settings(config)
    typer.echo(f"config: {path}{'' if path.exists() else ' (defaults)'}")
    for k, v in settings.to_json().items():
        typer.echo(f"{k}: {json.dumps(v, sort_keys=True)}")

    tok = os.environ.get("TOGGL_API_TOKEN")
    typer.echo(f"TOGGL_API_TOKEN: {'set' if tok else 'missing'}")
    if not tok:
        typer.echo("hint: set TOGGL_API_TOKEN to your Toggl Track API token")


@cache_app.command("clear")
def cache_clear(config: str = config_opt) -> None:  # noqa: B008
    """Forget everything cached for the current token."""
    with _open(config) as ctx:
        try:
            n = ctx.cache.clear(ctx.identity)
        except StorageError as e:
            typer.echo(str(e))
            raise typer.Exit(code=1) from e
        typer.echo(f"cleared {n} cached record(s)")


def main() -> None:
    app()

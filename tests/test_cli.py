from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner
from typer.main import get_command

import toggl_digest.cli as cli
import toggl_digest.m2.toggl_api as api

ENTRIES = [
    {
        "id": 1,
        "workspace_id": 1,
        "project_id": 7,
        "description": "X",
        "start": "2026-02-09T08:00:00+00:00",
        "stop": "2026-02-09T08:16:12+00:00",
        "duration": 972,
    },
    {
        "id": 2,
        "workspace_id": 1,
        "project_id": 7,
        "description": "X",
        "start": "2026-02-09T09:00:00+00:00",
        "stop": "2026-02-09T09:20:00+00:00",
        "duration": 1200,
    },
]


class Resp:
    def __init__(self, payload, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code
        self.text = "ok"

    def json(self):
        return self._payload


@pytest.fixture()
def env(monkeypatch, tmp_path: Path) -> list[str]:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("TOGGL_API_TOKEN", "t")
    monkeypatch.delenv("TOGGL_WORKSPACE_ID", raising=False)

    calls: list[str] = []

    def fake_get(url, params=None, headers=None, timeout=None):
        path = url.removeprefix(api.BASE_URL)
        calls.append(path)
        if path == "/workspaces":
            return Resp([{"id": 1, "name": "W"}])
        if path == "/workspaces/1/projects":
            return Resp([{"id": 7, "name": "Acme"}])
        if path == "/workspaces/1/clients":
            return Resp([])
        if path == "/me/time_entries":
            return Resp(ENTRIES)
        return Resp({"error": "not found"}, status_code=404)

    monkeypatch.setattr(api.requests, "get", fake_get)
    return calls


def _invoke(args: list[str], input: str | None = None):
    return CliRunner().invoke(get_command(cli.app), args, input=input)


def test_summary_requires_token(monkeypatch) -> None:
    monkeypatch.delenv("TOGGL_API_TOKEN", raising=False)
    res = _invoke(["summary", "--date", "2026-02-09"])
    assert res.exit_code == 2
    assert "missing TOGGL_API_TOKEN" in res.output


def test_workspaces_and_projects(env: list[str]) -> None:
    res = _invoke(["workspaces"])
    assert res.exit_code == 0
    assert "1\tW" in res.stdout

    res = _invoke(["projects"])
    assert res.exit_code == 0
    assert "7\tAcme" in res.stdout
    # Workspaces came from cache the second time.
    assert env.count("/workspaces") == 1


def test_summary_is_cached_after_first_fetch(env: list[str]) -> None:
    res = _invoke(["summary", "--date", "2026-02-09"])
    assert res.exit_code == 0, res.output
    assert "# 2026-02-09" in res.stdout
    assert "## Acme" in res.stdout
    assert "- X (0.60)" in res.stdout
    assert "Total hours: 0.60" in res.stdout

    res = _invoke(["summary", "--date", "2026-02-09", "--format", "json"])
    assert res.exit_code == 0, res.output
    obj = json.loads(res.stdout)
    assert obj["total_hours"] == 0.6
    assert obj["projects"][0]["entries"][0]["raw_seconds"] == 2172
    assert env.count("/me/time_entries") == 1


def test_summary_by_client(env: list[str]) -> None:
    res = _invoke(["summary", "--date", "2026-02-09", "--by-client"])
    assert res.exit_code == 0, res.output
    assert "## No client (0.60 h)" in res.stdout
    assert "### Acme" in res.stdout


def test_summary_rejects_bad_date(env: list[str]) -> None:
    res = _invoke(["summary", "--date", "09/02/2026"])
    assert res.exit_code == 2
    assert "YYYY-MM-DD" in res.output


def test_summary_with_spent_quota_and_no_cache(env: list[str], tmp_path: Path) -> None:
    cfg = tmp_path / "config" / "toggl-digest" / "config.json"
    cfg.parent.mkdir(parents=True)
    cfg.write_text(json.dumps({"daily_call_limit": 0}), encoding="utf-8")

    res = _invoke(["summary", "--date", "2026-02-09"])
    assert res.exit_code == 1
    assert "Quota reached (0/0). No cached data available." in res.stdout
    assert "/me/time_entries" not in env


def test_invalid_token(monkeypatch, env: list[str]) -> None:
    monkeypatch.setattr(api.requests, "get", lambda *a, **k: Resp(None, status_code=401))
    res = _invoke(["summary", "--date", "2026-02-09"])
    assert res.exit_code == 1
    assert "Invalid token" in res.stdout


def test_rollup_week(env: list[str]) -> None:
    res = _invoke(["rollup", "--kind", "week", "--date", "2026-02-09", "--days"])
    assert res.exit_code == 0, res.output
    assert "## W07 2026 (2026-02-09 → 2026-02-15)" in res.stdout
    assert "Mon 2026-02-09: 0.60 h" in res.stdout


def test_refetch_asks_first(env: list[str]) -> None:
    res = _invoke(["refetch", "--date", "2026-02-09"], input="n\n")
    assert res.exit_code == 1
    assert "calls left today" in res.stdout
    assert "/me/time_entries" not in env

    res = _invoke(["refetch", "--date", "2026-02-09", "--yes"])
    assert res.exit_code == 0, res.output
    assert "Refetched 1 day(s) for 2026-02-09." in res.stdout

    res = _invoke(["quota"])
    assert res.exit_code == 0
    assert "used: 1/30" in res.stdout
    assert "remaining: 29" in res.stdout


def test_nonworking_toggle_and_list(env: list[str]) -> None:
    res = _invoke(["nonworking", "toggle", "--date", "2026-02-10"])
    assert res.exit_code == 0
    assert "2026-02-10: non-working" in res.stdout

    res = _invoke(["nonworking", "list"])
    assert res.stdout.strip() == "2026-02-10"

    res = _invoke(["nonworking", "toggle", "--date", "2026-02-10"])
    assert "2026-02-10: working" in res.stdout


def test_config_show_without_token(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    monkeypatch.delenv("TOGGL_API_TOKEN", raising=False)
    res = _invoke(["config", "show"])
    assert res.exit_code == 0
    assert "(defaults)" in res.stdout
    assert 'reference_tz: "Europe/Brussels"' in res.stdout
    assert "TOGGL_API_TOKEN: missing" in res.stdout
    assert "hint: set TOGGL_API_TOKEN" in res.stdout


def test_cache_clear(env: list[str]) -> None:
    assert _invoke(["summary", "--date", "2026-02-09"]).exit_code == 0
    res = _invoke(["cache", "clear"])
    assert res.exit_code == 0
    # workspaces, projects, clients and one day of entries
    assert "cleared 4 cached record(s)" in res.stdout

    assert _invoke(["summary", "--date", "2026-02-09"]).exit_code == 0
    assert env.count("/me/time_entries") == 2

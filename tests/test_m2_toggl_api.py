from __future__ import annotations

from datetime import UTC, datetime

import pytest
import requests

import toggl_digest.m2.toggl_api as api
from toggl_digest.m2.model import Project, TimeEntry, parse_list


class Resp:
    def __init__(self, status_code: int = 200, payload=None, text: str = "ok") -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


def _client() -> api.TogglClient:
    return api.TogglClient(api.TogglConfig(api_token="t"))


@pytest.mark.parametrize(
    ("code", "exc"),
    [
        (401, api.Unauthorized),
        (403, api.Unauthorized),
        (402, api.RateLimited),
        (429, api.RateLimited),
        (500, api.ServerError),
        (503, api.ServerError),
        (404, api.NetworkError),
    ],
)
def test_status_codes_are_classified(monkeypatch, code: int, exc: type) -> None:
    monkeypatch.setattr(api.requests, "get", lambda *a, **k: Resp(code, text="nope"))
    with pytest.raises(exc):
        _client().fetch_workspaces()


def test_timeout_is_a_server_error(monkeypatch) -> None:
    def boom(*a, **k):
        raise requests.Timeout("slow")

    monkeypatch.setattr(api.requests, "get", boom)
    with pytest.raises(api.ServerError):
        _client().fetch_workspaces()


def test_connection_failure_is_a_network_error(monkeypatch) -> None:
    def boom(*a, **k):
        raise requests.ConnectionError("down")

    monkeypatch.setattr(api.requests, "get", boom)
    with pytest.raises(api.NetworkError):
        _client().fetch_workspaces()


def test_invalid_json_is_a_network_error(monkeypatch) -> None:
    monkeypatch.setattr(api.requests, "get", lambda *a, **k: Resp(payload=ValueError("bad")))
    with pytest.raises(api.NetworkError):
        _client().fetch_projects(1)


def test_null_list_is_empty(monkeypatch) -> None:
    monkeypatch.setattr(api.requests, "get", lambda *a, **k: Resp(payload=None))
    assert _client().fetch_clients(1) == []


def test_time_entries_request_and_workspace_filter(monkeypatch) -> None:
    calls: list[dict] = []

    def fake_get(url, params=None, headers=None, timeout=None):
        calls.append({"url": url, "params": params, "headers": headers, "timeout": timeout})
        return Resp(
            payload=[
                {"id": 1, "workspace_id": 1},
                {"id": 2, "workspace_id": 2},
            ]
        )

    monkeypatch.setattr(api.requests, "get", fake_get)
    start = datetime(2026, 2, 8, 23, 0, tzinfo=UTC)
    end = datetime(2026, 2, 9, 23, 0, tzinfo=UTC)
    got = _client().fetch_time_entries(start, end, workspace_id=1)

    assert [e["id"] for e in got] == [1]
    assert calls[0]["url"].endswith("/me/time_entries")
    assert calls[0]["params"] == {
        "start_date": "2026-02-08T23:00:00+00:00",
        "end_date": "2026-02-09T23:00:00+00:00",
    }
    assert calls[0]["headers"]["Authorization"].startswith("Basic ")
    assert calls[0]["timeout"] == 30.0


def test_time_entry_parsing() -> None:
    entries = parse_list(
        [
            {
                "id": 1,
                "project_id": 7,
                "description": None,
                "start": "2026-02-09T08:00:00Z",
                "stop": "2026-02-09T09:00:00Z",
                "duration": 3600,
            },
            {"id": 2, "start": "2026-02-09T10:00:00+00:00", "stop": None, "duration": -1},
            {"id": "broken"},
            "not a dict",
        ],
        TimeEntry,
    )
    assert len(entries) == 2
    assert entries[0].description == ""
    assert entries[0].project_id == 7
    assert entries[0].start == datetime(2026, 2, 9, 8, 0, tzinfo=UTC)
    assert entries[1].is_running
    assert entries[1].project_id is None


def test_project_client_id_accepts_legacy_cid() -> None:
    assert Project.from_json({"id": 1, "name": "P", "cid": 5}).client_id == 5
    assert Project.from_json({"id": 1, "name": "P", "client_id": 6}).client_id == 6

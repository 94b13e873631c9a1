from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import requests

logger = logging.getLogger(__name__)

BASE_URL = "https://api.track.toggl.com/api/v9"


@dataclass(frozen=True)
class TogglConfig:
    api_token: str
    timeout_s: float = 30.0


class TogglApiError(RuntimeError):
    pass


class Unauthorized(TogglApiError):
    """401/403: the token is invalid or expired."""


class RateLimited(TogglApiError):
    """402/429: the account is over its API allowance."""


class ServerError(TogglApiError):
    """5xx, or the request ran past its deadline."""


class NetworkError(TogglApiError):
    """The request never produced a usable response."""


def _auth_header(api_token: str) -> str:
    # Toggl Track API uses HTTP Basic auth, username = token, password = "api_token".
    raw = f"{api_token}:api_token".encode()
    b64 = base64.b64encode(raw).decode("ascii")
    return f"Basic {b64}"


def classify_status(status_code: int, text: str = "") -> TogglApiError | None:
    if status_code in (401, 403):
        return Unauthorized(f"toggl api error {status_code}")
    if status_code in (402, 429):
        return RateLimited(f"toggl api error {status_code}")
    if status_code >= 500:
        return ServerError(f"toggl api error {status_code}: {text}")
    if status_code >= 400:
        return NetworkError(f"toggl api error {status_code}: {text}")
    return None


class TogglClient:
    """Read-only Toggl Track v9 client used by the sync layer."""

    def __init__(self, cfg: TogglConfig) -> None:
        self.cfg = cfg

    def _get(self, path: str, params: dict[str, str] | None = None) -> Any:
        url = f"{BASE_URL}{path}"
        headers = {
            "Authorization": _auth_header(self.cfg.api_token),
            "Content-Type": "application/json",
        }
        logger.debug("GET %s %s", path, params or "")
        try:
            resp = requests.get(url, params=params, headers=headers, timeout=self.cfg.timeout_s)
        except requests.Timeout as e:
            raise ServerError(f"toggl api timeout: {e}") from e
        except requests.RequestException as e:
            raise NetworkError(f"toggl api request failed: {e}") from e

        err = classify_status(resp.status_code, resp.text)
        if err is not None:
            raise err

        try:
            return resp.json()
        except ValueError as e:
            raise NetworkError(f"toggl api returned invalid JSON: {e}") from e

    def _get_list(self, path: str, params: dict[str, str] | None = None) -> list[dict]:
        data = self._get(path, params)
        if data is None:
            # Toggl answers "null" for empty collections on some endpoints.
            return []
        if not isinstance(data, list):
            raise TogglApiError("unexpected response")
        return [d for d in data if isinstance(d, dict)]

    def fetch_workspaces(self) -> list[dict]:
        return self._get_list("/workspaces")

    def fetch_projects(self, workspace_id: int) -> list[dict]:
        return self._get_list(f"/workspaces/{workspace_id}/projects")

    def fetch_project(self, workspace_id: int, project_id: int) -> dict:
        data = self._get(f"/workspaces/{workspace_id}/projects/{project_id}")
        if not isinstance(data, dict):
            raise TogglApiError("unexpected response")
        return data

    def fetch_clients(self, workspace_id: int) -> list[dict]:
        return self._get_list(f"/workspaces/{workspace_id}/clients")

    def fetch_time_entries(
        self,
        start: datetime,
        end: datetime,
        *,
        workspace_id: int | None = None,
    ) -> list[dict]:
        """Entries starting in [start, end); optionally only one workspace's."""
        entries = self._get_list(
            "/me/time_entries",
            {"start_date": start.isoformat(), "end_date": end.isoformat()},
        )
        if workspace_id is None:
            return entries
        return [e for e in entries if e.get("workspace_id") in (None, workspace_id)]

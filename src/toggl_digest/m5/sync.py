from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol
from zoneinfo import ZoneInfo

from toggl_digest.m1.cache import CacheKey, CacheRecord, CacheStore, Scope
from toggl_digest.m1.clock import Clock, utc_now
from toggl_digest.m1.db import StorageError
from toggl_digest.m1.quota import QuotaExhausted, QuotaTracker
from toggl_digest.m2.toggl_api import (
    NetworkError,
    RateLimited,
    ServerError,
    TogglApiError,
    Unauthorized,
)
from toggl_digest.m4.dates import DateRange

logger = logging.getLogger(__name__)


class Provenance(str, Enum):
    CACHED = "cached"
    LIVE = "live"
    CACHED_DUE_TO_ERROR = "cached-due-to-error"
    CACHED_DUE_TO_QUOTA = "cached-due-to-quota"


class AuthError(RuntimeError):
    """The credential was rejected; re-authentication is needed."""


class RemoteError(RuntimeError):
    """A remote failure outside the known taxonomy."""


class RemoteClient(Protocol):
    def fetch_workspaces(self) -> list[dict]: ...

    def fetch_projects(self, workspace_id: int) -> list[dict]: ...

    def fetch_project(self, workspace_id: int, project_id: int) -> dict: ...

    def fetch_clients(self, workspace_id: int) -> list[dict]: ...

    def fetch_time_entries(
        self, start: datetime, end: datetime, *, workspace_id: int | None = None
    ) -> list[dict]: ...


@dataclass(frozen=True)
class SyncResult:
    """Outcome of one request. Never raised; callers inspect it.

    `payload` is set whenever there is data to show. `fallback` carries the
    cached record when the credential was rejected, so the caller can decide
    whether stale data is worth showing.
    """

    key: CacheKey
    payload: Any = None
    provenance: Provenance | None = None
    fetched_at: datetime | None = None
    error: Exception | None = None
    fallback: CacheRecord | None = None
    diagnostics: tuple[str, ...] = ()

    @property
    def has_data(self) -> bool:
        return self.provenance is not None

    @property
    def is_stale(self) -> bool:
        return self.provenance in (Provenance.CACHED_DUE_TO_ERROR, Provenance.CACHED_DUE_TO_QUOTA)


@dataclass
class _Flight:
    done: threading.Event = field(default_factory=threading.Event)
    result: SyncResult | None = None


class SyncOrchestrator:
    """Cache-first access to the remote API under a daily call budget.

    Only time-entry fetches spend quota. At most one request per cache key
    runs at a time; concurrent callers for the same key share its result.
    """

    def __init__(
        self,
        cache: CacheStore,
        quota: QuotaTracker,
        client: RemoteClient,
        *,
        tz: ZoneInfo,
        clock: Clock = utc_now,
    ) -> None:
        self.cache = cache
        self.quota = quota
        self.client = client
        self.tz = tz
        self._clock = clock
        self._flights: dict[str, _Flight] = {}
        self._flights_lock = threading.Lock()

    def time_entries(
        self,
        identity: str,
        workspace_id: int,
        day_range: DateRange,
        *,
        force_refresh: bool = False,
    ) -> SyncResult:
        key = CacheKey.time_entries(identity, workspace_id, day_range.start, day_range.end)
        start, end = day_range.bounds(self.tz)
        return self._single_flight(
            key,
            lambda: self._sync(
                key,
                lambda: self.client.fetch_time_entries(start, end, workspace_id=workspace_id),
                force_refresh=force_refresh,
                counted=True,
            ),
        )

    def refetch(self, identity: str, workspace_id: int, period: DateRange) -> SyncResult:
        """Bypass the cache for exactly `period`; still bound by the quota."""
        return self.time_entries(identity, workspace_id, period, force_refresh=True)

    def workspaces(self, identity: str, *, force_refresh: bool = False) -> SyncResult:
        key = CacheKey.metadata(identity, Scope.WORKSPACES)
        return self._metadata(key, self.client.fetch_workspaces, force_refresh)

    def projects(self, identity: str, workspace_id: int, *, force_refresh: bool = False) -> SyncResult:
        key = CacheKey.metadata(identity, Scope.PROJECTS, workspace_id)
        return self._metadata(key, lambda: self.client.fetch_projects(workspace_id), force_refresh)

    def clients(self, identity: str, workspace_id: int, *, force_refresh: bool = False) -> SyncResult:
        key = CacheKey.metadata(identity, Scope.CLIENTS, workspace_id)
        return self._metadata(key, lambda: self.client.fetch_clients(workspace_id), force_refresh)

    def _metadata(
        self, key: CacheKey, fetch: Callable[[], Any], force_refresh: bool
    ) -> SyncResult:
        return self._single_flight(
            key, lambda: self._sync(key, fetch, force_refresh=force_refresh, counted=False)
        )

    def _single_flight(self, key: CacheKey, run: Callable[[], SyncResult]) -> SyncResult:
        k = key.as_str()
        with self._flights_lock:
            flight = self._flights.get(k)
            leader = flight is None
            if leader:
                flight = self._flights[k] = _Flight()

        if not leader:
            flight.done.wait()
            if flight.result is None:
                # The leader died before producing a result; try again ourselves.
                return self._single_flight(key, run)
            return flight.result

        try:
            flight.result = run()
        finally:
            with self._flights_lock:
                self._flights.pop(k, None)
            flight.done.set()
        return flight.result

    def _read_cache(self, key: CacheKey, diagnostics: list[str]) -> CacheRecord | None:
        try:
            return self.cache.get(key)
        except StorageError as e:
            logger.warning("treating %s as a cache miss: %s", key.scope.value, e)
            diagnostics.append(str(e))
            return None

    def _sync(
        self,
        key: CacheKey,
        fetch: Callable[[], Any],
        *,
        force_refresh: bool,
        counted: bool,
    ) -> SyncResult:
        diagnostics: list[str] = []
        cached = self._read_cache(key, diagnostics)

        if cached is not None and not force_refresh:
            logger.debug("cache hit %s", key.as_str())
            return SyncResult(
                key=key,
                payload=cached.payload,
                provenance=Provenance.CACHED,
                fetched_at=cached.fetched_at,
                diagnostics=tuple(diagnostics),
            )

        if counted and not self.quota.try_consume(1):
            if cached is not None:
                return SyncResult(
                    key=key,
                    payload=cached.payload,
                    provenance=Provenance.CACHED_DUE_TO_QUOTA,
                    fetched_at=cached.fetched_at,
                    diagnostics=tuple(diagnostics),
                )
            return SyncResult(
                key=key,
                error=QuotaExhausted(self.quota.status_message() + " No cached data available."),
                diagnostics=tuple(diagnostics),
            )

        logger.info("fetching %s live", key.scope.value)
        try:
            payload = fetch()
        except Unauthorized as e:
            # Cached data goes in `fallback` only, never in `payload`.
            return SyncResult(
                key=key,
                error=AuthError(str(e)),
                fallback=cached,
                diagnostics=tuple(diagnostics),
            )
        except (RateLimited, ServerError, NetworkError) as e:
            return self._fall_back(key, cached, e, diagnostics)
        except TogglApiError as e:
            return self._fall_back(key, cached, RemoteError(str(e)), diagnostics)
        except Exception as e:  # noqa: BLE001
            logger.exception("unexpected failure fetching %s", key.scope.value)
            return self._fall_back(key, cached, RemoteError(repr(e)), diagnostics)

        fetched_at = self._clock()
        try:
            self.cache.put(key, payload, fetched_at)
        except StorageError as e:
            logger.warning("live data not cached: %s", e)
            diagnostics.append(str(e))
        return SyncResult(
            key=key,
            payload=payload,
            provenance=Provenance.LIVE,
            fetched_at=fetched_at,
            diagnostics=tuple(diagnostics),
        )

    def _fall_back(
        self,
        key: CacheKey,
        cached: CacheRecord | None,
        error: Exception,
        diagnostics: list[str],
    ) -> SyncResult:
        if cached is None:
            logger.warning("fetch of %s failed with nothing cached: %s", key.scope.value, error)
            return SyncResult(key=key, error=error, diagnostics=tuple(diagnostics))
        logger.warning("fetch of %s failed, serving cache: %s", key.scope.value, error)
        return SyncResult(
            key=key,
            payload=cached.payload,
            provenance=Provenance.CACHED_DUE_TO_ERROR,
            fetched_at=cached.fetched_at,
            error=error,
            diagnostics=tuple(diagnostics),
        )


def status_banner(result: SyncResult, quota: QuotaTracker, tz: ZoneInfo) -> str | None:
    """One-line warning for anything other than fresh live data."""
    updated = ""
    if result.fetched_at is not None:
        updated = f" (last updated {result.fetched_at.astimezone(tz):%Y-%m-%d %H:%M})"

    if result.provenance == Provenance.CACHED:
        return f"Using cached data{updated}."
    if result.provenance == Provenance.CACHED_DUE_TO_QUOTA:
        return f"{quota.status_message()} Using cached data{updated}."
    if result.provenance == Provenance.CACHED_DUE_TO_ERROR:
        return f"Using cached data due to API error{updated}: {result.error}"
    if result.error is not None:
        return str(result.error)
    return None

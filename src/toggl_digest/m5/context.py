from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from toggl_digest.m1.cache import CacheStore
from toggl_digest.m1.clock import Clock, utc_now
from toggl_digest.m1.non_working import NonWorkingDays
from toggl_digest.m1.paths import (
    default_cache_db_path,
    default_non_working_days_path,
    default_quota_path,
)
from toggl_digest.m1.quota import QuotaTracker
from toggl_digest.m2.toggl_api import TogglClient, TogglConfig
from toggl_digest.m5.sync import RemoteClient, SyncOrchestrator
from toggl_digest.m6.config import Settings
from toggl_digest.m6.credentials import Credential


@dataclass
class SyncContext:
    """Everything one process needs to serve requests, opened once.

    `open` loads the cache and quota from disk; `close` releases them.
    """

    settings: Settings
    identity: str
    cache: CacheStore
    quota: QuotaTracker
    non_working: NonWorkingDays
    orchestrator: SyncOrchestrator
    clock: Clock = utc_now

    @classmethod
    def open(
        cls,
        settings: Settings,
        credential: Credential,
        *,
        client: RemoteClient | None = None,
        cache_path: Path | None = None,
        quota_path: Path | None = None,
        non_working_path: Path | None = None,
        clock: Clock = utc_now,
    ) -> SyncContext:
        tz = settings.tz
        cache = CacheStore.open(cache_path or default_cache_db_path(), clock=clock)
        quota = QuotaTracker(
            quota_path or default_quota_path(),
            limit=settings.daily_call_limit,
            tz=tz,
            clock=clock,
        )
        quota.reset_if_stale()
        non_working = NonWorkingDays(non_working_path or default_non_working_days_path())
        if client is None:
            client = TogglClient(TogglConfig(api_token=credential.api_token))
        orchestrator = SyncOrchestrator(cache, quota, client, tz=tz, clock=clock)
        return cls(
            settings=settings,
            identity=credential.identity,
            cache=cache,
            quota=quota,
            non_working=non_working,
            orchestrator=orchestrator,
            clock=clock,
        )

    def diagnostics(self) -> list[str]:
        return [*self.cache.diagnostics, *self.quota.diagnostics, *self.non_working.diagnostics]

    def close(self) -> None:
        self.cache.close()

    def __enter__(self) -> SyncContext:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from datetime import date
from pathlib import Path
from zoneinfo import ZoneInfo

from toggl_digest.m1.clock import Clock, today_in, utc_now
from toggl_digest.m1.jsonfile import read_json, write_json_atomic

logger = logging.getLogger(__name__)

DEFAULT_DAILY_LIMIT = 30


class QuotaExhausted(RuntimeError):
    """The daily time-entry call budget is spent and nothing is cached."""


@dataclass(frozen=True)
class QuotaState:
    call_count: int
    reset_day: date


class QuotaTracker:
    """Daily budget of time-entry calls, persisted as one JSON record.

    "Today" is the calendar day in `tz`; the counter rolls over at local
    midnight of that zone, never of the machine's zone.
    """

    def __init__(
        self,
        path: Path,
        *,
        limit: int = DEFAULT_DAILY_LIMIT,
        tz: ZoneInfo,
        clock: Clock = utc_now,
    ) -> None:
        if limit < 0:
            raise ValueError("daily limit must be >= 0")
        self.path = path
        self.limit = limit
        self.tz = tz
        self._clock = clock
        self._lock = threading.Lock()
        self.diagnostics: list[str] = []
        self._state = self._load()

    def _today(self) -> date:
        return today_in(self.tz, self._clock())

    def _load(self) -> QuotaState:
        fresh = QuotaState(call_count=0, reset_day=self._today())
        if not self.path.exists():
            return fresh
        try:
            obj = read_json(self.path)
            state = QuotaState(
                call_count=int(obj["call_count"]),
                reset_day=date.fromisoformat(str(obj["reset_day"])),
            )
        except (OSError, ValueError, TypeError, KeyError) as e:
            diag = f"quota file {self.path} is unreadable ({e}); starting from zero"
            logger.warning(diag)
            self.diagnostics.append(diag)
            return fresh
        if state.call_count < 0:
            return replace(state, call_count=0)
        return state

    def _persist(self, state: QuotaState) -> None:
        try:
            write_json_atomic(
                self.path,
                {"call_count": state.call_count, "reset_day": state.reset_day.isoformat()},
            )
        except OSError as e:
            # The in-process counter still enforces the budget for this run.
            diag = f"quota file {self.path} could not be written ({e})"
            logger.warning(diag)
            self.diagnostics.append(diag)

    def _reset_if_stale_locked(self) -> None:
        today = self._today()
        if self._state.reset_day != today:
            logger.info("quota reset for %s (was %s)", today, self._state.reset_day)
            self._state = QuotaState(call_count=0, reset_day=today)
            self._persist(self._state)

    def reset_if_stale(self) -> None:
        with self._lock:
            self._reset_if_stale_locked()

    @property
    def state(self) -> QuotaState:
        with self._lock:
            self._reset_if_stale_locked()
            return self._state

    def used(self) -> int:
        return self.state.call_count

    def remaining(self) -> int:
        with self._lock:
            self._reset_if_stale_locked()
            return max(self.limit - self._state.call_count, 0)

    def try_consume(self, n: int = 1) -> bool:
        if n < 0:
            raise ValueError("n must be >= 0")
        with self._lock:
            self._reset_if_stale_locked()
            if self._state.call_count + n > self.limit:
                logger.info("quota refused (%s/%s used)", self._state.call_count, self.limit)
                return False
            self._state = replace(self._state, call_count=self._state.call_count + n)
            self._persist(self._state)
            logger.debug("quota consumed %s (%s/%s)", n, self._state.call_count, self.limit)
            return True

    def status_message(self) -> str:
        used = self.used()
        left = max(self.limit - used, 0)
        if left == 0:
            return f"Quota reached ({used}/{self.limit})."
        return f"Quota low (remaining {left}/{self.limit})."

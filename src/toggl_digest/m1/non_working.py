from __future__ import annotations

import logging
import threading
from datetime import date
from pathlib import Path

from toggl_digest.m1.db import StorageError
from toggl_digest.m1.jsonfile import read_json, write_json_atomic

logger = logging.getLogger(__name__)


class NonWorkingDays:
    """User-marked days off, stored as {"YYYY-MM-DD": true} in a JSON file."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.Lock()
        self.diagnostics: list[str] = []
        self._days = self._load()

    def _load(self) -> dict[date, bool]:
        if not self.path.exists():
            return {}
        try:
            obj = read_json(self.path)
            if not isinstance(obj, dict):
                raise ValueError("expected a JSON object")
        except (OSError, ValueError) as e:
            diag = f"non-working days file {self.path} is unreadable ({e}); ignoring it"
            logger.warning(diag)
            self.diagnostics.append(diag)
            return {}

        out: dict[date, bool] = {}
        for k, v in obj.items():
            try:
                d = date.fromisoformat(k)
            except ValueError:
                continue
            if v is True:
                out[d] = True
        return out

    def days(self) -> frozenset[date]:
        with self._lock:
            return frozenset(d for d, v in self._days.items() if v)

    def is_non_working(self, day: date) -> bool:
        with self._lock:
            return self._days.get(day, False)

    def set(self, day: date, non_working: bool) -> None:
        with self._lock:
            updated = dict(self._days)
            if non_working:
                updated[day] = True
            else:
                updated.pop(day, None)
            try:
                write_json_atomic(
                    self.path,
                    {d.isoformat(): True for d in sorted(updated)},
                )
            except OSError as e:
                raise StorageError(f"could not write {self.path}: {e}") from e
            self._days = updated

    def toggle(self, day: date) -> bool:
        """Flip the mark on `day`; returns the new state."""
        new = not self.is_non_working(day)
        self.set(day, new)
        return new

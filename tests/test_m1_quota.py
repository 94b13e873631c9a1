from __future__ import annotations

import json
from datetime import UTC, date, datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

from toggl_digest.m1.quota import QuotaTracker

BRUSSELS = ZoneInfo("Europe/Brussels")


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def test_limit_plus_one_is_refused(tmp_path: Path) -> None:
    clock = FakeClock(datetime(2026, 2, 9, 10, 0, tzinfo=UTC))
    q = QuotaTracker(tmp_path / "quota.json", limit=3, tz=BRUSSELS, clock=clock)

    assert [q.try_consume() for _ in range(4)] == [True, True, True, False]
    assert q.used() == 3
    assert q.remaining() == 0


def test_refusal_leaves_state_unchanged(tmp_path: Path) -> None:
    clock = FakeClock(datetime(2026, 2, 9, 10, 0, tzinfo=UTC))
    q = QuotaTracker(tmp_path / "quota.json", limit=2, tz=BRUSSELS, clock=clock)
    assert q.try_consume()
    assert not q.try_consume(2)
    assert q.used() == 1


def test_state_persists_across_instances(tmp_path: Path) -> None:
    p = tmp_path / "quota.json"
    clock = FakeClock(datetime(2026, 2, 9, 10, 0, tzinfo=UTC))
    q = QuotaTracker(p, limit=30, tz=BRUSSELS, clock=clock)
    q.try_consume()
    q.try_consume()

    assert json.loads(p.read_text(encoding="utf-8")) == {
        "call_count": 2,
        "reset_day": "2026-02-09",
    }
    again = QuotaTracker(p, limit=30, tz=BRUSSELS, clock=clock)
    assert again.used() == 2


def test_rolls_over_at_reference_midnight_not_utc(tmp_path: Path) -> None:
    # 23:30 UTC on the 9th is already 00:30 on the 10th in Brussels (UTC+1).
    clock = FakeClock(datetime(2026, 2, 9, 22, 30, tzinfo=UTC))
    q = QuotaTracker(tmp_path / "quota.json", limit=1, tz=BRUSSELS, clock=clock)
    assert q.try_consume()
    assert not q.try_consume()
    assert q.state.reset_day == date(2026, 2, 9)

    clock.now = datetime(2026, 2, 9, 23, 30, tzinfo=UTC)
    assert q.state.reset_day == date(2026, 2, 10)
    assert q.used() == 0
    assert q.try_consume()


def test_stale_file_is_reset_on_load(tmp_path: Path) -> None:
    p = tmp_path / "quota.json"
    p.write_text(json.dumps({"call_count": 30, "reset_day": "2026-02-01"}), encoding="utf-8")

    clock = FakeClock(datetime(2026, 2, 9, 10, 0, tzinfo=UTC))
    q = QuotaTracker(p, limit=30, tz=BRUSSELS, clock=clock)
    q.reset_if_stale()
    assert q.used() == 0
    assert json.loads(p.read_text(encoding="utf-8"))["reset_day"] == "2026-02-09"


def test_corrupt_file_starts_fresh_with_diagnostic(tmp_path: Path) -> None:
    p = tmp_path / "quota.json"
    p.write_text("{nope", encoding="utf-8")

    clock = FakeClock(datetime(2026, 2, 9, 10, 0, tzinfo=UTC))
    q = QuotaTracker(p, limit=5, tz=BRUSSELS, clock=clock)
    assert q.used() == 0
    assert len(q.diagnostics) == 1
    assert q.try_consume()


def test_status_messages(tmp_path: Path) -> None:
    clock = FakeClock(datetime(2026, 2, 9, 10, 0, tzinfo=UTC))
    q = QuotaTracker(tmp_path / "quota.json", limit=2, tz=BRUSSELS, clock=clock)
    q.try_consume()
    assert q.status_message() == "Quota low (remaining 1/2)."
    q.try_consume()
    assert q.status_message() == "Quota reached (2/2)."


def test_negative_limit_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        QuotaTracker(tmp_path / "quota.json", limit=-1, tz=BRUSSELS)

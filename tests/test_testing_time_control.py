"""Deterministic clock helpers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from repopull.testing.time_control import ManualClock, SleepRecorder, fixed_now, sequenced_now

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_fixed_now_requires_aware_datetime() -> None:
    with pytest.raises(ValueError, match="tzinfo"):
        fixed_now(datetime(2026, 3, 1, 12, 0))
    assert fixed_now(NOW)() == NOW


def test_sequenced_now_fails_when_exhausted() -> None:
    now = sequenced_now(NOW, NOW + timedelta(seconds=1))
    assert now() == NOW
    assert now() == NOW + timedelta(seconds=1)
    with pytest.raises(AssertionError, match="exhausted"):
        now()


def test_sleep_recorder_records_calls() -> None:
    recorder = SleepRecorder()
    recorder(1)
    recorder(0.5)
    assert recorder.calls == [1.0, 0.5]


def test_manual_clock_advances_on_sleep_and_runs_hooks() -> None:
    clock = ManualClock(NOW)
    seen: list[datetime] = []
    clock.on_sleep.append(seen.append)

    clock.sleep(2)
    clock.advance(3)
    clock.sleep(1)

    assert clock.now() == NOW + timedelta(seconds=6)
    assert seen == [NOW + timedelta(seconds=2), NOW + timedelta(seconds=6)]
    assert clock.sleeps == [2.0, 1.0]
    assert clock.total_slept == 3.0


def test_manual_clock_rejects_moving_backwards() -> None:
    with pytest.raises(ValueError, match="backwards"):
        ManualClock(NOW).advance(-1)

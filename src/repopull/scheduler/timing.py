"""Sleep computation and the interruptible wait between pull passes."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from repopull.errors import SchedulerError
from repopull.scheduler.retry import RetryTable

NowFn = Callable[[], datetime]
SleepFn = Callable[[float], None]
WakeCheckFn = Callable[[], bool]


@dataclass(frozen=True)
class WaitResult:
    sleep_until: datetime
    woke_early: bool
    steps: int
    slept_seconds: float


def compute_sleep_until(
    table: RetryTable,
    *,
    now: datetime,
    min_sleep_seconds: int,
) -> datetime:
    """Wake at the earliest deadline, but never sooner than ``now + min_sleep_seconds``."""
    if min_sleep_seconds <= 0:
        raise SchedulerError("min_sleep_seconds must be > 0.")
    floor = _normalize_datetime(now) + timedelta(seconds=min_sleep_seconds)
    if not table:
        return floor
    earliest = min(_normalize_datetime(value) for value in table.values())
    return max(earliest, floor)


def wait_until(
    sleep_until: datetime,
    *,
    now_fn: NowFn,
    sleep_fn: SleepFn,
    step_seconds: float = 1.0,
    should_wake: WakeCheckFn | None = None,
    on_step: Callable[[], None] | None = None,
) -> WaitResult:
    """Sleep in fixed increments until ``sleep_until``, returning early when ``should_wake`` fires.

    The wake check runs after every increment, so an urgent signal is noticed
    within one step of its arrival.
    """
    if step_seconds <= 0:
        raise SchedulerError("step_seconds must be > 0.")

    target = _normalize_datetime(sleep_until)
    steps = 0
    slept = 0.0
    while True:
        remaining = (target - _normalize_datetime(now_fn())).total_seconds()
        if remaining <= 0:
            return WaitResult(sleep_until=target, woke_early=False, steps=steps, slept_seconds=slept)
        increment = min(step_seconds, remaining)
        sleep_fn(increment)
        steps += 1
        slept += increment
        if on_step is not None:
            on_step()
        if should_wake is not None and should_wake():
            return WaitResult(sleep_until=target, woke_early=True, steps=steps, slept_seconds=slept)


def _normalize_datetime(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value

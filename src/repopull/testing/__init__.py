"""Test-only utilities for deterministic scheduler assertions."""

from .time_control import ManualClock, SleepRecorder, fixed_now, sequenced_now

__all__ = [
    "ManualClock",
    "SleepRecorder",
    "fixed_now",
    "sequenced_now",
]

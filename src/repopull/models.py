"""Data model contracts for cross-module use."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from repopull.errors import SyncError


@dataclass(frozen=True)
class RepositoryHandle:
    repository_id: int
    name: str
    tracked: bool = True
    pull_frequency_seconds: int | None = None

    def interval_seconds(self, default_seconds: int) -> int:
        """Minimum seconds between successful pulls, falling back to the global minimum."""
        if self.pull_frequency_seconds is None or self.pull_frequency_seconds <= 0:
            return default_seconds
        return self.pull_frequency_seconds


@dataclass(frozen=True)
class UrgentSignal:
    repository_id: int
    created_at: datetime | None = None


@dataclass(frozen=True)
class SyncOptions:
    no_discovery: bool = False


@dataclass(frozen=True)
class SyncResult:
    stdout: str = ""
    stderr: str = ""
    error: SyncError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

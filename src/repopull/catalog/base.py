"""Collaborator interfaces consumed by the pull scheduler."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from repopull.models import RepositoryHandle, UrgentSignal


class RepositoryDirectory(Protocol):
    def resolve(self, names: Sequence[str] | None = None) -> tuple[RepositoryHandle, ...]:
        """Resolve named repositories (all when names is empty); raise RepositoryNotFoundError on unknown names."""


class UrgentSignalSource(Protocol):
    def pending_urgent_signals(self) -> tuple[UrgentSignal, ...]:
        """Return pending urgent-update signals without consuming them."""


class UrgentSignalSink(Protocol):
    def clear_urgent_signals(self, repository_id: int) -> int:
        """Clear pending urgent signals for a repository and return the count removed."""

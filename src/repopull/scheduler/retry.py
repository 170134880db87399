"""Retry-deadline table reconciliation and soft-priority ordering.

The retry table maps a repository id to the earliest time it may be pulled
again. It is a plain value threaded from one iteration to the next: every
function here returns a new mapping and never mutates its input.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime
import random

from repopull.models import RepositoryHandle, UrgentSignal

RetryTable = Mapping[int, datetime]


def reconcile_retry_table(
    table: RetryTable,
    repositories: Iterable[RepositoryHandle],
    signals: Iterable[UrgentSignal],
    *,
    now: datetime,
) -> dict[int, datetime]:
    """Apply urgent signals, then drop entries for repositories no longer schedulable.

    A signal moves its repository's deadline to ``now`` regardless of any later
    pending deadline. Entries survive only for tracked repositories in the
    current working set, so deleted, excluded and untracked repositories never
    keep a timer.
    """
    reconciled = dict(table)
    for signal in signals:
        reconciled[signal.repository_id] = now

    schedulable = {handle.repository_id for handle in repositories if handle.tracked}
    return {
        repository_id: due_at
        for repository_id, due_at in reconciled.items()
        if repository_id in schedulable
    }


def order_repositories(
    repositories: Sequence[RepositoryHandle],
    table: RetryTable,
    *,
    rng: random.Random | None = None,
    cold_start: bool | None = None,
) -> tuple[RepositoryHandle, ...]:
    """Order repositories soonest-deadline-first.

    Repositories with a deadline come first, stably sorted by deadline.
    Repositories without one follow in working-set order. On a cold start
    (by default, an empty table) the working set is shuffled before sorting,
    so many daemons started together over a shared catalog do not all pull in
    the same order. Pass ``cold_start`` explicitly when urgent signals have
    already been folded into ``table``.
    """
    candidates = list(repositories)
    shuffle = not table if cold_start is None else cold_start
    if shuffle:
        (rng if rng is not None else random).shuffle(candidates)

    known = [handle for handle in candidates if handle.repository_id in table]
    unknown = [handle for handle in candidates if handle.repository_id not in table]
    known.sort(key=lambda handle: table[handle.repository_id])
    return tuple(known + unknown)


def due_at(table: RetryTable, repository_id: int, *, now: datetime) -> datetime:
    """Deadline for a repository; absent entries are due immediately."""
    return table.get(repository_id, now)


def is_due(table: RetryTable, repository_id: int, *, now: datetime) -> bool:
    return due_at(table, repository_id, now=now) <= now

"""Pull scheduler: retry table, ordering, execution and interruptible waits."""

from .pull import (
    IterationResult,
    PullExitCode,
    PullOutcome,
    PullRunResult,
    PullStatus,
    determine_pull_exit_code,
    run_configured_pull,
    run_pull_iteration,
    run_pull_loop,
)
from .retry import RetryTable, due_at, is_due, order_repositories, reconcile_retry_table
from .timing import WaitResult, compute_sleep_until, wait_until
from .working_set import resolve_working_set

__all__ = [
    "IterationResult",
    "PullExitCode",
    "PullOutcome",
    "PullRunResult",
    "PullStatus",
    "RetryTable",
    "WaitResult",
    "compute_sleep_until",
    "determine_pull_exit_code",
    "due_at",
    "is_due",
    "order_repositories",
    "reconcile_retry_table",
    "resolve_working_set",
    "run_configured_pull",
    "run_pull_iteration",
    "run_pull_loop",
    "wait_until",
]

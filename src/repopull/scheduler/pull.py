"""Pull-loop orchestration on top of retry-table and timing helpers."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum, IntEnum
import logging
from pathlib import Path
import random
import time as time_module

from repopull.catalog.base import RepositoryDirectory, UrgentSignalSource
from repopull.catalog.sqlite import SQLiteCatalog
from repopull.config import RuntimeConfig, resolve_catalog_path
from repopull.diagnostics.events import PULL_ATTEMPT, PULL_ITERATION, JsonlEventLogger
from repopull.diagnostics.redact import redact_text
from repopull.errors import DiagnosticsError, SchedulerError, SyncError
from repopull.executor import CommandSyncExecutor, SignalClearingExecutor, SyncExecutor
from repopull.heartbeat import HeartbeatFn, heartbeat_for_path, noop_heartbeat
from repopull.models import RepositoryHandle, SyncOptions, UrgentSignal
from repopull.scheduler.retry import RetryTable, due_at, order_repositories, reconcile_retry_table
from repopull.scheduler.timing import NowFn, SleepFn, WaitResult, compute_sleep_until, wait_until
from repopull.scheduler.working_set import resolve_working_set

logger = logging.getLogger(__name__)

IterationHookFn = Callable[["IterationResult"], None]


class PullStatus(str, Enum):
    PULLED = "pulled"
    FAILED = "failed"
    NOT_DUE = "not_due"
    UNTRACKED = "untracked"


@dataclass(frozen=True)
class PullOutcome:
    repository_id: int
    name: str
    status: PullStatus
    next_attempt_at: datetime | None = None
    error: str | None = None
    warning: str | None = None
    duration_seconds: float = 0.0


@dataclass(frozen=True)
class IterationResult:
    iteration: int
    started_at: datetime
    outcomes: tuple[PullOutcome, ...]
    retry_table: dict[int, datetime]
    sleep_until: datetime
    urgent_signals: int = 0
    woke_early: bool = False

    @property
    def pulled(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status is PullStatus.PULLED)

    @property
    def failed(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status is PullStatus.FAILED)

    @property
    def skipped(self) -> int:
        return sum(
            1
            for outcome in self.outcomes
            if outcome.status in (PullStatus.NOT_DUE, PullStatus.UNTRACKED)
        )

    @property
    def order(self) -> tuple[str, ...]:
        return tuple(outcome.name for outcome in self.outcomes)


@dataclass(frozen=True)
class PullRunResult:
    iterations_completed: int
    total_pulled: int = 0
    total_failed: int = 0
    last_iteration: IterationResult | None = None
    interrupted: bool = False


class PullExitCode(IntEnum):
    """Stable exit codes for supervisors wrapping `repopull run`."""

    SUCCESS = 0
    STARTUP_FAILED = 2
    INTERRUPTED = 130


def run_pull_iteration(
    repositories: Sequence[RepositoryHandle],
    retry_table: RetryTable,
    signals: Sequence[UrgentSignal],
    executor: SyncExecutor,
    *,
    options: SyncOptions | None = None,
    min_sleep_seconds: int = 15,
    iteration: int = 1,
    now_fn: NowFn | None = None,
    rng: random.Random | None = None,
    heartbeat: HeartbeatFn | None = None,
    event_logger: JsonlEventLogger | None = None,
    run_id: str | None = None,
    on_outcome: Callable[[PullOutcome], None] | None = None,
) -> IterationResult:
    """Reconcile, order and pull every due repository once.

    Returns the next retry table inside the result; the input table is never
    mutated. No exception raised by the executor or the debug event log
    escapes this function. ``on_outcome`` sees each outcome as soon as the
    repository is done, so callers can account for a pass cut short.
    """
    if min_sleep_seconds <= 0:
        raise SchedulerError("min_sleep_seconds must be > 0.")

    now = now_fn or _utcnow
    beat = heartbeat or noop_heartbeat
    sync_options = options or SyncOptions()
    started_at = _normalize_datetime(now())

    table = reconcile_retry_table(retry_table, repositories, signals, now=started_at)
    ordered = order_repositories(repositories, table, rng=rng, cold_start=not retry_table)

    outcomes: list[PullOutcome] = []
    for handle in ordered:
        outcome = _attempt_repository(
            handle,
            table,
            executor,
            options=sync_options,
            min_sleep_seconds=min_sleep_seconds,
            now=now,
        )
        outcomes.append(outcome)
        if on_outcome is not None:
            on_outcome(outcome)
        if outcome.next_attempt_at is not None and outcome.status in (PullStatus.PULLED, PullStatus.FAILED):
            table[handle.repository_id] = outcome.next_attempt_at
        if event_logger is not None and run_id is not None and outcome.status in (
            PullStatus.PULLED,
            PullStatus.FAILED,
        ):
            _append_event(
                event_logger,
                PULL_ATTEMPT,
                run_id=run_id,
                repository=handle.name,
                payload=_outcome_payload(outcome),
            )
        beat()

    sleep_until = compute_sleep_until(
        table,
        now=_normalize_datetime(now()),
        min_sleep_seconds=min_sleep_seconds,
    )
    return IterationResult(
        iteration=iteration,
        started_at=started_at,
        outcomes=tuple(outcomes),
        retry_table=table,
        sleep_until=sleep_until,
        urgent_signals=len(signals),
    )


def _attempt_repository(
    handle: RepositoryHandle,
    table: RetryTable,
    executor: SyncExecutor,
    *,
    options: SyncOptions,
    min_sleep_seconds: int,
    now: NowFn,
) -> PullOutcome:
    current = _normalize_datetime(now())
    deadline = due_at(table, handle.repository_id, now=current)
    if deadline > current:
        return PullOutcome(
            repository_id=handle.repository_id,
            name=handle.name,
            status=PullStatus.NOT_DUE,
            next_attempt_at=deadline,
        )
    if not handle.tracked:
        return PullOutcome(repository_id=handle.repository_id, name=handle.name, status=PullStatus.UNTRACKED)

    logger.info("Updating repository '%s'.", handle.name)
    error: Exception | None = None
    warning: str | None = None
    try:
        result = executor.execute(handle, options)
        error = result.error
        if error is None and result.stderr.strip():
            warning = redact_text(
                f"Unexpected output while updating the '{handle.name}' repository: {result.stderr.strip()}"
            )
            logger.warning(warning)
    except Exception as exc:
        error = exc

    finished = _normalize_datetime(now())
    duration = max(0.0, (finished - current).total_seconds())
    if error is not None:
        message = redact_text(str(error) or type(error).__name__)
        logger.error(
            "Error while fetching changes to the '%s' repository: %s",
            handle.name,
            message,
            exc_info=error if not isinstance(error, SyncError) else None,
        )
        return PullOutcome(
            repository_id=handle.repository_id,
            name=handle.name,
            status=PullStatus.FAILED,
            next_attempt_at=finished + timedelta(seconds=min_sleep_seconds),
            error=message,
            duration_seconds=duration,
        )

    return PullOutcome(
        repository_id=handle.repository_id,
        name=handle.name,
        status=PullStatus.PULLED,
        next_attempt_at=finished + timedelta(seconds=handle.interval_seconds(min_sleep_seconds)),
        warning=warning,
        duration_seconds=duration,
    )


def run_pull_loop(
    directory: RepositoryDirectory,
    signal_source: UrgentSignalSource,
    executor: SyncExecutor,
    *,
    include: Sequence[str] = (),
    exclude: Sequence[str] = (),
    options: SyncOptions | None = None,
    min_sleep_seconds: int = 15,
    wait_step_seconds: float = 1.0,
    max_iterations: int = 0,
    now_fn: NowFn | None = None,
    sleep_fn: SleepFn | None = None,
    rng: random.Random | None = None,
    heartbeat: HeartbeatFn | None = None,
    on_iteration: IterationHookFn | None = None,
    event_logger: JsonlEventLogger | None = None,
    run_id: str | None = None,
) -> PullRunResult:
    """Pull repositories forever (or for ``max_iterations`` passes).

    The working set is resolved before the first pass, so an unknown name in
    ``include`` or ``exclude`` raises before any repository is pulled.
    """
    if max_iterations < 0:
        raise SchedulerError("max_iterations must be >= 0 (0 runs forever).")
    if min_sleep_seconds <= 0:
        raise SchedulerError("min_sleep_seconds must be > 0.")
    if wait_step_seconds <= 0:
        raise SchedulerError("wait_step_seconds must be > 0.")

    now = now_fn or _utcnow
    sleeper = sleep_fn or time_module.sleep
    beat = heartbeat or noop_heartbeat
    resolved_run_id = run_id or _new_run_id("pull")

    repositories = resolve_working_set(directory, include=include, exclude=exclude)
    logger.info("Pulling %d repositories (run %s).", len(repositories), resolved_run_id)

    table: dict[int, datetime] = {}
    iteration = 0
    total_pulled = 0
    total_failed = 0
    last: IterationResult | None = None

    while max_iterations == 0 or iteration < max_iterations:
        iteration += 1
        if iteration > 1:
            repositories = resolve_working_set(directory, include=include, exclude=exclude)
        finished: list[PullOutcome] = []
        try:
            result = run_pull_iteration(
                repositories,
                table,
                signal_source.pending_urgent_signals(),
                executor,
                options=options,
                min_sleep_seconds=min_sleep_seconds,
                iteration=iteration,
                now_fn=now,
                rng=rng,
                heartbeat=beat,
                event_logger=event_logger,
                run_id=resolved_run_id,
                on_outcome=finished.append,
            )
        except KeyboardInterrupt:
            return PullRunResult(
                iterations_completed=iteration - 1,
                total_pulled=total_pulled + _count(finished, PullStatus.PULLED),
                total_failed=total_failed + _count(finished, PullStatus.FAILED),
                last_iteration=last,
                interrupted=True,
            )

        table = result.retry_table
        total_pulled += result.pulled
        total_failed += result.failed

        is_last_iteration = max_iterations != 0 and iteration >= max_iterations
        if not is_last_iteration:
            active_ids = {handle.repository_id for handle in repositories if handle.tracked}
            try:
                waited = wait_until(
                    result.sleep_until,
                    now_fn=now,
                    sleep_fn=sleeper,
                    step_seconds=wait_step_seconds,
                    should_wake=lambda: _has_relevant_signal(signal_source, active_ids),
                    on_step=beat,
                )
            except KeyboardInterrupt:
                _emit_iteration(result, on_iteration, event_logger, resolved_run_id)
                return PullRunResult(
                    iterations_completed=iteration,
                    total_pulled=total_pulled,
                    total_failed=total_failed,
                    last_iteration=result,
                    interrupted=True,
                )
            result = replace(result, woke_early=waited.woke_early)
            if waited.woke_early:
                logger.debug("Woke early for urgent update request after %d step(s).", waited.steps)

        _emit_iteration(result, on_iteration, event_logger, resolved_run_id)
        last = result

    return PullRunResult(
        iterations_completed=iteration,
        total_pulled=total_pulled,
        total_failed=total_failed,
        last_iteration=last,
    )


def run_configured_pull(
    config: RuntimeConfig,
    *,
    config_path: str | Path | None = None,
    include: Sequence[str] = (),
    exclude: Sequence[str] = (),
    no_discovery: bool = False,
    max_iterations: int = 0,
    now_fn: NowFn | None = None,
    sleep_fn: SleepFn | None = None,
    rng: random.Random | None = None,
    executor: SyncExecutor | None = None,
    on_iteration: IterationHookFn | None = None,
    event_logger: JsonlEventLogger | None = None,
    run_id: str | None = None,
) -> PullRunResult:
    """Run the pull loop against the configured SQLite catalog and updater command."""
    catalog_path = resolve_catalog_path(config, config_path)
    with SQLiteCatalog(catalog_path) as catalog:
        sync_executor: SyncExecutor = executor or CommandSyncExecutor(
            config.executor.command,
            timeout_seconds=config.executor.timeout_seconds,
        )
        if config.scheduler.clear_signals_after_pull:
            sync_executor = SignalClearingExecutor(sync_executor, catalog)
        return run_pull_loop(
            catalog,
            catalog,
            sync_executor,
            include=include,
            exclude=exclude,
            options=SyncOptions(no_discovery=no_discovery),
            min_sleep_seconds=config.scheduler.min_sleep_seconds,
            wait_step_seconds=config.scheduler.wait_step_seconds,
            max_iterations=max_iterations,
            now_fn=now_fn,
            sleep_fn=sleep_fn,
            rng=rng,
            heartbeat=heartbeat_for_path(config.daemon.heartbeat_path),
            on_iteration=on_iteration,
            event_logger=event_logger,
            run_id=run_id,
        )


def determine_pull_exit_code(result: PullRunResult) -> PullExitCode:
    if result.interrupted:
        return PullExitCode.INTERRUPTED
    return PullExitCode.SUCCESS


def _has_relevant_signal(signal_source: UrgentSignalSource, active_ids: set[int]) -> bool:
    return any(signal.repository_id in active_ids for signal in signal_source.pending_urgent_signals())


def _emit_iteration(
    result: IterationResult,
    on_iteration: IterationHookFn | None,
    event_logger: JsonlEventLogger | None,
    run_id: str,
) -> None:
    if event_logger is not None:
        _append_event(
            event_logger,
            PULL_ITERATION,
            run_id=run_id,
            payload={
                "iteration": result.iteration,
                "pulled": result.pulled,
                "failed": result.failed,
                "skipped": result.skipped,
                "urgent_signals": result.urgent_signals,
                "order": list(result.order),
                "sleep_until": result.sleep_until.isoformat(),
                "woke_early": result.woke_early,
            },
        )
    if on_iteration is not None:
        on_iteration(result)


def _append_event(
    event_logger: JsonlEventLogger,
    event_type: str,
    *,
    run_id: str,
    repository: str | None = None,
    payload: dict[str, object],
) -> None:
    try:
        event_logger.append(event_type, run_id=run_id, repository=repository, payload=payload)
    except (OSError, DiagnosticsError) as exc:
        logger.warning("Could not write %s debug event: %s", event_type, exc)


def _count(outcomes: Sequence[PullOutcome], status: PullStatus) -> int:
    return sum(1 for outcome in outcomes if outcome.status is status)


def _outcome_payload(outcome: PullOutcome) -> dict[str, object]:
    return {
        "repository_id": outcome.repository_id,
        "status": outcome.status.value,
        "next_attempt_at": outcome.next_attempt_at.isoformat() if outcome.next_attempt_at else None,
        "error": outcome.error,
        "warning": outcome.warning,
        "duration_seconds": round(outcome.duration_seconds, 3),
    }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_datetime(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _new_run_id(prefix: str) -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
    return f"{prefix}-{stamp}"

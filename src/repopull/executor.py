"""Sync executors that run the external repository updater."""

from __future__ import annotations

from collections.abc import Sequence
import logging
import subprocess
from typing import Protocol

from repopull.catalog.base import UrgentSignalSink
from repopull.errors import CatalogError, SyncError
from repopull.models import RepositoryHandle, SyncOptions, SyncResult

logger = logging.getLogger(__name__)


class SyncExecutor(Protocol):
    def execute(self, handle: RepositoryHandle, options: SyncOptions) -> SyncResult:
        """Synchronize one repository, blocking until the attempt finishes."""


class CommandSyncExecutor:
    """Run ``<command> [--no-discovery] -- <name>`` and classify its outcome."""

    def __init__(
        self,
        command: Sequence[str],
        *,
        timeout_seconds: float | None = None,
    ) -> None:
        if not command:
            raise SyncError("Updater command must be non-empty.")
        self._command = tuple(command)
        self._timeout_seconds = timeout_seconds

    @property
    def command(self) -> tuple[str, ...]:
        return self._command

    def build_argv(self, handle: RepositoryHandle, options: SyncOptions) -> list[str]:
        argv = list(self._command)
        if options.no_discovery:
            argv.append("--no-discovery")
        argv.extend(["--", handle.name])
        return argv

    def execute(self, handle: RepositoryHandle, options: SyncOptions) -> SyncResult:
        argv = self.build_argv(handle, options)
        logger.debug("Running updater: %s", argv)
        try:
            completed = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=self._timeout_seconds,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            return SyncResult(
                stdout=_as_text(exc.stdout),
                stderr=_as_text(exc.stderr),
                error=SyncError(
                    f"Updater for '{handle.name}' timed out after {self._timeout_seconds}s."
                ),
            )
        except OSError as exc:
            return SyncResult(error=SyncError(f"Could not start updater '{argv[0]}': {exc}."))

        if completed.returncode != 0:
            detail = completed.stderr.strip() or completed.stdout.strip() or "no output"
            return SyncResult(
                stdout=completed.stdout,
                stderr=completed.stderr,
                error=SyncError(
                    f"Updater for '{handle.name}' exited with status {completed.returncode}: {detail}"
                ),
            )
        return SyncResult(stdout=completed.stdout, stderr=completed.stderr)


class SignalClearingExecutor:
    """Clear a repository's urgent signals just before each attempt on it starts.

    A signal raised while the attempt runs is left pending, so the loop wakes
    for it and pulls again. A sink failure is logged and never fails the pull.
    """

    def __init__(self, inner: SyncExecutor, sink: UrgentSignalSink) -> None:
        self._inner = inner
        self._sink = sink

    def execute(self, handle: RepositoryHandle, options: SyncOptions) -> SyncResult:
        try:
            cleared = self._sink.clear_urgent_signals(handle.repository_id)
        except CatalogError as exc:
            logger.warning("Could not clear urgent signals for '%s': %s", handle.name, exc)
        else:
            if cleared:
                logger.debug("Cleared %d urgent signal(s) for '%s'.", cleared, handle.name)
        return self._inner.execute(handle, options)


def _as_text(value: str | bytes | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value

"""JSONL debug events written by the pull loop when debug mode is on.

Two event kinds exist. ``pull_attempt`` records one repository attempt that
reached the updater, and ``pull_iteration`` summarizes a finished pass. Each
kind has a fixed set of payload keys that readers can rely on; extra keys are
allowed.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
import json
from pathlib import Path
from typing import Any

from repopull.diagnostics.redact import redact_value
from repopull.errors import DiagnosticsError

DEBUG_EVENT_SCHEMA_VERSION = 1

PULL_ATTEMPT = "pull_attempt"
PULL_ITERATION = "pull_iteration"

EVENT_PAYLOAD_FIELDS: dict[str, tuple[str, ...]] = {
    PULL_ATTEMPT: ("repository_id", "status", "next_attempt_at", "duration_seconds"),
    PULL_ITERATION: ("iteration", "pulled", "failed", "skipped", "order", "sleep_until", "woke_early"),
}


class JsonlEventLogger:
    """Append validated, redacted debug events to a JSONL file."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._path

    def append(
        self,
        event_type: str,
        *,
        run_id: str,
        repository: str | None = None,
        payload: Mapping[str, Any] | None = None,
        occurred_at: datetime | None = None,
    ) -> dict[str, Any]:
        event = build_debug_event(
            event_type,
            run_id=run_id,
            repository=repository,
            payload=payload,
            occurred_at=occurred_at,
        )
        with self._path.open("a", encoding="utf-8") as stream:
            stream.write(json.dumps(event, sort_keys=True) + "\n")
        return event


def build_debug_event(
    event_type: str,
    *,
    run_id: str,
    repository: str | None = None,
    payload: Mapping[str, Any] | None = None,
    occurred_at: datetime | None = None,
) -> dict[str, Any]:
    moment = occurred_at or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    name = repository.strip() if repository else ""
    event = {
        "schema_version": DEBUG_EVENT_SCHEMA_VERSION,
        "event_type": event_type,
        "occurred_at": moment.isoformat(),
        "run_id": run_id.strip(),
        "repository": name or None,
        "payload": redact_value(dict(payload or {})),
    }
    validate_debug_event(event)
    return event


def validate_debug_event(event: Mapping[str, Any]) -> None:
    """Reject events a reader of this schema version could not interpret."""
    version = event.get("schema_version")
    if version != DEBUG_EVENT_SCHEMA_VERSION:
        raise DiagnosticsError(
            f"Unsupported debug event schema {version!r}; expected {DEBUG_EVENT_SCHEMA_VERSION}."
        )

    event_type = event.get("event_type")
    if not isinstance(event_type, str) or event_type not in EVENT_PAYLOAD_FIELDS:
        known = ", ".join(sorted(EVENT_PAYLOAD_FIELDS))
        raise DiagnosticsError(f"Unknown debug event type {event_type!r}; expected one of: {known}.")

    run_id = event.get("run_id")
    if not isinstance(run_id, str) or not run_id:
        raise DiagnosticsError("run_id must be a non-empty string.")

    repository = event.get("repository")
    if repository is not None and not isinstance(repository, str):
        raise DiagnosticsError("repository must be a string or null.")
    if event_type == PULL_ATTEMPT and not repository:
        raise DiagnosticsError("pull_attempt events must name a repository.")

    payload = event.get("payload")
    if not isinstance(payload, dict):
        raise DiagnosticsError("payload must be an object.")
    missing = [field for field in EVENT_PAYLOAD_FIELDS[event_type] if field not in payload]
    if missing:
        raise DiagnosticsError(f"{event_type} payload is missing: {', '.join(missing)}.")

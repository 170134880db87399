"""Liveness signalling for process supervisors."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
import json
import os
from pathlib import Path

HeartbeatFn = Callable[[], None]


def noop_heartbeat() -> None:
    return None


class FileHeartbeat:
    """Rewrite a small JSON status file on every beat.

    Supervisors compare the file's ``beat_at`` (or mtime) against a staleness
    threshold to detect a hung daemon.
    """

    def __init__(self, path: str | Path, *, now_fn: Callable[[], datetime] | None = None) -> None:
        self._path = Path(path).expanduser()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._now = now_fn or (lambda: datetime.now(timezone.utc))
        self._beats = 0

    @property
    def path(self) -> Path:
        return self._path

    @property
    def beats(self) -> int:
        return self._beats

    def __call__(self) -> None:
        self._beats += 1
        payload = {
            "pid": os.getpid(),
            "beat_at": self._now().isoformat(),
            "beats": self._beats,
        }
        tmp_path = self._path.with_name(f".{self._path.name}.tmp")
        tmp_path.write_text(json.dumps(payload, sort_keys=True) + "\n", encoding="utf-8")
        os.replace(tmp_path, self._path)


def heartbeat_for_path(path: str | Path | None) -> HeartbeatFn:
    if not path:
        return noop_heartbeat
    return FileHeartbeat(path)

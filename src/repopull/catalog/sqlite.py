"""SQLite-backed repository catalog with deterministic migration bootstrap."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
import sqlite3

from repopull.errors import CatalogError, RepositoryNotFoundError
from repopull.models import RepositoryHandle, UrgentSignal

NEEDS_UPDATE = "needs-update"


@dataclass(frozen=True)
class Migration:
    version: str
    statements: tuple[str, ...]


DEFAULT_MIGRATIONS: tuple[Migration, ...] = (
    Migration(
        version="0001_initial_catalog_schema",
        statements=(
            """
            CREATE TABLE IF NOT EXISTS repositories (
                repository_id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE,
                tracked INTEGER NOT NULL DEFAULT 1 CHECK (tracked IN (0, 1)),
                pull_frequency_seconds INTEGER CHECK (
                    pull_frequency_seconds IS NULL OR pull_frequency_seconds > 0
                ),
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS status_messages (
                message_id INTEGER PRIMARY KEY AUTOINCREMENT,
                repository_id INTEGER NOT NULL
                    REFERENCES repositories(repository_id) ON DELETE CASCADE,
                status_type TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
            """,
            "CREATE INDEX IF NOT EXISTS idx_status_messages_type ON status_messages(status_type)",
            "CREATE INDEX IF NOT EXISTS idx_status_messages_repository ON status_messages(repository_id)",
        ),
    ),
)


class SQLiteMigrationRunner:
    """Apply ordered migrations and enforce base pragmas."""

    def __init__(self, migrations: Sequence[Migration] | None = None) -> None:
        self._migrations = tuple(migrations or DEFAULT_MIGRATIONS)
        versions = [migration.version for migration in self._migrations]
        if versions != sorted(versions):
            raise CatalogError("Migrations must be in ascending version order.")
        if len(set(versions)) != len(versions):
            raise CatalogError("Migration versions must be unique.")

    def bootstrap(self, conn: sqlite3.Connection) -> None:
        self._apply_pragmas(conn)
        self._ensure_migration_table(conn)
        self._apply_pending_migrations(conn)

    def _apply_pragmas(self, conn: sqlite3.Connection) -> None:
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA synchronous = NORMAL")
        conn.execute("PRAGMA busy_timeout = 5000")

    def _ensure_migration_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
                version TEXT PRIMARY KEY,
                applied_at TEXT NOT NULL
            )
            """
        )
        conn.commit()

    def applied_versions(self, conn: sqlite3.Connection) -> tuple[str, ...]:
        rows = conn.execute("SELECT version FROM schema_migrations ORDER BY version").fetchall()
        return tuple(str(row[0]) for row in rows)

    def _apply_pending_migrations(self, conn: sqlite3.Connection) -> None:
        applied = set(self.applied_versions(conn))
        for migration in self._migrations:
            if migration.version in applied:
                continue
            try:
                conn.execute("BEGIN")
                for statement in migration.statements:
                    conn.execute(statement)
                conn.execute(
                    "INSERT INTO schema_migrations(version, applied_at) VALUES(?, ?)",
                    (migration.version, _dt_to_db(_utcnow())),
                )
                conn.commit()
            except sqlite3.Error as exc:
                conn.rollback()
                raise CatalogError(
                    f"Failed applying migration '{migration.version}': {exc}."
                ) from exc


class SQLiteCatalog:
    """Repository directory and urgent-signal source stored in one SQLite file.

    Urgent signals are `status_messages` rows with status type
    ``needs-update``. Reading them never consumes them; callers clear them
    explicitly with :meth:`clear_urgent_signals`.
    """

    def __init__(
        self,
        db_path: str | Path,
        *,
        migration_runner: SQLiteMigrationRunner | None = None,
    ) -> None:
        self._db_path = Path(db_path).expanduser()
        self._migration_runner = migration_runner or SQLiteMigrationRunner()

        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self._db_path))
        except sqlite3.Error as exc:
            raise CatalogError(f"Could not open SQLite database '{self._db_path}': {exc}.") from exc
        except OSError as exc:
            raise CatalogError(f"Could not prepare database path '{self._db_path}': {exc}.") from exc

        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA busy_timeout = 5000")
        self._migration_runner.bootstrap(self._conn)

    def __enter__(self) -> SQLiteCatalog:
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    @property
    def db_path(self) -> Path:
        return self._db_path

    def close(self) -> None:
        try:
            self._conn.close()
        except sqlite3.Error as exc:
            raise CatalogError(f"Could not close SQLite database '{self._db_path}': {exc}.") from exc

    def migration_versions(self) -> tuple[str, ...]:
        return self._migration_runner.applied_versions(self._conn)

    def add_repository(
        self,
        name: str,
        *,
        tracked: bool = True,
        pull_frequency_seconds: int | None = None,
    ) -> RepositoryHandle:
        cleaned = name.strip()
        if not cleaned:
            raise CatalogError("Repository name must be non-empty.")
        _validate_frequency(pull_frequency_seconds)
        now = _dt_to_db(_utcnow())
        try:
            cursor = self._conn.execute(
                """
                INSERT INTO repositories(name, tracked, pull_frequency_seconds, created_at, updated_at)
                VALUES(?, ?, ?, ?, ?)
                """,
                (cleaned, int(tracked), pull_frequency_seconds, now, now),
            )
            self._conn.commit()
        except sqlite3.IntegrityError as exc:
            self._conn.rollback()
            raise CatalogError(f"Repository '{cleaned}' already exists.") from exc
        except sqlite3.Error as exc:
            raise CatalogError(f"Could not add repository '{cleaned}': {exc}.") from exc
        return RepositoryHandle(
            repository_id=int(cursor.lastrowid),
            name=cleaned,
            tracked=tracked,
            pull_frequency_seconds=pull_frequency_seconds,
        )

    def remove_repository(self, name: str) -> None:
        handle = self._require(name)
        try:
            self._conn.execute(
                "DELETE FROM repositories WHERE repository_id = ?",
                (handle.repository_id,),
            )
            self._conn.commit()
        except sqlite3.Error as exc:
            raise CatalogError(f"Could not remove repository '{name}': {exc}.") from exc

    def set_tracked(self, name: str, tracked: bool) -> RepositoryHandle:
        handle = self._require(name)
        self._update(handle, "tracked = ?", int(tracked))
        return RepositoryHandle(
            repository_id=handle.repository_id,
            name=handle.name,
            tracked=tracked,
            pull_frequency_seconds=handle.pull_frequency_seconds,
        )

    def set_pull_frequency(self, name: str, seconds: int | None) -> RepositoryHandle:
        _validate_frequency(seconds)
        handle = self._require(name)
        self._update(handle, "pull_frequency_seconds = ?", seconds)
        return RepositoryHandle(
            repository_id=handle.repository_id,
            name=handle.name,
            tracked=handle.tracked,
            pull_frequency_seconds=seconds,
        )

    def list_repositories(self) -> tuple[RepositoryHandle, ...]:
        try:
            rows = self._conn.execute(
                """
                SELECT repository_id, name, tracked, pull_frequency_seconds
                FROM repositories
                ORDER BY repository_id
                """
            ).fetchall()
        except sqlite3.Error as exc:
            raise CatalogError(f"Could not list repositories: {exc}.") from exc
        return tuple(_row_to_handle(row) for row in rows)

    def resolve(self, names: Sequence[str] | None = None) -> tuple[RepositoryHandle, ...]:
        repositories = self.list_repositories()
        if not names:
            return repositories

        by_name = {handle.name: handle for handle in repositories}
        for name in names:
            if name not in by_name:
                raise RepositoryNotFoundError(name)
        wanted = set(names)
        return tuple(handle for handle in repositories if handle.name in wanted)

    def request_update(self, name: str) -> UrgentSignal:
        handle = self._require(name)
        created_at = _utcnow()
        try:
            self._conn.execute(
                """
                INSERT INTO status_messages(repository_id, status_type, created_at)
                VALUES(?, ?, ?)
                """,
                (handle.repository_id, NEEDS_UPDATE, _dt_to_db(created_at)),
            )
            self._conn.commit()
        except sqlite3.Error as exc:
            raise CatalogError(f"Could not request update for '{name}': {exc}.") from exc
        return UrgentSignal(repository_id=handle.repository_id, created_at=created_at)

    def pending_urgent_signals(self) -> tuple[UrgentSignal, ...]:
        try:
            rows = self._conn.execute(
                """
                SELECT repository_id, created_at
                FROM status_messages
                WHERE status_type = ?
                ORDER BY message_id
                """,
                (NEEDS_UPDATE,),
            ).fetchall()
        except sqlite3.Error as exc:
            raise CatalogError(f"Could not load urgent update signals: {exc}.") from exc
        return tuple(
            UrgentSignal(repository_id=int(row["repository_id"]), created_at=_db_to_dt(row["created_at"]))
            for row in rows
        )

    def clear_urgent_signals(self, repository_id: int) -> int:
        try:
            cursor = self._conn.execute(
                "DELETE FROM status_messages WHERE repository_id = ? AND status_type = ?",
                (repository_id, NEEDS_UPDATE),
            )
            self._conn.commit()
        except sqlite3.Error as exc:
            raise CatalogError(
                f"Could not clear urgent signals for repository {repository_id}: {exc}."
            ) from exc
        return cursor.rowcount

    def _require(self, name: str) -> RepositoryHandle:
        try:
            row = self._conn.execute(
                """
                SELECT repository_id, name, tracked, pull_frequency_seconds
                FROM repositories
                WHERE name = ?
                """,
                (name,),
            ).fetchone()
        except sqlite3.Error as exc:
            raise CatalogError(f"Could not look up repository '{name}': {exc}.") from exc
        if row is None:
            raise RepositoryNotFoundError(name)
        return _row_to_handle(row)

    def _update(self, handle: RepositoryHandle, assignment: str, value: object) -> None:
        try:
            self._conn.execute(
                f"UPDATE repositories SET {assignment}, updated_at = ? WHERE repository_id = ?",
                (value, _dt_to_db(_utcnow()), handle.repository_id),
            )
            self._conn.commit()
        except sqlite3.Error as exc:
            raise CatalogError(f"Could not update repository '{handle.name}': {exc}.") from exc


def _row_to_handle(row: sqlite3.Row) -> RepositoryHandle:
    frequency = row["pull_frequency_seconds"]
    return RepositoryHandle(
        repository_id=int(row["repository_id"]),
        name=str(row["name"]),
        tracked=bool(row["tracked"]),
        pull_frequency_seconds=int(frequency) if frequency is not None else None,
    )


def _validate_frequency(seconds: int | None) -> None:
    if seconds is not None and seconds <= 0:
        raise CatalogError("Pull frequency must be a positive number of seconds.")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _dt_to_db(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _db_to_dt(raw: object) -> datetime | None:
    if raw is None:
        return None
    value = str(raw).strip()
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed

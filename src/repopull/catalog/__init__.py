"""Repository catalog contracts and SQLite implementation."""

from .base import RepositoryDirectory, UrgentSignalSink, UrgentSignalSource
from .sqlite import NEEDS_UPDATE, SQLiteCatalog, SQLiteMigrationRunner

__all__ = [
    "NEEDS_UPDATE",
    "RepositoryDirectory",
    "SQLiteCatalog",
    "SQLiteMigrationRunner",
    "UrgentSignalSink",
    "UrgentSignalSource",
]

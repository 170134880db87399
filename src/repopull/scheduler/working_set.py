"""Resolve the repositories one daemon instance is responsible for."""

from __future__ import annotations

from collections.abc import Sequence

from repopull.catalog.base import RepositoryDirectory
from repopull.models import RepositoryHandle


def resolve_working_set(
    directory: RepositoryDirectory,
    *,
    include: Sequence[str] = (),
    exclude: Sequence[str] = (),
) -> tuple[RepositoryHandle, ...]:
    """Return included repositories (all when ``include`` is empty) minus ``exclude``.

    Unknown names in either list raise ``RepositoryNotFoundError``.
    """
    repositories = directory.resolve(list(include) or None)
    if not exclude:
        return tuple(repositories)

    excluded = {handle.repository_id for handle in directory.resolve(list(exclude))}
    return tuple(handle for handle in repositories if handle.repository_id not in excluded)

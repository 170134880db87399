"""Doctor preflight: config, catalog and updater command checks."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
import shutil

from repopull.catalog.sqlite import SQLiteCatalog
from repopull.config import RuntimeConfig, resolve_catalog_path
from repopull.diagnostics.base import DiagnosticReport, DiagnosticSection
from repopull.errors import CatalogError

WhichFn = Callable[[str], str | None]


def run_doctor_preflight(
    config: RuntimeConfig,
    *,
    config_path: str | Path | None = None,
    which: WhichFn | None = None,
) -> DiagnosticReport:
    """Run structured config/catalog/executor checks."""
    lookup = which or shutil.which
    sections: list[DiagnosticSection] = [
        DiagnosticSection(
            name="config",
            ok=True,
            summary="Loaded config.",
            details={
                "min_sleep_seconds": str(config.scheduler.min_sleep_seconds),
                "wait_step_seconds": str(config.scheduler.wait_step_seconds),
            },
        ),
        _check_catalog(config, config_path),
        _check_executor(config, lookup),
    ]
    return DiagnosticReport(ok=all(section.ok for section in sections), sections=tuple(sections))


def _check_catalog(config: RuntimeConfig, config_path: str | Path | None) -> DiagnosticSection:
    catalog_path = resolve_catalog_path(config, config_path)
    try:
        with SQLiteCatalog(catalog_path) as catalog:
            repositories = catalog.list_repositories()
            signals = catalog.pending_urgent_signals()
    except CatalogError as exc:
        return DiagnosticSection(
            name="catalog",
            ok=False,
            summary=f"Catalog unavailable: {exc}",
            details={"path": str(catalog_path)},
        )

    tracked = sum(1 for handle in repositories if handle.tracked)
    details = {
        "path": str(catalog_path),
        "repositories": str(len(repositories)),
        "tracked": str(tracked),
        "pending_update_requests": str(len(signals)),
    }
    if not repositories:
        details["guidance"] = "Add repositories with `repopull repos add NAME`."
    return DiagnosticSection(
        name="catalog",
        ok=True,
        summary=f"Catalog has {len(repositories)} repositories ({tracked} tracked).",
        details=details,
    )


def _check_executor(config: RuntimeConfig, which: WhichFn) -> DiagnosticSection:
    program = config.executor.command[0]
    resolved = which(program)
    if resolved is None:
        return DiagnosticSection(
            name="executor",
            ok=False,
            summary=f"Updater command '{program}' was not found on PATH.",
            details={
                "command": " ".join(config.executor.command),
                "guidance": "Set [executor].command to an installed updater.",
            },
        )
    return DiagnosticSection(
        name="executor",
        ok=True,
        summary=f"Updater command resolves to {resolved}.",
        details={"command": " ".join(config.executor.command), "resolved": resolved},
    )

"""Import smoke tests for package modules."""

from importlib import import_module

import repopull

MODULES = [
    "repopull.config",
    "repopull.models",
    "repopull.errors",
    "repopull.logging",
    "repopull.executor",
    "repopull.heartbeat",
    "repopull.catalog",
    "repopull.catalog.base",
    "repopull.catalog.sqlite",
    "repopull.scheduler",
    "repopull.scheduler.pull",
    "repopull.scheduler.retry",
    "repopull.scheduler.timing",
    "repopull.scheduler.working_set",
    "repopull.diagnostics",
    "repopull.diagnostics.base",
    "repopull.diagnostics.doctor",
    "repopull.diagnostics.events",
    "repopull.diagnostics.redact",
    "repopull.testing",
    "repopull.testing.time_control",
]


def test_modules_import() -> None:
    for module_name in MODULES:
        import_module(module_name)


def test_package_exposes_version_and_models() -> None:
    assert repopull.__version__ == "0.1.0"
    handle = repopull.RepositoryHandle(repository_id=1, name="alpha")
    assert handle.interval_seconds(15) == 15
    assert repopull.RepositoryHandle(repository_id=2, name="beta", pull_frequency_seconds=90).interval_seconds(15) == 90

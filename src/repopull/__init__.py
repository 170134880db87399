"""repopull: keep local repository working copies pulled on a soft-priority schedule."""

from .config import (
    AppConfig,
    CatalogConfig,
    DaemonConfig,
    ExecutorConfig,
    RuntimeConfig,
    SchedulerConfig,
    config_to_dict,
    default_config,
    init_default_config,
    load_runtime_config,
    resolve_config_path,
)
from .models import RepositoryHandle, SyncOptions, SyncResult, UrgentSignal

__all__ = [
    "AppConfig",
    "CatalogConfig",
    "DaemonConfig",
    "ExecutorConfig",
    "RepositoryHandle",
    "RuntimeConfig",
    "SchedulerConfig",
    "SyncOptions",
    "SyncResult",
    "UrgentSignal",
    "config_to_dict",
    "default_config",
    "init_default_config",
    "load_runtime_config",
    "resolve_config_path",
]

__version__ = "0.1.0"

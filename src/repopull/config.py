"""Shared configuration contracts and validation helpers for repopull."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
import os
from pathlib import Path
import tomllib
from typing import Any

from platformdirs import user_config_dir

from .errors import ConfigError

DEFAULT_CONFIG_FILENAME = "config.toml"
DEFAULT_CATALOG_FILENAME = "catalog.db"
CONFIG_ENV_VAR = "REPOPULL_CONFIG"

DEFAULT_CONFIG_TEMPLATE = """[app]
debug = false

[scheduler]
min_sleep_seconds = 15
wait_step_seconds = 1
clear_signals_after_pull = true

[catalog]
path = ""

[executor]
command = ["repository-update"]
timeout_seconds = 0

[daemon]
heartbeat_path = ""
"""


@dataclass(frozen=True)
class AppConfig:
    debug: bool = False


@dataclass(frozen=True)
class SchedulerConfig:
    min_sleep_seconds: int = 15
    wait_step_seconds: int = 1
    clear_signals_after_pull: bool = True


@dataclass(frozen=True)
class CatalogConfig:
    path: str | None = None


@dataclass(frozen=True)
class ExecutorConfig:
    command: tuple[str, ...] = ("repository-update",)
    timeout_seconds: int | None = None


@dataclass(frozen=True)
class DaemonConfig:
    heartbeat_path: str | None = None


@dataclass(frozen=True)
class RuntimeConfig:
    app: AppConfig = field(default_factory=AppConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    catalog: CatalogConfig = field(default_factory=CatalogConfig)
    executor: ExecutorConfig = field(default_factory=ExecutorConfig)
    daemon: DaemonConfig = field(default_factory=DaemonConfig)


def default_config() -> RuntimeConfig:
    return RuntimeConfig()


def default_config_toml() -> str:
    return DEFAULT_CONFIG_TEMPLATE


def resolve_config_path(config_path: str | Path | None = None) -> Path:
    if config_path:
        return Path(config_path).expanduser()

    env_value = os.getenv(CONFIG_ENV_VAR)
    if env_value:
        return Path(env_value).expanduser()

    config_dir = Path(user_config_dir("repopull", appauthor=False))
    return config_dir / DEFAULT_CONFIG_FILENAME


def resolve_catalog_path(config: RuntimeConfig, config_path: str | Path | None = None) -> Path:
    """Configured catalog path, or `catalog.db` beside the config file."""
    if config.catalog.path:
        return Path(config.catalog.path).expanduser()
    return resolve_config_path(config_path).parent / DEFAULT_CATALOG_FILENAME


def init_default_config(config_path: str | Path | None = None, force: bool = False) -> Path:
    path = resolve_config_path(config_path)
    if path.exists() and path.is_dir():
        raise ConfigError(
            f"Config path '{path}' is a directory; expected a TOML file path (for example '{path / DEFAULT_CONFIG_FILENAME}')."
        )
    if path.exists() and not force:
        raise ConfigError(
            f"Config file already exists at '{path}'. Re-run with --force to overwrite."
        )

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(default_config_toml(), encoding="utf-8")
    except OSError as exc:
        raise ConfigError(
            f"Could not write config file at '{path}': {exc}. "
            "Check path permissions or choose a writable location with `--path`."
        ) from exc
    return path


def load_runtime_config(config_path: str | Path | None = None) -> RuntimeConfig:
    path = resolve_config_path(config_path)
    if not path.exists():
        raise ConfigError(
            f"Config file not found at '{path}'. Run `repopull config init --path \"{path}\"` to generate defaults."
        )
    if path.is_dir():
        raise ConfigError(
            f"Config path '{path}' is a directory; pass a file path ending in '{DEFAULT_CONFIG_FILENAME}'."
        )

    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(
            f"Could not read config file '{path}': {exc}. "
            "Check file permissions and that the path points to a readable TOML file."
        ) from exc
    raw = _load_toml(text, path)
    return _parse_runtime_config(raw)


def config_to_dict(config: RuntimeConfig) -> dict[str, Any]:
    data = asdict(config)
    data["executor"]["command"] = list(config.executor.command)
    return data


def _load_toml(text: str, path: Path) -> dict[str, Any]:
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(
            f"Config file '{path}' contains invalid TOML: {exc}. "
            "Fix the syntax or regenerate defaults with `repopull config init --force`."
        ) from exc
    return data


def _parse_runtime_config(data: dict[str, Any]) -> RuntimeConfig:
    app_raw = _expect_table(data, "app", default={})
    scheduler_raw = _expect_table(data, "scheduler", default={})
    catalog_raw = _expect_table(data, "catalog", default={})
    executor_raw = _expect_table(data, "executor", default={})
    daemon_raw = _expect_table(data, "daemon", default={})

    app_config = AppConfig(debug=_expect_bool(app_raw, "app.debug", default=False))

    scheduler_config = SchedulerConfig(
        min_sleep_seconds=_expect_positive_int(scheduler_raw, "scheduler.min_sleep_seconds", default=15),
        wait_step_seconds=_expect_positive_int(scheduler_raw, "scheduler.wait_step_seconds", default=1),
        clear_signals_after_pull=_expect_bool(
            scheduler_raw, "scheduler.clear_signals_after_pull", default=True
        ),
    )
    if scheduler_config.wait_step_seconds > scheduler_config.min_sleep_seconds:
        raise ConfigError(
            "Invalid value for 'scheduler.wait_step_seconds': must not exceed 'scheduler.min_sleep_seconds'."
        )

    catalog_config = CatalogConfig(path=_expect_optional_string(catalog_raw, "catalog.path"))

    timeout_seconds = _expect_non_negative_int(executor_raw, "executor.timeout_seconds", default=0)
    executor_config = ExecutorConfig(
        command=_expect_command(executor_raw, "executor.command", default=("repository-update",)),
        timeout_seconds=timeout_seconds or None,
    )

    daemon_config = DaemonConfig(
        heartbeat_path=_expect_optional_string(daemon_raw, "daemon.heartbeat_path"),
    )

    return RuntimeConfig(
        app=app_config,
        scheduler=scheduler_config,
        catalog=catalog_config,
        executor=executor_config,
        daemon=daemon_config,
    )


def _expect_table(data: dict[str, Any], key: str, default: dict[str, Any]) -> dict[str, Any]:
    value = data.get(key, default)
    if not isinstance(value, dict):
        raise ConfigError(f"Invalid [{key}] table: expected table, got {type(value).__name__}.")
    return value


def _expect_optional_string(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key.split(".")[-1], "")
    if not isinstance(value, str):
        raise ConfigError(f"Invalid value for '{key}': expected string.")
    return value.strip() or None


def _expect_positive_int(data: dict[str, Any], key: str, default: int) -> int:
    field = key.split(".")[-1]
    value = data.get(field, default)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"Invalid value for '{key}': expected positive integer.")
    return value


def _expect_non_negative_int(data: dict[str, Any], key: str, default: int) -> int:
    field = key.split(".")[-1]
    value = data.get(field, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigError(f"Invalid value for '{key}': expected integer >= 0.")
    return value


def _expect_bool(data: dict[str, Any], key: str, default: bool) -> bool:
    field = key.split(".")[-1]
    value = data.get(field, default)
    if not isinstance(value, bool):
        raise ConfigError(f"Invalid value for '{key}': expected boolean true/false.")
    return value


def _expect_command(data: dict[str, Any], key: str, default: tuple[str, ...]) -> tuple[str, ...]:
    field = key.split(".")[-1]
    value = data.get(field, list(default))
    if (
        not isinstance(value, list)
        or not value
        or not all(isinstance(part, str) and part.strip() for part in value)
    ):
        raise ConfigError(f"Invalid value for '{key}': expected non-empty array of non-empty strings.")
    return tuple(value)

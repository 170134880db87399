"""Config loading, defaults and validation."""

from __future__ import annotations

from pathlib import Path

import pytest

from repopull.config import (
    CONFIG_ENV_VAR,
    RuntimeConfig,
    config_to_dict,
    default_config_toml,
    init_default_config,
    load_runtime_config,
    resolve_catalog_path,
    resolve_config_path,
)
from repopull.errors import ConfigError


def test_init_and_load_default_config_round_trip(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"

    written = init_default_config(config_path)
    config = load_runtime_config(written)

    assert config == RuntimeConfig()
    assert config.executor.timeout_seconds is None
    assert config.catalog.path is None
    assert config.daemon.heartbeat_path is None


def test_init_refuses_to_overwrite_without_force(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text("[app]\ndebug = true\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="--force"):
        init_default_config(config_path)

    init_default_config(config_path, force=True)
    assert config_path.read_text(encoding="utf-8") == default_config_toml()


def test_missing_config_points_at_config_init(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="repopull config init"):
        load_runtime_config(tmp_path / "missing.toml")


def test_invalid_toml_is_reported(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text("[scheduler\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="invalid TOML"):
        load_runtime_config(config_path)


def test_partial_config_uses_defaults_for_missing_tables(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text(
        '[scheduler]\nmin_sleep_seconds = 30\n\n[executor]\ncommand = ["hg-pull", "--quiet"]\ntimeout_seconds = 600\n',
        encoding="utf-8",
    )

    config = load_runtime_config(config_path)

    assert config.scheduler.min_sleep_seconds == 30
    assert config.scheduler.wait_step_seconds == 1
    assert config.scheduler.clear_signals_after_pull is True
    assert config.executor.command == ("hg-pull", "--quiet")
    assert config.executor.timeout_seconds == 600


@pytest.mark.parametrize(
    ("body", "message"),
    [
        ("[scheduler]\nmin_sleep_seconds = 0\n", "scheduler.min_sleep_seconds"),
        ("[scheduler]\nmin_sleep_seconds = true\n", "scheduler.min_sleep_seconds"),
        ("[scheduler]\nmin_sleep_seconds = 5\nwait_step_seconds = 10\n", "must not exceed"),
        ("[app]\ndebug = \"yes\"\n", "app.debug"),
        ("[executor]\ncommand = []\n", "executor.command"),
        ("[executor]\ncommand = \"repository-update\"\n", "executor.command"),
        ("[executor]\ntimeout_seconds = -1\n", "executor.timeout_seconds"),
        ("[catalog]\npath = 3\n", "catalog.path"),
        ("scheduler = 3\n", "[scheduler]"),
    ],
)
def test_invalid_values_raise_config_error(tmp_path: Path, body: str, message: str) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text(body, encoding="utf-8")

    with pytest.raises(ConfigError) as excinfo:
        load_runtime_config(config_path)

    assert message in str(excinfo.value)


def test_resolve_config_path_prefers_explicit_then_environment(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    env_path = tmp_path / "env.toml"
    monkeypatch.setenv(CONFIG_ENV_VAR, str(env_path))

    assert resolve_config_path(tmp_path / "explicit.toml") == tmp_path / "explicit.toml"
    assert resolve_config_path() == env_path

    monkeypatch.delenv(CONFIG_ENV_VAR)
    assert resolve_config_path().name == "config.toml"


def test_resolve_catalog_path_defaults_beside_config(tmp_path: Path) -> None:
    config_path = tmp_path / "conf" / "config.toml"
    custom = tmp_path / "data" / "repos.db"
    config_path.parent.mkdir()
    config_path.write_text(f'[catalog]\npath = "{custom.as_posix()}"\n', encoding="utf-8")

    assert resolve_catalog_path(RuntimeConfig(), config_path) == tmp_path / "conf" / "catalog.db"
    assert resolve_catalog_path(load_runtime_config(config_path), config_path) == custom


def test_config_to_dict_renders_command_as_list() -> None:
    data = config_to_dict(RuntimeConfig())
    assert data["executor"]["command"] == ["repository-update"]
    assert data["scheduler"]["min_sleep_seconds"] == 15

"""CLI behavior for run, repos, config and doctor commands."""

from __future__ import annotations

import json
from pathlib import Path
import sys

import pytest

from repopull import __version__
from repopull.catalog.sqlite import SQLiteCatalog

pytest.importorskip("typer")

from typer.testing import CliRunner

from repopull.cli import app

runner = CliRunner()


def _write_config(tmp_path: Path, command: list[str] | None = None, extra: str = "") -> Path:
    config_path = tmp_path / "config.toml"
    updater = command or [sys.executable, "-c", "import sys; print('pulled', sys.argv[-1])"]
    config_path.write_text(
        "[scheduler]\nmin_sleep_seconds = 15\n\n"
        f"[executor]\ncommand = {json.dumps(updater)}\n"
        f"{extra}",
        encoding="utf-8",
    )
    return config_path


def test_cli_help_lists_command_groups() -> None:
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("run", "repos", "config", "doctor", "--debug", "--version"):
        assert command in result.output


def test_cli_version_flag_prints_package_version() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_config_init_and_show_json(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"

    init_result = runner.invoke(app, ["config", "init", "--path", str(config_path)])
    assert init_result.exit_code == 0
    assert config_path.exists()

    show_result = runner.invoke(app, ["config", "show", "--path", str(config_path), "--json"])
    assert show_result.exit_code == 0
    payload = json.loads(show_result.output)
    assert payload["path"] == str(config_path)
    assert payload["catalog_path"] == str(tmp_path / "catalog.db")
    assert payload["config"]["executor"]["command"] == ["repository-update"]


def test_config_init_refuses_overwrite(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path)

    result = runner.invoke(app, ["config", "init", "--path", str(config_path)])

    assert result.exit_code == 2
    assert "Config init failed" in result.output


def test_config_show_missing_file_exits_2(tmp_path: Path) -> None:
    result = runner.invoke(app, ["config", "show", "--path", str(tmp_path / "missing.toml")])
    assert result.exit_code == 2
    assert "repopull config init" in result.output


def test_repos_commands_manage_catalog(tmp_path: Path) -> None:
    config_path = str(_write_config(tmp_path))

    assert runner.invoke(app, ["repos", "add", "alpha", "--path", config_path, "--frequency", "60"]).exit_code == 0
    assert runner.invoke(app, ["repos", "add", "beta", "--path", config_path, "--untracked"]).exit_code == 0
    assert runner.invoke(app, ["repos", "request-update", "alpha", "--path", config_path]).exit_code == 0

    listed = runner.invoke(app, ["repos", "list", "--path", config_path, "--json"])
    assert listed.exit_code == 0
    payload = json.loads(listed.output)
    assert payload == [
        {
            "name": "alpha",
            "pull_frequency_seconds": 60,
            "repository_id": 1,
            "tracked": True,
            "update_requested": True,
        },
        {
            "name": "beta",
            "pull_frequency_seconds": None,
            "repository_id": 2,
            "tracked": False,
            "update_requested": False,
        },
    ]

    assert runner.invoke(app, ["repos", "track", "beta", "--path", config_path]).exit_code == 0
    assert runner.invoke(app, ["repos", "untrack", "alpha", "--path", config_path]).exit_code == 0
    frequency = runner.invoke(app, ["repos", "frequency", "alpha", "--clear", "--path", config_path])
    assert frequency.exit_code == 0
    assert "default pull frequency" in frequency.output

    text = runner.invoke(app, ["repos", "list", "--path", config_path])
    assert "alpha untracked frequency=default update-requested" in text.output
    assert "beta tracked frequency=default" in text.output

    removed = runner.invoke(app, ["repos", "remove", "alpha", "--path", config_path])
    assert removed.exit_code == 0
    with SQLiteCatalog(tmp_path / "catalog.db") as catalog:
        assert [handle.name for handle in catalog.list_repositories()] == ["beta"]


def test_repos_add_duplicate_exits_2(tmp_path: Path) -> None:
    config_path = str(_write_config(tmp_path))
    runner.invoke(app, ["repos", "add", "alpha", "--path", config_path])

    result = runner.invoke(app, ["repos", "add", "alpha", "--path", config_path])

    assert result.exit_code == 2
    assert "Repos add failed" in result.output
    assert "already exists" in result.output


def test_repos_frequency_requires_seconds_or_clear(tmp_path: Path) -> None:
    config_path = str(_write_config(tmp_path))
    runner.invoke(app, ["repos", "add", "alpha", "--path", config_path])

    result = runner.invoke(app, ["repos", "frequency", "alpha", "--path", config_path])

    assert result.exit_code == 2
    assert "pass SECONDS or --clear" in result.output


def test_repos_list_empty_catalog_guides_user(tmp_path: Path) -> None:
    result = runner.invoke(app, ["repos", "list", "--path", str(_write_config(tmp_path))])
    assert result.exit_code == 0
    assert "repopull repos add NAME" in result.output


def test_run_pulls_repositories_for_bounded_passes(tmp_path: Path) -> None:
    heartbeat_path = tmp_path / "heartbeat.json"
    config_path = str(
        _write_config(tmp_path, extra=f'\n[daemon]\nheartbeat_path = "{heartbeat_path.as_posix()}"\n')
    )
    runner.invoke(app, ["repos", "add", "alpha", "--path", config_path])
    runner.invoke(app, ["repos", "add", "beta", "--path", config_path, "--untracked"])
    runner.invoke(app, ["repos", "request-update", "alpha", "--path", config_path])

    result = runner.invoke(app, ["run", "--path", config_path, "--max-iterations", "1", "--no-discovery"])

    assert result.exit_code == 0
    assert "- pass=1 pulled=1 failed=0 skipped=1" in result.output
    assert "Run finished: 1 pass(es), pulled=1 failed=0 exit_state=success exit_code=0." in result.output
    assert json.loads(heartbeat_path.read_text(encoding="utf-8"))["beats"] == 2
    with SQLiteCatalog(tmp_path / "catalog.db") as catalog:
        assert catalog.pending_urgent_signals() == ()


def test_run_counts_failed_updater(tmp_path: Path) -> None:
    config_path = str(_write_config(tmp_path, command=[sys.executable, "-c", "import sys; sys.exit(1)"]))
    runner.invoke(app, ["repos", "add", "alpha", "--path", config_path])

    result = runner.invoke(app, ["run", "--path", config_path, "--max-iterations", "1"])

    assert result.exit_code == 0
    assert "pulled=0 failed=1" in result.output


def test_run_unknown_repository_exits_2_before_pulling(tmp_path: Path) -> None:
    config_path = str(_write_config(tmp_path))
    runner.invoke(app, ["repos", "add", "alpha", "--path", config_path])

    result = runner.invoke(app, ["run", "alpha", "ghost", "--path", config_path, "--max-iterations", "1"])

    assert result.exit_code == 2
    assert "No repository exists with name 'ghost'." in result.output
    assert "Run finished" not in result.output


def test_run_unknown_exclusion_exits_2(tmp_path: Path) -> None:
    config_path = str(_write_config(tmp_path))
    runner.invoke(app, ["repos", "add", "alpha", "--path", config_path])

    result = runner.invoke(app, ["run", "--not", "ghost", "--path", config_path, "--max-iterations", "1"])

    assert result.exit_code == 2
    assert "ghost" in result.output


def test_run_missing_config_exits_2(tmp_path: Path) -> None:
    result = runner.invoke(app, ["run", "--path", str(tmp_path / "missing.toml"), "--max-iterations", "1"])
    assert result.exit_code == 2
    assert "Run failed" in result.output


def test_debug_run_writes_jsonl_events(tmp_path: Path) -> None:
    config_path = str(_write_config(tmp_path))
    runner.invoke(app, ["repos", "add", "alpha", "--path", config_path])

    result = runner.invoke(app, ["--debug", "run", "--path", config_path, "--max-iterations", "1"])

    assert result.exit_code == 0
    events_path = tmp_path / "logs" / "debug-events.jsonl"
    events = [json.loads(line) for line in events_path.read_text(encoding="utf-8").splitlines()]
    assert [event["event_type"] for event in events] == ["pull_attempt", "pull_iteration"]


def test_doctor_json_reports_missing_updater(tmp_path: Path) -> None:
    config_path = str(_write_config(tmp_path, command=[str(tmp_path / "no-such-updater")]))

    result = runner.invoke(app, ["doctor", "--path", config_path, "--json"])

    assert result.exit_code == 1
    payload = json.loads(result.output)
    assert payload["ok"] is False
    assert [section["name"] for section in payload["sections"]] == ["config", "catalog", "executor"]


def test_doctor_text_passes_with_resolvable_updater(tmp_path: Path) -> None:
    config_path = str(_write_config(tmp_path))

    result = runner.invoke(app, ["doctor", "--path", config_path])

    assert result.exit_code == 0
    assert "Status: ok" in result.output
    assert "[PASS] executor" in result.output

"""Typer CLI for repopull workflows."""

from __future__ import annotations

import json

import typer

from . import __version__
from .catalog.sqlite import SQLiteCatalog
from .config import (
    RuntimeConfig,
    config_to_dict,
    init_default_config,
    load_runtime_config,
    resolve_catalog_path,
    resolve_config_path,
)
from .diagnostics.doctor import run_doctor_preflight
from .diagnostics.events import JsonlEventLogger
from .diagnostics.redact import redact_value
from .errors import CatalogError, ConfigError, DiagnosticsError, SchedulerError
from .logging import configure_logging
from .models import RepositoryHandle
from .scheduler.pull import IterationResult, PullExitCode, determine_pull_exit_code, run_configured_pull

app = typer.Typer(help="Keep local repository working copies pulled.")

repos_app = typer.Typer(help="Repository catalog commands.")
config_app = typer.Typer(help="Config commands.")

app.add_typer(repos_app, name="repos")
app.add_typer(config_app, name="config")

_PATH_HELP = "Optional config TOML path (defaults to platform config dir)."


@app.command("run")
def run(
    ctx: typer.Context,
    repositories: list[str] | None = typer.Argument(
        None, help="Pull only these repositories instead of all."
    ),
    exclude: list[str] | None = typer.Option(
        None, "--not", help="Do not pull this repository (repeatable)."
    ),
    no_discovery: bool = typer.Option(
        False, "--no-discovery", help="Pull only, without discovering commits."
    ),
    path: str | None = typer.Option(None, "--path", help=_PATH_HELP),
    max_iterations: int = typer.Option(
        0, "--max-iterations", min=0, help="Stop after N passes (0 runs forever)."
    ),
) -> None:
    try:
        config = load_runtime_config(path)
    except ConfigError as exc:
        typer.secho(f"Run failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(int(PullExitCode.STARTUP_FAILED)) from exc

    debug_enabled = _resolve_debug(ctx) or config.app.debug
    configure_logging(debug_enabled)
    event_logger = _event_logger(path) if debug_enabled else None

    try:
        result = run_configured_pull(
            config,
            config_path=path,
            include=tuple(repositories or ()),
            exclude=tuple(exclude or ()),
            no_discovery=no_discovery,
            max_iterations=max_iterations,
            on_iteration=_echo_iteration if max_iterations else None,
            event_logger=event_logger,
        )
    except (CatalogError, SchedulerError) as exc:
        typer.secho(f"Run failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(int(PullExitCode.STARTUP_FAILED)) from exc

    exit_code = determine_pull_exit_code(result)
    typer.echo(
        f"Run finished: {result.iterations_completed} pass(es), "
        f"pulled={result.total_pulled} failed={result.total_failed} "
        f"exit_state={exit_code.name.lower()} exit_code={int(exit_code)}."
    )
    if exit_code is not PullExitCode.SUCCESS:
        raise typer.Exit(int(exit_code))


@repos_app.command("list")
def repos_list(
    path: str | None = typer.Option(None, "--path", help=_PATH_HELP),
    as_json: bool = typer.Option(False, "--json", help="Render repositories as JSON."),
) -> None:
    try:
        with _open_catalog(path) as catalog:
            repositories = catalog.list_repositories()
            pending = {signal.repository_id for signal in catalog.pending_urgent_signals()}
    except (ConfigError, CatalogError) as exc:
        typer.secho(f"Repos list failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(2) from exc

    if as_json:
        payload = [
            {**_handle_to_dict(handle), "update_requested": handle.repository_id in pending}
            for handle in repositories
        ]
        typer.echo(json.dumps(payload, indent=2, sort_keys=True))
        return

    if not repositories:
        typer.echo("No repositories found. Add one with `repopull repos add NAME`.")
        return
    for handle in repositories:
        frequency = (
            f"{handle.pull_frequency_seconds}s" if handle.pull_frequency_seconds is not None else "default"
        )
        state = "tracked" if handle.tracked else "untracked"
        flag = " update-requested" if handle.repository_id in pending else ""
        typer.echo(f"{handle.repository_id:>4} {handle.name} {state} frequency={frequency}{flag}")


@repos_app.command("add")
def repos_add(
    name: str,
    path: str | None = typer.Option(None, "--path", help=_PATH_HELP),
    frequency: int | None = typer.Option(
        None, "--frequency", min=1, help="Seconds to wait after a successful pull."
    ),
    untracked: bool = typer.Option(False, "--untracked", help="Register without scheduling pulls."),
) -> None:
    try:
        with _open_catalog(path) as catalog:
            handle = catalog.add_repository(
                name,
                tracked=not untracked,
                pull_frequency_seconds=frequency,
            )
    except (ConfigError, CatalogError) as exc:
        typer.secho(f"Repos add failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(2) from exc
    typer.echo(f"Added repository '{handle.name}' (id {handle.repository_id}).")


@repos_app.command("remove")
def repos_remove(
    name: str,
    path: str | None = typer.Option(None, "--path", help=_PATH_HELP),
) -> None:
    try:
        with _open_catalog(path) as catalog:
            catalog.remove_repository(name)
    except (ConfigError, CatalogError) as exc:
        typer.secho(f"Repos remove failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(2) from exc
    typer.echo(f"Removed repository '{name}'.")


@repos_app.command("track")
def repos_track(
    name: str,
    path: str | None = typer.Option(None, "--path", help=_PATH_HELP),
) -> None:
    _set_tracked(name, path, tracked=True)


@repos_app.command("untrack")
def repos_untrack(
    name: str,
    path: str | None = typer.Option(None, "--path", help=_PATH_HELP),
) -> None:
    _set_tracked(name, path, tracked=False)


@repos_app.command("frequency")
def repos_frequency(
    name: str,
    seconds: int | None = typer.Argument(None, min=1, help="Seconds to wait after a successful pull."),
    path: str | None = typer.Option(None, "--path", help=_PATH_HELP),
    clear: bool = typer.Option(False, "--clear", help="Fall back to the global minimum interval."),
) -> None:
    if (seconds is None) == (not clear):
        typer.secho("Repos frequency failed: pass SECONDS or --clear.", err=True, fg=typer.colors.RED)
        raise typer.Exit(2)
    try:
        with _open_catalog(path) as catalog:
            handle = catalog.set_pull_frequency(name, None if clear else seconds)
    except (ConfigError, CatalogError) as exc:
        typer.secho(f"Repos frequency failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(2) from exc
    if handle.pull_frequency_seconds is None:
        typer.echo(f"Repository '{name}' now uses the default pull frequency.")
    else:
        typer.echo(f"Repository '{name}' pull frequency set to {handle.pull_frequency_seconds}s.")


@repos_app.command("request-update")
def repos_request_update(
    name: str,
    path: str | None = typer.Option(None, "--path", help=_PATH_HELP),
) -> None:
    try:
        with _open_catalog(path) as catalog:
            catalog.request_update(name)
    except (ConfigError, CatalogError) as exc:
        typer.secho(f"Repos request-update failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(2) from exc
    typer.echo(f"Requested an urgent update for '{name}'.")


@config_app.command("init")
def config_init(
    path: str | None = typer.Option(None, "--path", help=_PATH_HELP),
    force: bool = typer.Option(False, "--force", help="Overwrite existing config file."),
) -> None:
    try:
        written_path = init_default_config(path, force=force)
    except ConfigError as exc:
        typer.secho(f"Config init failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(2) from exc

    typer.echo(f"Wrote default config to {written_path}")


@config_app.command("show")
def config_show(
    path: str | None = typer.Option(None, "--path", help=_PATH_HELP),
    as_json: bool = typer.Option(False, "--json", help="Render resolved config as JSON."),
) -> None:
    resolved_path = resolve_config_path(path)
    try:
        config = load_runtime_config(path)
    except ConfigError as exc:
        typer.secho(f"Config show failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(2) from exc

    payload = {
        "path": str(resolved_path),
        "catalog_path": str(resolve_catalog_path(config, path)),
        "config": config_to_dict(config),
    }
    if as_json:
        typer.echo(json.dumps(payload, indent=2, sort_keys=True))
        return

    typer.echo(f"Resolved config path: {payload['path']}")
    typer.echo(f"Catalog path: {payload['catalog_path']}")
    typer.echo(f"Minimum pull interval: {config.scheduler.min_sleep_seconds}s")
    typer.echo(f"Updater command: {' '.join(config.executor.command)}")


@app.command("doctor")
def doctor(
    path: str | None = typer.Option(None, "--path", help=_PATH_HELP),
    as_json: bool = typer.Option(False, "--json", help="Render doctor preflight report as JSON."),
) -> None:
    try:
        config = load_runtime_config(path)
        report = run_doctor_preflight(config, config_path=path)
    except (ConfigError, DiagnosticsError) as exc:
        typer.secho(f"Doctor failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(2) from exc

    sections = [
        {
            "name": section.name,
            "ok": section.ok,
            "summary": section.summary,
            "details": _redact_details(section.details),
        }
        for section in report.sections
    ]
    if as_json:
        typer.echo(json.dumps({"ok": report.ok, "sections": sections}, indent=2, sort_keys=True))
    else:
        typer.echo("Doctor preflight")
        typer.echo(f"Status: {'ok' if report.ok else 'fail'}")
        for section in sections:
            marker = "PASS" if section["ok"] else "FAIL"
            typer.echo(f"[{marker}] {section['name']}: {section['summary']}")
            for key, value in section["details"].items():
                if value:
                    typer.echo(f"  {key}: {value}")
    if not report.ok:
        raise typer.Exit(1)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", help="Show repopull version and exit."),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging and JSONL debug events."),
) -> None:
    ctx.obj = {"debug": debug}
    if version:
        typer.echo(__version__)
        raise typer.Exit()
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())


def _set_tracked(name: str, path: str | None, *, tracked: bool) -> None:
    action = "track" if tracked else "untrack"
    try:
        with _open_catalog(path) as catalog:
            catalog.set_tracked(name, tracked)
    except (ConfigError, CatalogError) as exc:
        typer.secho(f"Repos {action} failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(2) from exc
    typer.echo(f"Repository '{name}' is now {'tracked' if tracked else 'untracked'}.")


def _open_catalog(path: str | None) -> SQLiteCatalog:
    config: RuntimeConfig = load_runtime_config(path)
    return SQLiteCatalog(resolve_catalog_path(config, path))


def _echo_iteration(result: IterationResult) -> None:
    typer.echo(
        f"- pass={result.iteration} pulled={result.pulled} failed={result.failed} "
        f"skipped={result.skipped} next={result.sleep_until.isoformat()}"
    )


def _handle_to_dict(handle: RepositoryHandle) -> dict[str, object]:
    return {
        "repository_id": handle.repository_id,
        "name": handle.name,
        "tracked": handle.tracked,
        "pull_frequency_seconds": handle.pull_frequency_seconds,
    }


def _resolve_debug(ctx: typer.Context | None) -> bool:
    if ctx is None or not isinstance(ctx.obj, dict):
        return False
    return bool(ctx.obj.get("debug", False))


def _event_logger(config_path: str | None) -> JsonlEventLogger:
    logs_dir = resolve_config_path(config_path).parent / "logs"
    return JsonlEventLogger(logs_dir / "debug-events.jsonl")


def _redact_details(details: dict[str, str]) -> dict[str, str]:
    sanitized = redact_value(details)
    if not isinstance(sanitized, dict):
        return {}
    return {str(key): str(value) for key, value in sanitized.items()}

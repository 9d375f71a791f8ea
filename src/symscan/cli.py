from __future__ import annotations

import json
from pathlib import Path
from typing import Callable, Mapping, NoReturn, Optional

import structlog
import typer

from symscan.config import (
    FILE_PATH,
    JDTLS_HOME,
    REPO_PATH,
    TIMEOUT_SECONDS,
    ScanSettings,
    load_settings,
)
from symscan.exceptions import SymscanError
from symscan.locator import locate_installation
from symscan.log_config import configure_logging
from symscan.orchestrator import run_chunks, run_scan, run_search
from symscan.symbols import render_search_results, render_symbol_tree

app = typer.Typer(add_completion=False)
logger = structlog.get_logger(__name__)

CONFIG_ENVVAR = "SYMSCAN_CONFIG"

_CONFIG_OPTION = typer.Option(
    None, "--config", envvar=CONFIG_ENVVAR, help="TOML settings file (default: ./symscan.toml)."
)
_REPO_OPTION = typer.Option(None, "--repo", help="Repository root.")
_SERVER_HOME_OPTION = typer.Option(None, "--server-home", help="JDT LS installation root.")
_TIMEOUT_OPTION = typer.Option(None, "--timeout", help="Per-request timeout in seconds.")


def _context_runner(ctx: typer.Context, key: str, default: Callable) -> Callable:
    obj = ctx.obj
    if isinstance(obj, Mapping):
        candidate = obj.get(key)
        if callable(candidate):
            return candidate
    return default


def _fail(exc: SymscanError) -> NoReturn:
    logger.error("symscan.failed", error_type=type(exc).__name__, error=str(exc))
    typer.secho(str(exc), err=True, fg=typer.colors.RED)
    raise typer.Exit(code=1) from exc


def _settings(
    config: Optional[Path],
    repo: Optional[Path],
    server_home: Optional[Path],
    file: Optional[Path],
    timeout: Optional[float],
    *,
    require_file: bool = True,
) -> ScanSettings:
    overrides = {
        REPO_PATH: str(repo) if repo is not None else None,
        JDTLS_HOME: str(server_home) if server_home is not None else None,
        FILE_PATH: str(file) if file is not None else None,
        TIMEOUT_SECONDS: timeout,
    }
    return load_settings(config, overrides=overrides, require_file=require_file)


@app.callback()
def main(
    log_level: str = typer.Option("INFO", "--log-level", help="Log level for stderr events."),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit log events as JSON."),
) -> None:
    """Query a Java language server for the symbols of a repository."""
    configure_logging(log_level, json_logs=json_logs)


@app.command("symbols")
def symbols(
    ctx: typer.Context,
    config: Optional[Path] = _CONFIG_OPTION,
    repo: Optional[Path] = _REPO_OPTION,
    server_home: Optional[Path] = _SERVER_HOME_OPTION,
    file: Optional[Path] = typer.Option(None, "--file", help="File path relative to the repository."),
    timeout: Optional[float] = _TIMEOUT_OPTION,
) -> None:
    """Print the document symbol tree of the configured file."""
    try:
        settings = _settings(config, repo, server_home, file, timeout)
        result = _context_runner(ctx, "run_scan", run_scan)(settings)
    except SymscanError as exc:
        _fail(exc)
    logger.info(
        "symscan.done",
        uri=result.document.uri,
        roots=len(result.symbols),
        events=len(result.events),
    )
    typer.echo(f"=== Symbols in {settings.target_path} ===")
    for line in render_symbol_tree(result.symbols):
        typer.echo(line)


@app.command("chunks")
def chunks(
    ctx: typer.Context,
    config: Optional[Path] = _CONFIG_OPTION,
    repo: Optional[Path] = _REPO_OPTION,
    server_home: Optional[Path] = _SERVER_HOME_OPTION,
    timeout: Optional[float] = _TIMEOUT_OPTION,
) -> None:
    """Emit every method in the repository, with source and callers, as JSON."""
    try:
        settings = _settings(config, repo, server_home, None, timeout, require_file=False)
        result = _context_runner(ctx, "run_chunks", run_chunks)(settings)
    except SymscanError as exc:
        _fail(exc)
    logger.info("symscan.done", files=len(result.files), methods=len(result.chunks))
    payload = [chunk.to_dto().to_wire() for chunk in result.chunks]
    typer.echo(json.dumps(payload, indent=2))


@app.command("search")
def search(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="Symbol name or fragment to look up."),
    config: Optional[Path] = _CONFIG_OPTION,
    repo: Optional[Path] = _REPO_OPTION,
    server_home: Optional[Path] = _SERVER_HOME_OPTION,
    timeout: Optional[float] = _TIMEOUT_OPTION,
) -> None:
    """Search the workspace for symbols matching QUERY."""
    try:
        settings = _settings(config, repo, server_home, None, timeout, require_file=False)
        result = _context_runner(ctx, "run_search", run_search)(settings, query)
    except SymscanError as exc:
        _fail(exc)
    logger.info("symscan.done", query=query, matches=len(result.symbols))
    typer.echo("=== Search Results ===")
    for line in render_search_results(result.symbols):
        typer.echo(line)


@app.command("locate")
def locate(
    server_home: Path = typer.Option(..., "--server-home", help="JDT LS installation root."),
) -> None:
    """Resolve the launcher JAR and config directory without starting anything."""
    try:
        installation = locate_installation(server_home)
    except SymscanError as exc:
        _fail(exc)
    typer.echo(f"launcher: {installation.launcher_path}")
    typer.echo(f"config: {installation.config_dir}")
    typer.echo(f"platform: {installation.platform}")

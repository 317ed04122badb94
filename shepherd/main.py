"""
CLI entry point for shepherd.

Provides the command-line interface for managing the repository registry
and syncing every registered repository.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import NoReturn

import click
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from .config import RepositoryEntry
from .constants import (
    APP_NAME,
    CONFIG_ENV_VAR,
    CONFIG_FILE,
    LOG_BACKUP_COUNT,
    MAX_LOG_SIZE,
)
from .errors import ShepherdError
from .paths import resolve
from .registry import RegistryStore
from .syncer import RepoSyncer, print_report

console = Console()
err_console = Console(stderr=True)

logger = logging.getLogger(APP_NAME)


def setup_logging(verbose: bool, log_file: Path | None = None) -> None:
    """Configures the logging subsystem.

    Args:
        verbose (bool): Log debug messages to stderr instead of warnings only.
        log_file (Path | None): If given, also log everything at INFO and above
                                to this file, with rotation.
    """
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )
    logger.setLevel(logging.DEBUG)
    # Repeated invocations in one process (tests) must not stack handlers.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=MAX_LOG_SIZE,
            backupCount=LOG_BACKUP_COUNT,
        )
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def fail(message: str) -> NoReturn:
    """Print an error and exit with status 1."""
    err_console.print(f"[red]{escape(message)}[/red]")
    raise SystemExit(1)


def load_store(ctx: click.Context) -> RegistryStore:
    """Get the registry store for this invocation, loaded."""
    store: RegistryStore = ctx.obj
    try:
        store.load()
    except ShepherdError as e:
        fail(str(e))
    return store


@click.group()
@click.version_option(package_name="shepherd")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    envvar=CONFIG_ENV_VAR,
    default=CONFIG_FILE,
    show_default=True,
    help="Path to the registry file",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Also write a rotating log file at this path",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path, verbose: bool, log_file: Path | None):
    """Shepherd - Keep a registry of git repositories cloned and up to date."""
    setup_logging(verbose, log_file)
    ctx.obj = RegistryStore(config_path)


@cli.command()
@click.option(
    "--category",
    "-c",
    default=None,
    help="Folder under the source directory to place the repository in",
)
@click.argument("name_or_url")
@click.argument("url", required=False)
@click.pass_context
def add(ctx: click.Context, category: str | None, name_or_url: str, url: str | None):
    """Add a repository to the registry.

    With a single argument the name is derived from the URL.

    Examples:
        shepherd add shepherd git@github.com:me/shepherd.git
        shepherd add -c work git@github.com:org/service.git
    """
    store = load_store(ctx)

    try:
        if url is None:
            entry = RepositoryEntry.from_url(name_or_url, category=category)
        else:
            entry = RepositoryEntry(name=name_or_url, url=url, category=category)
    except (ValidationError, ValueError) as e:
        fail(f"Invalid repository: {e}")

    try:
        store.add(entry)
    except ShepherdError as e:
        fail(str(e))

    path = resolve(store.resolve_source_dir(), entry)
    console.print(f"[green]Added repository: {escape(entry.name)}[/green]")
    console.print(f"  URL: {escape(entry.url)}", highlight=False)
    if entry.category:
        console.print(f"  Category: {escape(entry.category)}")
    console.print(f"  Path: {escape(str(path))}", highlight=False)


@cli.command()
@click.argument("name")
@click.pass_context
def remove(ctx: click.Context, name: str):
    """Remove a repository from the registry (the working copy is kept)."""
    store = load_store(ctx)
    try:
        entry = store.remove(name)
    except ShepherdError as e:
        fail(str(e))

    path = resolve(store.resolve_source_dir(), entry)
    console.print(f"[green]Removed repository: {escape(name)}[/green]")
    console.print(f"  [dim]Working copy left at {escape(str(path))}[/dim]", highlight=False)


@cli.command(name="list")
@click.pass_context
def list_repositories(ctx: click.Context):
    """List all registered repositories."""
    store = load_store(ctx)
    entries = store.list()

    if not entries:
        console.print("[yellow]No repositories registered.[/yellow]")
        return

    source_dir = store.resolve_source_dir()
    console.print(f"\n[bold]Registered Repositories ({len(entries)}):[/bold]\n")
    for entry in entries:
        category = f" [cyan]({escape(entry.category)})[/cyan]" if entry.category else ""
        console.print(f"  • {escape(entry.name)}{category}", highlight=False)
        console.print(f"      URL: {escape(entry.url)}", highlight=False)
        console.print(f"      Path: {escape(str(resolve(source_dir, entry)))}", highlight=False)


@cli.command()
@click.option(
    "--jobs",
    "-j",
    type=click.IntRange(min=1),
    default=None,
    help="Repositories to sync in parallel (defaults to 'jobs' in the registry)",
)
@click.pass_context
def fetch(ctx: click.Context, jobs: int | None):
    """Clone missing repositories and fetch existing ones."""
    store = load_store(ctx)
    config = store.config

    if not config.repositories:
        console.print("[yellow]No repositories registered.[/yellow]")
        return

    console.print(
        f"\n[bold]Syncing {len(config.repositories)} repositories "
        f"into {escape(str(config.source_path))}...[/bold]\n",
        highlight=False,
    )
    syncer = RepoSyncer(config, max_workers=jobs, console=console)
    report = syncer.run()
    print_report(report, console)

    if report.has_failures:
        raise SystemExit(1)


@cli.command(name="dump-config")
@click.pass_context
def dump_config(ctx: click.Context):
    """Print the registry as it is stored."""
    store = load_store(ctx)
    click.echo(store.dump(), nl=False)


if __name__ == "__main__":
    cli()

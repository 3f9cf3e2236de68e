"""Lifecycle commands: status, install, update, predownload, verify, launch."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click
import structlog
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TaskProgressColumn,
    TextColumn,
)
from rich.table import Table

from channel_launcher.core.components import ComponentStager
from channel_launcher.core.config import AppConfig
from channel_launcher.core.errors import LifecycleError
from channel_launcher.core.execution import ProcessExecutor
from channel_launcher.core.manifest import ManifestFetcher
from channel_launcher.core.orchestrator import LifecycleOrchestrator
from channel_launcher.core.progress import (
    ActionFinished,
    BytesTransferred,
    FileProgress,
    PhaseChanged,
    ProgressStream,
)
from channel_launcher.core.store import KeyValueStore
from channel_launcher.core.transfer import HttpTransfer
from channel_launcher.core.utils import format_size

logger = structlog.get_logger()


def _get_context_objects(ctx: click.Context) -> tuple[AppConfig, Console, bool]:
    """Extract common context objects."""
    config: AppConfig = ctx.obj["config"]
    console: Console = ctx.obj["console"]
    verbose: bool = ctx.obj["verbose"]
    return config, console, verbose


def _notify(console: Console):
    def notifier(error: LifecycleError) -> None:
        console.print(f"[yellow]{error}[/yellow]")

    return notifier


def build_orchestrator(config: AppConfig, console: Console) -> LifecycleOrchestrator:
    """Create an orchestrator for the configured channel.

    Raises:
        click.ClickException: If no channel is configured
        ManifestFetchError: If the channel endpoints cannot be read
    """
    if config.channel is None:
        raise click.ClickException("No channel configured, add a 'channel' section to the config file")

    transfer = HttpTransfer(timeout=config.http_timeout)
    fetcher = ManifestFetcher(
        config.channel,
        timeout=config.http_timeout,
        max_retries=config.http_max_retries,
    )
    with fetcher:
        return LifecycleOrchestrator.from_channel(
            config.channel,
            store=KeyValueStore(config.store_path),
            transfer=transfer,
            executor=ProcessExecutor(),
            stager=ComponentStager(config.components_dir, transfer, config.components),
            fetcher=fetcher,
            notifier=_notify(console),
        )


def drive(stream: ProgressStream, console: Console, description: str) -> bool:
    """Consume an action stream, rendering progress.

    Returns:
        True if the action ran to completion
    """
    finished = False
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
        transient=True,
    ) as progress:
        task: TaskID = progress.add_task(description, total=None)
        for event in stream:
            if isinstance(event, PhaseChanged):
                progress.update(task, description=event.message or event.phase, completed=0, total=None)
            elif isinstance(event, BytesTransferred):
                progress.update(task, completed=event.done, total=event.total or None)
            elif isinstance(event, FileProgress):
                progress.update(task, completed=event.index, total=event.count)
            elif isinstance(event, ActionFinished):
                finished = True
    return finished


def _prepare(ctx: click.Context) -> tuple[LifecycleOrchestrator, AppConfig, Console]:
    config, console, _ = _get_context_objects(ctx)
    orchestrator = build_orchestrator(config, console)
    drive(orchestrator.init(), console, "Checking previous session")
    return orchestrator, config, console


def _fail(console: Console, action: str, error: Exception) -> None:
    logger.error("command_failed", action=action, error=str(error))
    console.print(f"[red]Error during {action}: {error}[/red]")
    sys.exit(1)


@click.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show installation state and available updates."""
    config, console, verbose = _get_context_objects(ctx)

    try:
        orchestrator = build_orchestrator(config, console)
    except LifecycleError as e:
        _fail(console, "status", e)
        return

    state = orchestrator.state
    info = {
        "channel": orchestrator.channel.id,
        "installed": state.installed,
        "install_dir": state.install_dir,
        "current_version": state.current_version,
        "latest_version": orchestrator.latest_version,
        "download_size": format_size(orchestrator.manifest.game.latest.size_bytes),
        "update_required": state.installed and orchestrator.update_required,
        "predownload_version": orchestrator.predownload_version,
        "predownload_available": orchestrator.show_predownload_prompt,
    }

    if config.output_format == "json":
        print(json.dumps(info, indent=2))
        return

    table = Table(title="Installation")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    for key, value in info.items():
        table.add_row(key.replace("_", " ").title(), str(value))
    console.print(table)

    if verbose and orchestrator.ui_content.url:
        console.print(f"News: {orchestrator.ui_content.url}")


@click.command()
@click.argument("directory", type=click.Path(file_okay=False, resolve_path=True, path_type=Path))
@click.pass_context
def install(ctx: click.Context, directory: Path) -> None:
    """Install the game into DIRECTORY or adopt an existing installation there."""
    try:
        orchestrator, _, console = _prepare(ctx)
        if drive(orchestrator.install(directory), console, "Installing"):
            console.print(
                f"[green]Installed {orchestrator.state.current_version} "
                f"at {orchestrator.state.install_dir}[/green]"
            )
    except LifecycleError as e:
        _fail(ctx.obj["console"], "install", e)


@click.command()
@click.pass_context
def update(ctx: click.Context) -> None:
    """Update the installed game to the latest version."""
    try:
        orchestrator, _, console = _prepare(ctx)
        if not orchestrator.update_required:
            console.print("[green]Game is up to date[/green]")
            return
        if drive(orchestrator.update(), console, "Updating"):
            console.print(f"[green]Updated to {orchestrator.state.current_version}[/green]")
    except LifecycleError as e:
        _fail(ctx.obj["console"], "update", e)


@click.command()
@click.pass_context
def predownload(ctx: click.Context) -> None:
    """Stage the upcoming version ahead of its release."""
    try:
        orchestrator, _, console = _prepare(ctx)
        if not orchestrator.show_predownload_prompt:
            console.print("No pre-download available")
            return
        version = orchestrator.predownload_version
        if drive(orchestrator.predownload(), console, "Pre-downloading"):
            console.print(f"[green]Pre-downloaded {version}[/green]")
    except LifecycleError as e:
        _fail(ctx.obj["console"], "predownload", e)


@click.command()
@click.pass_context
def verify(ctx: click.Context) -> None:
    """Verify and repair game files."""
    try:
        orchestrator, _, console = _prepare(ctx)
        if drive(orchestrator.check_integrity(), console, "Verifying"):
            console.print("[green]Game files verified[/green]")
        else:
            console.print("Game is not installed")
    except LifecycleError as e:
        _fail(ctx.obj["console"], "verify", e)


@click.command()
@click.pass_context
def launch(ctx: click.Context) -> None:
    """Launch the installed game."""
    try:
        orchestrator, config, console = _prepare(ctx)
        drive(orchestrator.launch(config.launch), console, "Launching")
    except LifecycleError as e:
        _fail(ctx.obj["console"], "launch", e)

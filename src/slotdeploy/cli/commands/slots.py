"""Inspecting and downloading deployment slots."""

import asyncio
from pathlib import Path
from typing import Dict, List, Optional

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn
from rich.table import Table

from ...config import SlotDeploySettings
from ...core.exceptions import ConfigurationError
from ...core.transport import FolderSyncMode, TransferProgress
from ...deployment import SlotLayout
from ..utils.remote import load_settings, open_transport

console = Console()
err_console = Console(stderr=True)

SLOT_NAMES = ("base", "staging", "backup")
MAX_LISTED_NAMES = 5


async def _collect_status(settings: SlotDeploySettings) -> Dict[str, Optional[List[str]]]:
    """Entry names per slot; ``None`` when the slot directory is absent."""
    layout = SlotLayout.from_settings(settings)
    status: Dict[str, Optional[List[str]]] = {}
    async with open_transport(settings) as transport:
        for name in SLOT_NAMES:
            path = layout.slot(name)
            if not await transport.directory_exists(path):
                status[name] = None
                continue
            entries = await transport.list(path)
            if name == "base":
                entries = layout.production_entries(entries)
            status[name] = [entry.name for entry in entries]
    return status


def status_command(remote_root: Optional[str]):
    """Show what each slot currently holds."""
    try:
        settings = load_settings(remote_root)
        layout = SlotLayout.from_settings(settings)
        with console.status("Listing slots..."):
            status = asyncio.run(_collect_status(settings))
    except ConfigurationError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    except Exception as e:
        err_console.print(f"[red]Error:[/red] Could not list slots: {e}")
        raise typer.Exit(1)

    table = Table(title=f"Slots on {settings.ftp.host or 'server'}")
    table.add_column("Slot", style="cyan", no_wrap=True)
    table.add_column("Path", style="magenta")
    table.add_column("Entries", justify="right")
    table.add_column("Contents", style="white")

    for name in SLOT_NAMES:
        names = status[name]
        if names is None:
            table.add_row(name, layout.slot(name), "-", "[dim]absent[/dim]")
            continue
        shown = ", ".join(names[:MAX_LISTED_NAMES])
        if len(names) > MAX_LISTED_NAMES:
            shown += f", … (+{len(names) - MAX_LISTED_NAMES})"
        table.add_row(name, layout.slot(name), str(len(names)), shown or "[dim]empty[/dim]")

    console.print(table)


async def _pull(
    settings: SlotDeploySettings, slot: str, destination: Path, mirror: bool, progress: Progress
) -> int:
    layout = SlotLayout.from_settings(settings)
    task_id = progress.add_task(f"Downloading {slot}", total=100)

    def on_progress(update: TransferProgress) -> None:
        progress.update(task_id, completed=update.percent, description=update.remote_path)

    async with open_transport(settings) as transport:
        count = await transport.download_directory(
            destination,
            layout.slot(slot),
            progress=on_progress,
            sync_mode=FolderSyncMode.MIRROR if mirror else FolderSyncMode.UPDATE,
            parallelism=settings.deployment.parallelism,
        )
    progress.update(task_id, completed=100, description=f"Downloaded {slot}")
    return count


def pull_command(destination: str, slot: str, mirror: bool, remote_root: Optional[str]):
    """Download a slot into a local directory."""
    if slot not in SLOT_NAMES:
        err_console.print(f"[red]Error:[/red] Unknown slot '{slot}', use one of {', '.join(SLOT_NAMES)}")
        raise typer.Exit(1)

    try:
        settings = load_settings(remote_root)
    except ConfigurationError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    target = Path(destination).expanduser()
    try:
        with Progress(
            TextColumn("{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
        ) as progress:
            count = asyncio.run(_pull(settings, slot, target, mirror, progress))
    except KeyboardInterrupt:
        err_console.print("[CANCELLED] Download cancelled by user.", markup=False)
        raise typer.Exit(2)
    except Exception as e:
        err_console.print(f"[red]Error:[/red] Download failed: {e}")
        raise typer.Exit(1)

    console.print(f"📦 {count} file(s) from [bold]{slot}[/bold] saved to {target}")

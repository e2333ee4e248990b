# src/saveport/cli.py
"""
SavePort Command Line Interface (CLI).

Milestone
---------
M4 | Workflows & Surfaces
Step 4.2 | Terminal front-end

This module exposes the save transfer workflows in the terminal using
`typer` and `rich`. It works on the local snapshot store configured by
``SAVEPORT_STORE_PATH`` (or ``--store``).

Usage
-----
    # Export every save record into an archive in ./backups
    $ saveport export --out backups

    # Import an archive and refresh the store afterwards
    $ saveport import backups/undertale_indexeddb_2024-05-01.json

    # List what the store holds
    $ saveport keys
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from saveport.core.errors import SavePortError
from saveport.core.settings import load_settings
from saveport.host.files import DirectoryDownloadTrigger, block_small_unrequested
from saveport.host.runtime import HostBridge
from saveport.host.status import StatusLevel
from saveport.pipelines.save_transfer import TransferResult, run_export, run_import_file
from saveport.store.session import StoreSession

load_dotenv()

app = typer.Typer(
    help="SavePort: export and import game save data as portable JSON archives.",
    rich_markup_mode="markdown",
)
console = Console()

_STYLES: dict[StatusLevel, str] = {
    StatusLevel.INFO: "cyan",
    StatusLevel.SUCCESS: "bold green",
    StatusLevel.WARNING: "bold yellow",
    StatusLevel.ERROR: "bold red",
}

StoreOption = Annotated[
    Path | None,
    typer.Option(
        "--store",
        "-s",
        help="Snapshot file of the save store (defaults to SAVEPORT_STORE_PATH).",
    ),
]


class ConsoleStatusReporter:
    """Print status reports to the Rich console."""

    def report(self, level: StatusLevel, message: str) -> None:
        style = _STYLES[level]
        console.print(f"[{style}][Save {level.value.capitalize()}][/{style}] {escape(message)}")


# --------------------------------------------------------------------------- #
# Helpers
# --------------------------------------------------------------------------- #


def _session(store: Path | None) -> StoreSession:
    if store is None:
        return StoreSession.get_instance()
    return StoreSession.from_settings(store_path=store)


def _console_bridge(session: StoreSession) -> HostBridge:
    """Bridge whose sync reloads the store and prints what it now holds."""
    bridge = HostBridge(session)

    async def reload_store(populate: bool) -> None:
        keys = await session.list_keys()
        console.print(f"[dim]Synced {len(keys)} key(s) from the store[/dim]")

    bridge.resolve(reload_store)
    return bridge


def _finish(result: TransferResult) -> None:
    if not result.ok:
        raise typer.Exit(code=1)


# --------------------------------------------------------------------------- #
# Commands
# --------------------------------------------------------------------------- #


@app.command("export")  # type: ignore[misc]
def export_saves(
    out: Annotated[
        Path | None,
        typer.Option(
            "--out",
            "-o",
            file_okay=False,
            dir_okay=True,
            help="Directory for the archive (defaults to SAVEPORT_DOWNLOAD_DIR).",
        ),
    ] = None,
    store: StoreOption = None,
) -> None:
    """
    Export every save record into a JSON archive.
    """
    cfg = load_settings()
    session = _session(store)
    trigger = DirectoryDownloadTrigger(
        out or cfg.download_dir,
        policy=block_small_unrequested(cfg.min_unrequested_download_bytes),
    )

    result = asyncio.run(run_export(session, trigger, ConsoleStatusReporter()))
    if result.path is not None:
        console.print(
            Panel(
                f"Saved to: [link=file://{result.path}]{result.path}[/link]",
                title="Archive",
                border_style="green",
            )
        )
    _finish(result)


@app.command("import")  # type: ignore[misc]
def import_saves(
    file: Annotated[
        Path,
        typer.Argument(
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
            help="Archive previously produced by `export`.",
        ),
    ],
    sync: Annotated[
        bool,
        typer.Option(
            "--sync/--no-sync",
            help="Reload the store after a successful import.",
        ),
    ] = True,
    store: StoreOption = None,
) -> None:
    """
    Import a JSON archive into the save store.
    """
    session = _session(store)
    bridge = _console_bridge(session) if sync else None

    result = asyncio.run(run_import_file(session, file, ConsoleStatusReporter(), bridge))
    report = result.report
    if report is not None and report.failed:
        table = Table(title="Failed records")
        table.add_column("Key", style="yellow")
        table.add_column("Reason")
        for key, reason in report.failed.items():
            table.add_row(key, reason)
        console.print(table)
    _finish(result)


@app.command("keys")  # type: ignore[misc]
def list_keys(store: StoreOption = None) -> None:
    """
    List every key held by the save store.
    """
    session = _session(store)
    try:
        keys = asyncio.run(session.list_keys())
    except SavePortError as e:
        console.print(f"[bold red]❌ Store Error:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    if not keys:
        console.print("[dim]The store is empty.[/dim]")
        return

    table = Table(title=f"{session.db_name} / {session.store_name}")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Key", style="cyan")
    for i, key in enumerate(keys, start=1):
        table.add_row(str(i), key)
    console.print(table)


if __name__ == "__main__":
    app()

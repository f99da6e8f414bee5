# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.17
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# image-sync/src/image_sync/cli.py

"""Command line interface for image-sync."""

import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.text import Text

from .disk import DiskFilesystem, GuestfsFilesystem, LocalFilesystem
from .errors import SyncError
from .summary import SyncSummary, format_update
from .sync import sync_tar
from .types import PathUpdate

app = typer.Typer(help="Sync tar archives onto disk image partitions")
console = Console()
err_console = Console(stderr=True)


def _setup_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


@app.command()
def disk(
    image: Path = typer.Argument(..., help="Path to disk image"),
    tar: Path = typer.Option(..., "--tar", "-t",
                             help="Tar archive to sync from ('-' for stdin)"),
    partition: str = typer.Option("sda2", "--partition", "-p",
                                  help="Partition device inside the image"),
    verbose: bool = typer.Option(False, "--verbose", "-v",
                                 help="Print paths of all synced files"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug output")
) -> None:
    """Sync a partition of a disk image from a tar archive."""
    _setup_logging(debug)
    try:
        if not image.exists():
            raise SyncError(f"Disk image does not exist: {image}")
        if debug:
            console.print(f"[blue]Syncing {tar} into {image} (/dev/{partition})[/blue]")

        with GuestfsFilesystem(image, "/dev/" + partition.removeprefix("/dev/")) as fs:
            summary = _sync(fs, tar, verbose)
        _print_summary(summary)

    except (SyncError, OSError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


@app.command("dir")
def dir_(
    root: Path = typer.Argument(..., help="Directory holding the mounted partition"),
    tar: Path = typer.Option(..., "--tar", "-t",
                             help="Tar archive to sync from ('-' for stdin)"),
    verbose: bool = typer.Option(False, "--verbose", "-v",
                                 help="Print paths of all synced files"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug output")
) -> None:
    """Sync a directory (e.g. a mounted partition) from a tar archive."""
    _setup_logging(debug)
    try:
        if debug:
            console.print(f"[blue]Syncing {tar} into {root}[/blue]")

        with LocalFilesystem(root) as fs:
            summary = _sync(fs, tar, verbose)
        _print_summary(summary)

    except (SyncError, OSError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


def _sync(fs: DiskFilesystem, tar: Path, verbose: bool) -> SyncSummary:
    """Run the sync, reporting every change or a single live status line."""
    if verbose:
        def show(upd: PathUpdate) -> None:
            console.print(format_update(upd), highlight=False, markup=False)

        return sync_tar(tar, fs, hooks=[show])

    counts = SyncSummary()
    with console.status("Syncing...") as status:
        def show_compact(upd: PathUpdate) -> None:
            counts(upd)
            status.update(Text(f"{format_update(upd)}\n{counts}"))

        return sync_tar(tar, fs, hooks=[show_compact])


def _print_summary(summary: SyncSummary) -> None:
    """Print a summary of applied changes."""
    table = Table(title="Sync Summary")
    table.add_column("Change", style="cyan")
    table.add_column("Paths", style="green", justify="right")

    table.add_row("Added", str(summary.added))
    table.add_row("Deleted", str(summary.deleted))
    table.add_row("Modified", str(summary.modified))
    table.add_row("Total", str(summary.total))

    console.print(table)
    console.print("Sync complete.")


def main() -> None:
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()

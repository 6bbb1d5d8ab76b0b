"""CLI entry-point for the koko → vichan migrator."""

from __future__ import annotations

import logging
import os
import sys

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import MigratorConfig
from .errors import MigrationError
from .migrator import Migrator, copy_files
from .progress import ProgressStore

console = Console()

CONFIRM_TEXT = (
    "This script will read from a Kokonotsuba database and migrate its posts into an *existing* vichan database.\n"
    "You should back up your vichan database before doing this!\n"
    'You must also copy "config.example.json" as "config.json" and edit it if you haven\'t already.\n'
    "You can skip this message and confirmation in the future by passing --confirm as an argument.\n"
    "To copy only media from boards, specify --files-only. This option does not support resuming.\n"
    "Are you sure you want to continue?"
)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, console=console)],
    )
    # Suppress noisy libraries
    logging.getLogger("pymysql").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)


def _print_stats(stats: dict) -> None:
    table = Table(title="Migration Summary", show_header=True, header_style="bold cyan")
    table.add_column("Metric", style="bold")
    table.add_column("Count", justify="right")
    for key, val in stats.items():
        table.add_row(key.capitalize(), str(val))
    console.print(table)


def _load_config(ctx: click.Context, **overrides: object) -> MigratorConfig:
    try:
        return MigratorConfig.from_file(
            ctx.obj["config_path"], progress_path=ctx.obj["progress_path"], **overrides
        )
    except MigrationError as exc:
        console.print(f"[red]✗[/red] {exc}")
        sys.exit(1)


@click.group()
@click.option("-c", "--config", "config_path", envvar="MIGRATOR_CONFIG", default="config.json",
              show_default=True, help="Path to the JSON config file")
@click.option("-p", "--progress-file", "progress_path", envvar="MIGRATOR_PROGRESS", default="progress.json",
              show_default=True, help="Where resume checkpoints are kept")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: str, progress_path: str, verbose: bool) -> None:
    """Kokonotsuba → vichan migrator.

    Reads posts from Kokonotsuba board databases and inserts them into an
    existing vichan database, copying images and thumbnails along the way.
    Interrupted runs resume from the progress file.
    """
    _setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["progress_path"] = progress_path


# ─── Commands ────────────────────────────────────────────────────


@cli.command()
@click.option("--confirm", is_flag=True, help="Skip the confirmation prompt")
@click.option("--files-only", is_flag=True, help="Only bulk-copy media files (no post migration, not resumable)")
@click.option("--no-media", is_flag=True, help="Do not copy images and thumbnails while migrating")
@click.pass_context
def migrate(ctx: click.Context, confirm: bool, files_only: bool, no_media: bool) -> None:
    """Migrate every mapped board.

    Example: koko2vichan migrate --confirm
    """
    if not confirm and not click.confirm(CONFIRM_TEXT, default=False):
        return

    if files_only:
        console.print("Option --files-only specified, files from boards will be copied in bulk, "
                      "and no post migration will be done")
        ctx.invoke(copy_files_cmd)
        return

    cfg = _load_config(ctx, copy_media=not no_media)
    migrator = Migrator(cfg)
    try:
        results = migrator.migrate_all()
    except MigrationError as exc:
        console.print(f"[red]✗[/red] {exc}")
        _print_stats(migrator.stats)
        sys.exit(1)

    for board, count in results.items():
        console.print(f"  /{board}/ → /{cfg.board_mappings[board]}/: {count} posts")
    console.print("[green]✓[/green] All board migrations are complete")
    _print_stats(migrator.stats)


@cli.command(name="copy-files")
@click.pass_context
def copy_files_cmd(ctx: click.Context) -> None:
    """Bulk-copy images and thumbnails of every mapped board.

    Existing files are skipped, so the command can be re-run safely.
    """
    cfg = _load_config(ctx)
    try:
        results = copy_files(cfg)
    except OSError as exc:
        console.print(f"[red]✗[/red] {exc}")
        sys.exit(1)
    for board, count in results.items():
        console.print(f"[green]✓[/green] Copied {count} files from /{board}/ to /{cfg.board_mappings[board]}/")


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the checkpoint of every mapped board."""
    cfg = _load_config(ctx)
    try:
        if os.path.exists(cfg.progress_path):
            store = ProgressStore.load(cfg.progress_path)
        else:
            store = ProgressStore(cfg.progress_path)
    except MigrationError as exc:
        console.print(f"[red]✗[/red] {exc}")
        sys.exit(1)

    table = Table(title="Migration Progress", show_header=True, header_style="bold cyan")
    table.add_column("Koko", style="bold")
    table.add_column("vichan")
    table.add_column("State")
    table.add_column("Last post no.", justify="right")
    table.add_column("Threads", justify="right")
    for koko_board, vichan_board in cfg.board_mappings.items():
        prog = store.get(koko_board)
        if prog is None:
            table.add_row(f"/{koko_board}/", f"/{vichan_board}/", "not started", "", "")
            continue
        table.add_row(
            f"/{koko_board}/",
            f"/{vichan_board}/",
            prog.state,
            str(prog.post_no),
            str(len(prog.threads)),
        )
    console.print(table)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()

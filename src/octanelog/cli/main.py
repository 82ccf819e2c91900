"""
Command Line Interface for OctaneLog.

Drives the narrative engine against the local season document: process a
drive, run recaps, build the yearly persona, refresh the season theme,
remaster an episode from its footage, and inspect or prune the season.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import click
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from octanelog import __version__
from octanelog.config import APIKeyManager, ConfigError, KeySource, load_config
from octanelog.core.models import VisionHints
from octanelog.core.store import dump_season
from octanelog.engine import Engine, build_engine
from octanelog.narrative.reconciliation import RegenerationError
from octanelog.utils.logging import setup_logging

logger = logging.getLogger(__name__)

console = Console()


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def print_header(text: str) -> None:
    """Print a styled header."""
    console.print()
    console.print(Panel(text, style="bold blue", expand=False))
    console.print()


def print_success(text: str) -> None:
    console.print(f"[bold green]✓[/bold green] {text}")


def print_warning(text: str) -> None:
    console.print(f"[bold yellow]⚠[/bold yellow] {text}")


def print_error(text: str) -> None:
    console.print(f"[bold red]✗[/bold red] {text}")


def print_narrative(title: str, text: str) -> None:
    """Print a narrative in a panel."""
    console.print(Panel(text, title=title, border_style="magenta"))


def get_engine(ctx: click.Context) -> Engine:
    """Build the engine lazily so commands like set-key never touch the store."""
    if "engine" not in ctx.obj:
        config = ctx.obj["config"]
        config.paths.ensure_dirs_exist()
        ctx.obj["engine"] = build_engine(config)
    return ctx.obj["engine"]


# =============================================================================
# CLI
# =============================================================================


@click.group()
@click.version_option(__version__, prog_name="octanelog")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--debug", is_flag=True, help="Enable debug mode")
@click.option("--config", "config_path", type=click.Path(), help="Custom config file")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, debug: bool, config_path: Optional[str]) -> None:
    """OctaneLog - your drives, told as a season-long story."""
    ctx.ensure_object(dict)
    config = load_config(Path(config_path) if config_path else None)
    ctx.obj["config"] = config

    level = "DEBUG" if debug or config.debug else "INFO" if verbose or config.verbose else "WARNING"
    setup_logging(level=level)


@cli.command()
@click.argument("events", nargs=-1)
@click.option("--clip", "clips", multiple=True, type=click.Path(exists=True, dir_okay=False), help="Clip recorded during the drive (repeatable)")
@click.option("--folder", "folder_id", help="Media folder id; its clips are used when no --clip is given")
@click.option("--vision", "vision_file", type=click.Path(exists=True, dir_okay=False), help="JSON file with precomputed vision hints")
@click.pass_context
def process(
    ctx: click.Context,
    events: tuple,
    clips: tuple,
    folder_id: Optional[str],
    vision_file: Optional[str],
) -> None:
    """Narrate a completed drive from its EVENTS."""
    engine = get_engine(ctx)

    clip_paths = [Path(c) for c in clips]
    if folder_id and not clip_paths:
        folder = engine.library.resolve(folder_id)
        if folder is None:
            print_error(f"Unknown media folder: {folder_id}")
            sys.exit(1)
        clip_paths = engine.library.list_clips(folder)

    vision_hints = None
    if vision_file:
        try:
            vision_hints = VisionHints.model_validate_json(Path(vision_file).read_text(encoding="utf-8"))
        except ValidationError as e:
            print_error(f"Invalid vision hints: {e.error_count()} error(s)")
            sys.exit(1)

    with console.status("Writing the episode..."):
        result = engine.processor.run_drive(
            list(events),
            media_clips=clip_paths,
            drive_folder=folder_id,
            vision_hints=vision_hints,
        )

    print_narrative(result.title, result.narrative)


@cli.command()
@click.pass_context
def recaps(ctx: click.Context) -> None:
    """Generate any weekly, monthly or yearly recap that is due."""
    engine = get_engine(ctx)
    before = len(engine.store.load().recaps)
    season = engine.scheduler.check_and_generate_recaps()

    new_recaps = season.recaps[before:]
    if not new_recaps:
        console.print("No new recaps.")
        return
    for recap in new_recaps:
        print_narrative(f"{recap.period_type.value} Recap", recap.summary)


@cli.command()
@click.pass_context
def soul(ctx: click.Context) -> None:
    """Build this year's OctaneSoul persona."""
    engine = get_engine(ctx)
    report = engine.persona.generate_and_save_octane_soul()
    if report is None:
        print_warning("No OctaneSoul generated (no drives this year, or one already exists).")
        return
    print_narrative(
        f"OctaneSoul {report.year}: {report.soul_title}",
        f"{report.soul_description}\n\nDrives: {report.total_drives}"
        f"\nTop tags: {', '.join(report.top_tags) or '-'}",
    )


@cli.command()
@click.pass_context
def theme(ctx: click.Context) -> None:
    """Refresh the season theme, title and saga from recent episodes."""
    engine = get_engine(ctx)
    if not engine.themes.update_season_theme():
        print_warning("Season theme unchanged.")
        return
    season = engine.store.load()
    print_success(f"{season.title} ({season.theme})")
    if season.saga_narrative:
        print_narrative("Saga", season.saga_narrative)


@cli.command()
@click.argument("episode_id")
@click.option("--folder", "manual_folder", type=click.Path(exists=True, file_okay=False), help="Use this folder's clips")
@click.pass_context
def regenerate(ctx: click.Context, episode_id: str, manual_folder: Optional[str]) -> None:
    """Remaster EPISODE_ID from its footage."""
    engine = get_engine(ctx)
    try:
        with console.status("Remastering..."):
            narrative = engine.regenerator.regenerate_narrative(
                episode_id, Path(manual_folder) if manual_folder else None
            )
    except RegenerationError as e:
        print_error(str(e))
        sys.exit(1)
    print_narrative("Remastered", narrative)


@cli.command()
@click.argument("episode_ids", nargs=-1, required=True)
@click.pass_context
def delete(ctx: click.Context, episode_ids: tuple) -> None:
    """Delete one or more episodes."""
    engine = get_engine(ctx)
    if engine.store.delete_episodes(set(episode_ids)):
        print_success("Deleted.")
    else:
        print_warning("No matching episodes.")


@cli.command()
@click.option("--json", "output_json", is_flag=True, help="Output the raw season document")
@click.pass_context
def show(ctx: click.Context, output_json: bool) -> None:
    """Show the season and its episodes."""
    engine = get_engine(ctx)
    season = engine.store.load()

    if output_json:
        click.echo(dump_season(season))
        return

    print_header(f"{season.title} - {season.theme}")
    table = Table(show_header=True, header_style="bold")
    table.add_column("Id", style="dim", overflow="fold")
    table.add_column("Date")
    table.add_column("Title", no_wrap=True)
    table.add_column("Tags")
    for episode in season.episodes:
        title = f"{episode.title} [yellow](processing)[/yellow]" if episode.is_processing else episode.title
        table.add_row(
            episode.id,
            episode.date.strftime("%Y-%m-%d %H:%M"),
            title,
            ", ".join(episode.tags),
        )
    console.print(table)
    console.print(
        f"{len(season.episodes)} episode(s), {len(season.recaps)} recap(s), "
        f"{len(season.octane_souls)} OctaneSoul report(s)"
    )


@cli.command("set-key")
@click.option("--backend", type=click.Choice(["keyring", "file"]), default="keyring", help="Where to store the key")
@click.pass_context
def set_key(ctx: click.Context, backend: str) -> None:
    """Store the Gemini API key securely."""
    api_key = click.prompt("Enter your Gemini API key", hide_input=True)
    destination = KeySource.KEYRING if backend == "keyring" else KeySource.ENCRYPTED_FILE
    try:
        APIKeyManager(paths_config=ctx.obj["config"].paths).store_key(api_key, destination)
    except ConfigError as e:
        print_error(str(e))
        sys.exit(1)
    print_success(f"API key stored in {destination.value}")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()

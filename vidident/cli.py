"""Command-line entry point: identify the content of one disc directory."""

import argparse
import sys
from pathlib import Path

from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from vidident.config import Settings
from vidident.core.errors import ConfigurationError, VideoIdentifierError, error_context
from vidident.core.logging import setup_logging
from vidident.database import create_title_engine
from vidident.models import DiskRecord, Terminal
from vidident.services.pipeline import IdentificationPipeline
from vidident.services.reasoning import ReasoningClient
from vidident.services.title_store import TitleStore

console = Console()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="video-identifier",
        description="Identify movie/TV content in a ripped disc directory from its subtitles",
    )
    parser.add_argument(
        "disc_dir",
        type=Path,
        metavar="DISC_DIR",
        help="Directory holding the disc's .mkv files and extracted .srt subtitles",
    )
    parser.add_argument(
        "--restart",
        action="store_true",
        help="Discard identification.json and marker files, then start from step 1",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging on the console",
    )
    return parser


def print_result(disk: DiskRecord) -> None:
    """Print the identification of a disc as rich tables."""
    status = disk.status
    if status.terminal == Terminal.UNKNOWN:
        console.print(f"[yellow]UNKNOWN:[/yellow] {disk.unresolved_reason or status.error}")

    best = disk.best_match
    if best is not None:
        table = Table(
            title=f"Best Match - {disk.name}", show_header=True, header_style="bold magenta"
        )
        table.add_column("Field", style="cyan")
        table.add_column("Value")
        table.add_row("Content type", disk.content_type.value)
        table.add_row("IMDB ID", best.external_id)
        table.add_row("Title", f"{best.title} ({best.year or '?'})")
        table.add_row("Kind", best.content_kind)
        table.add_row("Confidence", f"{best.confidence.value} ({best.score:.0f})")
        table.add_row("Reasoning", best.reasoning)
        console.print(table)

    matched = [v for v in disk.videos if v.matches or v.is_play_all]
    if matched:
        table = Table(title="Videos", show_header=True, header_style="bold magenta")
        table.add_column("File", style="cyan")
        table.add_column("Duration", justify="right")
        table.add_column("Match")
        table.add_column("Confidence", justify="right")
        for video in disk.videos:
            if video.is_play_all:
                table.add_row(video.file_name, f"{video.duration_minutes} min", "play-all", "")
                continue
            for match in video.matches:
                name = video.file_name + (f" #{match.segment}" if match.segment else "")
                label = match.episode_code or match.title
                if match.episode_title:
                    label += f" - {match.episode_title}"
                table.add_row(
                    name, f"{video.duration_minutes} min", label, match.confidence.value
                )
        console.print(table)


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        return 0 if e.code == 0 else 1

    disc_dir: Path = args.disc_dir.expanduser().resolve()
    if not disc_dir.is_dir():
        console.print(f"[red]Error:[/red] not a directory: {disc_dir}")
        return 1

    try:
        with error_context(
            error_types=(ValidationError,),
            default_message="Invalid configuration",
            wrap_as=ConfigurationError,
        ):
            settings = Settings(debug=True) if args.debug else Settings()
        setup_logging(settings.log_dir, settings.debug)

        engine = create_title_engine(settings.resolved_database_url())
        pipeline = IdentificationPipeline(
            disc_dir, settings, TitleStore(engine), ReasoningClient(settings)
        )
        disk = pipeline.run(restart=args.restart)
    except VideoIdentifierError as e:
        console.print(f"[red]Error:[/red] {e}")
        return 1

    print_result(disk)
    return 0


if __name__ == "__main__":
    sys.exit(main())

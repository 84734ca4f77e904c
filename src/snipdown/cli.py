"""Command-line interface for snipdown."""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Any, Optional

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn

from . import __version__
from .logging_config import setup_logging
from .models.config import SnipdownConfig
from .models.events import ClipEvent, ClipStats, EventType
from .orchestration.batch import BatchItem, parse_url_list
from .orchestration.tabs import Tab
from .runtime import Snipdown


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI."""
    parser = argparse.ArgumentParser(
        prog="snipdown",
        description="Clip web pages to Markdown or Org files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Save an article as Markdown in ./clips
  snipdown https://example.com/article

  # Org output with images, into a notes folder
  snipdown https://example.com/article --format org --download-images -o ~/notes

  # Only the part of the page matching a selector, to the clipboard
  snipdown https://example.com/article --selection "article .content" --copy

  # Convert a list of links, one per line
  snipdown --urls-file reading-list.md
        """,
    )

    parser.add_argument(
        "urls",
        nargs="*",
        metavar="URL",
        help="Pages to clip",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "--urls-file",
        type=Path,
        metavar="FILE",
        help="File with one URL or [title](url) link per line",
    )

    # Conversion
    conversion_group = parser.add_argument_group("conversion")
    conversion_group.add_argument(
        "--format",
        "-f",
        choices=["markdown", "org"],
        default=None,
        help="Output syntax (default: markdown)",
    )
    conversion_group.add_argument(
        "--include-template",
        action="store_true",
        help="Wrap output in the front/back matter or Org preamble",
    )
    conversion_group.add_argument(
        "--download-images",
        action="store_true",
        help="Download images next to the document",
    )
    conversion_group.add_argument(
        "--selection",
        type=str,
        metavar="CSS",
        help="Clip only the elements matching this selector",
    )

    # Output
    output_group = parser.add_argument_group("output")
    output_group.add_argument(
        "--output-dir",
        "-o",
        type=Path,
        default=None,
        help="Directory that receives clips (default: ./clips)",
    )
    output_group.add_argument(
        "--copy",
        action="store_true",
        help="Copy the result to the clipboard instead of saving it",
    )
    output_group.add_argument(
        "--stdout",
        action="store_true",
        help="Print the result instead of saving it",
    )

    # Configuration
    config_group = parser.add_argument_group("configuration")
    config_group.add_argument(
        "--config",
        type=Path,
        metavar="FILE",
        help="YAML configuration file",
    )
    config_group.add_argument(
        "--settings",
        type=Path,
        metavar="FILE",
        help="YAML file with saved conversion options",
    )
    config_group.add_argument(
        "--topology",
        choices=["auto", "inline", "worker"],
        default=None,
        help="Where conversion runs (default: auto)",
    )

    # Logging
    log_group = parser.add_argument_group("logging")
    log_group.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging verbosity (default: WARNING)",
    )
    log_group.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write log records to this file",
    )
    log_group.add_argument(
        "--quiet",
        "-q",
        action="store_true",
        help="Suppress progress output",
    )

    return parser


def build_config(args: argparse.Namespace) -> SnipdownConfig:
    """
    Layer command-line flags over the configuration file.

    Raises:
        OSError: If the configuration file cannot be read
        ValueError: If the resulting configuration is invalid
    """
    config = SnipdownConfig.from_yaml_file(args.config) if args.config else SnipdownConfig()
    data: dict[str, Any] = config.model_dump(mode="json", exclude_none=True)
    options = data.setdefault("options", {})

    if args.format:
        options["output_format"] = args.format
    if args.include_template:
        options["include_template"] = True
    if args.download_images:
        options["download_images"] = True
    if args.selection:
        data["selection_selector"] = args.selection
    if args.output_dir:
        data.setdefault("output", {})["directory"] = str(args.output_dir)
    if args.settings:
        data["settings_file"] = str(args.settings)
    if args.topology:
        data["topology"] = args.topology
    if args.log_level:
        data["log_level"] = args.log_level
    elif args.quiet:
        data["log_level"] = "ERROR"
    if args.log_file:
        data["log_file"] = str(args.log_file)

    return SnipdownConfig.model_validate(data)


def collect_items(args: argparse.Namespace) -> list[BatchItem]:
    """URLs from the command line followed by those in ``--urls-file``."""
    lines = list(args.urls)
    if args.urls_file:
        lines.append(args.urls_file.read_text(encoding="utf-8"))
    return parse_url_list("\n".join(lines))


def print_stats(console: Console, stats: ClipStats) -> None:
    console.print()
    console.print("[bold]Results:[/bold]")
    console.print(f"  Pages clipped: {stats.items_converted}/{stats.items_total}")
    console.print(f"  Pages failed: {stats.items_failed}")
    console.print(f"  Duration: {stats.duration_seconds:.1f}s")
    for url, error in stats.failures:
        console.print(f"  [red]{url}[/red]: {error}")


def run_clipper(args: argparse.Namespace) -> int:
    """Run the clipper with given arguments."""
    # Documents may go to stdout; everything else goes to stderr
    console = Console(stderr=True)

    try:
        config = build_config(args)
        items = collect_items(args)
    except Exception as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        return 1

    if not items:
        console.print("[red]Error:[/red] Please provide at least one valid URL")
        return 1

    setup_logging(config.log_level, str(config.log_file) if config.log_file else None)
    use_selection = bool(config.selection_selector)

    async def run() -> int:
        if not args.quiet:
            console.print(f"[bold blue]snipdown[/bold blue] v{__version__}")
            console.print(f"Format: {config.options.output_format.value}")
            console.print(f"Pages: {len(items)}")
            console.print()

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
            disable=args.quiet,
        ) as progress:
            task = progress.add_task("Starting...", total=None)

            def on_event(event: ClipEvent) -> None:
                if event.type == EventType.STATE_CHANGED and event.state is not None:
                    progress.update(task, description=f"[cyan]{event.state.value.replace('_', ' ')}: {event.url}")
                elif event.type == EventType.BATCH_ITEM_FAILED:
                    console.print(f"[red]Failed:[/red] {event.url} - {event.error}")
                elif event.type == EventType.DELIVERY_FALLBACK and not args.quiet:
                    console.print(f"[yellow]Falling back from {event.message}:[/yellow] {event.error}")
                elif event.type == EventType.IMAGE_FAILED and not args.quiet:
                    console.print(f"[yellow]Image skipped:[/yellow] {event.url} - {event.error}")
                elif event.type == EventType.DOWNLOAD_COMPLETED:
                    progress.update(task, description=f"[green]Saved {event.filename}")
                elif event.type == EventType.DOWNLOAD_INTERRUPTED:
                    console.print(f"[red]Download interrupted:[/red] {event.filename} - {event.error}")

            try:
                async with Snipdown(config, emit=on_event) as app:
                    coordinator = app.coordinator

                    async def clip_tab(tab: Tab) -> None:
                        if args.copy:
                            await coordinator.copy_tab(tab.id, use_selection)
                        elif args.stdout:
                            result = await coordinator.clip(tab.id, use_selection)
                            sys.stdout.write(result.text + "\n")
                        else:
                            await coordinator.download_tab(tab.id, use_selection)

                    stats = await coordinator.batch_convert(items, clip_tab)
            except Exception as e:
                console.print(f"[red]Error:[/red] {e}")
                return 1

        if not args.quiet:
            print_stats(console, stats)
        return 0 if stats.items_failed == 0 else 1

    return asyncio.run(run())


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)
    return run_clipper(args)


if __name__ == "__main__":
    sys.exit(main())

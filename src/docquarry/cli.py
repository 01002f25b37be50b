"""Command-line interface for docquarry."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import click
import structlog
from rich.console import Console
from rich.table import Table

from docquarry import __version__
from docquarry.config import Config, find_config_file
from docquarry.extractor import ExtractionResult, ExtractionRouter, ExtractionStatus, expected_content_type
from docquarry.observability import MetricsManager, configure_logging

console = Console()
err_console = Console(stderr=True)
logger = structlog.get_logger(__name__)

EXIT_FAILED = 1
EXIT_PARTIAL = 2


def load_config(config_path: Optional[Path]) -> Config:
    path = config_path or find_config_file()
    if path is not None:
        return Config.from_yaml(path)
    return Config()


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "-c", type=click.Path(exists=True, dir_okay=False), help="Configuration file path")
@click.option(
    "--log-level",
    default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Logging level",
)
@click.pass_context
def cli(ctx: click.Context, config: Optional[str], log_level: str) -> None:
    """docquarry - Multi-format document text extraction."""
    ctx.ensure_object(dict)
    settings = load_config(Path(config) if config else None)
    configure_logging(settings.monitoring.model_copy(update={"log_level": log_level}))
    ctx.obj["settings"] = settings


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--content-type", "-t", help="Declared content type (default: derived from the file extension)")
@click.option("--validate", is_flag=True, help="Cross-check file header, extension and content type first")
@click.option("--json", "as_json", is_flag=True, help="Print the full result as JSON")
@click.pass_context
def extract(ctx: click.Context, path: Path, content_type: Optional[str], validate: bool, as_json: bool) -> None:
    """Extract normalized text from a document."""
    settings: Config = ctx.obj["settings"]
    declared = content_type or expected_content_type(path.name)
    if not declared:
        err_console.print(f"[red]Cannot infer a content type for {path.name}; pass --content-type[/red]")
        sys.exit(EXIT_FAILED)

    metrics = MetricsManager(settings.monitoring)
    metrics.start()

    async def run_extraction() -> ExtractionResult:
        async with ExtractionRouter(settings.extraction) as router:
            data = path.read_bytes()
            if validate:
                return await router.extract_with_validation(data, declared, path.name)
            return await router.extract(data, declared, filename=path.name)

    result = asyncio.run(run_extraction())
    metrics.update_system_metrics()

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    else:
        if result.usable_text:
            click.echo(result.usable_text)
        if result.error is not None:
            style = "yellow" if result.partial else "red"
            err_console.print(f"[{style}]{result.error.user_message}[/{style}]")
            logger.debug("extraction_error_details", details=result.error.technical_details)

    if result.status is ExtractionStatus.FAILED:
        sys.exit(EXIT_FAILED)
    if result.status is ExtractionStatus.PARTIAL:
        sys.exit(EXIT_PARTIAL)


@cli.command()
@click.pass_context
def formats(ctx: click.Context) -> None:
    """List supported document formats."""
    settings: Config = ctx.obj["settings"]
    router = ExtractionRouter(settings.extraction)
    try:
        table = Table(title="Supported Formats")
        table.add_column("Format", style="cyan")
        table.add_column("Content types", style="magenta")
        table.add_column("Extensions", style="green")

        by_name: dict[str, list[str]] = {}
        for content_type in router.supported_content_types():
            info = router.get_format_info(content_type)
            if info is not None:
                by_name.setdefault(info.name, []).append(content_type)

        for name, content_types in by_name.items():
            info = router.get_format_info(content_types[0])
            extensions = ", ".join(info.extensions) if info is not None else ""
            table.add_row(name, "\n".join(content_types), extensions)

        console.print(table)
    finally:
        router.close()


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()

"""Art Import CLI using Typer."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Optional

import typer
from dotenv import load_dotenv
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from art_import.core.enums import PluginKind
from art_import.core.errors import ArtImportError, ConfigurationError
from art_import.core.schema import CandidateRecord, CatalogEntry
from art_import.ingestion.config import AppConfig, SimilarityConfig, load_config
from art_import.ingestion.crawler import HttpClient, RateLimiter
from art_import.ingestion.pipeline import ImportOrchestrator, PipelineResult, ProcessingOptions
from art_import.ingestion.plugins import PluginRegistry, create_default_registry
from art_import.ingestion.scraper import JsonFeedScraper, ScraperOptions
from art_import.ingestion.similarity import SimilarityEngine
from art_import.logging_config import configure_logging

# Load .env file from current directory or project root
_env_paths = [
    Path.cwd() / ".env",
    Path(__file__).parent.parent.parent / ".env",
]
for _env_path in _env_paths:
    if _env_path.exists():
        load_dotenv(_env_path)
        break

console = Console()
app = typer.Typer(
    name="art-import",
    help="Art Import - mass import of public-art records into the registry",
    add_completion=False,
)
plugins_app = typer.Typer(help="Plugin registry commands")
app.add_typer(plugins_app, name="plugins")


def _load_app_config(config_path: Optional[Path], preset: Optional[str]) -> AppConfig:
    """Load configuration, exiting with a readable message on failure."""
    try:
        config = load_config(config_path)
    except (FileNotFoundError, ConfigurationError) as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if preset == "dev":
        config.similarity = SimilarityConfig.dev().with_env_overrides()
    elif preset == "prod":
        config.similarity = SimilarityConfig.prod().with_env_overrides()
    elif preset is not None:
        rprint(f"[red]Error:[/red] Unknown preset '{preset}' (use 'dev' or 'prod')")
        raise typer.Exit(1)
    return config


def _read_json(path: Path) -> Any:
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        rprint(f"[red]Error:[/red] Could not read {path}: {e}")
        raise typer.Exit(1)


def _load_catalog(path: Optional[Path]) -> list[CatalogEntry]:
    """Existing catalog entries from a GeoJSON FeatureCollection."""
    if path is None:
        return []
    data = _read_json(path)
    features = data.get("features", []) if isinstance(data, dict) else data
    entries = []
    for feature in features:
        try:
            entries.append(CatalogEntry.from_candidate(CandidateRecord.from_feature(feature)))
        except ValueError as e:
            rprint(f"[yellow]Warning:[/yellow] Skipping catalog entry: {e}")
    return entries


def _load_artist_names(path: Optional[Path]) -> list[str]:
    """Known artist names from an artists file (wrapped or flat)."""
    if path is None:
        return []
    data = _read_json(path)
    artists = data.get("artists", []) if isinstance(data, dict) else data
    return [a["name"] for a in artists if isinstance(a, dict) and isinstance(a.get("name"), str)]


def _display_result(result: PipelineResult) -> None:
    summary = result.report.summary

    table = Table(title="Import Summary")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Records mapped", str(result.imported_count))
    table.add_row("Successful", f"[green]{summary.successful}[/green]")
    table.add_row("Failed", f"[red]{summary.failed}[/red]" if summary.failed else "0")
    table.add_row("Skipped (duplicates)", str(summary.skipped))
    table.add_row("Merged", str(summary.other))
    table.add_row("Duplicates", str(summary.duplicate_records))
    table.add_row("Success rate", f"{summary.success_rate:.1f}%")
    table.add_row("Duration", f"{summary.processing_time / 1000:.2f}s")
    console.print(table)

    if result.artists_to_create:
        rprint(f"\n[bold]Artists to create:[/bold] {len(result.artists_to_create)}")
        for artist in result.artists_to_create:
            rprint(f"  • {artist.name}")

    if result.report_path:
        rprint(f"\nReport saved to: [bold]{result.report_path}[/bold]")


@app.command()
def run(
    importer: str = typer.Option(..., "--importer", "-i", help="Importer plugin name"),
    exporter: str = typer.Option("console", "--exporter", "-e", help="Exporter plugin name"),
    input_file: Path = typer.Option(..., "--input", "-f", help="Input data file (JSON)"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output path for file exporters"),
    catalog: Optional[Path] = typer.Option(None, "--catalog", help="Existing catalog (GeoJSON) to deduplicate against"),
    artists: Optional[Path] = typer.Option(None, "--artists", help="Known artists file"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML configuration file"),
    preset: Optional[str] = typer.Option(None, "--preset", help="Similarity preset: dev or prod"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Route records without exporting"),
    offset: int = typer.Option(0, "--offset", help="Skip the first N records"),
    limit: Optional[int] = typer.Option(None, "--limit", "-l", help="Process at most N records"),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", "-b", help="Records per batch (1-10)"),
    report: bool = typer.Option(True, "--report/--no-report", help="Track and save a processing report"),
    report_path: Optional[str] = typer.Option(None, "--report-path", help="Where to write the report"),
    log_level: str = typer.Option("INFO", "--log-level", help="Console log level"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Write full debug logs to this file"),
) -> None:
    """
    Import a data file through an importer and exporter.

    Examples:
        art-import run -i geojson -f output/surrey-artworks.geojson --dry-run
        art-import run -i json-records -e json -f data.json -o out/artworks.geojson
    """
    configure_logging(log_level, log_file)
    config = _load_app_config(config_path, preset)
    if batch_size is not None:
        config.import_config.batch_size = batch_size

    exporter_config: dict[str, Any] = {}
    if output is not None:
        exporter_config["output_path"] = str(output)

    options = ProcessingOptions(
        importer=importer,
        exporter=exporter,
        input_file=str(input_file),
        exporter_config=exporter_config,
        catalog=_load_catalog(catalog),
        known_artists=_load_artist_names(artists),
        dry_run=dry_run,
        offset=offset,
        limit=limit,
        generate_report=report,
        save_report=report,
        report_path=report_path,
        report_dir=config.report_dir,
    )

    try:
        orchestrator = ImportOrchestrator(
            create_default_registry(),
            SimilarityEngine(config.similarity),
            config.import_config,
        )
        input_data = _read_json(input_file)
        result = asyncio.run(orchestrator.process(input_data, options))
    except ArtImportError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    _display_result(result)
    if result.report.summary.failed:
        raise typer.Exit(1)


@app.command()
def scrape(
    feed_url: str = typer.Option(..., "--feed-url", "-u", help="Paged JSON feed URL"),
    name: str = typer.Option("json-feed", "--name", "-n", help="Output file prefix"),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", "-o", help="Output directory"),
    max_pages: Optional[int] = typer.Option(None, "--max-pages", help="Maximum pages to crawl"),
    limit: Optional[int] = typer.Option(None, "--limit", "-l", help="Maximum records to keep"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML configuration file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """
    Scrape a paged JSON feed into GeoJSON output files.

    Examples:
        art-import scrape -u https://example.org/api/art -n example --max-pages 2
    """
    configure_logging("DEBUG" if verbose else "INFO")
    config = _load_app_config(config_path, None)

    scraper = JsonFeedScraper(
        feed_url,
        name,
        rate_limiter=RateLimiter.from_config(config.rate_limit),
        http_client=HttpClient.from_config(config.http),
    )
    options = ScraperOptions(
        output_dir=str(output_dir or config.output_dir),
        max_pages=max_pages,
        limit=limit,
        verbose=verbose,
    )

    with console.status("[bold blue]Scraping...[/bold blue]"):
        stats = asyncio.run(scraper.run(options))

    rprint(f"\n[green]Scrape complete[/green] in {stats.duration_seconds:.2f}s")
    rprint(f"  Total: {stats.total}")
    rprint(f"  Success: {stats.success}")
    rprint(f"  Failed: {stats.failed}")
    rprint(f"  Skipped: {stats.skipped} ({stats.duplicates} duplicates)")


@app.command()
def version() -> None:
    """Show the Art Import version."""
    typer.echo("Art Import v0.1.0")


# Plugin subcommands


def _entry_rows(registry: PluginRegistry, kind: PluginKind) -> list[tuple[str, str, str]]:
    rows = []
    entries = registry.importer_entries() if kind == PluginKind.IMPORTER else registry.exporter_entries()
    for entry in entries:
        status = "[green]valid[/green]" if entry.is_valid else "[red]invalid[/red]"
        rows.append((entry.name, str(getattr(entry.plugin, "description", "")), status))
    return rows


@plugins_app.command("list")
def list_plugins() -> None:
    """
    List registered importers and exporters.

    Examples:
        art-import plugins list
    """
    registry = create_default_registry()

    for kind in (PluginKind.IMPORTER, PluginKind.EXPORTER):
        table = Table(title=f"{kind.value.title()}s")
        table.add_column("Name", style="bold")
        table.add_column("Description")
        table.add_column("Status")
        for row in _entry_rows(registry, kind):
            table.add_row(*row)
        console.print(table)

    stats = registry.get_stats()
    rprint(
        f"\n{stats['importers']['valid']} importers, {stats['exporters']['valid']} exporters available"
    )


@plugins_app.command("check")
def check_plugin(
    name: str = typer.Argument(..., help="Plugin name"),
    kind: PluginKind = typer.Option(PluginKind.IMPORTER, "--kind", "-k", help="importer or exporter"),
) -> None:
    """
    Check that a plugin name is available, with suggestions if not.

    Examples:
        art-import plugins check geojson
        art-import plugins check jsn --kind exporter
    """
    registry = create_default_registry()
    result = registry.validate_plugin_name(name, kind)

    if result.valid:
        rprint(f"[green]{kind.value.title()} '{name}' is available[/green]")
        return

    rprint(f"[red]Error:[/red] {result.message}")
    if result.suggestions:
        rprint("\nDid you mean:")
        for suggestion in result.suggestions:
            rprint(f"  • {suggestion}")
    raise typer.Exit(1)


if __name__ == "__main__":
    app()

"""
Built-in Exporters
==================

- ``json``: accumulates created records into a GeoJSON FeatureCollection file
- ``console``: prints created records as a rich table
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table

from art_import.core.enums import OutputType, RecordStatus
from art_import.core.schema import CandidateRecord
from art_import.ingestion.plugins.base import (
    ExporterPlugin,
    ExportRecordResult,
    ExportResult,
    PluginMetadata,
    ValidationResult,
)

logger = logging.getLogger(__name__)


class JsonExporter(ExporterPlugin):
    """
    Writes records to a GeoJSON file.

    Every ``export`` call rewrites the whole collection for its output path,
    so batches exported during one run end up in a single file.
    """

    name = "json"
    description = "Write imported artworks to a GeoJSON FeatureCollection file"
    output_type = OutputType.FILE
    requires_network = False

    def __init__(self) -> None:
        self.supported_formats = ["geojson", "json"]
        self.metadata = PluginMetadata(
            name=self.name,
            description=self.description,
            supported_formats=self.supported_formats,
        )
        self.indent: int | None = 2
        self._features: dict[Path, list[dict[str, Any]]] = {}

    async def configure(self, options: dict[str, Any]) -> None:
        if "indent" in options:
            self.indent = options["indent"]
        if options.get("reset"):
            self._features.clear()

    async def validate(self, config: dict[str, Any]) -> ValidationResult:
        errors = []
        output_path = config.get("output_path")
        if not isinstance(output_path, str) or not output_path.strip():
            errors.append("output_path is required")
        elif Path(output_path).exists() and Path(output_path).is_dir():
            errors.append(f"output_path is a directory: {output_path}")
        return ValidationResult.from_messages(errors, "output_path")

    async def export(self, records: list[CandidateRecord], config: dict[str, Any]) -> ExportResult:
        path = Path(config["output_path"])
        features = self._features.setdefault(path, [])
        features.extend(record.to_feature() for record in records)

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(
                json.dumps({"type": "FeatureCollection", "features": features}, indent=self.indent, ensure_ascii=False),
                encoding="utf-8",
            )
        except OSError as e:
            logger.error(f"Failed to write {path}: {e}")
            del features[len(features) - len(records):]
            return ExportResult(
                success=False,
                records_processed=len(records),
                records_successful=0,
                records_failed=len(records),
                records_skipped=0,
                summary=f"Failed to write {path}: {e}",
                processed_records=[
                    ExportRecordResult(r.external_id, RecordStatus.FAILED, reason="write_failed", error=str(e))
                    for r in records
                ],
            )

        logger.info(f"Wrote {len(records)} records to {path} ({len(features)} total)")
        return ExportResult(
            success=True,
            records_processed=len(records),
            records_successful=len(records),
            records_failed=0,
            records_skipped=0,
            summary=f"Wrote {len(records)} records to {path}",
            processed_records=[
                ExportRecordResult(r.external_id, RecordStatus.SUCCESSFUL, reason="written", record=r)
                for r in records
            ],
        )


class ConsoleExporter(ExporterPlugin):
    """Prints records to the terminal."""

    name = "console"
    description = "Print imported artworks to the console"
    output_type = OutputType.CONSOLE
    requires_network = False

    def __init__(self, console: Console | None = None) -> None:
        self.supported_formats = ["table"]
        self.metadata = PluginMetadata(
            name=self.name,
            description=self.description,
            supported_formats=self.supported_formats,
        )
        self.console = console or Console()
        self.show_tags = False

    async def configure(self, options: dict[str, Any]) -> None:
        self.show_tags = bool(options.get("show_tags", self.show_tags))

    async def validate(self, config: dict[str, Any]) -> ValidationResult:
        return ValidationResult(is_valid=True)

    async def export(self, records: list[CandidateRecord], config: dict[str, Any]) -> ExportResult:
        table = Table(title=config.get("title", "Imported Artworks"))
        table.add_column("ID", style="bold")
        table.add_column("Title")
        table.add_column("Location")
        table.add_column("Artists")
        if self.show_tags:
            table.add_column("Tags")

        for record in records:
            row = [
                record.external_id,
                record.title or "[dim]untitled[/dim]",
                f"{record.coordinates.lat:.5f}, {record.coordinates.lon:.5f}",
                ", ".join(record.artists),
            ]
            if self.show_tags:
                row.append(", ".join(record.tag_values()))
            table.add_row(*row)

        self.console.print(table)
        return ExportResult(
            success=True,
            records_processed=len(records),
            records_successful=len(records),
            records_failed=0,
            records_skipped=0,
            summary=f"Printed {len(records)} records",
            processed_records=[
                ExportRecordResult(r.external_id, RecordStatus.SUCCESSFUL, reason="printed", record=r)
                for r in records
            ],
        )

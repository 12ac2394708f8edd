"""
Import Pipeline Module
======================

Runs a raw payload through an importer, deduplicates every candidate
against the existing catalog and hands new records to an exporter.

Pipeline Stages:
1. Resolve - Validate the run configuration and look up both plugins
2. Validate - The importer checks the raw payload
3. Map - Offset/limit pick raw records; each maps to a CandidateRecord on its own
4. Route - Each record is scored against the catalog: create, merge or skip
5. Export - Records routed to create are exported batch by batch
6. Report - Every outcome is tracked and summarized in a ProcessingReport
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from art_import.core.enums import PluginKind, RecordStatus, ReportErrorType, RouteAction
from art_import.core.errors import ConfigurationError, ProcessingError
from art_import.core.schema import ArtistRecord, CandidateRecord, CatalogEntry, Tags, flatten_tags
from art_import.core.schema_report import DuplicateInfo, ProcessingReport
from art_import.ingestion.config import ImportConfig, ensure_valid
from art_import.ingestion.fields import slugify
from art_import.ingestion.plugins.base import ExporterPlugin, ExportResult, ImporterPlugin
from art_import.ingestion.plugins.registry import PluginRegistry
from art_import.ingestion.report import (
    OperationParams,
    ReportTracker,
    default_report_path,
    save_report,
)
from art_import.ingestion.similarity import (
    SimilarityEngine,
    SimilarityQuery,
    SimilarityResult,
    get_similarity_explanation,
)

logger = logging.getLogger(__name__)


@dataclass
class ProcessingOptions:
    """Per-run options for ``ImportOrchestrator.process``."""

    importer: str
    exporter: str
    input_file: str = "unknown"
    importer_config: dict[str, Any] = field(default_factory=dict)
    exporter_config: dict[str, Any] = field(default_factory=dict)
    exporter_options: dict[str, Any] = field(default_factory=dict)
    catalog: list[CatalogEntry] = field(default_factory=list)
    known_artists: list[str] = field(default_factory=list)
    dry_run: bool = False
    offset: int = 0
    limit: int | None = None
    generate_report: bool = True
    save_report: bool = False
    report_path: str | None = None
    report_dir: str = "./reports"
    max_consecutive_errors: int = 5


@dataclass
class RouteDecision:
    """Where a single candidate goes."""

    action: RouteAction
    record: CandidateRecord
    match: SimilarityResult | None = None
    existing: CatalogEntry | None = None

    def duplicate_info(self) -> DuplicateInfo | None:
        """Report details about the matched catalog entry."""
        if self.match is None or self.existing is None:
            return None
        return DuplicateInfo(
            existing_id=self.existing.id,
            existing_title=self.existing.title,
            confidence_score=self.match.overall_score,
            score_breakdown=self.match.score_breakdown,
            reason=get_similarity_explanation(self.match),
        )


@dataclass
class PipelineResult:
    """Outcome of a completed import run."""

    imported_count: int
    created: list[CandidateRecord] = field(default_factory=list)
    merged: list[CandidateRecord] = field(default_factory=list)
    skipped: list[CandidateRecord] = field(default_factory=list)
    artists_to_create: list[ArtistRecord] = field(default_factory=list)
    export_result: ExportResult = field(default_factory=ExportResult.empty)
    report: ProcessingReport = field(default_factory=ProcessingReport)
    report_path: Path | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "imported_count": self.imported_count,
            "created": len(self.created),
            "merged": len(self.merged),
            "skipped": len(self.skipped),
            "artists_to_create": [a.name for a in self.artists_to_create],
            "export_success": self.export_result.success,
            "report_path": str(self.report_path) if self.report_path else None,
        }


def _tag_mapping(tags: Tags | str | None) -> dict[str, Any] | None:
    """Tags as a mapping, or None when they are list-shaped."""
    if isinstance(tags, str):
        try:
            tags = json.loads(tags) if tags.strip() else {}
        except json.JSONDecodeError:
            return None
    if isinstance(tags, dict):
        inner = tags.get("tags")
        return dict(inner) if isinstance(inner, dict) else dict(tags)
    return None


def new_tag_values(candidate: CandidateRecord, existing: CatalogEntry) -> list[str]:
    """Candidate tag values the existing entry does not carry (case-insensitive)."""
    have = {t.strip().lower() for t in flatten_tags(existing.tags)}
    return [t for t in candidate.tag_values() if t.strip() and t.strip().lower() not in have]


def merge_tags(candidate: CandidateRecord, existing: CatalogEntry) -> Tags:
    """
    Combine the existing entry's tags with the candidate's.

    Mappings merge key by key with existing values winning; anything else
    merges as a value list.
    """
    existing_map = _tag_mapping(existing.tags)
    if existing_map is not None and isinstance(candidate.tags, dict):
        return {**candidate.tags, **existing_map}
    values = flatten_tags(existing.tags)
    return values + new_tag_values(candidate, existing)


def _window(items: list[Any], options: ProcessingOptions) -> list[Any]:
    if options.offset > 0:
        items = items[options.offset:]
    if options.limit is not None and options.limit > 0:
        items = items[: options.limit]
    return items


def _import_id(importer: ImporterPlugin, raw: Any, index: int) -> str:
    """The importer's ID for a raw record, or its position when that fails too."""
    try:
        return importer.generate_import_id(raw)
    except Exception:
        return f"record-{index}"


class ImportOrchestrator:
    """
    Drives one import run from raw payload to report.

    The orchestrator holds no per-run state; every ``process`` call builds
    its own tracker and in-run catalog.
    """

    def __init__(
        self,
        registry: PluginRegistry,
        engine: SimilarityEngine | None = None,
        config: ImportConfig | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self.registry = registry
        self.engine = engine or SimilarityEngine()
        self.config = config or ImportConfig()
        self._log = log or logger

    def resolve_plugins(self, options: ProcessingOptions) -> tuple[ImporterPlugin, ExporterPlugin]:
        """
        Look up the importer and exporter for a run.

        Raises:
            ConfigurationError: If either name is unknown (with suggestions)
        """
        problems = []
        for name, kind in ((options.importer, PluginKind.IMPORTER), (options.exporter, PluginKind.EXPORTER)):
            if kind == PluginKind.IMPORTER and name == "all":
                problems.append("importer 'all' cannot be used for a single input")
                continue
            check = self.registry.validate_plugin_name(name, kind)
            if not check.valid:
                problems.append(f"{check.message} Did you mean: {', '.join(check.suggestions)}?")
        if problems:
            raise ConfigurationError(problems, "Unknown plugin")

        importer = self.registry.get_importer(options.importer)
        exporter = self.registry.get_exporter(options.exporter)
        if importer is None or exporter is None:
            raise ConfigurationError([f"{options.importer} -> {options.exporter}"], "Unknown plugin")
        return importer, exporter

    def route(self, record: CandidateRecord, catalog: list[CatalogEntry]) -> RouteDecision:
        """
        Decide whether a record is created, merged into a duplicate or skipped.

        Args:
            record: Incoming candidate
            catalog: Existing entries (including ones created earlier in the run)

        Returns:
            RouteDecision with the best match when it is a duplicate
        """
        query = SimilarityQuery.from_candidate(record)
        best: tuple[SimilarityResult, CatalogEntry] | None = None
        for entry in catalog:
            result = self.engine.calculate_similarity(query, entry)
            if best is None or result.overall_score > best[0].overall_score:
                best = (result, entry)

        if best is None or best[0].overall_score < self.config.duplicate_threshold:
            return RouteDecision(RouteAction.CREATE, record)

        match, existing = best
        if self.config.enable_tag_merging and new_tag_values(record, existing):
            merged = record.model_copy(
                update={
                    "tags": merge_tags(record, existing),
                    "raw_properties": {**record.raw_properties, "merged_into": existing.id},
                }
            )
            return RouteDecision(RouteAction.MERGE, merged, match, existing)
        return RouteDecision(RouteAction.SKIP, record, match, existing)

    async def process(self, input_data: Any, options: ProcessingOptions) -> PipelineResult:
        """
        Run a payload through the pipeline.

        Args:
            input_data: Raw payload for the importer
            options: Plugin names, plugin configs, catalog and run flags

        Returns:
            PipelineResult with the routed records and the report

        Raises:
            ConfigurationError: Invalid import config, unknown plugins or an
                exporter config the exporter rejects
            ProcessingError: Too many consecutive batches failed outright
        """
        ensure_valid(self.config, "Invalid import configuration")
        importer, exporter = self.resolve_plugins(options)

        tracker = ReportTracker(options.generate_report, log=self._log)
        tracker.start_operation(
            OperationParams(
                importer=importer.name,
                exporter=exporter.name,
                input_file=options.input_file,
                parameters={
                    "importer_config": options.importer_config,
                    "exporter_config": options.exporter_config,
                    "batch_size": self.config.batch_size,
                    "dry_run": options.dry_run,
                    "offset": options.offset,
                    **({"limit": options.limit} if options.limit is not None else {}),
                },
            )
        )

        self._log.info(f"Validating input data with {importer.name} importer")
        validation = importer.validate_data(input_data)
        if not validation.is_valid:
            self._log.error(f"Input data validation failed: {'; '.join(validation.messages())}")
            for issue in validation.errors:
                tracker.record_failure("validation", "validation_failed", issue)
            return self._finish(tracker, options, PipelineResult(imported_count=0), 0)

        records = self._map_records(importer, input_data, options, tracker)
        if records is None:
            return self._finish(tracker, options, PipelineResult(imported_count=0), 0)
        self._log.info(f"Mapped {len(records)} records")

        if not options.dry_run:
            await exporter.configure(options.exporter_options)
        exporter_validation = await exporter.validate(options.exporter_config)
        if not exporter_validation.is_valid:
            messages = exporter_validation.messages()
            tracker.record_error(ReportErrorType.VALIDATION, "Exporter configuration validation failed", messages)
            self._finish(tracker, options, PipelineResult(imported_count=len(records)), 0)
            raise ConfigurationError(messages, "Exporter configuration validation failed")

        result = PipelineResult(imported_count=len(records))
        catalog = list(options.catalog)
        known_artists = {name.strip().lower() for name in options.known_artists}
        duplicates = 0
        consecutive_failures = 0
        batch_size = self.config.batch_size

        for start in range(0, len(records), batch_size):
            batch = records[start:start + batch_size]
            self._log.debug(
                f"Processing batch {start // batch_size + 1} ({len(batch)} records)"
            )
            to_create: list[CandidateRecord] = []

            for record in batch:
                tracker.start_record_timing(record.external_id)
                try:
                    decision = self.route(record, catalog)
                except Exception as e:
                    self._log.warning(f"Scoring failed for {record.external_id}: {e}")
                    tracker.record_failure(record.external_id, "scoring_failed", e, record)
                    continue

                if decision.action == RouteAction.SKIP:
                    duplicates += 1
                    result.skipped.append(record)
                    tracker.record_skipped(
                        record.external_id, "duplicate", record, duplicate_info=decision.duplicate_info()
                    )
                elif decision.action == RouteAction.MERGE:
                    duplicates += 1
                    result.merged.append(decision.record)
                    tracker.record_other(record.external_id, "merged_tags", decision.record)
                    catalog = [
                        entry.model_copy(update={"tags": decision.record.tags})
                        if entry is decision.existing else entry
                        for entry in catalog
                    ]
                else:
                    to_create.append(record)
                    catalog.append(CatalogEntry.from_candidate(record))

            if not to_create:
                continue

            if options.dry_run:
                for record in to_create:
                    tracker.record_success(record.external_id, "dry_run", record)
                    self._accept(record, result, known_artists)
                continue

            batch_result = await self._export_batch(exporter, to_create, options, tracker, result, known_artists)
            result.export_result = result.export_result.merge(batch_result)

            if batch_result.records_failed == len(to_create):
                consecutive_failures += 1
                self._log.error(
                    f"All {len(to_create)} records in batch failed "
                    f"(consecutive failures: {consecutive_failures}/{options.max_consecutive_errors})"
                )
                if consecutive_failures >= options.max_consecutive_errors:
                    message = f"Aborting: {consecutive_failures} consecutive batch failures"
                    tracker.record_error(ReportErrorType.EXPORT, message)
                    self._finish(tracker, options, result, duplicates)
                    raise ProcessingError(message)
            elif batch_result.records_successful > 0:
                consecutive_failures = 0

        duplicates += result.export_result.records_duplicate
        return self._finish(tracker, options, result, duplicates)

    def _map_records(
        self,
        importer: ImporterPlugin,
        input_data: Any,
        options: ProcessingOptions,
        tracker: ReportTracker,
    ) -> list[CandidateRecord] | None:
        """
        Map the payload, applying offset and limit.

        Importers that split their payload are mapped record by record and a
        record that fails is reported under its import ID. Otherwise the
        whole payload is mapped at once and None means that mapping failed.
        """
        split = getattr(importer, "raw_records", None)
        raw_records = split(input_data) if callable(split) else None

        if raw_records is None:
            try:
                return _window(importer.map_data(input_data, options.importer_config), options)
            except Exception as e:
                self._log.error(f"Mapping failed: {e}")
                tracker.record_failure("mapping", "mapping_failed", e)
                return None

        records = []
        for index, raw in enumerate(_window(raw_records, options), start=options.offset):
            try:
                records.append(importer.map_record(raw, options.importer_config))
            except Exception as e:
                record_id = _import_id(importer, raw, index)
                self._log.warning(f"Mapping failed for {record_id}: {e}")
                tracker.record_failure(record_id, "mapping_failed", e, raw if isinstance(raw, dict) else None)
        return records

    async def _export_batch(
        self,
        exporter: ExporterPlugin,
        batch: list[CandidateRecord],
        options: ProcessingOptions,
        tracker: ReportTracker,
        result: PipelineResult,
        known_artists: set[str],
    ) -> ExportResult:
        try:
            export_result = await exporter.export(batch, options.exporter_config)
        except Exception as e:
            self._log.error(f"Export of {len(batch)} records failed: {e}")
            for record in batch:
                tracker.record_failure(record.external_id, "batch_error", e, record)
            return ExportResult(
                success=False,
                records_processed=len(batch),
                records_successful=0,
                records_failed=len(batch),
                records_skipped=0,
                summary=str(e),
            )

        outcomes = {r.external_id: r for r in export_result.processed_records}
        for record in batch:
            outcome = outcomes.get(record.external_id)
            if outcome is None:
                status = RecordStatus.SUCCESSFUL if export_result.success else RecordStatus.FAILED
                error = None if export_result.success else export_result.summary
                reason = None
            else:
                status, error, reason = outcome.status, outcome.error, outcome.reason

            if status == RecordStatus.SUCCESSFUL:
                tracker.record_success(record.external_id, "exported", record)
                self._accept(record, result, known_artists)
            elif status == RecordStatus.SKIPPED:
                tracker.record_skipped(record.external_id, reason or "skipped", record)
            else:
                tracker.record_failure(record.external_id, "export_failed", error, record)
        return export_result

    def _accept(self, record: CandidateRecord, result: PipelineResult, known_artists: set[str]) -> None:
        result.created.append(record)
        if not self.config.create_missing_artists:
            return
        for name in record.artists:
            key = name.strip().lower()
            if not key or key in known_artists:
                continue
            known_artists.add(key)
            result.artists_to_create.append(
                ArtistRecord(
                    id=slugify(name),
                    name=name.strip(),
                    properties={"source": record.source, "source_url": record.source_url},
                )
            )

    def _finish(
        self,
        tracker: ReportTracker,
        options: ProcessingOptions,
        result: PipelineResult,
        duplicates: int,
    ) -> PipelineResult:
        tracker.set_duplicate_count(duplicates)
        result.report = tracker.generate_report()
        if options.generate_report and (options.save_report or options.report_path):
            path = options.report_path or default_report_path(options.report_dir)
            result.report_path = save_report(result.report, path)

        summary = result.report.summary
        self._log.info(
            f"Import finished: {len(result.created)} created, {len(result.merged)} merged, "
            f"{len(result.skipped)} skipped, {summary.failed} failed"
        )
        return result

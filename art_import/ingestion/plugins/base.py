"""
Plugin Base Module
==================

Defines the contracts for importer and exporter plugins.

Importers are responsible for:
1. Validating a raw source payload (bulk JSON feed, scraper output)
2. Mapping it to ``CandidateRecord`` objects
3. Deriving a stable import ID for each raw record

Exporters hand validated records off to a destination (file, API, stream
or console).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from art_import.core.enums import OutputType, RecordStatus, Severity
from art_import.core.errors import ValidationIssue
from art_import.core.schema import CandidateRecord


@dataclass
class PluginMetadata:
    """Descriptive information about a plugin."""

    name: str
    description: str
    version: str = "1.0.0"
    author: str = ""
    supported_formats: list[str] = field(default_factory=list)
    required_fields: list[str] = field(default_factory=list)
    optional_fields: list[str] = field(default_factory=list)


@dataclass
class ValidationResult:
    """Outcome of validating a plugin, a payload or an exporter config."""

    is_valid: bool
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)

    @classmethod
    def from_issues(
        cls,
        errors: list[ValidationIssue],
        warnings: list[ValidationIssue] | None = None,
    ) -> ValidationResult:
        """Build a result that is valid iff there are no errors."""
        return cls(is_valid=not errors, errors=list(errors), warnings=list(warnings or []))

    @classmethod
    def from_messages(cls, messages: list[str], field_name: str = "config") -> ValidationResult:
        """Build a result from plain error messages against one field."""
        return cls.from_issues(
            [ValidationIssue(field=field_name, message=m, severity=Severity.ERROR) for m in messages]
        )

    def messages(self) -> list[str]:
        """Error messages as ``field: message`` strings."""
        return [str(e) for e in self.errors]


@dataclass
class ExportRecordResult:
    """Per-record outcome reported by an exporter."""

    external_id: str
    status: RecordStatus
    reason: str | None = None
    error: str | None = None
    record: CandidateRecord | None = None
    duplicate_info: dict[str, Any] | None = None


@dataclass
class ExportResult:
    """Outcome of exporting a batch of records."""

    success: bool
    records_processed: int
    records_successful: int
    records_failed: int
    records_skipped: int
    records_duplicate: int = 0
    errors: list[ValidationIssue] = field(default_factory=list)
    summary: str = ""
    processed_records: list[ExportRecordResult] = field(default_factory=list)

    @classmethod
    def empty(cls) -> ExportResult:
        """Result for a run that exported nothing."""
        return cls(
            success=True,
            records_processed=0,
            records_successful=0,
            records_failed=0,
            records_skipped=0,
            summary="Nothing to export",
        )

    def merge(self, other: ExportResult) -> ExportResult:
        """Combine with the result of another batch."""
        return ExportResult(
            success=self.success and other.success,
            records_processed=self.records_processed + other.records_processed,
            records_successful=self.records_successful + other.records_successful,
            records_failed=self.records_failed + other.records_failed,
            records_skipped=self.records_skipped + other.records_skipped,
            records_duplicate=self.records_duplicate + other.records_duplicate,
            errors=self.errors + other.errors,
            summary=other.summary or self.summary,
            processed_records=self.processed_records + other.processed_records,
        )


class ImporterPlugin(ABC):
    """
    Abstract base class for importer plugins.

    Subclasses must set ``name``, ``description``, ``supported_formats`` and
    ``required_fields`` and implement the three capability methods.
    """

    name: str = ""
    description: str = ""
    metadata: PluginMetadata | None = None
    supported_formats: list[str] = []
    required_fields: list[str] = []
    optional_fields: list[str] = []

    @abstractmethod
    def map_data(self, source_data: Any, config: dict[str, Any] | None = None) -> list[CandidateRecord]:
        """
        Map a raw payload to candidate records.

        Args:
            source_data: Raw payload (parsed JSON)
            config: Importer-specific configuration

        Returns:
            Candidate records in source order
        """

    @abstractmethod
    def validate_data(self, source_data: Any) -> ValidationResult:
        """
        Check that a raw payload has the shape this importer understands.

        Args:
            source_data: Raw payload (parsed JSON)

        Returns:
            ValidationResult listing every problem found
        """

    @abstractmethod
    def generate_import_id(self, record: Any) -> str:
        """
        Derive a stable external ID for one raw record.

        Args:
            record: One raw record from the payload

        Returns:
            External ID string
        """

    def raw_records(self, source_data: Any) -> list[Any] | None:
        """
        Split a payload into raw records that ``map_record`` maps one at a time.

        Importers that return None are mapped in bulk through ``map_data``.
        """
        return None

    def map_record(self, record: Any, config: dict[str, Any] | None = None) -> CandidateRecord:
        """
        Map one raw record from ``raw_records``.

        Raises:
            ValueError: If the record cannot become a candidate
        """
        raise NotImplementedError(f"{self.name} only maps whole payloads")

    def get_default_data_path(self) -> str | None:
        """Default input file for this importer, if it has one."""
        return None


class ExporterPlugin(ABC):
    """
    Abstract base class for exporter plugins.

    Subclasses must set ``name``, ``description``, ``output_type``,
    ``requires_network`` and ``supported_formats``.
    """

    name: str = ""
    description: str = ""
    metadata: PluginMetadata | None = None
    supported_formats: list[str] = []
    requires_network: bool = False
    output_type: OutputType | str = OutputType.CONSOLE

    @abstractmethod
    async def export(self, records: list[CandidateRecord], config: dict[str, Any]) -> ExportResult:
        """
        Export a batch of records.

        Args:
            records: Records to hand off
            config: Exporter configuration (output path, endpoint, ...)

        Returns:
            ExportResult with per-record outcomes
        """

    @abstractmethod
    async def configure(self, options: dict[str, Any]) -> None:
        """Apply runtime options before exporting."""

    @abstractmethod
    async def validate(self, config: dict[str, Any]) -> ValidationResult:
        """Validate an exporter configuration."""

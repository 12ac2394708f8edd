"""Pydantic v2 models for processing reports.

Reports serialize with camelCase keys (``model_dump(by_alias=True)``) so the
JSON matches the format consumed by the moderation tooling.
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from art_import.core.enums import RecordStatus, ReportErrorType


def _utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


class ReportModel(BaseModel):
    """Read-only base model with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_json_dict(self) -> dict[str, Any]:
        """Dump to a JSON-compatible dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class DuplicateInfo(ReportModel):
    """Details about the existing entity a skipped record duplicated."""

    type: str = "artwork"
    existing_id: str
    existing_title: str | None = None
    confidence_score: float | None = None
    score_breakdown: dict[str, float] = Field(default_factory=dict)
    reason: str | None = None


class ReportRecord(ReportModel):
    """One tracked outcome for a single processed record."""

    id: str
    external_id: str
    status: RecordStatus
    reason: str = ""
    timestamp: datetime = Field(default_factory=_utc_now)
    processing_time: float | None = None  # milliseconds
    duplicate_info: DuplicateInfo | None = None
    error: Any | None = None
    data: dict[str, Any] | None = None


class ReportError(ReportModel):
    """A processing, validation, export or system error."""

    type: ReportErrorType
    message: str
    details: Any | None = None
    timestamp: datetime = Field(default_factory=_utc_now)


class ReportSummary(ReportModel):
    """Aggregated run statistics."""

    total_records: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    other: int = 0
    duplicate_records: int = 0
    success_rate: float = 0.0
    processing_time: float = 0.0  # milliseconds
    average_record_time: float = 0.0  # milliseconds


class OperationInfo(ReportModel):
    """What ran and when."""

    importer: str = ""
    exporter: str = ""
    input_file: str = ""
    start_time: datetime | None = None
    end_time: datetime | None = None
    duration: float = 0.0  # milliseconds


class OperationParameters(ReportModel):
    """Parameters the run was started with."""

    cli_flags: tuple[str, ...] = ()
    importer_config: dict[str, Any] = Field(default_factory=dict)
    exporter_config: dict[str, Any] = Field(default_factory=dict)
    batch_size: int | None = None
    dry_run: bool | None = None


class EnvironmentInfo(ReportModel):
    """Interpreter and host the run executed on."""

    python_version: str = ""
    platform: str = ""
    timestamp: datetime = Field(default_factory=_utc_now)


class ReportMetadata(ReportModel):
    """Run-level metadata."""

    operation: OperationInfo = Field(default_factory=OperationInfo)
    parameters: OperationParameters = Field(default_factory=OperationParameters)
    environment: EnvironmentInfo = Field(default_factory=EnvironmentInfo)


class ProcessingReport(ReportModel):
    """Final report for a run."""

    metadata: ReportMetadata = Field(default_factory=ReportMetadata)
    summary: ReportSummary = Field(default_factory=ReportSummary)
    records: tuple[ReportRecord, ...] = ()
    errors: tuple[ReportError, ...] = ()

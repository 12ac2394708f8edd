"""
Report Tracker Module
=====================

Records the outcome and timing of every processed record in a run and
aggregates them into a ``ProcessingReport``. A tracker is built per run,
fed incrementally, and finalized once by ``generate_report()``.
"""

from __future__ import annotations

import json
import logging
import platform
import sys
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from uuid import uuid4

from art_import.core.enums import RecordStatus, ReportErrorType
from art_import.core.errors import ValidationIssue
from art_import.core.schema import CandidateRecord
from art_import.core.schema_report import (
    DuplicateInfo,
    EnvironmentInfo,
    OperationInfo,
    OperationParameters,
    ProcessingReport,
    ReportError,
    ReportMetadata,
    ReportRecord,
    ReportSummary,
)

logger = logging.getLogger(__name__)

RecordData = CandidateRecord | dict[str, Any] | None


@dataclass
class OperationParams:
    """What a run was started with."""

    importer: str
    exporter: str
    input_file: str = "unknown"
    parameters: dict[str, Any] = field(default_factory=dict)


def sanitize_error(error: Any) -> Any:
    """Convert an error value into something JSON-serializable."""
    if error is None:
        return None
    if isinstance(error, BaseException):
        return {"name": error.__class__.__name__, "message": str(error)}
    if isinstance(error, ValidationIssue):
        return error.to_dict()
    if isinstance(error, (list, tuple)):
        return [sanitize_error(e) for e in error]
    if isinstance(error, dict):
        try:
            json.dumps(error)
            return error
        except (TypeError, ValueError):
            return str(error)
    if isinstance(error, (str, int, float, bool)):
        return error
    return str(error)


def _cli_flags(params: dict[str, Any]) -> list[str]:
    flags: list[str] = []
    for key, value in params.items():
        if isinstance(value, bool):
            if value:
                flags.append(f"--{key}")
        elif isinstance(value, (str, int, float)):
            flags.extend([f"--{key}", str(value)])
    return flags


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.lower() == "true"
    return None


class ReportTracker:
    """
    Per-run audit trail of record outcomes.

    Every operation is a no-op when the tracker is disabled, so callers never
    need to branch on whether reporting was requested.
    """

    def __init__(
        self,
        enabled: bool = True,
        *,
        log: logging.Logger | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        """
        Initialize the tracker.

        Args:
            enabled: When False, all calls are ignored
            log: Logger to report progress to
            clock: Monotonic clock in seconds (for record timing)
        """
        self.enabled = enabled
        self._log = log or logger
        self._clock = clock or time.perf_counter

        self._records: list[ReportRecord] = []
        self._errors: list[ReportError] = []
        self._metadata = ReportMetadata()
        self._record_starts: dict[str, float] = {}
        self._duplicate_count = 0

        self._started_at = datetime.now(UTC)
        self._started_clock = self._clock()
        self._final: ProcessingReport | None = None

    def _accepting(self) -> bool:
        if not self.enabled:
            return False
        if self._final is not None:
            self._log.warning("Report already generated; ignoring further tracking calls")
            return False
        return True

    # Operation management

    def start_operation(self, params: OperationParams) -> None:
        """Snapshot run metadata and reset the run clock."""
        if not self._accepting():
            return

        self._started_at = datetime.now(UTC)
        self._started_clock = self._clock()
        raw = params.parameters

        importer_config = raw.get("importer_config")
        exporter_config = raw.get("exporter_config")
        self._metadata = ReportMetadata(
            operation=OperationInfo(
                importer=params.importer,
                exporter=params.exporter,
                input_file=params.input_file,
                start_time=self._started_at,
            ),
            parameters=OperationParameters(
                cli_flags=tuple(_cli_flags(raw)),
                importer_config=importer_config if isinstance(importer_config, dict) else {},
                exporter_config=exporter_config if isinstance(exporter_config, dict) else {},
                batch_size=_as_int(raw.get("batch_size")),
                dry_run=_as_bool(raw.get("dry_run")),
            ),
            environment=EnvironmentInfo(
                python_version=sys.version.split()[0],
                platform=f"{platform.system()} {platform.release()}",
            ),
        )
        self._log.info(f"Report tracking started for {params.importer} -> {params.exporter}")

    def start_record_timing(self, external_id: str) -> None:
        """Start the clock for a record; the next record_* call for it stops it."""
        if not self._accepting():
            return
        self._record_starts[external_id] = self._clock()

    # Record tracking

    def record_success(self, external_id: str, reason: str, data: RecordData = None) -> None:
        """Record a successfully processed record."""
        if not self._accepting():
            return
        self._append(external_id, RecordStatus.SUCCESSFUL, reason, data=data)

    def record_failure(
        self,
        external_id: str,
        reason: str,
        error: Any = None,
        data: RecordData = None,
    ) -> None:
        """Record a failed record. Also appends a processing error."""
        if not self._accepting():
            return
        sanitized = sanitize_error(error)
        self._append(external_id, RecordStatus.FAILED, reason, data=data, error=sanitized)
        self._errors.append(
            ReportError(
                type=ReportErrorType.PROCESSING,
                message=f"Record {external_id} failed: {reason}",
                details=sanitized,
            )
        )

    def record_skipped(
        self,
        external_id: str,
        reason: str,
        data: RecordData = None,
        duplicate_info: DuplicateInfo | None = None,
    ) -> None:
        """Record a skipped record, optionally with the duplicate it matched."""
        if not self._accepting():
            return
        self._append(
            external_id, RecordStatus.SKIPPED, reason, data=data, duplicate_info=duplicate_info
        )

    def record_other(self, external_id: str, reason: str, data: RecordData = None) -> None:
        """Record an outcome that is neither success, failure nor skip."""
        if not self._accepting():
            return
        self._append(external_id, RecordStatus.OTHER, reason, data=data)

    def set_duplicate_count(self, count: int) -> None:
        """Set the number of duplicates detected on the export side."""
        if not self._accepting():
            return
        self._duplicate_count = count

    def record_error(
        self,
        error_type: ReportErrorType | str,
        message: str,
        details: Any = None,
    ) -> None:
        """Record a run-level error not tied to a single record."""
        if not self._accepting():
            return
        try:
            kind = ReportErrorType(error_type)
        except ValueError:
            kind = ReportErrorType.SYSTEM
        self._errors.append(ReportError(type=kind, message=message, details=sanitize_error(details)))

    def _append(
        self,
        external_id: str,
        status: RecordStatus,
        reason: str,
        *,
        data: RecordData = None,
        error: Any = None,
        duplicate_info: DuplicateInfo | None = None,
    ) -> None:
        if isinstance(data, CandidateRecord):
            data = data.to_feature()
        self._records.append(
            ReportRecord(
                id=f"rec_{int(time.time() * 1000)}_{uuid4().hex[:9]}",
                external_id=external_id,
                status=status,
                reason=reason,
                processing_time=self._stop_timing(external_id),
                duplicate_info=duplicate_info,
                error=error,
                data=data,
            )
        )

    def _stop_timing(self, external_id: str) -> float | None:
        started = self._record_starts.pop(external_id, None)
        if started is None:
            return None
        return (self._clock() - started) * 1000.0

    # Report generation

    def generate_report(self) -> ProcessingReport:
        """
        Finalize the run and return the read-only report.

        Calling this again returns the same report. A disabled tracker returns
        an empty report.
        """
        if not self.enabled:
            return ProcessingReport()
        if self._final is not None:
            return self._final

        ended_at = datetime.now(UTC)
        duration = (self._clock() - self._started_clock) * 1000.0

        operation = self._metadata.operation.model_copy(
            update={"end_time": ended_at, "duration": duration}
        )
        metadata = self._metadata.model_copy(update={"operation": operation})

        self._final = ProcessingReport(
            metadata=metadata,
            summary=self._summary(duration),
            records=tuple(self._records),
            errors=tuple(self._errors),
        )
        summary = self._final.summary
        self._log.info(
            f"Report generated: {summary.total_records} records, "
            f"{summary.successful} successful, {summary.failed} failed, "
            f"{summary.skipped} skipped, {summary.other} other"
        )
        return self._final

    def get_report(self) -> ProcessingReport:
        """Live snapshot of the run so far (for progress display)."""
        if not self.enabled:
            return ProcessingReport()
        if self._final is not None:
            return self._final
        duration = (self._clock() - self._started_clock) * 1000.0
        return ProcessingReport(
            metadata=self._metadata,
            summary=self._summary(duration),
            records=tuple(self._records),
            errors=tuple(self._errors),
        )

    def _summary(self, duration_ms: float) -> ReportSummary:
        counts = self.get_stats_by_status()
        total = len(self._records)
        timed = [r.processing_time for r in self._records if r.processing_time is not None]

        return ReportSummary(
            total_records=total,
            successful=counts[RecordStatus.SUCCESSFUL.value],
            failed=counts[RecordStatus.FAILED.value],
            skipped=counts[RecordStatus.SKIPPED.value],
            other=counts[RecordStatus.OTHER.value],
            duplicate_records=self._duplicate_count,
            success_rate=(counts[RecordStatus.SUCCESSFUL.value] / total * 100) if total else 0.0,
            processing_time=duration_ms,
            average_record_time=sum(timed) / len(timed) if timed else 0.0,
        )

    # Statistics

    def get_stats_by_status(self) -> dict[str, int]:
        """Count records per status."""
        stats = {status.value: 0 for status in RecordStatus}
        for record in self._records:
            stats[record.status.value] += 1
        return stats

    def get_error_stats(self) -> dict[str, int]:
        """Count errors per type."""
        stats: dict[str, int] = {}
        for error in self._errors:
            stats[error.type.value] = stats.get(error.type.value, 0) + 1
        return stats

    def get_performance_metrics(self) -> dict[str, float]:
        """Throughput and timing figures for the run so far."""
        total_ms = (self._clock() - self._started_clock) * 1000.0
        timed = [r.processing_time for r in self._records if r.processing_time is not None]
        return {
            "total_processing_time": total_ms,
            "average_record_time": sum(timed) / len(timed) if timed else 0.0,
            "records_per_second": (len(self._records) / total_ms * 1000.0) if total_ms > 0 else 0.0,
            "records_with_timing": float(len(timed)),
        }

    @property
    def record_count(self) -> int:
        return len(self._records)

    @property
    def error_count(self) -> int:
        return len(self._errors)

    @property
    def is_finalized(self) -> bool:
        return self._final is not None


def default_report_path(report_dir: Path | str = "./reports") -> Path:
    """Timestamped report path: ``<dir>/mass-import-YYYY-MM-DD-HHMMSS.json``."""
    stamp = datetime.now().strftime("%Y-%m-%d-%H%M%S")
    return Path(report_dir) / f"mass-import-{stamp}.json"


def save_report(report: ProcessingReport, path: Path | str | None = None) -> Path:
    """
    Write a report as pretty-printed camelCase JSON.

    Args:
        report: Report to write
        path: Destination (defaults to a timestamped file under ./reports)

    Returns:
        Path the report was written to
    """
    output = Path(path) if path is not None else default_report_path()
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(report.to_json_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
    logger.info(f"Report saved to: {output}")
    return output

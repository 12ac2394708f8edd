"""Enums for mass-import records, plugins and similarity scoring."""

from enum import Enum


class RecordStatus(str, Enum):
    """Outcome of processing a single record."""

    SUCCESSFUL = "successful"
    FAILED = "failed"
    SKIPPED = "skipped"
    OTHER = "other"


class ReportErrorType(str, Enum):
    """Category of an error collected in a processing report."""

    VALIDATION = "validation"
    PROCESSING = "processing"
    EXPORT = "export"
    SYSTEM = "system"


class SignalType(str, Enum):
    """Dimension scored by the similarity engine."""

    DISTANCE = "distance"
    TITLE = "title"
    TAGS = "tags"


class SimilarityTier(str, Enum):
    """Duplicate classification derived from an overall similarity score."""

    NONE = "none"
    WARN = "warn"
    HIGH = "high"


class OutputType(str, Enum):
    """Where an exporter sends its records."""

    FILE = "file"
    API = "api"
    STREAM = "stream"
    CONSOLE = "console"


class PluginKind(str, Enum):
    """Kind of mass-import plugin."""

    IMPORTER = "importer"
    EXPORTER = "exporter"


class Severity(str, Enum):
    """Severity of a validation issue."""

    ERROR = "error"
    WARNING = "warning"


class ValidationCode(str, Enum):
    """Machine-readable codes for plugin validation issues."""

    MISSING_NAME = "MISSING_NAME"
    MISSING_DESCRIPTION = "MISSING_DESCRIPTION"
    MISSING_METHOD = "MISSING_METHOD"
    INVALID_TYPE = "INVALID_TYPE"
    INVALID_OUTPUT_TYPE = "INVALID_OUTPUT_TYPE"
    MISSING_METADATA = "MISSING_METADATA"


class RouteAction(str, Enum):
    """What the orchestrator does with a candidate after scoring it."""

    CREATE = "create"
    MERGE = "merge"
    SKIP = "skip"


class ScraperState(str, Enum):
    """Lifecycle of a single scraper run."""

    IDLE = "idle"
    CRAWLING = "crawling"
    SCRAPING = "scraping"
    DRAINING = "draining"
    DONE = "done"
    FAILED = "failed"

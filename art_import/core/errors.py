"""Error taxonomy for the mass-import core.

Validation problems are collected as ``ValidationIssue`` values and never
raised. Network and processing failures are raised but contained at the
record level. Configuration errors abort a run before any record is touched.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from art_import.core.enums import Severity


@dataclass(frozen=True)
class ValidationIssue:
    """A single problem found while validating a plugin, config or record."""

    field: str
    message: str
    severity: Severity = Severity.ERROR
    code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: dict[str, Any] = {
            "field": self.field,
            "message": self.message,
            "severity": self.severity.value,
        }
        if self.code is not None:
            data["code"] = self.code
        return data

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


class ArtImportError(Exception):
    """Base class for all mass-import errors."""


class NetworkError(ArtImportError):
    """A fetch exhausted its retries or timed out."""

    def __init__(self, message: str, url: str, attempts: int, last_error: str | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.attempts = attempts
        self.last_error = last_error


class ProcessingError(ArtImportError):
    """A record could not be transformed or routed."""

    def __init__(self, message: str, external_id: str | None = None) -> None:
        super().__init__(message)
        self.external_id = external_id


class ConfigurationError(ArtImportError):
    """Malformed run configuration. Lists every violation, not just the first."""

    def __init__(self, violations: list[str], context: str = "Invalid configuration") -> None:
        self.violations = list(violations)
        joined = "; ".join(self.violations) if self.violations else "unknown error"
        super().__init__(f"{context}: {joined}")

"""
Configuration Module
====================

Dataclass configuration for the mass-import core, loaded from a YAML file
with environment-variable overrides for the similarity tuning knobs.
Every ``validate()`` returns the full list of violations; ``ensure_valid()``
turns a non-empty list into a ``ConfigurationError``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

from art_import.core.enums import SignalType
from art_import.core.errors import ConfigurationError

DEFAULT_STOP_WORDS: tuple[str, ...] = (
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
)

DEFAULT_USER_AGENT = (
    "ArtImport-Scraper/1.0 (public art registry mass import; educational/research purposes)"
)


def _pick(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first key present in data (snake_case or camelCase spellings)."""
    for key in keys:
        if key in data:
            return data[key]
    return default


@dataclass
class RateLimitConfig:
    """Politeness delay between outbound requests."""

    delay_ms: float = 1500.0
    jitter_ms: float = 500.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> RateLimitConfig:
        """Create from dictionary, using defaults for missing values."""
        if data is None:
            return cls()
        return cls(
            delay_ms=float(_pick(data, "delay_ms", "delayMs", default=1500.0)),
            jitter_ms=float(_pick(data, "jitter_ms", "jitterMs", default=500.0)),
        )

    def validate(self) -> list[str]:
        """Return all configuration violations."""
        errors = []
        if self.delay_ms < 0:
            errors.append(f"rate_limit.delay_ms must be >= 0, got {self.delay_ms}")
        if self.jitter_ms < 0:
            errors.append(f"rate_limit.jitter_ms must be >= 0, got {self.jitter_ms}")
        return errors


@dataclass
class HttpConfig:
    """Retry, backoff and timeout settings for the HTTP client."""

    max_retries: int = 3
    initial_delay_ms: float = 1000.0
    timeout_ms: float = 30000.0
    user_agent: str = DEFAULT_USER_AGENT

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> HttpConfig:
        """Create from dictionary, using defaults for missing values."""
        if data is None:
            return cls()
        return cls(
            max_retries=int(_pick(data, "max_retries", "maxRetries", default=3)),
            initial_delay_ms=float(_pick(data, "initial_delay_ms", "initialDelayMs", default=1000.0)),
            timeout_ms=float(_pick(data, "timeout_ms", "timeoutMs", default=30000.0)),
            user_agent=str(_pick(data, "user_agent", "userAgent", default=DEFAULT_USER_AGENT)),
        )

    def validate(self) -> list[str]:
        """Return all configuration violations."""
        errors = []
        if self.max_retries < 0:
            errors.append(f"http.max_retries must be >= 0, got {self.max_retries}")
        if self.initial_delay_ms < 0:
            errors.append(f"http.initial_delay_ms must be >= 0, got {self.initial_delay_ms}")
        if self.timeout_ms <= 0:
            errors.append(f"http.timeout_ms must be > 0, got {self.timeout_ms}")
        return errors


@dataclass
class SimilarityConfig:
    """
    Weights, thresholds and normalisation parameters for duplicate scoring.

    The defaults are carried over from the production registry. They have no
    documented derivation and are kept configurable for tuning.
    """

    threshold_warn: float = 0.65
    threshold_high: float = 0.80
    weight_distance: float = 0.5
    weight_title: float = 0.35
    weight_tags: float = 0.15
    max_distance_meters: float = 1000.0
    optimal_distance_meters: float = 0.0
    min_title_length: int = 3
    stop_words: tuple[str, ...] = DEFAULT_STOP_WORDS

    @property
    def weights(self) -> dict[SignalType, float]:
        """Weights keyed by signal type."""
        return {
            SignalType.DISTANCE: self.weight_distance,
            SignalType.TITLE: self.weight_title,
            SignalType.TAGS: self.weight_tags,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> SimilarityConfig:
        """Create from dictionary (``thresholds``/``weights``/``distance``/``title`` sections)."""
        if data is None:
            return cls()
        thresholds = data.get("thresholds") or {}
        weights = data.get("weights") or {}
        distance = data.get("distance") or {}
        title = data.get("title") or {}
        defaults = cls()
        return cls(
            threshold_warn=float(thresholds.get("warn", defaults.threshold_warn)),
            threshold_high=float(thresholds.get("high", defaults.threshold_high)),
            weight_distance=float(weights.get("distance", defaults.weight_distance)),
            weight_title=float(weights.get("title", defaults.weight_title)),
            weight_tags=float(weights.get("tags", defaults.weight_tags)),
            max_distance_meters=float(
                _pick(distance, "max_distance_meters", "maxDistanceMeters",
                      default=defaults.max_distance_meters)
            ),
            optimal_distance_meters=float(
                _pick(distance, "optimal_distance_meters", "optimalDistanceMeters",
                      default=defaults.optimal_distance_meters)
            ),
            min_title_length=int(
                _pick(title, "min_title_length", "minTitleLength", default=defaults.min_title_length)
            ),
            stop_words=tuple(_pick(title, "stop_words", "stopWords", default=defaults.stop_words)),
        )

    @classmethod
    def dev(cls) -> SimilarityConfig:
        """Lenient thresholds for development."""
        return cls(threshold_warn=0.5, threshold_high=0.7)

    @classmethod
    def prod(cls) -> SimilarityConfig:
        """Strict thresholds for production."""
        return cls(threshold_warn=0.7, threshold_high=0.85)

    def with_env_overrides(self, environ: Mapping[str, str] | None = None) -> SimilarityConfig:
        """
        Apply SIMILARITY_* environment variable overrides.

        Args:
            environ: Environment mapping (defaults to os.environ)

        Returns:
            A new SimilarityConfig

        Raises:
            ConfigurationError: If any override is not a number
        """
        environ = os.environ if environ is None else environ
        overrides: dict[str, Any] = {}
        errors: list[str] = []

        for var, attr, cast in _ENV_OVERRIDES:
            raw = environ.get(var)
            if raw is None or raw.strip() == "":
                continue
            try:
                overrides[attr] = cast(raw)
            except ValueError:
                errors.append(f"{var} must be a number, got {raw!r}")

        if errors:
            raise ConfigurationError(errors, "Invalid similarity environment")
        return replace(self, **overrides)

    def validate(self) -> list[str]:
        """Return all configuration violations."""
        errors = []
        if not 0.0 <= self.threshold_warn <= 1.0:
            errors.append(f"Invalid warn threshold: {self.threshold_warn}. Must be between 0 and 1.")
        if not 0.0 <= self.threshold_high <= 1.0:
            errors.append(f"Invalid high threshold: {self.threshold_high}. Must be between 0 and 1.")
        if self.threshold_high <= self.threshold_warn:
            errors.append(
                f"High threshold ({self.threshold_high}) must be greater than "
                f"warn threshold ({self.threshold_warn})."
            )

        if any(w < 0 for w in self.weights.values()):
            errors.append("All similarity weights must be non-negative")
        total = sum(self.weights.values())
        if abs(total - 1.0) > 0.001:
            errors.append(f"Similarity weights must sum to 1.0, got {total}")

        if self.max_distance_meters <= 0:
            errors.append(f"Max distance must be positive, got {self.max_distance_meters}m")
        if not 0 <= self.optimal_distance_meters < self.max_distance_meters:
            errors.append(
                f"Optimal distance ({self.optimal_distance_meters}m) must be >= 0 and less than "
                f"max distance ({self.max_distance_meters}m)"
            )
        if self.min_title_length < 1:
            errors.append(f"Minimum title length must be at least 1, got {self.min_title_length}")
        return errors


_ENV_OVERRIDES: tuple[tuple[str, str, Any], ...] = (
    ("SIMILARITY_THRESHOLD_WARN", "threshold_warn", float),
    ("SIMILARITY_THRESHOLD_HIGH", "threshold_high", float),
    ("SIMILARITY_WEIGHT_DISTANCE", "weight_distance", float),
    ("SIMILARITY_WEIGHT_TITLE", "weight_title", float),
    ("SIMILARITY_WEIGHT_TAGS", "weight_tags", float),
    ("SIMILARITY_MAX_DISTANCE_METERS", "max_distance_meters", float),
    ("SIMILARITY_OPTIMAL_DISTANCE_METERS", "optimal_distance_meters", float),
    ("SIMILARITY_MIN_TITLE_LENGTH", "min_title_length", int),
)


@dataclass
class ImportConfig:
    """Settings consumed by the import orchestrator."""

    duplicate_threshold: float = 0.7
    enable_tag_merging: bool = False
    create_missing_artists: bool = False
    batch_size: int = 5

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> ImportConfig:
        """
        Create from dictionary.

        Values are taken as given (no coercion) so ``validate()`` can report
        wrongly typed input instead of silently fixing it.
        """
        if data is None:
            return cls()
        return cls(
            duplicate_threshold=_pick(data, "duplicate_threshold", "duplicateThreshold", default=0.7),
            enable_tag_merging=_pick(data, "enable_tag_merging", "enableTagMerging", default=False),
            create_missing_artists=_pick(
                data, "create_missing_artists", "createMissingArtists", default=False
            ),
            batch_size=_pick(data, "batch_size", "batchSize", default=5),
        )

    def validate(self) -> list[str]:
        """Return all configuration violations."""
        errors = []
        threshold = self.duplicate_threshold
        if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
            errors.append(f"duplicateThreshold must be a number, got {threshold!r}")
        elif not 0.0 <= threshold <= 1.0:
            errors.append(f"duplicateThreshold must be between 0 and 1, got {threshold}")

        if not isinstance(self.enable_tag_merging, bool):
            errors.append(f"enableTagMerging must be a boolean, got {self.enable_tag_merging!r}")
        if not isinstance(self.create_missing_artists, bool):
            errors.append(
                f"createMissingArtists must be a boolean, got {self.create_missing_artists!r}"
            )

        batch_size = self.batch_size
        if isinstance(batch_size, bool) or not isinstance(batch_size, int):
            errors.append(f"batchSize must be an integer, got {batch_size!r}")
        elif not 1 <= batch_size <= 10:
            errors.append(f"batchSize must be between 1 and 10, got {batch_size}")
        return errors


@dataclass
class AppConfig:
    """Top-level configuration loaded from YAML."""

    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    similarity: SimilarityConfig = field(default_factory=SimilarityConfig)
    import_config: ImportConfig = field(default_factory=ImportConfig)
    output_dir: str = "./output"
    report_dir: str = "./reports"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> AppConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        return cls(
            rate_limit=RateLimitConfig.from_dict(data.get("rate_limit")),
            http=HttpConfig.from_dict(data.get("http")),
            similarity=SimilarityConfig.from_dict(data.get("similarity")),
            import_config=ImportConfig.from_dict(data.get("import")),
            output_dir=str(data.get("output_dir", "./output")),
            report_dir=str(data.get("report_dir", "./reports")),
        )

    def validate(self) -> list[str]:
        """Return all configuration violations across every section."""
        return (
            self.rate_limit.validate()
            + self.http.validate()
            + self.similarity.validate()
            + self.import_config.validate()
        )


def ensure_valid(config: Any, context: str = "Invalid configuration") -> None:
    """
    Raise if a config object reports any violations.

    Raises:
        ConfigurationError: Listing every violation
    """
    errors = config.validate()
    if errors:
        raise ConfigurationError(errors, context)


def load_config(
    config_path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> AppConfig:
    """
    Load configuration from a YAML file and apply environment overrides.

    Looks at ART_IMPORT_CONFIG when no path is given; with neither, the
    defaults are used.

    Args:
        config_path: Path to the YAML configuration file
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Validated AppConfig

    Raises:
        FileNotFoundError: If an explicit config path does not exist
        ConfigurationError: If the resulting configuration is invalid
    """
    environ = os.environ if environ is None else environ
    if config_path is None:
        config_path = environ.get("ART_IMPORT_CONFIG")

    data: dict[str, Any] | None = None
    if config_path:
        path = Path(config_path).expanduser().resolve()
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")
        with open(path) as f:
            data = yaml.safe_load(f) or {}

    config = AppConfig.from_dict(data)
    config.similarity = config.similarity.with_env_overrides(environ)
    ensure_valid(config)
    return config

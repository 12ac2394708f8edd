"""
Similarity Module
=================

Scores an incoming candidate against existing catalog entries on three
signals (geographic distance, fuzzy title match, tag overlap) and classifies
the weighted total into ``none`` / ``warn`` / ``high`` duplicate tiers.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from art_import.core.enums import SignalType, SimilarityTier
from art_import.core.schema import CandidateRecord, CatalogEntry, Coordinates, Tags, flatten_tags
from art_import.ingestion.config import SimilarityConfig, ensure_valid

logger = logging.getLogger(__name__)

EARTH_RADIUS_METERS = 6_371_000.0

_PUNCTUATION = re.compile(r"[^\w\s]")

_TIER_RANK = {
    SimilarityTier.NONE: 0,
    SimilarityTier.WARN: 1,
    SimilarityTier.HIGH: 2,
}


@dataclass
class SimilarityQuery:
    """The incoming side of a comparison."""

    coordinates: Coordinates
    title: str | None = None
    tags: Tags | None = None

    @classmethod
    def from_candidate(cls, record: CandidateRecord) -> SimilarityQuery:
        """Build a query from a candidate record."""
        return cls(coordinates=record.coordinates, title=record.title, tags=record.tags)


@dataclass
class SimilaritySignal:
    """One scored dimension of a comparison."""

    type: SignalType
    raw_score: float  # 0.0 - 1.0 before weighting
    weighted_score: float
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class SimilarityResult:
    """Outcome of comparing a query with one catalog entry."""

    candidate_id: str
    overall_score: float  # 0.0 - 1.0, sum of weighted signal scores
    signals: list[SimilaritySignal]
    threshold: SimilarityTier
    metadata: dict[str, Any] = field(default_factory=dict)

    def get_signal(self, signal_type: SignalType) -> SimilaritySignal | None:
        """Get a signal by type, or None if it was omitted."""
        for signal in self.signals:
            if signal.type == signal_type:
                return signal
        return None

    @property
    def score_breakdown(self) -> dict[str, float]:
        """Weighted score per present signal, plus the total."""
        breakdown = {s.type.value: s.weighted_score for s in self.signals}
        breakdown["total"] = self.overall_score
        return breakdown


def haversine_distance(a: Coordinates, b: Coordinates) -> float:
    """
    Great-circle distance between two points.

    Args:
        a: First point
        b: Second point

    Returns:
        Distance in meters
    """
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    d_lat = lat2 - lat1
    d_lon = math.radians(b.lon - a.lon)

    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.asin(min(1.0, math.sqrt(h)))


def levenshtein_distance(s1: str, s2: str) -> int:
    """
    Calculate the Levenshtein distance between two strings.

    Args:
        s1: First string
        s2: Second string

    Returns:
        Edit distance
    """
    if len(s1) < len(s2):
        s1, s2 = s2, s1

    if len(s2) == 0:
        return len(s1)

    previous_row = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1):
        current_row = [i + 1]
        for j, c2 in enumerate(s2):
            insertions = previous_row[j + 1] + 1
            deletions = current_row[j] + 1
            substitutions = previous_row[j] + (c1 != c2)
            current_row.append(min(insertions, deletions, substitutions))
        previous_row = current_row

    return previous_row[-1]


def string_similarity(s1: str, s2: str) -> float:
    """
    Normalized edit-distance similarity.

    Returns:
        1.0 for identical strings, 0.0 when either is empty
    """
    if s1 == s2:
        return 1.0
    if not s1 or not s2:
        return 0.0
    return 1.0 - levenshtein_distance(s1, s2) / max(len(s1), len(s2))


class SimilarityEngine:
    """
    Weighted multi-signal duplicate scorer.

    The overall score is the plain sum of the weighted scores of the signals
    that are present. Absent signals contribute nothing; there is no
    renormalization over the remaining weights.
    """

    name = "default"
    version = "1.0.0"

    def __init__(self, config: SimilarityConfig | None = None) -> None:
        """
        Initialize the engine.

        Args:
            config: Weights, thresholds and normalization parameters

        Raises:
            ConfigurationError: If the configuration is inconsistent
        """
        self.config = config or SimilarityConfig()
        ensure_valid(self.config, "Invalid similarity configuration")
        self.weights = self.config.weights
        self._stop_words = frozenset(w.lower() for w in self.config.stop_words)

    def calculate_similarity(
        self,
        query: SimilarityQuery,
        candidate: CatalogEntry,
    ) -> SimilarityResult:
        """
        Score a query against one catalog entry.

        Args:
            query: Incoming coordinates, title and tags
            candidate: Existing catalog entry

        Returns:
            SimilarityResult with per-signal scores and the duplicate tier
        """
        signals = [self._distance_signal(query.coordinates, candidate.coordinates)]

        if query.title and candidate.title:
            signals.append(self._title_signal(query.title, candidate.title))

        candidate_tags = flatten_tags(candidate.tags)
        query_tags = flatten_tags(query.tags)
        if query_tags and candidate_tags:
            signals.append(self._tag_signal(query_tags, candidate_tags))

        total = math.fsum(s.weighted_score for s in signals)
        overall = round(min(1.0, max(0.0, total)), 12)

        return SimilarityResult(
            candidate_id=candidate.id,
            overall_score=overall,
            signals=signals,
            threshold=self.classify(overall),
            metadata={
                "distance": signals[0].metadata["distance_meters"],
                "title": candidate.title,
                "tags": candidate_tags,
            },
        )

    def find_similar(
        self,
        query: SimilarityQuery,
        catalog: Iterable[CatalogEntry],
        min_tier: SimilarityTier | str | None = None,
    ) -> list[SimilarityResult]:
        """
        Score a query against a whole catalog.

        Args:
            query: Incoming coordinates, title and tags
            catalog: Existing entries to compare against
            min_tier: Optional minimum tier to keep ("warn" or "high")

        Returns:
            Results sorted by descending overall score
        """
        results = [self.calculate_similarity(query, entry) for entry in catalog]
        if min_tier is not None:
            results = filter_by_threshold(results, min_tier)
        return sort_by_similarity(results)

    def classify(self, score: float) -> SimilarityTier:
        """Map an overall score to its duplicate tier."""
        if score >= self.config.threshold_high:
            return SimilarityTier.HIGH
        if score >= self.config.threshold_warn:
            return SimilarityTier.WARN
        return SimilarityTier.NONE

    def normalize_title(self, title: str) -> str:
        """Lowercase, strip punctuation, collapse whitespace and drop stop words."""
        words = _PUNCTUATION.sub("", title.lower()).split()
        return " ".join(w for w in words if w not in self._stop_words)

    def _distance_signal(self, a: Coordinates, b: Coordinates) -> SimilaritySignal:
        distance = haversine_distance(a, b)
        optimal = self.config.optimal_distance_meters
        maximum = self.config.max_distance_meters

        if distance <= optimal:
            raw = 1.0
        else:
            raw = max(0.0, 1.0 - (distance - optimal) / (maximum - optimal))

        return SimilaritySignal(
            type=SignalType.DISTANCE,
            raw_score=raw,
            weighted_score=raw * self.weights[SignalType.DISTANCE],
            metadata={"distance_meters": distance},
        )

    def _title_signal(self, query_title: str, candidate_title: str) -> SimilaritySignal:
        normalized_query = self.normalize_title(query_title)
        normalized_candidate = self.normalize_title(candidate_title)

        min_length = self.config.min_title_length
        if len(normalized_query) < min_length or len(normalized_candidate) < min_length:
            return SimilaritySignal(
                type=SignalType.TITLE,
                raw_score=0.0,
                weighted_score=0.0,
                metadata={"reason": "title_too_short"},
            )

        raw = string_similarity(normalized_query, normalized_candidate)
        return SimilaritySignal(
            type=SignalType.TITLE,
            raw_score=raw,
            weighted_score=raw * self.weights[SignalType.TITLE],
            metadata={
                "query_normalized": normalized_query,
                "candidate_normalized": normalized_candidate,
            },
        )

    def _tag_signal(self, query_tags: list[str], candidate_tags: list[str]) -> SimilaritySignal:
        query_set = {t.strip().lower() for t in query_tags if t.strip()}
        candidate_set = {t.strip().lower() for t in candidate_tags if t.strip()}
        union = query_set | candidate_set
        common = query_set & candidate_set
        raw = len(common) / len(union) if union else 0.0

        return SimilaritySignal(
            type=SignalType.TAGS,
            raw_score=raw,
            weighted_score=raw * self.weights[SignalType.TAGS],
            metadata={
                "common_tags": sorted(common),
                "intersection_size": len(common),
                "union_size": len(union),
            },
        )


def sort_by_similarity(results: Iterable[SimilarityResult]) -> list[SimilarityResult]:
    """Sort results by overall score, highest first. Returns a new list."""
    return sorted(results, key=lambda r: r.overall_score, reverse=True)


def filter_by_threshold(
    results: Iterable[SimilarityResult],
    min_tier: SimilarityTier | str,
) -> list[SimilarityResult]:
    """
    Keep results classified at or above a tier.

    ``"warn"`` keeps warn and high; ``"high"`` keeps only high.
    """
    floor = _TIER_RANK[SimilarityTier(min_tier)]
    return [r for r in results if _TIER_RANK[r.threshold] >= floor]


def get_similarity_explanation(result: SimilarityResult) -> str:
    """
    Human-readable summary of a result.

    Example: ``"87% similar (45m away, similar title, matching tags)"``
    """
    explanations = []
    for signal in result.signals:
        if signal.type == SignalType.DISTANCE and "distance_meters" in signal.metadata:
            explanations.append(f"{round(signal.metadata['distance_meters'])}m away")
        elif signal.type == SignalType.TITLE and signal.raw_score > 0.5:
            explanations.append("similar title")
        elif signal.type == SignalType.TAGS and signal.raw_score > 0.3:
            explanations.append("matching tags")

    percent = round(result.overall_score * 100)
    if explanations:
        return f"{percent}% similar ({', '.join(explanations)})"
    return f"{percent}% similar"

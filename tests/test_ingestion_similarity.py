"""Tests for the similarity module."""

import pytest

from art_import.core.enums import SignalType, SimilarityTier
from art_import.core.errors import ConfigurationError
from art_import.core.schema import CandidateRecord, CatalogEntry, Coordinates
from art_import.ingestion.config import SimilarityConfig
from art_import.ingestion.similarity import (
    SimilarityEngine,
    SimilarityQuery,
    filter_by_threshold,
    get_similarity_explanation,
    haversine_distance,
    levenshtein_distance,
    sort_by_similarity,
    string_similarity,
)

# Roughly 1m of latitude in degrees.
METER = 1 / 111_195


def entry(
    entry_id: str,
    lat: float = 49.19,
    lon: float = -122.85,
    title: str | None = "Bear Totem",
    tags=None,
) -> CatalogEntry:
    return CatalogEntry(id=entry_id, coordinates=Coordinates(lat=lat, lon=lon), title=title, tags=tags)


def query(
    lat: float = 49.19,
    lon: float = -122.85,
    title: str | None = "Bear Totem",
    tags=None,
) -> SimilarityQuery:
    return SimilarityQuery(coordinates=Coordinates(lat=lat, lon=lon), title=title, tags=tags)


class TestHelpers:
    """Tests for the distance and string helpers."""

    def test_haversine_zero(self) -> None:
        point = Coordinates(lat=49.19, lon=-122.85)
        assert haversine_distance(point, point) == 0.0

    def test_haversine_known_distance(self) -> None:
        """Test one degree of latitude is about 111km."""
        a = Coordinates(lat=0.0, lon=0.0)
        b = Coordinates(lat=1.0, lon=0.0)
        assert haversine_distance(a, b) == pytest.approx(111_195, rel=1e-3)

    def test_levenshtein(self) -> None:
        assert levenshtein_distance("kitten", "sitting") == 3
        assert levenshtein_distance("", "abc") == 3
        assert levenshtein_distance("same", "same") == 0

    def test_string_similarity(self) -> None:
        assert string_similarity("abc", "abc") == 1.0
        assert string_similarity("", "abc") == 0.0
        assert string_similarity("abcd", "abce") == pytest.approx(0.75)


class TestSimilarityEngine:
    """Tests for SimilarityEngine scoring and classification."""

    @pytest.fixture
    def engine(self) -> SimilarityEngine:
        return SimilarityEngine()

    def test_default_weights_sum_to_one(self, engine: SimilarityEngine) -> None:
        """Test the default signal weights."""
        assert sum(engine.weights.values()) == pytest.approx(1.0)
        assert engine.weights[SignalType.DISTANCE] == 0.5

    def test_invalid_config_rejected(self) -> None:
        """Test that an inconsistent configuration raises."""
        with pytest.raises(ConfigurationError):
            SimilarityEngine(SimilarityConfig(weight_distance=0.8))

    def test_identical_records_score_one(self, engine: SimilarityEngine) -> None:
        """Test that identical location, title and tags score 1.0 and classify high."""
        tags = {"material": "cedar", "type": "totem"}
        result = engine.calculate_similarity(query(tags=tags), entry("a1", tags=tags))

        assert result.overall_score == 1.0
        assert result.threshold == SimilarityTier.HIGH
        assert result.candidate_id == "a1"
        assert len(result.signals) == 3

    def test_score_is_sum_of_weighted_signals(self, engine: SimilarityEngine) -> None:
        """Test that the overall score equals the sum of weighted signals."""
        result = engine.calculate_similarity(
            query(lat=49.19 + 300 * METER, title="Bear Totem Pole", tags=["cedar", "wood"]),
            entry("a1", tags=["cedar", "stone"]),
        )
        total = sum(s.weighted_score for s in result.signals)
        assert result.overall_score == pytest.approx(total)
        assert 0.0 <= result.overall_score <= 1.0

    def test_missing_signals_are_not_renormalized(self, engine: SimilarityEngine) -> None:
        """Test that only distance contributes when title and tags are absent."""
        result = engine.calculate_similarity(query(title=None), entry("a1", title=None))

        assert [s.type for s in result.signals] == [SignalType.DISTANCE]
        assert result.overall_score == pytest.approx(0.5)
        assert result.threshold == SimilarityTier.NONE

    def test_score_decreases_with_distance(self, engine: SimilarityEngine) -> None:
        """Test that moving the query further away never increases the score."""
        scores = [
            engine.calculate_similarity(query(lat=49.19 + d * METER), entry("a1")).overall_score
            for d in (0, 10, 100, 500, 900, 2000)
        ]
        assert scores == sorted(scores, reverse=True)

    def test_beyond_max_distance(self, engine: SimilarityEngine) -> None:
        """Test that the distance signal is zero past the max distance."""
        result = engine.calculate_similarity(query(lat=49.19 + 1500 * METER), entry("a1"))
        assert result.get_signal(SignalType.DISTANCE).raw_score == 0.0

    def test_optimal_distance_scores_full(self) -> None:
        """Test that anything within the optimal distance scores 1.0."""
        engine = SimilarityEngine(SimilarityConfig(optimal_distance_meters=50.0))
        result = engine.calculate_similarity(query(lat=49.19 + 30 * METER), entry("a1"))
        assert result.get_signal(SignalType.DISTANCE).raw_score == 1.0

    def test_nearby_same_title_and_tags_is_high(self, engine: SimilarityEngine) -> None:
        """Test that a record 45m away with the same title and tags is a high duplicate."""
        tags = ["mural", "community"]
        result = engine.calculate_similarity(
            query(lat=49.19 + 45 * METER, title="Salmon Run", tags=tags),
            entry("a1", title="Salmon Run", tags=tags),
        )
        assert result.overall_score >= 0.80
        assert result.threshold == SimilarityTier.HIGH

    def test_short_title_scores_zero(self, engine: SimilarityEngine) -> None:
        """Test that titles below the minimum length contribute nothing."""
        result = engine.calculate_similarity(query(title="The A"), entry("a1", title="The A"))

        signal = result.get_signal(SignalType.TITLE)
        assert signal.raw_score == 0.0
        assert signal.metadata["reason"] == "title_too_short"

    def test_title_normalization(self, engine: SimilarityEngine) -> None:
        """Test that case, punctuation and stop words are ignored."""
        assert engine.normalize_title("The Bear, and the Totem!") == "bear totem"
        result = engine.calculate_similarity(
            query(title="THE BEAR TOTEM"), entry("a1", title="Bear Totem.")
        )
        assert result.get_signal(SignalType.TITLE).raw_score == 1.0

    def test_tag_forms(self, engine: SimilarityEngine) -> None:
        """Test that list, mapping, wrapped and JSON string tags compare alike."""
        forms = [
            ["bronze", "statue"],
            {"material": "bronze", "type": "statue"},
            {"tags": {"material": "bronze", "type": "statue"}},
            '["bronze", "statue"]',
        ]
        for form in forms:
            result = engine.calculate_similarity(
                query(tags=["Bronze", "statue"]), entry("a1", tags=form)
            )
            assert result.get_signal(SignalType.TAGS).raw_score == 1.0

    def test_tag_jaccard(self, engine: SimilarityEngine) -> None:
        """Test the tag signal as intersection over union."""
        result = engine.calculate_similarity(
            query(tags=["a", "b", "c"]), entry("a1", tags=["b", "c", "d"])
        )
        signal = result.get_signal(SignalType.TAGS)
        assert signal.raw_score == pytest.approx(0.5)
        assert signal.metadata["common_tags"] == ["b", "c"]

    def test_empty_tags_omit_signal(self, engine: SimilarityEngine) -> None:
        result = engine.calculate_similarity(query(tags=[]), entry("a1", tags=["x"]))
        assert result.get_signal(SignalType.TAGS) is None

    def test_classify_boundaries(self, engine: SimilarityEngine) -> None:
        """Test tier boundaries are inclusive."""
        assert engine.classify(0.80) == SimilarityTier.HIGH
        assert engine.classify(0.65) == SimilarityTier.WARN
        assert engine.classify(0.6499) == SimilarityTier.NONE

    def test_from_candidate(self, engine: SimilarityEngine) -> None:
        record = CandidateRecord(
            external_id="x", coordinates=Coordinates(lat=1.0, lon=2.0), title="T", tags=["a"]
        )
        q = SimilarityQuery.from_candidate(record)
        assert q.coordinates == record.coordinates
        assert q.title == "T"


class TestResultHelpers:
    """Tests for sorting, filtering and explanation helpers."""

    @pytest.fixture
    def results(self):
        engine = SimilarityEngine()
        catalog = [
            entry("far", lat=49.19 + 2000 * METER, title="Unrelated Sculpture"),
            entry("high", title="Bear Totem", tags=["cedar"]),
            entry("warn", lat=49.19 + 300 * METER, title="Bear Totem"),
        ]
        q = query(tags=["cedar"])
        return [engine.calculate_similarity(q, e) for e in catalog]

    def test_tiers(self, results) -> None:
        """Test one result per tier."""
        by_id = {r.candidate_id: r.threshold for r in results}
        assert by_id == {
            "far": SimilarityTier.NONE,
            "high": SimilarityTier.HIGH,
            "warn": SimilarityTier.WARN,
        }

    def test_filter_warn_returns_warn_and_high(self, results) -> None:
        """Test that filtering at warn keeps exactly the warn and high results."""
        kept = filter_by_threshold(results, "warn")
        expected = [r for r in results if r.threshold in (SimilarityTier.WARN, SimilarityTier.HIGH)]
        assert kept == expected
        assert all(r.candidate_id != "far" for r in kept)

    def test_filter_high(self, results) -> None:
        kept = filter_by_threshold(results, SimilarityTier.HIGH)
        assert all(r.threshold == SimilarityTier.HIGH for r in kept)

    def test_sort_descending(self, results) -> None:
        ordered = sort_by_similarity(results)
        scores = [r.overall_score for r in ordered]
        assert scores == sorted(scores, reverse=True)
        assert ordered[0].candidate_id == "high"

    def test_find_similar(self) -> None:
        """Test scoring a whole catalog with a minimum tier."""
        engine = SimilarityEngine()
        catalog = [entry("near"), entry("far", lat=49.19 + 5000 * METER, title="Other Work")]
        results = engine.find_similar(query(), catalog, min_tier="warn")
        assert [r.candidate_id for r in results] == ["near"]

    def test_explanation(self) -> None:
        """Test the human-readable explanation string."""
        engine = SimilarityEngine()
        tags = ["mural"]
        result = engine.calculate_similarity(
            query(lat=49.19 + 45 * METER, tags=tags), entry("a1", tags=tags)
        )
        explanation = get_similarity_explanation(result)
        assert explanation.endswith("(45m away, similar title, matching tags)")
        assert explanation.startswith(f"{round(result.overall_score * 100)}% similar")

    def test_score_breakdown(self) -> None:
        engine = SimilarityEngine()
        result = engine.calculate_similarity(query(), entry("a1"))
        breakdown = result.score_breakdown
        assert set(breakdown) == {"distance", "title", "total"}
        assert breakdown["total"] == result.overall_score

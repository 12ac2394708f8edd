"""Tests for the scraper module."""

import json
from pathlib import Path
from typing import Any

import httpx
import pytest

from art_import.core.enums import ScraperState
from art_import.core.errors import NetworkError
from art_import.core.schema import CandidateRecord, Coordinates
from art_import.ingestion.crawler import HttpClient, RateLimiter
from art_import.ingestion.fields import FieldMap
from art_import.ingestion.scraper import (
    JsonFeedScraper,
    JsonFileSink,
    ScraperBase,
    ScraperOptions,
)


class SleepRecorder:
    """Async sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class StubScraper(ScraperBase):
    """Scraper with a scripted crawl for exercising the base class."""

    SCRAPER_NAME = "stub"

    def __init__(self, records: list[tuple[str, Any]] | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("rate_limiter", RateLimiter(0, 0, sleep=SleepRecorder()))
        super().__init__(**kwargs)
        self.records = records or []

    async def scrape(self) -> None:
        for external_id, extract in self.records:
            await self.process_record(external_id, extract)

    def get_source_url(self) -> str:
        return "https://art.example.org"


class RecordingSink:
    """Output sink that keeps what it was given."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict, list, list]] = []

    def write(self, name: str, metadata: dict, artworks: list, artists: list) -> list[Path]:
        self.calls.append((name, metadata, artworks, artists))
        return []


def candidate(external_id: str, title: str = "Salmon Run", lat: float = 49.19) -> CandidateRecord:
    return CandidateRecord(
        external_id=external_id,
        coordinates=Coordinates(lat=lat, lon=-122.85),
        title=title,
    )


class TestScraperBase:
    """Tests for the per-record protocol and run lifecycle."""

    def test_is_duplicate(self) -> None:
        """Test that the first sighting records the ID and later ones are duplicates."""
        scraper = StubScraper()
        assert scraper.is_duplicate("a") is False
        assert scraper.is_duplicate("a") is True
        assert scraper.is_duplicate("a") is True
        assert scraper.has_seen("a")
        assert not scraper.has_seen("b")

    @pytest.mark.asyncio
    async def test_process_record_outcomes(self) -> None:
        """Test that every outcome is counted and the stats stay consistent."""
        scraper = StubScraper()

        async def async_extract() -> CandidateRecord:
            return candidate("a")

        def network_failure() -> CandidateRecord:
            raise NetworkError("Failed", url="https://x", attempts=4, last_error="HTTP 500")

        def broken() -> CandidateRecord:
            raise KeyError("title")

        assert await scraper.process_record("a", async_extract) is not None
        assert await scraper.process_record("b", lambda: candidate("b")) is not None
        assert await scraper.process_record("a", async_extract) is None
        assert await scraper.process_record("c", network_failure) is None
        assert await scraper.process_record("d", broken) is None
        assert await scraper.process_record("e", lambda: None) is None
        assert await scraper.process_record("f", lambda: candidate("f", title=" ")) is None
        assert await scraper.process_record("g", lambda: candidate("g", lat=95.0)) is None

        stats = scraper.stats
        assert stats.total == 8
        assert stats.success == 2
        assert stats.skipped == 1
        assert stats.duplicates == 1
        assert stats.failed == 5
        assert stats.total == stats.success + stats.failed + stats.skipped
        assert [r.external_id for r in scraper.artworks] == ["a", "b"]

    def test_record_failure(self) -> None:
        scraper = StubScraper()
        scraper.record_failure("unparseable listing row")
        assert scraper.stats.total == 1
        assert scraper.stats.failed == 1

    def test_track_artist_once(self) -> None:
        scraper = StubScraper()
        scraper.track_artist("Jane Doe", "jane-doe", "https://art.example.org/jane")
        scraper.track_artist("Jane D.", "jane-doe")
        assert list(scraper.artists) == ["jane-doe"]
        assert scraper.artists["jane-doe"].name == "Jane Doe"
        assert scraper.artists["jane-doe"].properties["source"] == "https://art.example.org"

    def test_crawl_bounds(self) -> None:
        scraper = StubScraper()
        scraper.set_max_pages(2)
        assert scraper.should_continue(2)
        assert not scraper.should_continue(3)

        scraper.set_limit(0)
        assert scraper.limit_reached()
        assert not scraper.should_continue(1)

    @pytest.mark.asyncio
    async def test_run_writes_output(self, tmp_path: Path) -> None:
        """Test that a run finishes DONE and saves through the sink."""
        sink = RecordingSink()
        scraper = StubScraper([("a", lambda: candidate("a"))], sink=sink)

        stats = await scraper.run(ScraperOptions(output_dir=str(tmp_path)))

        assert scraper.state == ScraperState.DONE
        assert stats.success == 1
        assert stats.duration_seconds >= 0
        name, metadata, artworks, artists = sink.calls[0]
        assert name == "stub"
        assert metadata["source"] == "https://art.example.org"
        assert artworks[0]["id"] == "a"
        assert artists == []

    @pytest.mark.asyncio
    async def test_run_failure_propagates(self) -> None:
        """Test that a crashing scrape marks the run FAILED and re-raises."""

        class CrashingScraper(StubScraper):
            async def scrape(self) -> None:
                raise RuntimeError("layout changed")

        sink = RecordingSink()
        scraper = CrashingScraper(sink=sink)

        with pytest.raises(RuntimeError, match="layout changed"):
            await scraper.run()

        assert scraper.state == ScraperState.FAILED
        assert sink.calls == []


class TestConvertToMarkdown:
    """Tests for HTML to Markdown conversion."""

    def test_basic_html(self) -> None:
        html = "<p>Hello <strong>world</strong></p><p>Line<br/>two &amp; <em>more</em></p>"
        assert ScraperBase.convert_to_markdown(html) == "Hello **world**\n\nLine\ntwo & *more*"

    def test_strips_scripts_and_tags(self) -> None:
        html = "<div><script>alert(1)</script><span>Cast&nbsp;bronze</span></div>"
        assert ScraperBase.convert_to_markdown(html) == "Cast bronze"

    def test_empty(self) -> None:
        assert ScraperBase.convert_to_markdown(None) == ""
        assert ScraperBase.convert_to_markdown("") == ""


class TestJsonFileSink:
    """Tests for the JSON file output sink."""

    def test_writes_three_files(self, tmp_path: Path) -> None:
        sink = JsonFileSink(tmp_path / "output")
        artists = [{"type": "Artist", "id": "jane-doe", "name": "Jane Doe", "properties": {}}]

        paths = sink.write("surrey", {"scraper": "surrey"}, [candidate("a").to_feature()], artists)

        assert [p.name for p in paths] == [
            "surrey-artworks.geojson",
            "surrey-artists.json",
            "surrey-artists-flat.json",
        ]
        artworks = json.loads(paths[0].read_text())
        assert artworks["type"] == "FeatureCollection"
        assert artworks["metadata"] == {"scraper": "surrey", "totalItems": 1}
        assert json.loads(paths[1].read_text())["artists"] == artists
        assert json.loads(paths[2].read_text()) == artists


class TestJsonFeedScraper:
    """Tests for the paged JSON feed scraper."""

    @pytest.fixture
    def pages(self) -> dict[str, Any]:
        return {
            "1": {
                "items": [
                    {"id": 1, "title": "Salmon Run", "lat": 49.19, "lon": -122.85, "artist": "Jane Doe"},
                    {
                        "id": 2,
                        "title": "Owl",
                        "lat": 49.2,
                        "lon": -122.8,
                        "description": "<p>Cedar <b>carving</b></p>",
                    },
                ]
            },
            "2": {
                "items": [
                    {"id": 2, "title": "Owl", "lat": 49.2, "lon": -122.8},
                    {"id": 3, "title": "Bench", "lat": 49.1, "lon": -122.7, "artist": "Jane Doe, Ray Lee"},
                    {"id": 4, "title": "No Location"},
                    {"title": "No Id", "lat": 1.0, "lon": 1.0},
                ]
            },
            "3": {"items": []},
        }

    def make_scraper(self, pages: dict[str, Any], sleep: SleepRecorder, **kwargs: Any) -> JsonFeedScraper:
        requested: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            page = request.url.params.get("page")
            requested.append(page)
            return httpx.Response(200, json=pages.get(page, {"items": []}))

        scraper = JsonFeedScraper(
            "https://art.example.org/api/artworks?format=json",
            "example",
            rate_limiter=RateLimiter(1000, 0, sleep=sleep),
            http_client=HttpClient(transport=httpx.MockTransport(handler), sleep=sleep),
            **kwargs,
        )
        scraper.requested = requested
        return scraper

    @pytest.mark.asyncio
    async def test_full_crawl(self, pages: dict[str, Any], tmp_path: Path) -> None:
        """Test a crawl across pages with duplicates and bad items."""
        sleep = SleepRecorder()
        scraper = self.make_scraper(pages, sleep)

        stats = await scraper.run(ScraperOptions(output_dir=str(tmp_path)))

        assert scraper.requested == ["1", "2", "3"]
        assert sleep.calls == [1.0, 1.0]
        assert stats.total == 6
        assert stats.success == 3
        assert stats.skipped == 1
        assert stats.duplicates == 1
        assert stats.failed == 2
        assert [r.external_id for r in scraper.artworks] == ["1", "2", "3"]
        assert scraper.artworks[1].description == "Cedar **carving**"
        assert sorted(scraper.artists) == ["jane-doe", "ray-lee"]

        artworks = json.loads((tmp_path / "example-artworks.geojson").read_text())
        assert artworks["metadata"]["totalItems"] == 3
        assert (tmp_path / "example-artists-flat.json").exists()

    @pytest.mark.asyncio
    async def test_max_pages(self, pages: dict[str, Any], tmp_path: Path) -> None:
        sleep = SleepRecorder()
        scraper = self.make_scraper(pages, sleep)

        await scraper.run(ScraperOptions(output_dir=str(tmp_path), max_pages=1))

        assert scraper.requested == ["1"]
        assert len(scraper.artworks) == 2

    @pytest.mark.asyncio
    async def test_limit(self, pages: dict[str, Any], tmp_path: Path) -> None:
        sleep = SleepRecorder()
        scraper = self.make_scraper(pages, sleep)

        await scraper.run(ScraperOptions(output_dir=str(tmp_path), limit=1))

        assert [r.external_id for r in scraper.artworks] == ["1"]
        assert scraper.requested == ["1"]

    @pytest.mark.asyncio
    async def test_stops_on_page_without_new_records(self, tmp_path: Path) -> None:
        """Test that a feed repeating its last page does not loop forever."""
        sleep = SleepRecorder()
        repeated = {"items": [{"id": 1, "title": "Salmon Run", "lat": 49.19, "lon": -122.85}]}
        scraper = self.make_scraper({"1": repeated, "2": repeated, "3": repeated}, sleep)

        stats = await scraper.run(ScraperOptions(output_dir=str(tmp_path)))

        assert scraper.requested == ["1", "2"]
        assert stats.success == 1
        assert stats.duplicates == 1

    @pytest.mark.asyncio
    async def test_custom_fields(self, tmp_path: Path) -> None:
        sleep = SleepRecorder()
        pages = {"1": {"data": [{"objectid": "x9", "name": "Heron", "y": 49.0, "x": -123.0}]}}
        scraper = self.make_scraper(
            pages,
            sleep,
            items_key="data",
            fields=FieldMap(id="objectid", title="name", lat="y", lon="x"),
        )

        await scraper.run(ScraperOptions(output_dir=str(tmp_path)))

        assert scraper.artworks[0].external_id == "x9"
        assert scraper.artworks[0].title == "Heron"

    def test_page_url(self) -> None:
        scraper = JsonFeedScraper("https://art.example.org/api?format=json", page_param="p")
        assert scraper.page_url(3) == "https://art.example.org/api?format=json&p=3"

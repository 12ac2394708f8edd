"""
Scraper Module
==============

Base class for site scrapers that turn a municipal public-art website or
feed into candidate records.

Scrapers are responsible for:
1. Crawling listing pages, strictly sequentially
2. Extracting one candidate per discovered record
3. Persisting the accumulated artworks and artists for a later import run
"""

from __future__ import annotations

import html
import inspect
import json
import logging
import re
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

import httpx

from art_import.core.enums import ScraperState
from art_import.core.errors import NetworkError
from art_import.core.schema import ArtistRecord, CandidateRecord
from art_import.ingestion.crawler import HttpClient, RateLimiter
from art_import.ingestion.fields import FieldMap, dig, slugify

logger = logging.getLogger(__name__)

Extractor = Callable[[], CandidateRecord | None | Awaitable[CandidateRecord | None]]


@dataclass
class ScraperOptions:
    """Options for a single scraper run."""

    output_dir: str = "./output"
    max_pages: int | None = None
    limit: int | None = None
    verbose: bool = False


@dataclass
class ScraperStats:
    """Per-run counters. ``total == success + failed + skipped``."""

    total: int = 0
    success: int = 0
    failed: int = 0
    skipped: int = 0
    duplicates: int = 0
    duration_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class OutputSink(Protocol):
    """Destination for a finished scrape."""

    def write(
        self,
        name: str,
        metadata: dict[str, Any],
        artworks: list[dict[str, Any]],
        artists: list[dict[str, Any]],
    ) -> list[Path]: ...


class JsonFileSink:
    """
    Writes scraper output as JSON files in a directory.

    Files:
    - ``<name>-artworks.geojson``: FeatureCollection with run metadata
    - ``<name>-artists.json``: ``{metadata, artists[]}``
    - ``<name>-artists-flat.json``: top-level artist array for legacy importers
    """

    def __init__(self, output_dir: Path | str) -> None:
        self.output_dir = Path(output_dir)

    def write(
        self,
        name: str,
        metadata: dict[str, Any],
        artworks: list[dict[str, Any]],
        artists: list[dict[str, Any]],
    ) -> list[Path]:
        self.output_dir.mkdir(parents=True, exist_ok=True)

        artwork_path = self.output_dir / f"{name}-artworks.geojson"
        self._dump(
            artwork_path,
            {
                "type": "FeatureCollection",
                "metadata": {**metadata, "totalItems": len(artworks)},
                "features": artworks,
            },
        )
        logger.info(f"Saved {len(artworks)} artworks to {artwork_path}")

        artist_path = self.output_dir / f"{name}-artists.json"
        self._dump(artist_path, {"metadata": {**metadata, "totalItems": len(artists)}, "artists": artists})
        logger.info(f"Saved {len(artists)} artists to {artist_path}")

        flat_path = self.output_dir / f"{name}-artists-flat.json"
        self._dump(flat_path, artists)
        logger.info(f"Saved flat artists array to {flat_path}")

        return [artwork_path, artist_path, flat_path]

    @staticmethod
    def _dump(path: Path, data: Any) -> None:
        path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")


class ScraperBase(ABC):
    """
    Abstract base class for site scrapers.

    Subclasses must implement:
    - scrape: Crawl the source, calling ``process_record`` per record
    - get_source_url: The source's canonical URL
    """

    SCRAPER_NAME: str = "base"
    SCRAPER_VERSION: str = "1.0.0"

    def __init__(
        self,
        name: str | None = None,
        *,
        rate_limiter: RateLimiter | None = None,
        http_client: HttpClient | None = None,
        sink: OutputSink | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        """
        Initialize the scraper.

        Args:
            name: Output file prefix (defaults to SCRAPER_NAME)
            rate_limiter: Politeness limiter (default 1500ms + 0-500ms jitter)
            http_client: HTTP client for page and record fetches
            sink: Output destination (default JSON files in options.output_dir)
            log: Logger to report progress to
        """
        self.name = name or self.SCRAPER_NAME
        self.version = self.SCRAPER_VERSION
        self.rate_limiter = rate_limiter or RateLimiter(1500, 500)
        self.http_client = http_client or HttpClient()
        self.sink = sink
        self._log = log or logger

        self.artworks: list[CandidateRecord] = []
        self.artists: dict[str, ArtistRecord] = {}
        self.stats = ScraperStats()
        self.state = ScraperState.IDLE
        self.current_page = 0
        self.max_pages: int | None = None
        self.limit: int | None = None
        self._seen_ids: set[str] = set()

    @abstractmethod
    async def scrape(self) -> None:
        """Crawl the source and process every discovered record."""
        pass

    @abstractmethod
    def get_source_url(self) -> str:
        """Canonical URL of the source being scraped."""
        pass

    def set_max_pages(self, max_pages: int | None) -> None:
        self.max_pages = max_pages

    def set_limit(self, limit: int | None) -> None:
        self.limit = limit

    # State transitions

    def begin_page(self, page: int) -> None:
        """Enter the crawling state for a listing page."""
        self.state = ScraperState.CRAWLING
        self.current_page = page
        self._log.debug(f"Crawling page {page}")

    def begin_record(self) -> None:
        """Enter the scraping state for a single record."""
        self.state = ScraperState.SCRAPING

    # Run

    async def run(self, options: ScraperOptions | None = None) -> ScraperStats:
        """
        Run the scraper and persist its output.

        Args:
            options: Output directory, crawl bounds and verbosity

        Returns:
            ScraperStats for the run

        Raises:
            Exception: Whatever ``scrape()`` raised; the state becomes FAILED
        """
        options = options or ScraperOptions()
        if options.verbose:
            self._log.setLevel(logging.DEBUG)
        if options.max_pages is not None:
            self.set_max_pages(options.max_pages)
        if options.limit is not None:
            self.set_limit(options.limit)

        started = time.perf_counter()
        self._log.info(f"Starting scraper: {self.name} v{self.version}")
        self.state = ScraperState.CRAWLING

        try:
            await self.scrape()
            self.state = ScraperState.DRAINING
            self.save_output(options.output_dir)
        except Exception as e:
            self.state = ScraperState.FAILED
            self._log.error(f"Scraper failed: {e}")
            raise
        finally:
            await self.http_client.aclose()

        self.state = ScraperState.DONE
        self.stats.duration_seconds = time.perf_counter() - started
        self._log.info(
            f"Scraper completed in {self.stats.duration_seconds:.2f}s: "
            f"{self.stats.total} total, {self.stats.success} success, "
            f"{self.stats.failed} failed, {self.stats.skipped} skipped, "
            f"{self.stats.duplicates} duplicates"
        )
        return self.stats

    def save_output(self, output_dir: Path | str) -> list[Path]:
        """Hand accumulated artworks and artists to the output sink."""
        sink = self.sink or JsonFileSink(output_dir)
        metadata = {
            "scraper": self.name,
            "version": self.version,
            "source": self.get_source_url(),
            "scrapedAt": datetime.now(UTC).isoformat(),
        }
        return sink.write(
            self.name,
            metadata,
            [record.to_feature() for record in self.artworks],
            [artist.to_dict() for artist in self.artists.values()],
        )

    # Per-record protocol

    def is_duplicate(self, external_id: str) -> bool:
        """
        Check whether an ID was already seen in this run.

        The first call for an ID records it and returns False; every later
        call returns True.
        """
        if external_id in self._seen_ids:
            return True
        self._seen_ids.add(external_id)
        return False

    def has_seen(self, external_id: str) -> bool:
        """Check for an ID without recording it."""
        return external_id in self._seen_ids

    async def process_record(self, external_id: str, extract: Extractor) -> CandidateRecord | None:
        """
        Run the per-record protocol for one discovered record.

        Args:
            external_id: Source-side ID of the record
            extract: Builds the candidate; may be sync or async

        Returns:
            The accepted candidate, or None if it was skipped or failed
        """
        self.begin_record()
        self.stats.total += 1

        if self.is_duplicate(external_id):
            self.stats.duplicates += 1
            self.stats.skipped += 1
            self._log.debug(f"Skipping duplicate record {external_id}")
            return None

        try:
            result = extract()
            if inspect.isawaitable(result):
                result = await result
        except NetworkError as e:
            self._fail(external_id, f"fetch failed after {e.attempts} attempts: {e.last_error}")
            return None
        except Exception as e:
            self._fail(external_id, f"{e.__class__.__name__}: {e}")
            return None

        if result is None:
            self._fail(external_id, "no data extracted")
            return None

        problems = self.validate_record(result)
        if problems:
            self._fail(external_id, "; ".join(problems))
            return None

        self.artworks.append(result)
        self.stats.success += 1
        return result

    def record_failure(self, reason: str) -> None:
        """Count a discovered record that could not even be identified."""
        self.stats.total += 1
        self.stats.failed += 1
        self._log.warning(f"Record failed: {reason}")

    def _fail(self, external_id: str, reason: str) -> None:
        self.stats.failed += 1
        self._log.warning(f"Record {external_id} failed: {reason}")

    @staticmethod
    def validate_record(record: CandidateRecord) -> list[str]:
        """Minimal acceptance checks: a title and in-range coordinates."""
        problems = []
        if not record.title or not record.title.strip():
            problems.append("missing title")
        if not record.coordinates.in_range:
            problems.append(
                f"coordinates out of range ({record.coordinates.lat}, {record.coordinates.lon})"
            )
        return problems

    def track_artist(self, name: str, artist_id: str, url: str = "") -> None:
        """Record an artist the first time it is seen."""
        if artist_id in self.artists:
            return
        self._log.debug(f"Tracking new artist: {name}")
        self.artists[artist_id] = ArtistRecord(
            id=artist_id,
            name=name,
            properties={"source": self.get_source_url(), "source_url": url},
        )

    # Crawl control

    def limit_reached(self) -> bool:
        return self.limit is not None and len(self.artworks) >= self.limit

    def should_continue(self, page: int) -> bool:
        """Whether the crawl may fetch the given (1-based) page."""
        if self.limit_reached():
            return False
        return self.max_pages is None or page <= self.max_pages

    async def polite_wait(self) -> None:
        """Wait between fetches."""
        await self.rate_limiter.wait()

    @staticmethod
    def convert_to_markdown(content: str | None) -> str:
        """Convert a basic HTML description to Markdown."""
        if not content:
            return ""

        text = re.sub(r"<script\b[^>]*>.*?</script>", "", content, flags=re.IGNORECASE | re.DOTALL)
        text = re.sub(r"<br\s*/?>", "\n", text, flags=re.IGNORECASE)
        text = re.sub(r"<p[^>]*>(.*?)</p>", r"\1\n\n", text, flags=re.IGNORECASE | re.DOTALL)
        text = re.sub(r"<(strong|b)>(.*?)</\1>", r"**\2**", text, flags=re.IGNORECASE | re.DOTALL)
        text = re.sub(r"<(em|i)>(.*?)</\1>", r"*\2*", text, flags=re.IGNORECASE | re.DOTALL)
        text = re.sub(r"<[^>]+>", "", text)
        text = html.unescape(text).replace("\xa0", " ")
        text = re.sub(r"\n{3,}", "\n\n", text)
        return text.strip()


class JsonFeedScraper(ScraperBase):
    """
    Scraper for paged JSON feeds.

    Fetches ``feed_url`` with an incrementing page query parameter and reads
    an ``items`` array (or a top-level array) from each page. The crawl stops
    on an empty page, on a page whose items were all seen before, or when the
    page/record bounds are hit.
    """

    SCRAPER_NAME = "json-feed"

    def __init__(
        self,
        feed_url: str,
        name: str | None = None,
        *,
        page_param: str = "page",
        start_page: int = 1,
        items_key: str = "items",
        fields: FieldMap | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(name, **kwargs)
        self.feed_url = feed_url
        self.page_param = page_param
        self.start_page = start_page
        self.items_key = items_key
        self.fields = fields or FieldMap()

    def get_source_url(self) -> str:
        return self.feed_url

    def page_url(self, page: int) -> str:
        return str(httpx.URL(self.feed_url).copy_merge_params({self.page_param: page}))

    def page_items(self, payload: Any) -> list[dict[str, Any]]:
        """Extract the item list from a page payload."""
        if isinstance(payload, dict):
            payload = payload.get(self.items_key)
        if not isinstance(payload, list):
            return []
        return [item for item in payload if isinstance(item, dict)]

    async def scrape(self) -> None:
        page = self.start_page
        pages_crawled = 0

        while self.should_continue(pages_crawled + 1):
            if pages_crawled > 0:
                await self.polite_wait()

            self.begin_page(page)
            try:
                payload = await self.http_client.fetch_json(self.page_url(page))
            except (NetworkError, ValueError) as e:
                self._log.error(f"Failed to load page {page} of {self.feed_url}: {e}")
                break
            pages_crawled += 1

            items = self.page_items(payload)
            if not items:
                self._log.info(f"Page {page} is empty, stopping")
                break

            new_items = 0
            for item in items:
                if self.limit_reached():
                    self._log.info(f"Reached limit of {self.limit} records")
                    return

                external_id = self.fields.external_id(item)
                if external_id is None:
                    self.record_failure(f"item without '{self.fields.id}' on page {page}")
                    continue

                if not self.has_seen(external_id):
                    new_items += 1
                await self.process_record(
                    external_id,
                    lambda item=item, external_id=external_id: self.map_item(item, external_id),
                )

            if new_items == 0:
                self._log.info(f"Page {page} yielded no new records, stopping")
                break
            page += 1

    def map_item(self, item: dict[str, Any], external_id: str) -> CandidateRecord:
        """
        Map one feed item to a candidate, tracking its artists.

        Raises:
            ValueError: If the item has no usable coordinates
        """
        description = dig(item, self.fields.description)
        record = self.fields.to_candidate(
            item,
            external_id,
            source=self.name,
            description=self.convert_to_markdown(description) if isinstance(description, str) else None,
        )
        for artist in record.artists:
            self.track_artist(artist, slugify(artist), record.source_url)
        return record

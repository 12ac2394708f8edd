"""
Art Import Ingestion Framework
==============================

This package provides the mass-import pipeline for bringing public-art
records from municipal sites and open-data exports into the registry.

Pipeline Stages:
1. Scrape - Site scrapers crawl sources politely and write GeoJSON output
2. Import - Importer plugins validate payloads and map them to candidates
3. Deduplicate - The similarity engine scores candidates against the catalog
4. Route - Each candidate is created, merged into a duplicate, or skipped
5. Export - Exporter plugins hand created records to their destination
6. Report - Every outcome is tracked in a per-run processing report
"""

from art_import.ingestion.config import (
    AppConfig,
    HttpConfig,
    ImportConfig,
    RateLimitConfig,
    SimilarityConfig,
    load_config,
)
from art_import.ingestion.crawler import (
    HttpClient,
    RateLimiter,
)
from art_import.ingestion.scraper import (
    JsonFeedScraper,
    JsonFileSink,
    ScraperBase,
    ScraperOptions,
    ScraperStats,
)
from art_import.ingestion.similarity import (
    SimilarityEngine,
    SimilarityQuery,
    SimilarityResult,
    SimilaritySignal,
    filter_by_threshold,
    get_similarity_explanation,
    sort_by_similarity,
)
from art_import.ingestion.report import (
    OperationParams,
    ReportTracker,
    save_report,
)
from art_import.ingestion.plugins import (
    PluginRegistry,
    create_default_registry,
)
from art_import.ingestion.pipeline import (
    ImportOrchestrator,
    PipelineResult,
    ProcessingOptions,
)

__all__ = [
    # Config
    "AppConfig",
    "HttpConfig",
    "ImportConfig",
    "RateLimitConfig",
    "SimilarityConfig",
    "load_config",
    # Crawler
    "HttpClient",
    "RateLimiter",
    # Scraper
    "JsonFeedScraper",
    "JsonFileSink",
    "ScraperBase",
    "ScraperOptions",
    "ScraperStats",
    # Similarity
    "SimilarityEngine",
    "SimilarityQuery",
    "SimilarityResult",
    "SimilaritySignal",
    "filter_by_threshold",
    "get_similarity_explanation",
    "sort_by_similarity",
    # Report
    "OperationParams",
    "ReportTracker",
    "save_report",
    # Plugins
    "PluginRegistry",
    "create_default_registry",
    # Pipeline
    "ImportOrchestrator",
    "PipelineResult",
    "ProcessingOptions",
]

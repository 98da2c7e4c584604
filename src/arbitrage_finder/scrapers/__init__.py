"""Fetch clients, scrape orchestration and detail page enrichment."""

from .base import Fetcher, PageStats, ScrapeError, ScrapeMode, ScrapeOutcome, SearchResult
from .browser import PlaywrightFetcher
from .detail import DetailScraper, parse_detail_page
from .orchestrator import MarketScraper
from .zyte import ZyteFetcher, build_request_profile

__all__ = [
    "Fetcher",
    "PageStats",
    "ScrapeError",
    "ScrapeMode",
    "ScrapeOutcome",
    "SearchResult",
    "PlaywrightFetcher",
    "DetailScraper",
    "parse_detail_page",
    "MarketScraper",
    "ZyteFetcher",
    "build_request_profile",
]

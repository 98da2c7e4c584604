"""Scrape orchestration: retry loop, block handling and pagination.

One `scrape()` call is strictly sequential: attempts, then pages, one fetch at
a time, with a backoff between attempts and a jittered pause between pages.

Attempt loop (attempt i fetches at profile level i + 1):
    no HTML           -> retry, FAILED once attempts run out
    website ban       -> retry if retry-eligible, else BLOCKED
    block keywords    -> retry if retry-eligible, else BLOCKED
    zero listings     -> retry if retry-eligible, else OK with a zero-listings reason
    listings          -> done (FAST / single-page marketplaces) or paginate (FULL)
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable

from ..blocking import detect_blocked_content, is_bad_endpoint, is_website_ban
from ..config import PaginationConfig, ScraperConfig, config
from ..models.listing import Listing
from ..parsers.registry import MarketplaceParser, parse_search_page, select_parser_by_hostname
from .base import Fetcher, PageStats, ScrapeMode, SearchResult
from .pagination import (
    PAGINATED,
    PaginationMode,
    build_paginated_url,
    detect_total_pages,
    max_pages_for,
    normalize_listing_url,
)

logger = logging.getLogger(__name__)

NO_HTML_REASON = "Zyte API returned no HTML after retries"
WEBSITE_BAN_REASON = "Zyte website-ban error detected"


class MarketScraper:
    """Scrapes one search URL into a SearchResult.

    Args:
        fetcher: Source of rendered HTML.
        scraper_config: Retry budget, backoff and retry eligibility.
        pagination_config: Page caps, inter-page delay and early-stop threshold.
        sleep: Awaitable sleep, injectable for tests.
        rng: Random source for the inter-page jitter.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        scraper_config: ScraperConfig | None = None,
        pagination_config: PaginationConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ):
        self.fetcher = fetcher
        self.scraper_config = scraper_config or config.scraper
        self.pagination_config = pagination_config or config.pagination
        self._sleep = sleep
        self._rng = rng or random.Random()

    def max_attempts(self, mode: ScrapeMode) -> int:
        if mode == ScrapeMode.FULL:
            return self.scraper_config.max_retries
        return self.scraper_config.fast_max_retries

    def is_retry_eligible(self, kind: MarketplaceParser) -> bool:
        return kind.value in self.scraper_config.retry_eligible

    async def scrape(self, url: str, mode: ScrapeMode = ScrapeMode.FULL) -> SearchResult:
        """Fetch, parse and (in FULL mode) paginate a search URL.

        Raises:
            ParserContaminationError: If parser selection is inconsistent with the URL.
        """
        kind = select_parser_by_hostname(url)
        attempts = self.max_attempts(mode)
        retry_eligible = self.is_retry_eligible(kind)
        logger.info(f"Scraping {url} ({kind.value}, {mode.value} mode, {attempts} attempts)")

        for attempt in range(attempts):
            can_retry = attempt < attempts - 1
            if attempt > 0:
                delay = self.scraper_config.retry_delay_seconds(attempt)
                logger.info(f"Retry {attempt}/{attempts - 1} after {delay:.1f}s")
                await self._sleep(delay)

            html = await self.fetcher.fetch(url, profile_level=attempt + 1)

            if html is None:
                if not can_retry:
                    logger.warning(f"No HTML for {url} after {attempts} attempts")
                    return SearchResult.failed(NO_HTML_REASON, retry_count=attempt)
                logger.warning("No HTML returned, will retry")
                continue

            if kind == MarketplaceParser.BILBASEN and is_bad_endpoint(html):
                logger.warning(f"Bilbasen refused by rendering provider: {url}")
                return SearchResult.blocked("BILBASEN_BLOCKED: bad_endpoint", retry_count=attempt)

            if is_website_ban(html):
                if retry_eligible and can_retry:
                    logger.warning("Website ban detected, retrying with escalated profile")
                    continue
                return SearchResult.blocked(WEBSITE_BAN_REASON, retry_count=attempt)

            listings = parse_search_page(html, url)

            detection = detect_blocked_content(html, has_listings=bool(listings))
            if detection.is_blocked:
                if retry_eligible and can_retry:
                    logger.warning(f"Blocked content detected ({detection.matched_keyword}), retrying")
                    continue
                logger.warning(f"{kind.value} blocked: {detection.matched_keyword} ({detection.reason})")
                return SearchResult.blocked(
                    f"{kind.value}_BLOCKED: {detection.matched_keyword}",
                    retry_count=attempt,
                )

            if not listings:
                if retry_eligible and can_retry:
                    logger.warning("Zero listings extracted, retrying")
                    continue
                logger.warning(f"Zero listings extracted from {url}")
                return SearchResult.ok(
                    [],
                    retry_count=attempt,
                    extraction_method=kind.value,
                    error_reason=f"{kind.value}_ZERO_LISTINGS_AFTER_RETRIES",
                )

            logger.info(f"Extracted {len(listings)} listings from page 1 (attempt {attempt + 1})")
            if mode == ScrapeMode.FAST or kind not in PAGINATED:
                return SearchResult.ok(
                    listings,
                    retry_count=attempt,
                    extraction_method=kind.value,
                    pages=[PageStats(page=1, url=url, extracted=len(listings), new_unique=len(listings))],
                )
            return await self._paginate(kind, url, html, listings, retry_count=attempt)

        # Every branch of the last attempt returns; attempts are validated >= 1
        return SearchResult.failed("Max retries exceeded")

    def _jitter_seconds(self) -> float:
        low = self.pagination_config.delay_min_ms
        high = self.pagination_config.delay_max_ms
        return (low + self._rng.random() * (high - low)) / 1000

    async def _paginate(
        self,
        kind: MarketplaceParser,
        url: str,
        first_html: str,
        first_listings: list[Listing],
        retry_count: int,
    ) -> SearchResult:
        strategy = detect_total_pages(kind, first_html, self.pagination_config)
        total_pages = min(strategy.total_pages, max_pages_for(kind, self.pagination_config))
        logger.info(f"Pagination: mode={strategy.mode.value}, detected={strategy.total_pages}, capped to {total_pages}")

        seen: set[str] = set()
        collected: list[Listing] = []

        def add_unique(listings: list[Listing]) -> int:
            added = 0
            for listing in listings:
                key = normalize_listing_url(listing.listing_url)
                if key in seen:
                    continue
                seen.add(key)
                collected.append(listing)
                added += 1
            return added

        pages = [PageStats(page=1, url=url, extracted=len(first_listings), new_unique=add_unique(first_listings))]

        if total_pages <= 1 and strategy.mode == PaginationMode.KNOWN:
            return SearchResult.ok(collected, retry_count=retry_count, extraction_method=kind.value, pages=pages)

        early_stop_after = self.pagination_config.early_stop_after
        consecutive_empty = 0

        for page in range(2, total_pages + 1):
            page_url = build_paginated_url(kind, url, page)
            await self._sleep(self._jitter_seconds())
            logger.info(f"Fetching page {page}/{total_pages}: {page_url}")

            page_html = await self.fetcher.fetch(page_url, profile_level=1)
            if page_html is None:
                pages.append(PageStats(page=page, url=page_url, fetched=False))
                consecutive_empty += 1
                logger.warning(f"Failed to fetch page {page}")
                if consecutive_empty >= early_stop_after:
                    logger.warning(f"Early stop after {consecutive_empty} consecutive failed or empty pages")
                    break
                continue

            page_listings = parse_search_page(page_html, page_url)
            new_unique = add_unique(page_listings)
            pages.append(PageStats(page=page, url=page_url, extracted=len(page_listings), new_unique=new_unique))
            logger.info(f"Page {page}: extracted {len(page_listings)}, new unique {new_unique}")

            if new_unique == 0:
                consecutive_empty += 1
                if consecutive_empty >= early_stop_after:
                    logger.warning(f"Early stop after {consecutive_empty} consecutive failed or empty pages")
                    break
            else:
                consecutive_empty = 0

        logger.info(f"Collected {len(collected)} unique listings over {len(pages)} pages")
        return SearchResult.ok(collected, retry_count=retry_count, extraction_method=kind.value, pages=pages)

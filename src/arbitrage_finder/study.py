"""Study runner: scrape the target market, then the source market, then compare.

A blocked target short-circuits to TARGET_BLOCKED without touching the
source. A failed source still reports the target statistics already computed.
"""

from __future__ import annotations

import logging
import re
from urllib.parse import quote

from .analysis import (
    NO_TARGET_LISTINGS,
    compute_target_market_stats,
    execute_study_analysis,
    filter_listings_by_study,
)
from .models.study import StudyCriteria, StudyExecutionResult, StudyStatus
from .parsers.registry import MarketplaceParser, ParserContaminationError, select_parser_by_hostname
from .scrapers.base import ScrapeError, ScrapeMode, ScrapeOutcome
from .scrapers.orchestrator import MarketScraper

logger = logging.getLogger(__name__)

TARGET_FAILED = "Zyte scraper failed"
SOURCE_FAILED = "Zyte scraper failed on source"

LEBONCOIN_TEXT_PATTERN = re.compile(r"text=[^&]*")
BILBASEN_FREE_PATTERN = re.compile(r"free=[^&]*")
MARKTPLAATS_QUERY_PATTERN = re.compile(r"^q:[^|]*")


def _encode(trim: str) -> str:
    return quote(trim, safe="-_.!~*'()")


# =============================================================================
# Trim filters
# =============================================================================

def apply_trim_leboncoin(url: str, trim: str | None) -> str:
    """Set the text= search parameter, inserted before &kst= when present.

    apply_trim_leboncoin("...&kst=k", "GR") -> "...&text=GR&kst=k"
    """
    if not trim:
        return url
    encoded = _encode(trim)
    if "text=" in url:
        return LEBONCOIN_TEXT_PATTERN.sub(lambda _: f"text={encoded}", url, count=1)
    kst_index = url.find("&kst=")
    if kst_index != -1:
        return f"{url[:kst_index]}&text={encoded}{url[kst_index:]}"
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}text={encoded}"


def apply_trim_marktplaats(url: str, trim: str | None) -> str:
    """Put a q:<trim>| query in front of the URL's filter fragment.

    Marktplaats keeps its search filters in the fragment; URLs without one
    are returned unchanged.
    apply_trim_marktplaats("...#f:10882|...", "GR") -> "...#q:gr|f:10882|..."
    """
    if not trim:
        return url
    base, _, fragment = url.partition("#")
    if not fragment:
        return url
    query = trim.lower()
    if fragment.startswith("q:"):
        fragment = MARKTPLAATS_QUERY_PATTERN.sub(lambda _: f"q:{query}", fragment, count=1)
    else:
        fragment = f"q:{query}|{fragment}"
    return f"{base}#{fragment}"


def apply_trim_bilbasen(url: str, trim: str | None) -> str:
    """Set the free= text search parameter."""
    if not trim:
        return url
    encoded = _encode(trim)
    if "free=" in url:
        return BILBASEN_FREE_PATTERN.sub(lambda _: f"free={encoded}", url, count=1)
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}free={encoded}"


TRIM_APPLIERS = {
    MarketplaceParser.LEBONCOIN: apply_trim_leboncoin,
    MarketplaceParser.MARKTPLAATS: apply_trim_marktplaats,
    MarketplaceParser.BILBASEN: apply_trim_bilbasen,
}


def apply_trim(url: str, trim: str | None) -> str:
    """Apply a trim filter to a search URL of any supported marketplace."""
    trim = trim.strip() if trim else None
    applier = TRIM_APPLIERS.get(select_parser_by_hostname(url))
    if not trim or applier is None:
        return url
    return applier(url, trim)


# =============================================================================
# Runner
# =============================================================================

class StudyRunner:
    """Runs studies against live marketplaces through a MarketScraper."""

    def __init__(self, scraper: MarketScraper):
        self.scraper = scraper
        self.errors: list[ScrapeError] = []

    async def run(
        self,
        criteria: StudyCriteria,
        target_url: str,
        source_url: str,
        threshold: float,
        mode: ScrapeMode = ScrapeMode.FULL,
        trim_target: str | None = None,
        trim_source: str | None = None,
    ) -> StudyExecutionResult:
        """Run one study.

        Args:
            criteria: Brand / model / year / mileage filter.
            target_url: Search URL of the market defining the price ceiling.
            source_url: Search URL of the market searched for cheap listings.
            threshold: Minimum median-minus-best-source gap in EUR.
            mode: Scrape mode for both markets.
            trim_target: Optional trim text added to the target search.
            trim_source: Optional trim text added to the source search.

        Returns:
            StudyExecutionResult. Scrape failures and unexpected errors are
            reported as NULL results with an error_reason.

        Raises:
            ParserContaminationError: On a parser/hostname mismatch.
        """
        target_url = apply_trim(target_url, trim_target)
        source_url = apply_trim(source_url, trim_source)
        current_url = target_url

        try:
            target = await self.scraper.scrape(target_url, mode)

            if target.outcome == ScrapeOutcome.FAILED:
                logger.warning(f"Target scrape failed: {target.error_reason}")
                return StudyExecutionResult(status=StudyStatus.NULL, error_reason=TARGET_FAILED)

            if target.outcome == ScrapeOutcome.BLOCKED:
                logger.warning(f"Target blocked, skipping source: {target.block_reason}")
                return StudyExecutionResult(
                    status=StudyStatus.TARGET_BLOCKED,
                    raw_target_count=target.listing_count,
                    error_reason=target.block_reason,
                )

            filtered_target = filter_listings_by_study(target.listings, criteria)
            if not filtered_target:
                return StudyExecutionResult(
                    status=StudyStatus.NULL,
                    raw_target_count=target.listing_count,
                    error_reason=NO_TARGET_LISTINGS,
                )

            target_stats = compute_target_market_stats(filtered_target)
            logger.info(f"Target median: {target_stats.median_price:.0f} EUR over {target_stats.count} listings")

            current_url = source_url
            source = await self.scraper.scrape(source_url, mode)

            if source.outcome == ScrapeOutcome.FAILED:
                logger.warning(f"Source scrape failed: {source.error_reason}")
                return StudyExecutionResult(
                    status=StudyStatus.NULL,
                    target_stats=target_stats,
                    target_median_price=target_stats.median_price,
                    filtered_target_count=len(filtered_target),
                    raw_target_count=target.listing_count,
                    error_reason=SOURCE_FAILED,
                )

            return execute_study_analysis(target.listings, source.listings, criteria, threshold)

        except ParserContaminationError:
            raise
        except Exception as e:
            error = ScrapeError.from_exception(current_url, e)
            self.errors.append(error)
            logger.error(f"Study failed on {current_url}: {error.error_type}: {error.error_message}")
            return StudyExecutionResult(status=StudyStatus.NULL, error_reason=f"Error: {e}")

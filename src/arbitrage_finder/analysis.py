"""Listing filtering, market statistics and opportunity detection.

All functions are pure. Prices are compared in EUR (see `to_eur`).
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass

from .extractors import is_damaged_vehicle, is_price_monthly, to_eur
from .models.listing import Listing, PriceType
from .models.study import (
    MarketStats,
    OpportunityResult,
    StudyCriteria,
    StudyExecutionResult,
    StudyStatus,
)

logger = logging.getLogger(__name__)


class AnalysisLimits:
    """Business constants."""
    PRICE_FLOOR_EUR = 2000  # at or below: lease offers, parts, scams
    MAX_TARGET_LISTINGS = 6  # market stats use only this many cheapest listings
    MAX_INTERESTING = 5


MODEL_TOKEN_SEPARATOR = re.compile(r"[^a-z0-9]+")

NO_TARGET_LISTINGS = "No valid target listings found"
NO_SOURCE_LISTINGS = "No valid source listings found"


def price_eur(listing: Listing) -> float:
    return to_eur(listing.price, listing.currency)


# =============================================================================
# Filtering
# =============================================================================

@dataclass(frozen=True)
class BrandModelMatch:
    matches: bool
    reason: str = ""


def matches_brand_model(title: str, brand: str, model: str) -> BrandModelMatch:
    """Check a title against a brand and model.

    The brand must be a substring of the title. The model is split on
    non-alphanumeric runs and every token must be a substring of the title,
    so "Yaris Cross" needs both "yaris" and "cross".
    """
    title_lower = title.lower()

    if brand.lower() not in title_lower:
        return BrandModelMatch(False, f'Brand "{brand}" not found in title')

    tokens = [token for token in MODEL_TOKEN_SEPARATOR.sub(" ", model.lower()).split() if token]
    missing = [token for token in tokens if token not in title_lower]
    if missing:
        return BrandModelMatch(False, f"Model tokens missing: {', '.join(missing)}")

    return BrandModelMatch(True)


def should_filter_listing(listing: Listing) -> bool:
    """True if a listing is noise: too cheap, a lease offer or a damaged vehicle."""
    if price_eur(listing) <= AnalysisLimits.PRICE_FLOOR_EUR:
        return True

    text = f"{listing.title} {listing.description}"
    if listing.price_type == PriceType.PER_MONTH or is_price_monthly(text):
        return True

    return is_damaged_vehicle(text)


def filter_listings_by_study(listings: list[Listing], criteria: StudyCriteria) -> list[Listing]:
    """Keep the listings that pass the noise filter and match the study criteria.

    Listings with an unknown year or mileage are not rejected on that field.
    """
    kept = []
    for listing in listings:
        if should_filter_listing(listing):
            continue
        if listing.year and listing.year < criteria.year:
            continue
        if criteria.max_year and listing.year and listing.year > criteria.max_year:
            continue
        if criteria.max_mileage > 0 and listing.mileage and listing.mileage > criteria.max_mileage:
            continue
        if not matches_brand_model(listing.title, criteria.brand, criteria.model).matches:
            continue
        kept.append(listing)

    logger.debug(f"Study filter kept {len(kept)}/{len(listings)} listings")
    return kept


# =============================================================================
# Statistics
# =============================================================================

def _percentile(prices: list[float], p: int) -> float:
    index = math.ceil(len(prices) * p / 100) - 1
    return prices[max(0, index)]


def compute_target_market_stats(listings: list[Listing]) -> MarketStats:
    """Price statistics over the 6 cheapest listings (EUR).

    An empty pool yields all-zero stats with count 0.
    """
    if not listings:
        return MarketStats()

    prices = sorted(price_eur(listing) for listing in listings)[:AnalysisLimits.MAX_TARGET_LISTINGS]
    n = len(prices)
    if n % 2 == 0:
        median = (prices[n // 2 - 1] + prices[n // 2]) / 2
    else:
        median = prices[n // 2]

    return MarketStats(
        median_price=median,
        average_price=sum(prices) / n,
        min_price=prices[0],
        max_price=prices[-1],
        count=n,
        percentile_25=_percentile(prices, 25),
        percentile_75=_percentile(prices, 75),
    )


# =============================================================================
# Opportunities
# =============================================================================

def detect_opportunity(
    target_listings: list[Listing],
    source_listings: list[Listing],
    threshold: float,
    max_interesting: int = AnalysisLimits.MAX_INTERESTING,
) -> OpportunityResult:
    """Compare the target market median with the cheapest source listings.

    Args:
        target_listings: Filtered target market listings.
        source_listings: Filtered source market listings.
        threshold: Minimum median-minus-best-source gap in EUR.
        max_interesting: Cap on the returned source listings.

    Returns:
        OpportunityResult; interesting listings are the source listings priced at
        or below (median - threshold), cheapest first.
    """
    target_median = compute_target_market_stats(target_listings).median_price

    if target_median == 0 or not source_listings:
        return OpportunityResult(target_median_price=target_median)

    best_source = min(price_eur(listing) for listing in source_listings)
    difference = target_median - best_source
    ceiling = target_median - threshold

    interesting = sorted(
        (listing for listing in source_listings if price_eur(listing) <= ceiling),
        key=price_eur,
    )[:max_interesting]

    return OpportunityResult(
        has_opportunity=difference >= threshold,
        target_median_price=target_median,
        best_source_price=best_source,
        price_difference=difference,
        interesting_listings=interesting,
    )


def execute_study_analysis(
    target_listings: list[Listing],
    source_listings: list[Listing],
    criteria: StudyCriteria,
    threshold: float,
) -> StudyExecutionResult:
    """Filter both markets, compute target stats and detect an opportunity."""
    raw_target_count = len(target_listings)
    raw_source_count = len(source_listings)

    filtered_target = filter_listings_by_study(target_listings, criteria)
    if not filtered_target:
        logger.info(f"No target listings left after filtering ({raw_target_count} raw)")
        return StudyExecutionResult(
            status=StudyStatus.NULL,
            raw_target_count=raw_target_count,
            raw_source_count=raw_source_count,
            error_reason=NO_TARGET_LISTINGS,
        )

    target_stats = compute_target_market_stats(filtered_target)

    filtered_source = filter_listings_by_study(source_listings, criteria)
    if not filtered_source:
        logger.info(f"No source listings left after filtering ({raw_source_count} raw)")
        return StudyExecutionResult(
            status=StudyStatus.NULL,
            target_stats=target_stats,
            target_median_price=target_stats.median_price,
            filtered_target_count=len(filtered_target),
            raw_target_count=raw_target_count,
            raw_source_count=raw_source_count,
            error_reason=NO_SOURCE_LISTINGS,
        )

    opportunity = detect_opportunity(filtered_target, filtered_source, threshold)
    status = StudyStatus.OPPORTUNITIES if opportunity.has_opportunity else StudyStatus.NULL
    logger.info(
        f"Study analysis: {status.value}, median {opportunity.target_median_price:.0f} EUR, "
        f"best source {opportunity.best_source_price:.0f} EUR"
    )

    return StudyExecutionResult(
        status=status,
        target_stats=target_stats,
        target_median_price=opportunity.target_median_price,
        best_source_price=opportunity.best_source_price,
        price_difference=opportunity.price_difference,
        interesting_listings=opportunity.interesting_listings,
        filtered_target_count=len(filtered_target),
        filtered_source_count=len(filtered_source),
        raw_target_count=raw_target_count,
        raw_source_count=raw_source_count,
    )

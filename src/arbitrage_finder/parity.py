"""Determinism checks.

Two runs over byte-identical HTML must produce identical normalized output.
`hash_listing_pool` and `hash_study_result` reduce results to canonical
strings that can be compared (or stored) across runs and execution contexts.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from .extractors import round_half_up
from .models.listing import Currency, Listing
from .models.study import StudyExecutionResult
from .scrapers.base import SearchResult

logger = logging.getLogger(__name__)

HASH_TITLE_CHARS = 50
DEFAULT_PRICE_TOLERANCE = 2  # EUR


def round_cents(value: float) -> int | float:
    """Round to cents (halves up); whole amounts come back as int so 16950.0 prints as 16950."""
    rounded = round_half_up(value * 100) / 100
    return int(rounded) if rounded.is_integer() else rounded


def _canonical(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def hash_listing_pool(listings: Iterable[Listing]) -> str:
    """Canonical signature of a listing pool.

    Listings are ordered by (URL, price), then reduced to URL, price in cents
    and the first 50 characters of the title. Input order does not matter.
    """
    ordered = sorted(listings, key=lambda listing: (listing.listing_url, listing.price))
    return _canonical([
        {
            "url": listing.listing_url,
            "price": round_cents(listing.price),
            "title": listing.title[:HASH_TITLE_CHARS],
        }
        for listing in ordered
    ])


def hash_study_result(result: StudyExecutionResult) -> str:
    """Canonical signature of a study result (status, prices, counts)."""
    return _canonical({
        "status": result.status.value,
        "targetMedianPrice": round_cents(result.target_median_price),
        "bestSourcePrice": round_cents(result.best_source_price) if result.best_source_price else None,
        "priceDifference": round_cents(result.price_difference) if result.price_difference else None,
        "filteredTargetCount": result.filtered_target_count,
        "filteredSourceCount": result.filtered_source_count,
        "interestingCount": len(result.interesting_listings),
    })


@dataclass
class ParityReport:
    """Differences between two study results of the same input."""

    differences: list[str] = field(default_factory=list)

    @property
    def matches(self) -> bool:
        return not self.differences

    def __repr__(self) -> str:
        if self.matches:
            return "ParityReport(match)"
        return f"ParityReport({len(self.differences)} differences)"


def check_parity(
    first: StudyExecutionResult,
    second: StudyExecutionResult,
    tolerance: float = DEFAULT_PRICE_TOLERANCE,
) -> ParityReport:
    """Compare two study results.

    Status and filtered counts must match exactly; median and best source
    price may differ by at most `tolerance` EUR.
    """
    report = ParityReport()

    if first.status != second.status:
        report.differences.append(f"Status mismatch: {first.status.value} vs {second.status.value}")

    median_diff = abs(first.target_median_price - second.target_median_price)
    if median_diff > tolerance:
        report.differences.append(
            f"Median price differs by {median_diff:.0f} EUR (tolerance: {tolerance} EUR): "
            f"{first.target_median_price:.0f} vs {second.target_median_price:.0f}"
        )

    if first.best_source_price is not None and second.best_source_price is not None:
        source_diff = abs(first.best_source_price - second.best_source_price)
        if source_diff > tolerance:
            report.differences.append(
                f"Best source price differs by {source_diff:.0f} EUR: "
                f"{first.best_source_price:.0f} vs {second.best_source_price:.0f}"
            )

    if first.filtered_target_count != second.filtered_target_count:
        report.differences.append(
            f"Filtered target count: {first.filtered_target_count} vs {second.filtered_target_count}"
        )
    if first.filtered_source_count != second.filtered_source_count:
        report.differences.append(
            f"Filtered source count: {first.filtered_source_count} vs {second.filtered_source_count}"
        )

    if report.matches:
        logger.info("Parity check passed")
    else:
        for difference in report.differences:
            logger.warning(f"Parity: {difference}")
    return report


def validate_search_result(result: SearchResult | None) -> tuple[bool, list[str]]:
    """Check that every listing of a result has a title, positive price, URL and currency.

    Returns:
        Tuple of (valid, errors).
    """
    if result is None:
        return False, ["Result is None"]

    errors: list[str] = []
    if not isinstance(result.listings, list):
        return False, ["listings is not a list"]

    for listing in result.listings:
        if not isinstance(listing.title, str) or not listing.title:
            errors.append("Listing missing valid title")
        if (
            not isinstance(listing.price, (int, float))
            or isinstance(listing.price, bool)
            or listing.price <= 0
        ):
            errors.append("Listing missing valid price")
        if not isinstance(listing.listing_url, str) or not listing.listing_url:
            errors.append("Listing missing valid URL")
        if listing.currency not in tuple(Currency):
            errors.append(f"Invalid currency: {listing.currency}")

    return not errors, errors

"""Bilbasen.dk search page parser.

Bilbasen markup has no stable card container, so each listing anchor
(href containing /brugt/bil/) is read together with a fixed window of the
surrounding document. Prices are quoted in DKK ("129.900 kr.") and kept in DKK.
"""

from __future__ import annotations

import logging
import re

from ..extractors import (
    extract_price_with_currency,
    extract_thumbnail,
    extract_title,
    normalize_url,
    strip_tags,
)
from ..models.listing import Listing
from .common import ParserLimits, SkipLog, make_listing

logger = logging.getLogger(__name__)

ORIGIN = "https://www.bilbasen.dk"

ANCHOR_PATTERN = re.compile(r"<a\s+[^>]*href=[\"']([^\"']*/brugt/bil/[^\"']*)[\"'][^>]*>", re.IGNORECASE)

CONTEXT_WINDOW = 2000  # chars either side of the anchor

# Windows containing these belong to sponsored / "more from this dealer" rails
RELATED_MARKERS = ("RelatedListings_", "Mere fra vores sælgere", "Annoncering")

BRAND_TITLE_PATTERN = re.compile(
    r"(Audi|BMW|Mercedes|VW|Volvo|Tesla|Porsche|[A-Z][a-z]+)\s+[A-Za-z0-9\s-]+",
    re.IGNORECASE,
)


def _fallback_title(text: str) -> str:
    match = BRAND_TITLE_PATTERN.search(text)
    if match:
        return match.group(0)[:ParserLimits.TITLE_CHARS].strip()
    return text[:ParserLimits.TITLE_CHARS].strip()


def parse_listings(html: str, url: str) -> list[Listing]:
    """Parse a Bilbasen search page using anchor context windows."""
    skips = SkipLog(logger, "BILBASEN")
    listings: list[Listing] = []
    processed: set[str] = set()
    anchor_count = 0

    for match in ANCHOR_PATTERN.finditer(html):
        anchor_count += 1
        href = match.group(1)
        if href.startswith("#") or href.startswith("javascript:"):
            continue

        listing_url = normalize_url(href, ORIGIN)
        if listing_url in processed:
            continue
        processed.add(listing_url)

        start = max(0, match.start() - CONTEXT_WINDOW)
        end = min(len(html), match.start() + CONTEXT_WINDOW)
        window = html[start:end]

        if any(marker in window for marker in RELATED_MARKERS):
            skips.skip("related listings block", listing_url)
            continue

        text = strip_tags(window)
        found = extract_price_with_currency(text)
        if found is None:
            skips.skip("no price", text)
            continue
        price, currency = found

        title = extract_title(window)
        if not title or len(title) < 5:
            title = _fallback_title(text) or "Untitled"

        listings.append(make_listing(
            title=title,
            price=price,
            currency=currency,
            listing_url=listing_url,
            text=text,
            thumbnail_url=extract_thumbnail(window),
        ))

    logger.debug(f"Bilbasen: {anchor_count} anchors, kept {len(listings)} listings, skipped {skips.count}")
    return listings

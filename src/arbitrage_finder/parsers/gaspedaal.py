"""Gaspedaal.nl search page parser.

Gaspedaal is an aggregator; its card markup changes often, so cards are found
by class-name heuristics. Category and price-bracket links
("/toyota/yaris/autos-tot-15000") look like cards and are rejected.
"""

from __future__ import annotations

import logging
import re

from ..extractors import (
    bounded_year,
    digits_only_int,
    extract_euro_price,
    extract_thumbnail,
    extract_title,
    finite_number,
    strip_tags,
)
from ..models.listing import Listing
from .common import ParserLimits, SkipLog, dedupe_by_url, iter_anchors, largest_card_set, make_listing
from .json_search import first_populated_array, first_truthy, load_script_json

logger = logging.getLogger(__name__)

ORIGIN = "https://www.gaspedaal.nl"

CARD_PATTERNS = (
    re.compile(r"<article[^>]*class=\"[^\"]*(?:listing|car|vehicle|ad|item)[^\"]*\"[^>]*>([\s\S]*?)</article>", re.IGNORECASE),
    re.compile(r"<div[^>]*class=\"[^\"]*(?:listing|car-card|vehicle-item|auto-item)[^\"]*\"[^>]*>([\s\S]*?)</div>", re.IGNORECASE),
    re.compile(r"<li[^>]*class=\"[^\"]*(?:listing|car|vehicle|result)[^\"]*\"[^>]*>([\s\S]*?)</li>", re.IGNORECASE),
)

CARD_URL_PATTERN = re.compile(r"href=[\"']([^\"']+)[\"']", re.IGNORECASE)
CATEGORY_MARKERS = ("zoek", "filter", "category", "tot-")
PRICE_BRACKET_PATTERN = re.compile(r"autos?-tot-\d+")

JSON_SCRIPT_PATTERNS = (
    re.compile(r"<script[^>]*type=[\"']application/json[\"'][^>]*>([\s\S]*?)</script>", re.IGNORECASE),
    re.compile(r"<script[^>]*id=[\"']__NEXT_DATA__[\"'][^>]*>([\s\S]*?)</script>", re.IGNORECASE),
    re.compile(r"<script[^>]*>([\s\S]*?window\.__INITIAL_STATE__[\s\S]*?)</script>", re.IGNORECASE),
)
JSON_LISTING_PATHS = (
    "props.pageProps.listings",
    "props.pageProps.results",
    "props.pageProps.data.listings",
    "listings",
    "results",
    "data.listings",
)


def parse_listings(html: str, url: str) -> list[Listing]:
    """Parse a Gaspedaal search page.

    Order: class-heuristic cards, then embedded JSON (only when no card
    matched at all), then listing-looking anchors.
    """
    cards = largest_card_set(html, CARD_PATTERNS)
    listings = _parse_cards(cards)

    if not cards:
        listings = _parse_embedded_json(html)
        if listings:
            logger.debug(f"Gaspedaal: {len(listings)} listings from embedded JSON")

    if not listings:
        listings = _parse_anchors(html)
        logger.debug(f"Gaspedaal: anchor fallback found {len(listings)} listings")

    return listings


def is_category_url(url: str) -> bool:
    """Check for search / filter / price-bracket URLs that are not listings."""
    lowered = url.lower()
    return any(marker in lowered for marker in CATEGORY_MARKERS) or bool(PRICE_BRACKET_PATTERN.search(lowered))


def _card_url(card_html: str) -> str | None:
    match = CARD_URL_PATTERN.search(card_html)
    if not match:
        return None
    href = match.group(1)
    if href.startswith("/"):
        return f"{ORIGIN}{href}"
    if href.startswith("http"):
        return href
    return None


def _parse_cards(cards: list[str]) -> list[Listing]:
    skips = SkipLog(logger, "GASPEDAAL")
    listings = []

    for card_html in cards:
        listing_url = _card_url(card_html)
        if not listing_url:
            skips.skip("no url")
            continue
        if is_category_url(listing_url):
            skips.skip("category link", listing_url)
            continue

        text = strip_tags(card_html)
        price = extract_euro_price(text)
        if not price:
            skips.skip("no price", text)
            continue

        listings.append(make_listing(
            title=extract_title(card_html) or "Untitled",
            price=price,
            listing_url=listing_url,
            text=text,
            thumbnail_url=extract_thumbnail(card_html),
        ))

    return dedupe_by_url(listings)


def _item_to_listing(item: dict) -> Listing | None:
    raw_price = first_truthy(item, "price", "askingPrice", "priceAmount")
    url = first_truthy(item, "url", "link", "href", "detailUrl")
    if raw_price is None or not isinstance(url, str):
        return None

    if isinstance(raw_price, (int, float)) and not isinstance(raw_price, bool):
        price = finite_number(raw_price)
    else:
        price = digits_only_int(raw_price)
    if not price or price <= 0:
        return None

    title = first_truthy(item, "title", "name", "description")
    description = first_truthy(item, "description", "summary")
    mileage = first_truthy(item, "mileage", "mileageKm", "kilometers")
    year = first_truthy(item, "year", "modelYear", "registrationYear")
    trim = item.get("trim")
    thumbnail = first_truthy(item, "image", "thumbnail", "imageUrl")

    return make_listing(
        title=title if isinstance(title, str) else "Untitled",
        price=price,
        listing_url=f"{ORIGIN}{url}" if url.startswith("/") else url,
        text="",
        mileage=digits_only_int(mileage) if mileage is not None else None,
        year=bounded_year(year) if year is not None else None,
        trim=trim if isinstance(trim, str) and trim else None,
        description=description if isinstance(description, str) else "",
        thumbnail_url=thumbnail if isinstance(thumbnail, str) else None,
    )


def _parse_embedded_json(html: str) -> list[Listing]:
    for pattern in JSON_SCRIPT_PATTERNS:
        for match in pattern.finditer(html):
            data = load_script_json(match.group(1).strip())
            if data is None:
                continue
            items, path = first_populated_array(data, JSON_LISTING_PATHS)
            if not items:
                continue
            # The first populated array is authoritative, even if nothing in it is usable
            listings = [
                listing for listing in
                (_item_to_listing(item) for item in items if isinstance(item, dict))
                if listing is not None
            ]
            logger.debug(f"Gaspedaal: JSON path {path} held {len(items)} items")
            return dedupe_by_url(listings)
    return []


def is_listing_href(href: str) -> bool:
    """Check whether an anchor href can point at a Gaspedaal listing."""
    if is_category_url(href):
        return False
    return (
        "gaspedaal.nl" in href
        or "/auto/" in href
        or "/autos/" in href
        or (href.startswith("/") and "/search" not in href and "/footer" not in href)
    )


def _parse_anchors(html: str) -> list[Listing]:
    skips = SkipLog(logger, "GASPEDAAL")
    listings = []

    for anchor in iter_anchors(html):
        if not is_listing_href(anchor.href):
            continue

        text = anchor.text
        price = extract_euro_price(text)
        if anchor.href.startswith("/"):
            listing_url = f"{ORIGIN}{anchor.href}"
        elif not anchor.href.startswith("http"):
            listing_url = f"{ORIGIN}/{anchor.href}"
        else:
            listing_url = anchor.href

        if not price or len(listing_url) <= ParserLimits.MIN_URL_LENGTH:
            skips.skip("no price or url", anchor.href)
            continue

        listings.append(make_listing(
            title=anchor.title,
            price=price,
            listing_url=listing_url,
            text=text,
            thumbnail_url=extract_thumbnail(anchor.block),
        ))

    return dedupe_by_url(listings)

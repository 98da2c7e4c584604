"""Marktplaats.nl search page parser.

Page structure (search results, list view):
- Cards: <li class="hz-Listing hz-Listing--list-item ..."> elements
- Card link: <a class="hz-Listing-coverLink" href="/v/auto-s/...">
- Price: "€ 16.950,-" in the card text; title in the anchor's title attribute

When the server renders no cards (client-side hydration), the results are
embedded as JSON in a <script> block. Items carry `priceInfo.priceCents`,
`vipUrl` and an `attributes` list of {key, value} pairs.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from ..extractors import (
    bounded_year,
    digits_only_int,
    extract_euro_price,
    extract_thumbnail,
    finite_number,
    normalize_url,
    strip_tags,
)
from ..models.listing import Currency, Listing, PriceType
from .common import ParserLimits, SkipLog, dedupe_by_url, make_listing
from .json_search import (
    find_listing_like_objects,
    first_populated_array,
    first_truthy,
    is_truthy,
    iter_scripts,
    load_script_json,
)

logger = logging.getLogger(__name__)

ORIGIN = "https://www.marktplaats.nl"

CARD_PATTERN = re.compile(
    r"<li\s+class=\"[^\"]*hz-Listing\s+hz-Listing--list-item[^\"]*\"[^>]*>([\s\S]*?)</li>",
    re.IGNORECASE,
)

# Tried in order; the first match wins
CARD_URL_PATTERNS = (
    re.compile(r"<a\s+[^>]*class=\"[^\"]*hz-Listing-coverLink[^\"]*\"[^>]*href=[\"']([^\"']+)[\"']", re.IGNORECASE),
    re.compile(r"<a\s+[^>]*href=[\"']([^\"']+)[\"'][^>]*class=\"[^\"]*hz-Listing-coverLink[^\"]*\"", re.IGNORECASE),
    re.compile(r"<a\s+[^>]*href=[\"'](/(?:v|a|m)/[^\"']+)[\"']", re.IGNORECASE),
    re.compile(r"<a\s+[^>]*href=[\"']([^\"']+)[\"']", re.IGNORECASE),
)

TITLE_ATTR_PATTERN = re.compile(r"title=[\"']([^\"']+)[\"']")

JSON_HINTS = ('"listings"', '"items"', '"results"', "priceInfo")
JSON_LISTING_PATHS = (
    "listings",
    "items",
    "results",
    "data.listings",
    "props.pageProps.listings",
    "props.pageProps.searchRequestAndResponse.listings",
)
MIN_SCRIPT_LENGTH = 100

MILEAGE_KEYS = frozenset({"mileage", "kilometer-stand"})
YEAR_KEYS = frozenset({"year", "bouwjaar"})


def parse_listings(html: str, url: str) -> list[Listing]:
    """Parse a Marktplaats search page.

    Strategy 1 reads the server-rendered cards. Strategy 2 (only when there
    are no cards at all) reads listings from embedded script JSON.
    """
    cards = [match.group(0) for match in CARD_PATTERN.finditer(html)]
    if cards:
        listings = _parse_cards(cards)
        logger.debug(f"Marktplaats: {len(cards)} cards, kept {len(listings)} listings")
        return listings

    listings = _parse_embedded_json(html)
    logger.debug(f"Marktplaats: no cards, {len(listings)} listings from embedded JSON")
    return listings


# -------------------------------------------------------------------------
# Strategy 1: HTML cards
# -------------------------------------------------------------------------

def _card_url(card_html: str) -> str | None:
    for pattern in CARD_URL_PATTERNS:
        match = pattern.search(card_html)
        if not match:
            continue
        href = match.group(1)
        if href.startswith("#") or href.startswith("javascript:"):
            continue
        return normalize_url(href, ORIGIN)
    return None


def _parse_cards(cards: list[str]) -> list[Listing]:
    skips = SkipLog(logger, "MARKTPLAATS")
    listings: list[Listing] = []

    for card_html in cards:
        listing_url = _card_url(card_html)
        if not listing_url:
            skips.skip("no url")
            continue

        text = strip_tags(card_html)
        price = extract_euro_price(text)
        if not price:
            skips.skip("no price", text)
            continue

        title_match = TITLE_ATTR_PATTERN.search(card_html)
        title = title_match.group(1).strip() if title_match else text[:ParserLimits.TITLE_CHARS]

        listings.append(make_listing(
            title=title,
            price=price,
            listing_url=listing_url,
            text=text,
            thumbnail_url=extract_thumbnail(card_html),
        ))

    return dedupe_by_url(listings)


# -------------------------------------------------------------------------
# Strategy 2: embedded JSON
# -------------------------------------------------------------------------

def _as_price(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return finite_number(value)
    if isinstance(value, str):
        parsed = digits_only_int(value)
        return float(parsed) if parsed is not None else None
    return None


def _item_price(item: dict) -> float | None:
    """Resolve an item price; cents fields are divided by 100."""
    price_info = first_truthy(item, "priceInfo", "price")

    if isinstance(price_info, dict):
        if is_truthy(price_info.get("priceCents")):
            cents = _as_price(price_info["priceCents"])
            return cents / 100 if cents is not None else None
        for key in ("price", "amount"):
            if is_truthy(price_info.get(key)):
                return _as_price(price_info[key])
    elif isinstance(price_info, (int, float)) and not isinstance(price_info, bool):
        return finite_number(price_info)

    if is_truthy(item.get("priceCents")):
        cents = _as_price(item["priceCents"])
        return cents / 100 if cents is not None else None
    if isinstance(item.get("price"), (int, float)) and not isinstance(item.get("price"), bool):
        return finite_number(item["price"])
    return None


def _attribute_value(attributes: Any, keys: frozenset[str]) -> int | None:
    if not isinstance(attributes, list):
        return None
    for attribute in attributes:
        if isinstance(attribute, dict) and attribute.get("key") in keys:
            value = attribute.get("value")
            return digits_only_int(value) if is_truthy(value) else None
    return None


def normalize_marktplaats_item(item: dict) -> Listing | None:
    """Map one embedded-JSON item to a Listing, or None if it lacks a title, price or URL."""
    title = first_truthy(item, "title", "subject", "description", "name")
    price = _item_price(item)
    if not isinstance(title, str) or not title.strip() or not price or price <= 0:
        return None

    item_id = first_truthy(item, "itemId", "id")
    vip_url = item.get("vipUrl")
    if item_id is None and isinstance(vip_url, str) and vip_url:
        item_id = vip_url.rstrip("/").split("/")[-1]

    url = first_truthy(item, "vipUrl", "url", "href")
    if not isinstance(url, str):
        url = f"{ORIGIN}/a/{item_id}" if item_id else None
    if not url:
        return None

    attributes = item.get("attributes")
    description = item.get("description")
    return make_listing(
        title=title,
        price=price,
        listing_url=normalize_url(url, ORIGIN),
        text="",
        currency=Currency.EUR,
        mileage=_attribute_value(attributes, MILEAGE_KEYS),
        year=bounded_year(_attribute_value(attributes, YEAR_KEYS)),
        description=description if isinstance(description, str) else "",
        price_type=PriceType.ONE_OFF,
    )


def _normalize_items(items: list) -> list[Listing]:
    listings = []
    for item in items:
        if not isinstance(item, dict):
            continue
        listing = normalize_marktplaats_item(item)
        if listing is not None:
            listings.append(listing)
    return dedupe_by_url(listings)


def _parse_embedded_json(html: str) -> list[Listing]:
    for script in iter_scripts(html):
        if len(script) < MIN_SCRIPT_LENGTH:
            continue
        if not any(hint in script for hint in JSON_HINTS):
            continue

        data = load_script_json(script)
        if data is None:
            continue

        items, path = first_populated_array(data, JSON_LISTING_PATHS)
        if items:
            listings = _normalize_items(items)
            if listings:
                logger.debug(f"Marktplaats: {len(listings)} listings at JSON path {path}")
                return listings

        candidates = find_listing_like_objects(data)
        if candidates:
            listings = _normalize_items(candidates)
            if listings:
                logger.debug(f"Marktplaats: deep search found {len(listings)} listings")
                return listings

    return []

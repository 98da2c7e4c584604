"""Leboncoin.fr search page parser.

Leboncoin is a Next.js app: the ads of a results page are embedded in the
<script id="__NEXT_DATA__"> payload, usually at props.pageProps.searchData.ads.

Ad shape (abridged):
    {"subject": "Peugeot 208 ...", "price": [14500], "url": "/ad/voitures/123.htm",
     "body": "...", "attributes": [{"key": "regdate", "value": "2021"}, ...],
     "images": [{"urls": {"small": "https://img.leboncoin.fr/..."}}]}

`attributes` is a list of {key, value} pairs on live pages and a plain dict in
some older payloads; both are accepted.
"""

from __future__ import annotations

import logging
from typing import Any

from ..extractors import bounded_year, digits_only_int, finite_number, normalize_url
from ..models.listing import Listing
from .common import SkipLog, dedupe_by_url, make_listing
from .json_search import (
    find_ads_array,
    find_next_data,
    first_populated_array,
    first_truthy,
    is_truthy,
    iter_scripts,
    load_json,
    load_script_json,
)

logger = logging.getLogger(__name__)

ORIGIN = "https://www.leboncoin.fr"

AD_PATHS = (
    "props.pageProps.searchData.ads",
    "props.pageProps.ads",
    "props.pageProps.listings",
    "props.initialState.search.results",
    "props.pageProps.data.ads",
    "props.pageProps.initialData.ads",
)

ALTERNATIVE_JSON_HINTS = ('"ads"', '"listings"', '"subject"', '"price"', "adList")
MIN_SCRIPT_LENGTH = 100


def parse_listings(html: str, url: str) -> list[Listing]:
    """Parse a Leboncoin search page from its embedded JSON.

    Falls back to scanning every script block when __NEXT_DATA__ is missing.
    A malformed __NEXT_DATA__ payload yields no listings.
    """
    payload = find_next_data(html)
    if payload is None:
        logger.debug("Leboncoin: no __NEXT_DATA__, trying alternative JSON sources")
        return _parse_alternative_json(html)

    data = load_json(payload)
    if data is None:
        logger.warning("Leboncoin: __NEXT_DATA__ present but not valid JSON")
        return []

    ads, path = first_populated_array(data, AD_PATHS)
    if not ads:
        ads = find_ads_array(data)
        path = "deep search"

    listings = _ads_to_listings(ads)
    logger.debug(f"Leboncoin: {len(ads)} ads via {path}, kept {len(listings)} listings")
    return listings


def _attributes(ad: dict) -> dict[str, Any]:
    """Flatten ad attributes into a dict."""
    raw = first_truthy(ad, "attributes", "vehicleAttributes")
    if isinstance(raw, dict):
        return raw
    flattened: dict[str, Any] = {}
    if isinstance(raw, list):
        for attribute in raw:
            if isinstance(attribute, dict) and isinstance(attribute.get("key"), str):
                flattened.setdefault(attribute["key"], attribute.get("value"))
    return flattened


def _ad_price(ad: dict) -> int | float | None:
    price = ad.get("price")
    if isinstance(price, list):
        value = price[0] if price and is_truthy(price[0]) else None
    else:
        value = price if is_truthy(price) else None
    if value is None:
        value = first_truthy(ad, "priceValue", "amount")

    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return finite_number(value)
    if isinstance(value, str):
        return digits_only_int(value)
    return None


def _ad_thumbnail(ad: dict) -> str | None:
    images = ad.get("images")
    if isinstance(images, list) and images:
        first = images[0]
        if isinstance(first, dict):
            urls = first.get("urls")
            if isinstance(urls, dict) and isinstance(urls.get("small"), str):
                return urls["small"]
        elif isinstance(first, str):
            return first
    thumbnail = first_truthy(ad, "image", "thumbnail")
    return thumbnail if isinstance(thumbnail, str) else None


def ad_to_listing(ad: dict) -> Listing | None:
    """Map one Leboncoin ad object to a Listing, or None without price and URL."""
    price = _ad_price(ad)
    url = first_truthy(ad, "url", "link", "href", "urlPath")
    if not price or price <= 0 or not isinstance(url, str):
        return None

    attributes = _attributes(ad)
    year = first_truthy(attributes, "regdate", "year") or first_truthy(ad, "year")
    mileage = first_truthy(attributes, "mileage", "mileageKm") or first_truthy(ad, "mileage")
    title = first_truthy(ad, "subject", "title", "name")
    description = first_truthy(ad, "body", "description")
    trim = attributes.get("trim")

    return make_listing(
        title=title if isinstance(title, str) else "Untitled",
        price=price,
        listing_url=normalize_url(url, ORIGIN),
        text="",
        mileage=digits_only_int(mileage) if mileage is not None else None,
        year=bounded_year(year) if year is not None else None,
        trim=trim if isinstance(trim, str) and trim else None,
        description=description if isinstance(description, str) else "",
        thumbnail_url=_ad_thumbnail(ad),
    )


def _ads_to_listings(ads: list) -> list[Listing]:
    skips = SkipLog(logger, "LEBONCOIN")
    listings = []
    for ad in ads:
        if not isinstance(ad, dict):
            continue
        listing = ad_to_listing(ad)
        if listing is None:
            skips.skip("missing price or url", str(ad.get("subject") or ad.get("title") or ""))
            continue
        listings.append(listing)
    return dedupe_by_url(listings)


def _parse_alternative_json(html: str) -> list[Listing]:
    for script in iter_scripts(html):
        if len(script) < MIN_SCRIPT_LENGTH:
            continue
        if not any(hint in script for hint in ALTERNATIVE_JSON_HINTS):
            continue

        data = load_script_json(script)
        if data is None:
            continue

        ads = find_ads_array(data)
        if ads:
            listings = _ads_to_listings(ads)
            if listings:
                logger.debug(f"Leboncoin: {len(listings)} listings from alternative JSON")
                return listings

    return []

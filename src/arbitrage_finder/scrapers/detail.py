"""Detail page enrichment.

Turns a listing's own page into a DetailedListing: full description,
equipment keywords and gallery images, for the downstream defect classifier.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from ..extractors import (
    extract_mileage,
    extract_price_with_currency,
    extract_title,
    extract_year,
    finite_number,
    is_price_monthly,
    strip_tags,
)
from ..models.listing import Currency, DetailedListing, Listing, PriceType
from ..parsers.json_search import find_next_data, first_truthy, get_path, load_json
from ..parsers.common import ParserLimits
from .base import Fetcher

logger = logging.getLogger(__name__)


class DetailLimits:
    """Caps for detail page extraction."""
    FALLBACK_DESCRIPTION_CHARS = 2000
    LEBONCOIN_IMAGES = 10
    GALLERY_IMAGES = 8
    IMAGE_SEARCH_DEPTH = 8


SCRIPT_STYLE_PATTERN = re.compile(r"<(script|style)[^>]*>[\s\S]*?</\1>", re.IGNORECASE)

DESCRIPTION_PATTERNS = (
    re.compile(r"<div[^>]*class=\"[^\"]*description[^\"]*\"[^>]*>([\s\S]*?)</div>", re.IGNORECASE),
    re.compile(r"<p[^>]*class=\"[^\"]*description[^\"]*\"[^>]*>([\s\S]*?)</p>", re.IGNORECASE),
    re.compile(r"<section[^>]*class=\"[^\"]*description[^\"]*\"[^>]*>([\s\S]*?)</section>", re.IGNORECASE),
)

LEBONCOIN_PRICE_PATHS = (
    "props.pageProps.ad.price",
    "props.pageProps.adView.price",
    "props.pageProps.listing.price",
    "props.initialState.ad.price",
)

LEBONCOIN_IMAGE_PATHS = (
    "props.pageProps.ad.images",
    "props.pageProps.adView.images",
    "props.pageProps.listing.images",
    "props.initialState.ad.images",
    "props.pageProps.ad.body.images",
    "props.pageProps.adData.images",
    "props.pageProps.data.ad.images",
    "props.pageProps.ad.images_thumbs",
    "props.pageProps.ad.pictures",
)

IMAGE_SIZE_KEYS = ("xlarge", "large", "medium", "small", "thumb")

# Ordered: options are reported in this order
OPTION_KEYWORDS = (
    "navigation", "gps", "leather", "cuir", "sunroof", "toit", "camera", "caméra",
    "parking", "cruise", "bluetooth", "heated", "chauffants", "xenon", "led",
)

IMG_SRC_PATTERN = re.compile(r"<img[^>]*src=[\"']([^\"']+)[\"']", re.IGNORECASE)
MARKTPLAATS_GALLERY_PATTERN = re.compile(
    r"<img[^>]*src=[\"']([^\"']+)[\"'][^>]*alt=[\"'][^\"']*foto[^\"']*[\"']", re.IGNORECASE
)
BILBASEN_GALLERY_PATTERN = re.compile(
    r"<img[^>]*src=[\"']([^\"']+)[\"'][^>]*class=[\"'][^\"']*(?:gallery|listing|vehicle)[^\"']*[\"']",
    re.IGNORECASE,
)

SITE_CHROME_MARKERS = ("logo", "banner", "icon", "avatar", "sponsored", "favicon")


def _is_car_image(url: Any) -> bool:
    return (
        isinstance(url, str)
        and url.startswith("http")
        and not any(marker in url for marker in SITE_CHROME_MARKERS)
    )


# -------------------------------------------------------------------------
# Images
# -------------------------------------------------------------------------

def _image_url(image: Any) -> str | None:
    if isinstance(image, str):
        return image
    if isinstance(image, dict):
        urls = image.get("urls")
        if isinstance(urls, dict):
            url = first_truthy(urls, *IMAGE_SIZE_KEYS)
            if url is not None:
                return url
        return first_truthy(image, "url", "href", "src", "thumb_url")
    return None


def _find_images_deep(data: Any) -> list[str]:
    """Walk the whole payload for image-looking URLs, in document order."""
    found: list[str] = []
    stack: list[tuple[Any, int]] = [(data, 0)]
    while stack:
        node, depth = stack.pop()
        if depth > DetailLimits.IMAGE_SEARCH_DEPTH:
            continue
        if isinstance(node, list):
            for item in node:
                if isinstance(item, str) and ("leboncoin" in item or "img" in item) and _is_car_image(item):
                    if item not in found:
                        found.append(item)
            children = [item for item in node if isinstance(item, (dict, list))]
        elif isinstance(node, dict):
            url = _image_url(node) if ("urls" in node or "src" in node) else None
            if _is_car_image(url) and url not in found:
                found.append(url)
            children = [value for value in node.values() if isinstance(value, (dict, list))]
        else:
            continue
        stack.extend((child, depth + 1) for child in reversed(children))
    return found


def extract_leboncoin_images(html: str) -> list[str]:
    payload = find_next_data(html)
    data = load_json(payload) if payload is not None else None
    if data is None:
        logger.debug("Leboncoin detail: no usable __NEXT_DATA__ for images")
        return []

    for path in LEBONCOIN_IMAGE_PATHS:
        images = get_path(data, path)
        if not isinstance(images, list) or not images:
            continue
        urls = [
            url for url in (_image_url(image) for image in images[:DetailLimits.LEBONCOIN_IMAGES])
            if _is_car_image(url)
        ]
        if urls:
            return urls

    return _find_images_deep(data)[:DetailLimits.LEBONCOIN_IMAGES]


def extract_marktplaats_images(html: str) -> list[str]:
    urls = [
        url for url in MARKTPLAATS_GALLERY_PATTERN.findall(html)[:DetailLimits.GALLERY_IMAGES]
        if _is_car_image(url)
    ]
    if urls:
        return urls
    return [
        url for url in IMG_SRC_PATTERN.findall(html)
        if _is_car_image(url) and "marktplaats" in url and ("/img/" in url or "/image/" in url)
    ][:DetailLimits.GALLERY_IMAGES]


def extract_bilbasen_images(html: str) -> list[str]:
    urls = [
        url for url in BILBASEN_GALLERY_PATTERN.findall(html)[:DetailLimits.GALLERY_IMAGES]
        if _is_car_image(url)
    ]
    if urls:
        return urls
    return [
        url for url in IMG_SRC_PATTERN.findall(html)
        if _is_car_image(url) and "bilbasen" in url
    ][:DetailLimits.GALLERY_IMAGES]


def extract_car_images(html: str, listing_url: str) -> list[str]:
    """Gallery image URLs of a detail page; empty for marketplaces without a gallery rule."""
    if "leboncoin.fr" in listing_url:
        return extract_leboncoin_images(html)
    if "marktplaats.nl" in listing_url:
        return extract_marktplaats_images(html)
    if "bilbasen.dk" in listing_url:
        return extract_bilbasen_images(html)
    return []


# -------------------------------------------------------------------------
# Detail page
# -------------------------------------------------------------------------

def extract_leboncoin_detail_price(html: str) -> float | None:
    """Ad price from a Leboncoin detail page's __NEXT_DATA__ (price[0])."""
    payload = find_next_data(html)
    data = load_json(payload) if payload is not None else None
    if data is None:
        return None
    for path in LEBONCOIN_PRICE_PATHS:
        price = get_path(data, path)
        if isinstance(price, list) and price:
            value = finite_number(price[0])
            if value is not None and value > 0:
                return value
    return None


def _description(html: str, page_text: str) -> str:
    for pattern in DESCRIPTION_PATTERNS:
        match = pattern.search(html)
        if match:
            return strip_tags(match.group(1))
    return page_text[:DetailLimits.FALLBACK_DESCRIPTION_CHARS]


def detect_options(text: str) -> list[str]:
    lowered = text.lower()
    return [keyword for keyword in OPTION_KEYWORDS if keyword in lowered]


def _resolve_price(
    html: str,
    listing_url: str,
    page_text: str,
    original: Listing | None,
) -> tuple[float, Currency] | None:
    if "leboncoin.fr" in listing_url:
        price = extract_leboncoin_detail_price(html)
        if price:
            return price, Currency.EUR
        if original is not None:
            logger.debug(f"No detail price on {listing_url}, keeping search-page price")
            return original.price, original.currency
        return extract_price_with_currency(page_text)

    found = extract_price_with_currency(page_text)
    if found is not None:
        return found
    if original is not None:
        return original.price, original.currency
    return None


def parse_detail_page(
    html: str,
    listing_url: str,
    original: Listing | None = None,
) -> DetailedListing | None:
    """Parse a listing's detail page.

    Args:
        html: Detail page HTML.
        listing_url: URL the page was fetched from.
        original: The search-page listing, used to fill gaps.

    Returns:
        DetailedListing, or None if no price can be established at all.
    """
    page_text = strip_tags(SCRIPT_STYLE_PATTERN.sub(" ", html))

    resolved = _resolve_price(html, listing_url, page_text, original)
    if resolved is None:
        logger.warning(f"No price on detail page {listing_url}")
        return None
    price, currency = resolved

    full_description = _description(html, page_text)

    return DetailedListing(
        title=extract_title(html) or (original.title if original else "Unknown listing"),
        price=price,
        currency=currency,
        mileage=extract_mileage(page_text) or (original.mileage if original else None),
        year=extract_year(page_text) or (original.year if original else None),
        trim=original.trim if original else None,
        listing_url=listing_url,
        description=full_description[:ParserLimits.DESCRIPTION_CHARS],
        price_type=PriceType.PER_MONTH if is_price_monthly(page_text) else PriceType.ONE_OFF,
        thumbnail_url=original.thumbnail_url if original else None,
        full_description=full_description,
        technical_info=None,
        options=detect_options(page_text),
        car_image_urls=extract_car_images(html, listing_url),
    )


def as_detailed(listing: Listing) -> DetailedListing:
    """Promote a search-page listing to a DetailedListing with no detail data."""
    return DetailedListing(**listing.model_dump())


class DetailScraper:
    """Fetches detail pages for a batch of listings, one at a time."""

    def __init__(self, fetcher: Fetcher):
        self.fetcher = fetcher

    async def fetch_details(self, listings: list[Listing]) -> list[DetailedListing]:
        """Enrich listings from their detail pages.

        A listing whose detail page can't be fetched or parsed is kept as-is.
        """
        logger.info(f"Fetching details for {len(listings)} listings")
        detailed: list[DetailedListing] = []
        enriched = 0

        for listing in listings:
            html = await self.fetcher.fetch(listing.listing_url)
            parsed = parse_detail_page(html, listing.listing_url, listing) if html else None
            if parsed is None:
                logger.warning(f"No detail data for {listing.listing_url}, keeping search listing")
                detailed.append(as_detailed(listing))
                continue
            detailed.append(parsed)
            enriched += 1

        logger.info(f"Enriched {enriched}/{len(listings)} listings from detail pages")
        return detailed

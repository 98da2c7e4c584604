"""Fallback parser for hostnames without a dedicated parser."""

from __future__ import annotations

import logging
import re
from typing import Callable
from urllib.parse import urlsplit

from ..extractors import (
    extract_card_title,
    extract_price_with_currency,
    extract_thumbnail,
    normalize_url,
    strip_tags,
    url_origin,
)
from ..models.listing import Listing
from .common import ParserLimits, SkipLog, dedupe_by_url, iter_anchors, largest_card_set, make_listing
from . import gaspedaal

logger = logging.getLogger(__name__)

CARD_PATTERNS = (
    re.compile(r"<article[^>]*>([\s\S]*?)</article>", re.IGNORECASE),
    re.compile(r"<div[^>]*class=\"[^\"]*listing[^\"]*\"[^>]*>([\s\S]*?)</div>", re.IGNORECASE),
    re.compile(r"<li[^>]*class=\"[^\"]*result[^\"]*\"[^>]*>([\s\S]*?)</li>", re.IGNORECASE),
    re.compile(r"<div[^>]*class=\"[^\"]*ad[^\"]*\"[^>]*>([\s\S]*?)</div>", re.IGNORECASE),
)

CARD_URL_PATTERN = re.compile(r"<a[^>]*href=\"([^\"]+)\"", re.IGNORECASE)

# Anchors that are never listings on arbitrary sites
NAVIGATION_MARKERS = ("login", "register", "footer", "header")


def parse_listings(html: str, url: str) -> list[Listing]:
    """Parse an unknown marketplace page.

    Tries four broad card patterns and keeps the one matching the most cards.
    If no card yields a listing, falls back to anchors: Leboncoin- and
    Gaspedaal-style hrefs on those sites' secondary hostnames, any
    price-bearing anchor elsewhere.
    """
    origin = url_origin(url)
    cards = largest_card_set(html, CARD_PATTERNS)
    listings = _parse_cards(cards, origin)
    if listings:
        return listings

    try:
        hostname = (urlsplit(url).hostname or "").lower()
    except ValueError:
        hostname = ""

    if "leboncoin.fr" in hostname:
        accept, anchor_origin = _is_leboncoin_href, "https://www.leboncoin.fr"
    elif "gaspedaal.nl" in hostname:
        accept, anchor_origin = gaspedaal.is_listing_href, "https://www.gaspedaal.nl"
    else:
        accept, anchor_origin = _is_plain_href, origin

    listings = _parse_anchors(html, anchor_origin, accept)
    logger.debug(f"Generic: {len(cards)} cards, anchor fallback found {len(listings)} listings on {hostname}")
    return listings


def _parse_cards(cards: list[str], origin: str) -> list[Listing]:
    skips = SkipLog(logger, "GENERIC")
    listings = []

    for card_html in cards:
        text = strip_tags(card_html)
        found = extract_price_with_currency(text)

        url_match = CARD_URL_PATTERN.search(card_html)
        href = url_match.group(1) if url_match else None
        if href and (href.startswith("#") or href.startswith("javascript:")):
            href = None

        if found is None or href is None:
            skips.skip(f"price={found is not None} url={href is not None}", text)
            continue

        price, currency = found
        listings.append(make_listing(
            title=extract_card_title(card_html) or "Untitled",
            price=price,
            currency=currency,
            listing_url=normalize_url(href, origin),
            text=text,
            thumbnail_url=extract_thumbnail(card_html),
        ))

    return dedupe_by_url(listings)


def _is_leboncoin_href(href: str) -> bool:
    return "/voitures/" in href or "category=2" in href or "ad=" in href or "annonce" in href


def _is_plain_href(href: str) -> bool:
    return not any(marker in href for marker in NAVIGATION_MARKERS)


def _parse_anchors(html: str, origin: str, accept: Callable[[str], bool]) -> list[Listing]:
    skips = SkipLog(logger, "GENERIC")
    listings = []

    for anchor in iter_anchors(html):
        if not accept(anchor.href):
            continue

        text = anchor.text
        found = extract_price_with_currency(text)
        listing_url = normalize_url(anchor.href, origin)
        if found is None or len(listing_url) <= ParserLimits.MIN_URL_LENGTH:
            skips.skip("no price or url", anchor.href)
            continue

        price, currency = found
        listings.append(make_listing(
            title=anchor.title,
            price=price,
            currency=currency,
            listing_url=listing_url,
            text=text,
            thumbnail_url=extract_thumbnail(anchor.block),
        ))

    return dedupe_by_url(listings)


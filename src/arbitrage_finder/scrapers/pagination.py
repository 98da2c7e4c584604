"""Page-count detection and page URL construction.

Only Marktplaats and Leboncoin are paginated. Marktplaats puts the page in the
path (/l/auto-s/toyota/p/3/), Leboncoin in a query parameter (?page=3).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from ..config import PaginationConfig
from ..extractors import finite_number, parse_leading_int
from ..parsers.json_search import find_next_data, get_path, load_json
from ..parsers.registry import MarketplaceParser

logger = logging.getLogger(__name__)

PAGINATED = frozenset({MarketplaceParser.MARKTPLAATS, MarketplaceParser.LEBONCOIN})

MARKTPLAATS_PAGE_PATTERN = re.compile(r"/p/(\d+)/")
LEBONCOIN_TOTAL_PAGES_PATH = "props.pageProps.searchData.totalPages"


class PaginationMode(str, Enum):
    """KNOWN when the page count was read from the page, ITERATIVE when capped blind."""

    KNOWN = "known"
    ITERATIVE = "iterative"


@dataclass(frozen=True)
class PaginationStrategy:
    mode: PaginationMode
    total_pages: int


def max_pages_for(kind: MarketplaceParser, pagination_config: PaginationConfig) -> int:
    """Configured page cap for a marketplace (1 for non-paginated ones)."""
    if kind == MarketplaceParser.MARKTPLAATS:
        return pagination_config.max_pages_marktplaats
    if kind == MarketplaceParser.LEBONCOIN:
        return pagination_config.max_pages_leboncoin
    return 1


def detect_total_pages(
    kind: MarketplaceParser,
    html: str,
    pagination_config: PaginationConfig,
) -> PaginationStrategy:
    """Work out how many pages a search has from its first page.

    Marktplaats: highest /p/<n>/ link on the page. Leboncoin: totalPages in
    __NEXT_DATA__. Without such a signal, iterate up to the configured cap.
    """
    if kind == MarketplaceParser.MARKTPLAATS:
        pages = [n for n in map(parse_leading_int, MARKTPLAATS_PAGE_PATTERN.findall(html)) if n is not None]
        if not pages:
            logger.info("Marktplaats: no /p/<n>/ links, iterating")
            return PaginationStrategy(PaginationMode.ITERATIVE, pagination_config.max_pages_marktplaats)
        logger.info(f"Marktplaats: detected {max(pages)} pages")
        return PaginationStrategy(PaginationMode.KNOWN, max(pages))

    if kind == MarketplaceParser.LEBONCOIN:
        payload = find_next_data(html)
        data = load_json(payload) if payload is not None else None
        total = finite_number(get_path(data, LEBONCOIN_TOTAL_PAGES_PATH)) if data is not None else None
        if total is not None and total >= 1:
            logger.info(f"Leboncoin: detected {int(total)} pages")
            return PaginationStrategy(PaginationMode.KNOWN, int(total))
        logger.info("Leboncoin: no totalPages in __NEXT_DATA__, iterating")
        return PaginationStrategy(PaginationMode.ITERATIVE, pagination_config.max_pages_leboncoin)

    return PaginationStrategy(PaginationMode.KNOWN, 1)


def build_paginated_url(kind: MarketplaceParser, base_url: str, page: int) -> str:
    """URL of a given page of a search (page 1 is the base URL itself)."""
    if page <= 1:
        return base_url

    parts = urlsplit(base_url)

    if kind == MarketplaceParser.MARKTPLAATS:
        segments = [segment for segment in parts.path.split("/") if segment]
        if "p" in segments:
            index = segments.index("p")
            del segments[index:index + 2]
        segments += ["p", str(page)]
        return urlunsplit(parts._replace(path="/" + "/".join(segments) + "/"))

    if kind == MarketplaceParser.LEBONCOIN:
        params = parse_qsl(parts.query, keep_blank_values=True)
        updated = []
        replaced = False
        for key, value in params:
            if key == "page":
                if not replaced:
                    updated.append(("page", str(page)))
                    replaced = True
                continue
            updated.append((key, value))
        if not replaced:
            updated.append(("page", str(page)))
        return urlunsplit(parts._replace(query=urlencode(updated)))

    return base_url


def normalize_listing_url(url: str) -> str:
    """Listing URL without query string and fragment, for cross-page deduplication."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if not parts.scheme or not parts.netloc:
        return url
    return urlunsplit(parts._replace(query="", fragment=""))

"""Hostname to parser mapping.

Selection is by exact hostname only, never by page content. After selection,
`validate_parser_selection` re-checks that a dedicated parser is only ever run
against its own marketplace; a mismatch is a bug and raises.
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Callable
from urllib.parse import urlsplit

from ..models.listing import Listing
from . import bilbasen, gaspedaal, generic, leboncoin, marktplaats

logger = logging.getLogger(__name__)


class MarketplaceParser(str, Enum):
    """Parser kinds, one per supported marketplace plus the generic fallback."""

    MARKTPLAATS = "MARKTPLAATS"
    LEBONCOIN = "LEBONCOIN"
    GASPEDAAL = "GASPEDAAL"
    BILBASEN = "BILBASEN"
    GENERIC = "GENERIC"


class ParserContaminationError(RuntimeError):
    """A marketplace parser was selected for a URL on another marketplace."""


# Registered domain of each dedicated parser; both bare and www. hosts map to it
MARKETPLACE_DOMAINS = {
    MarketplaceParser.MARKTPLAATS: "marktplaats.nl",
    MarketplaceParser.LEBONCOIN: "leboncoin.fr",
    MarketplaceParser.GASPEDAAL: "gaspedaal.nl",
    MarketplaceParser.BILBASEN: "bilbasen.dk",
}

HOSTNAMES = {
    host: kind
    for kind, domain in MARKETPLACE_DOMAINS.items()
    for host in (domain, f"www.{domain}")
}

PARSERS: dict[MarketplaceParser, Callable[[str, str], list[Listing]]] = {
    MarketplaceParser.MARKTPLAATS: marktplaats.parse_listings,
    MarketplaceParser.LEBONCOIN: leboncoin.parse_listings,
    MarketplaceParser.GASPEDAAL: gaspedaal.parse_listings,
    MarketplaceParser.BILBASEN: bilbasen.parse_listings,
    MarketplaceParser.GENERIC: generic.parse_listings,
}

HOST_FALLBACK_PATTERN = re.compile(r"https?://([^/]+)", re.IGNORECASE)


def extract_hostname(url: str) -> str:
    """Lowercased hostname of a URL, or "" if none can be found."""
    try:
        hostname = urlsplit(url).hostname
    except ValueError:
        hostname = None
    if hostname:
        return hostname.lower()
    match = HOST_FALLBACK_PATTERN.match(url)
    return match.group(1).lower() if match else ""


def select_parser_by_hostname(url: str) -> MarketplaceParser:
    """Pick the parser for a URL by exact hostname match.

    Args:
        url: Search page URL.

    Returns:
        The dedicated parser kind for a known marketplace host, GENERIC otherwise.
    """
    return HOSTNAMES.get(extract_hostname(url), MarketplaceParser.GENERIC)


def validate_parser_selection(url: str, kind: MarketplaceParser) -> None:
    """Raise ParserContaminationError if a dedicated parser is used off its marketplace."""
    domain = MARKETPLACE_DOMAINS.get(kind)
    if domain is None:
        return
    hostname = extract_hostname(url)
    if HOSTNAMES.get(hostname) != kind:
        logger.error(f"Parser contamination: {kind.value} parser used for {hostname or url}")
        raise ParserContaminationError(
            f"{kind.value} parser used for non-{domain} URL: {hostname or url}"
        )


def parse_search_page(html: str, url: str) -> list[Listing]:
    """Parse a search results page with the parser its hostname selects.

    Pure: the same (html, url) always yields the same listings in the same order.
    """
    kind = select_parser_by_hostname(url)
    validate_parser_selection(url, kind)
    return PARSERS[kind](html, url)

"""Building blocks shared by the HTML card and anchor strategies."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Iterator

from ..extractors import (
    extract_mileage,
    extract_year,
    is_price_monthly,
    strip_tags,
)
from ..models.listing import Currency, Listing, PriceType


class ParserLimits:
    """Size limits applied to extracted text."""
    TITLE_CHARS = 100
    DESCRIPTION_CHARS = 300
    MIN_ANCHOR_TITLE = 3
    MIN_URL_LENGTH = 10
    MAX_SKIP_LOGS = 5  # Skipped-candidate log lines per parse call


ANCHOR_PATTERN = re.compile(r"<a\b[^>]*href=[\"']([^\"']+)[\"'][^>]*>([\s\S]*?)</a>", re.IGNORECASE)
ASSET_PATTERN = re.compile(r"\.(jpg|jpeg|png|gif|css|js)$", re.IGNORECASE)


@dataclass
class SkipLog:
    """Per-call throttle for "skipped candidate" debug lines."""

    logger: logging.Logger
    label: str
    limit: int = ParserLimits.MAX_SKIP_LOGS
    count: int = 0
    _logged: int = field(default=0, repr=False)

    def skip(self, reason: str, detail: str = "") -> None:
        self.count += 1
        if self._logged < self.limit:
            self._logged += 1
            self.logger.debug(f"[{self.label}] Skipping candidate: {reason} {detail[:120]}".rstrip())


@dataclass(frozen=True)
class Anchor:
    """An <a> element found by regex."""

    href: str
    inner_html: str
    block: str

    @property
    def text(self) -> str:
        """Href plus inner text: listing anchors often carry the price in the slug."""
        return strip_tags(f"{self.href} {self.inner_html}")

    @property
    def title(self) -> str:
        title = strip_tags(self.inner_html)[:ParserLimits.TITLE_CHARS]
        if len(title) < ParserLimits.MIN_ANCHOR_TITLE:
            return "Untitled"
        return title


def iter_anchors(html: str) -> Iterator[Anchor]:
    """Yield anchors, skipping fragment links, javascript: links and static assets."""
    for match in ANCHOR_PATTERN.finditer(html):
        href = match.group(1)
        if href.startswith("#") or href.startswith("javascript:") or ASSET_PATTERN.search(href):
            continue
        yield Anchor(href=href, inner_html=match.group(2), block=match.group(0))


def largest_card_set(html: str, patterns: Iterable[re.Pattern]) -> list[str]:
    """Run each card pattern and keep the one that finds the most cards (ties: earliest)."""
    cards: list[str] = []
    for pattern in patterns:
        found = [match.group(0) for match in pattern.finditer(html)]
        if len(found) > len(cards):
            cards = found
    return cards


def make_listing(
    *,
    title: str,
    price: float,
    listing_url: str,
    text: str,
    currency: Currency = Currency.EUR,
    mileage: int | None = None,
    year: int | None = None,
    trim: str | None = None,
    description: str | None = None,
    price_type: PriceType | None = None,
    thumbnail_url: str | None = None,
) -> Listing:
    """Assemble a Listing, filling year/mileage/price type from the card text when not given."""
    return Listing(
        title=title.strip() or "Untitled",
        price=price,
        currency=currency,
        mileage=mileage if mileage is not None else extract_mileage(text),
        year=year if year is not None else extract_year(text),
        trim=trim,
        listing_url=listing_url,
        description=description if description is not None else text[:ParserLimits.DESCRIPTION_CHARS],
        price_type=price_type or (PriceType.PER_MONTH if is_price_monthly(text) else PriceType.ONE_OFF),
        thumbnail_url=thumbnail_url,
    )


def dedupe_by_url(listings: Iterable[Listing]) -> list[Listing]:
    """Drop repeated listing URLs, keeping the first occurrence."""
    seen: set[str] = set()
    unique: list[Listing] = []
    for listing in listings:
        if listing.listing_url in seen:
            continue
        seen.add(listing.listing_url)
        unique.append(listing)
    return unique

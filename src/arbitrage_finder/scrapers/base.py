"""Fetcher contract and scrape result types."""

from __future__ import annotations

import traceback
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import Enum
from typing import Any

from ..models.listing import Listing


SCRAPER_FAILED = "SCRAPER_FAILED"


class ScrapeMode(str, Enum):
    """FAST stops after page 1; FULL paginates where the marketplace supports it."""

    FAST = "fast"
    FULL = "full"


class ScrapeOutcome(str, Enum):
    """Terminal state of one scrape request. Exactly one per result."""

    OK = "ok"
    BLOCKED = "blocked"
    FAILED = "failed"


class Fetcher(ABC):
    """Something that turns a URL into rendered HTML."""

    @abstractmethod
    async def fetch(self, url: str, profile_level: int = 1) -> str | None:
        """Fetch a page.

        Args:
            url: Page to fetch.
            profile_level: Escalation level (1 plain, 2 geo + JS, 3 geo + JS + wait).

        Returns:
            Rendered HTML, or None on any network or provider failure.
        """
        raise NotImplementedError


@dataclass
class ScrapeError:
    """Record of an unexpected scraping error."""

    url: str
    error_type: str
    error_message: str
    traceback: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_exception(cls, url: str, exc: Exception) -> "ScrapeError":
        """Create a ScrapeError from an exception."""
        return cls(
            url=url,
            error_type=type(exc).__name__,
            error_message=str(exc),
            traceback=traceback.format_exc(),
        )


@dataclass
class PageStats:
    """What one page of a paginated scrape contributed."""

    page: int
    url: str
    extracted: int = 0
    new_unique: int = 0
    fetched: bool = True


@dataclass
class SearchResult:
    """Listings of one scrape request plus its outcome.

    Build instances through `ok`, `blocked` and `failed` so that a result is
    never both blocked and failed.
    """

    outcome: ScrapeOutcome
    listings: list[Listing] = field(default_factory=list)
    block_reason: str | None = None
    error_reason: str | None = None
    retry_count: int = 0
    extraction_method: str | None = None
    pages: list[PageStats] = field(default_factory=list)

    @classmethod
    def ok(
        cls,
        listings: list[Listing],
        retry_count: int = 0,
        extraction_method: str | None = None,
        error_reason: str | None = None,
        pages: list[PageStats] | None = None,
    ) -> "SearchResult":
        return cls(
            outcome=ScrapeOutcome.OK,
            listings=listings,
            error_reason=error_reason,
            retry_count=retry_count,
            extraction_method=extraction_method,
            pages=pages or [],
        )

    @classmethod
    def blocked(cls, reason: str, retry_count: int = 0) -> "SearchResult":
        return cls(outcome=ScrapeOutcome.BLOCKED, block_reason=reason, retry_count=retry_count)

    @classmethod
    def failed(cls, reason: str, retry_count: int = 0) -> "SearchResult":
        return cls(outcome=ScrapeOutcome.FAILED, error_reason=reason, retry_count=retry_count)

    @property
    def blocked_by_provider(self) -> bool:
        return self.outcome == ScrapeOutcome.BLOCKED

    @property
    def error(self) -> str | None:
        """SCRAPER_FAILED for failed requests, None otherwise."""
        return SCRAPER_FAILED if self.outcome == ScrapeOutcome.FAILED else None

    @property
    def listing_count(self) -> int:
        return len(self.listings)

    def to_dict(self) -> dict[str, Any]:
        """Plain, JSON-serializable view for persistence."""
        return {
            "outcome": self.outcome.value,
            "listings": [listing.model_dump(mode="json") for listing in self.listings],
            "blocked_by_provider": self.blocked_by_provider,
            "block_reason": self.block_reason,
            "error": self.error,
            "error_reason": self.error_reason,
            "retry_count": self.retry_count,
            "extraction_method": self.extraction_method,
            "pages": [
                {
                    "page": stats.page,
                    "url": stats.url,
                    "extracted": stats.extracted,
                    "new_unique": stats.new_unique,
                    "fetched": stats.fetched,
                }
                for stats in self.pages
            ],
        }

    def __repr__(self) -> str:
        if self.outcome == ScrapeOutcome.BLOCKED:
            return f"SearchResult(blocked: {self.block_reason})"
        if self.outcome == ScrapeOutcome.FAILED:
            return f"SearchResult(failed: {self.error_reason})"
        return f"SearchResult({self.listing_count} listings, {len(self.pages)} pages)"

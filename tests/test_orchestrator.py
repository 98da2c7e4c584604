"""Tests for the scrape orchestrator."""

import asyncio
import random

import pytest

from arbitrage_finder.config import PaginationConfig, ScraperConfig
from arbitrage_finder.scrapers.base import SCRAPER_FAILED, ScrapeMode, ScrapeOutcome
from arbitrage_finder.scrapers.orchestrator import NO_HTML_REASON, WEBSITE_BAN_REASON, MarketScraper

from conftest import (
    BILBASEN_URL,
    CAPTCHA_PAGE,
    EMPTY_PAGE,
    LEBONCOIN_URL,
    MARKTPLAATS_URL,
    FakeFetcher,
    bilbasen_card,
    bilbasen_page,
    leboncoin_ad,
    leboncoin_page,
    marktplaats_card,
    marktplaats_page,
)


def page_url(n: int) -> str:
    return f"{MARKTPLAATS_URL}p/{n}/"


def make_scraper(fetcher, sleep, **pagination) -> MarketScraper:
    return MarketScraper(
        fetcher,
        scraper_config=ScraperConfig(),
        pagination_config=PaginationConfig(**pagination),
        sleep=sleep,
        rng=random.Random(0),
    )


class TestFirstPage:
    """Tests for single-page scrapes."""

    def test_fast_mode_stops_after_page_one(self, marktplaats_html, sleep):
        """Test that FAST mode never paginates."""
        html = marktplaats_page([marktplaats_card(1, "€ 16.950,-")], last_page=5)
        fetcher = FakeFetcher({MARKTPLAATS_URL: html})

        result = asyncio.run(make_scraper(fetcher, sleep).scrape(MARKTPLAATS_URL, ScrapeMode.FAST))

        assert result.outcome == ScrapeOutcome.OK
        assert result.listing_count == 1
        assert fetcher.calls == [(MARKTPLAATS_URL, 1)]
        assert result.extraction_method == "MARKTPLAATS"
        assert [page.page for page in result.pages] == [1]

    def test_unpaginated_marketplace_single_fetch(self, sleep):
        """Test that Bilbasen is scraped with one fetch even in FULL mode."""
        html = bilbasen_page([bilbasen_card(1, "189.900 kr."), bilbasen_card(2, "199.900 kr.")])
        fetcher = FakeFetcher({BILBASEN_URL: html})

        result = asyncio.run(make_scraper(fetcher, sleep).scrape(BILBASEN_URL))

        assert result.outcome == ScrapeOutcome.OK
        assert result.listing_count == 2
        assert len(fetcher.calls) == 1


class TestRetries:
    """Tests for the attempt loop."""

    def test_no_html_fails_after_all_attempts(self, sleep):
        """Test that missing HTML escalates profiles and ends FAILED."""
        fetcher = FakeFetcher({})

        result = asyncio.run(make_scraper(fetcher, sleep).scrape(MARKTPLAATS_URL))

        assert result.outcome == ScrapeOutcome.FAILED
        assert result.error == SCRAPER_FAILED
        assert result.error_reason == NO_HTML_REASON
        assert [level for _, level in fetcher.calls] == [1, 2, 3]
        assert sleep.delays == [0.5, 1.0]
        assert not result.blocked_by_provider

    def test_fast_mode_has_smaller_budget(self, sleep):
        """Test the FAST mode attempt count."""
        fetcher = FakeFetcher({})
        asyncio.run(make_scraper(fetcher, sleep).scrape(MARKTPLAATS_URL, ScrapeMode.FAST))
        assert len(fetcher.calls) == 2

    def test_zero_listings_retried_then_succeeds(self, marktplaats_html, sleep):
        """Test that a retry-eligible marketplace retries empty pages."""
        fetcher = FakeFetcher({MARKTPLAATS_URL: [EMPTY_PAGE, EMPTY_PAGE, marktplaats_html]})

        result = asyncio.run(make_scraper(fetcher, sleep, max_pages_marktplaats=1).scrape(MARKTPLAATS_URL))

        assert result.outcome == ScrapeOutcome.OK
        assert result.listing_count == 3
        assert result.retry_count == 2
        assert [level for _, level in fetcher.calls] == [1, 2, 3]

    def test_zero_listings_after_all_attempts(self, sleep):
        """Test that persistent empty pages end OK with a zero-listings reason."""
        fetcher = FakeFetcher({MARKTPLAATS_URL: EMPTY_PAGE})

        result = asyncio.run(make_scraper(fetcher, sleep).scrape(MARKTPLAATS_URL))

        assert result.outcome == ScrapeOutcome.OK
        assert result.listings == []
        assert result.error_reason == "MARKTPLAATS_ZERO_LISTINGS_AFTER_RETRIES"
        assert result.error is None

    def test_block_retried_for_eligible_marketplace(self, marktplaats_html, sleep):
        """Test that a CAPTCHA page on Marktplaats is retried."""
        fetcher = FakeFetcher({MARKTPLAATS_URL: [CAPTCHA_PAGE, marktplaats_html]})

        result = asyncio.run(make_scraper(fetcher, sleep).scrape(MARKTPLAATS_URL, ScrapeMode.FAST))

        assert result.outcome == ScrapeOutcome.OK
        assert result.retry_count == 1

    def test_block_terminal_for_other_marketplaces(self, sleep):
        """Test that a non-eligible marketplace is BLOCKED on the first block page."""
        fetcher = FakeFetcher({LEBONCOIN_URL: CAPTCHA_PAGE})

        result = asyncio.run(make_scraper(fetcher, sleep).scrape(LEBONCOIN_URL))

        assert result.outcome == ScrapeOutcome.BLOCKED
        assert result.blocked_by_provider
        assert result.block_reason == "LEBONCOIN_BLOCKED: captcha"
        assert len(fetcher.calls) == 1
        assert result.listings == []

    def test_block_on_last_attempt(self, sleep):
        """Test that an eligible marketplace is BLOCKED once attempts run out."""
        fetcher = FakeFetcher({MARKTPLAATS_URL: CAPTCHA_PAGE})

        result = asyncio.run(make_scraper(fetcher, sleep).scrape(MARKTPLAATS_URL))

        assert result.outcome == ScrapeOutcome.BLOCKED
        assert result.block_reason == "MARKTPLAATS_BLOCKED: captcha"
        assert len(fetcher.calls) == 3

    def test_website_ban(self, sleep):
        """Test the provider website-ban page."""
        fetcher = FakeFetcher({LEBONCOIN_URL: "<html><body>Website ban</body></html>"})

        result = asyncio.run(make_scraper(fetcher, sleep).scrape(LEBONCOIN_URL))

        assert result.outcome == ScrapeOutcome.BLOCKED
        assert result.block_reason == WEBSITE_BAN_REASON

    def test_bilbasen_bad_endpoint(self, sleep):
        """Test that a Bilbasen refusal is terminal."""
        fetcher = FakeFetcher({BILBASEN_URL: "Request failed (bad_endpoint)"})

        result = asyncio.run(make_scraper(fetcher, sleep).scrape(BILBASEN_URL))

        assert result.outcome == ScrapeOutcome.BLOCKED
        assert result.block_reason == "BILBASEN_BLOCKED: bad_endpoint"
        assert len(fetcher.calls) == 1

    def test_retry_eligibility_is_configurable(self, sleep):
        """Test extending retries to another marketplace."""
        fetcher = FakeFetcher({LEBONCOIN_URL: CAPTCHA_PAGE})
        scraper = MarketScraper(
            fetcher,
            scraper_config=ScraperConfig(retry_eligible=["MARKTPLAATS", "LEBONCOIN"]),
            sleep=sleep,
        )

        asyncio.run(scraper.scrape(LEBONCOIN_URL))

        assert len(fetcher.calls) == 3


class TestPagination:
    """Tests for FULL mode pagination."""

    def test_early_stop_on_duplicate_pages(self, sleep):
        """Test that two consecutive pages without new listings stop the scrape."""
        first = marktplaats_page([marktplaats_card(n, "€ 16.950,-") for n in (1, 2, 3)], last_page=8)
        repeat = marktplaats_page([marktplaats_card(n, "€ 17.950,-") for n in (4, 5)], last_page=8)
        fetcher = FakeFetcher({
            MARKTPLAATS_URL: first,
            page_url(2): repeat,
            page_url(3): repeat,
            page_url(4): repeat,
        })

        result = asyncio.run(make_scraper(fetcher, sleep).scrape(MARKTPLAATS_URL))

        assert result.outcome == ScrapeOutcome.OK
        assert result.listing_count == 5
        assert fetcher.urls == [MARKTPLAATS_URL, page_url(2), page_url(3), page_url(4)]
        assert [page.new_unique for page in result.pages] == [3, 2, 0, 0]
        assert all(level == 1 for _, level in fetcher.calls)
        assert len(sleep.delays) == 3
        assert all(0.3 <= delay <= 0.9 for delay in sleep.delays)

    def test_failed_pages_count_towards_early_stop(self, marktplaats_html, sleep):
        """Test that unfetchable pages stop pagination too."""
        html = marktplaats_page([marktplaats_card(n, "€ 16.950,-") for n in (1, 2)], last_page=6)
        fetcher = FakeFetcher({MARKTPLAATS_URL: html})

        result = asyncio.run(make_scraper(fetcher, sleep).scrape(MARKTPLAATS_URL))

        assert result.listing_count == 2
        assert fetcher.urls == [MARKTPLAATS_URL, page_url(2), page_url(3)]
        assert [page.fetched for page in result.pages] == [True, False, False]

    def test_page_cap(self, sleep):
        """Test that the detected page count is capped."""
        pages = {MARKTPLAATS_URL: marktplaats_page([marktplaats_card(1, "€ 16.950,-")], last_page=40)}
        for n in range(2, 41):
            pages[page_url(n)] = marktplaats_page([marktplaats_card(n, "€ 16.950,-")])
        fetcher = FakeFetcher(pages)

        result = asyncio.run(make_scraper(fetcher, sleep, max_pages_marktplaats=3).scrape(MARKTPLAATS_URL))

        assert result.listing_count == 3
        assert fetcher.urls == [MARKTPLAATS_URL, page_url(2), page_url(3)]

    def test_leboncoin_known_total(self, sleep):
        """Test Leboncoin pagination driven by totalPages."""
        second_url = f"{LEBONCOIN_URL}&page=2"
        fetcher = FakeFetcher({
            LEBONCOIN_URL: leboncoin_page([leboncoin_ad(1, 14500), leboncoin_ad(2, 15500)], total_pages=2),
            second_url: leboncoin_page([leboncoin_ad(2, 15500), leboncoin_ad(3, 16500)], total_pages=2),
        })

        result = asyncio.run(make_scraper(fetcher, sleep).scrape(LEBONCOIN_URL))

        assert [listing.price for listing in result.listings] == [14500, 15500, 16500]
        assert fetcher.urls == [LEBONCOIN_URL, second_url]

    def test_single_known_page(self, sleep):
        """Test that a one-page Leboncoin search is not paginated."""
        fetcher = FakeFetcher({LEBONCOIN_URL: leboncoin_page([leboncoin_ad(1, 14500)], total_pages=1)})

        result = asyncio.run(make_scraper(fetcher, sleep).scrape(LEBONCOIN_URL))

        assert result.listing_count == 1
        assert len(fetcher.calls) == 1
        assert sleep.delays == []


class TestSearchResult:
    """Tests for SearchResult helpers."""

    def test_repr_and_dict(self, marktplaats_html, sleep):
        """Test the summary repr and the serializable view."""
        fetcher = FakeFetcher({MARKTPLAATS_URL: marktplaats_html})
        result = asyncio.run(make_scraper(fetcher, sleep).scrape(MARKTPLAATS_URL, ScrapeMode.FAST))

        assert repr(result) == "SearchResult(3 listings, 1 pages)"
        data = result.to_dict()
        assert data["outcome"] == "ok"
        assert data["blocked_by_provider"] is False
        assert len(data["listings"]) == 3
        assert data["listings"][0]["currency"] == "EUR"

    @pytest.mark.parametrize("mode", [ScrapeMode.FAST, ScrapeMode.FULL])
    def test_outcomes_are_exclusive(self, mode, sleep):
        """Test that a failed result is never also blocked."""
        result = asyncio.run(make_scraper(FakeFetcher({}), sleep).scrape(MARKTPLAATS_URL, mode))
        assert result.error == SCRAPER_FAILED
        assert result.block_reason is None

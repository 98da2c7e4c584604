"""Tests for page-count detection and page URLs."""

from arbitrage_finder.config import PaginationConfig
from arbitrage_finder.parsers.registry import MarketplaceParser
from arbitrage_finder.scrapers.pagination import (
    PaginationMode,
    build_paginated_url,
    detect_total_pages,
    max_pages_for,
    normalize_listing_url,
)

from conftest import leboncoin_ad, leboncoin_page, marktplaats_card, marktplaats_page


MARKTPLAATS = MarketplaceParser.MARKTPLAATS
LEBONCOIN = MarketplaceParser.LEBONCOIN


class TestDetectTotalPages:
    """Tests for detect_total_pages."""

    def test_marktplaats_highest_page_link(self):
        """Test reading the highest /p/<n>/ link."""
        html = marktplaats_page([marktplaats_card(1, "€ 9.950,-")], last_page=7)
        strategy = detect_total_pages(MARKTPLAATS, html, PaginationConfig())
        assert strategy.mode == PaginationMode.KNOWN
        assert strategy.total_pages == 7

    def test_marktplaats_without_links_iterates(self):
        """Test the blind fallback up to the cap."""
        html = marktplaats_page([marktplaats_card(1, "€ 9.950,-")])
        strategy = detect_total_pages(MARKTPLAATS, html, PaginationConfig(max_pages_marktplaats=4))
        assert strategy.mode == PaginationMode.ITERATIVE
        assert strategy.total_pages == 4

    def test_leboncoin_total_pages(self):
        """Test reading totalPages from __NEXT_DATA__."""
        html = leboncoin_page([leboncoin_ad(1, 14500)], total_pages=12)
        strategy = detect_total_pages(LEBONCOIN, html, PaginationConfig())
        assert strategy.mode == PaginationMode.KNOWN
        assert strategy.total_pages == 12

    def test_leboncoin_without_total_iterates(self):
        """Test the Leboncoin fallback."""
        html = leboncoin_page([leboncoin_ad(1, 14500)])
        strategy = detect_total_pages(LEBONCOIN, html, PaginationConfig())
        assert strategy.mode == PaginationMode.ITERATIVE
        assert strategy.total_pages == 20

    def test_leboncoin_overflowing_total_iterates(self):
        """Test that a totalPages beyond float range is ignored."""
        html = leboncoin_page([leboncoin_ad(1, 14500)], total_pages=99)
        html = html.replace('"totalPages": 99', '"totalPages": 1e400')
        strategy = detect_total_pages(LEBONCOIN, html, PaginationConfig())
        assert strategy.mode == PaginationMode.ITERATIVE

    def test_marktplaats_oversized_page_link_ignored(self):
        """Test that an absurd /p/<n>/ link does not count as a page."""
        html = marktplaats_page([marktplaats_card(1, "€ 9.950,-")], last_page=3)
        html += f'<a href="/l/auto-s/toyota/p/{"9" * 5000}/">last</a>'
        strategy = detect_total_pages(MARKTPLAATS, html, PaginationConfig())
        assert strategy.mode == PaginationMode.KNOWN
        assert strategy.total_pages == 3

    def test_other_marketplaces_single_page(self):
        """Test that unpaginated marketplaces report one page."""
        strategy = detect_total_pages(MarketplaceParser.BILBASEN, "<html></html>", PaginationConfig())
        assert strategy.total_pages == 1
        assert max_pages_for(MarketplaceParser.BILBASEN, PaginationConfig()) == 1


class TestBuildPaginatedUrl:
    """Tests for build_paginated_url."""

    def test_page_one_is_base(self):
        """Test that page 1 is the base URL."""
        url = "https://www.marktplaats.nl/l/auto-s/toyota/"
        assert build_paginated_url(MARKTPLAATS, url, 1) == url

    def test_marktplaats_path_segment(self):
        """Test the /p/<n>/ path segment, keeping the filter fragment."""
        url = "https://www.marktplaats.nl/l/auto-s/toyota/#f:10882"
        assert build_paginated_url(MARKTPLAATS, url, 3) == "https://www.marktplaats.nl/l/auto-s/toyota/p/3/#f:10882"

    def test_marktplaats_replaces_existing_page(self):
        """Test that an existing page segment is replaced."""
        url = "https://www.marktplaats.nl/l/auto-s/toyota/p/2/"
        assert build_paginated_url(MARKTPLAATS, url, 5) == "https://www.marktplaats.nl/l/auto-s/toyota/p/5/"

    def test_leboncoin_query_parameter(self):
        """Test appending and replacing the page parameter."""
        url = "https://www.leboncoin.fr/recherche?category=2&brand=Toyota"
        assert build_paginated_url(LEBONCOIN, url, 2) == (
            "https://www.leboncoin.fr/recherche?category=2&brand=Toyota&page=2"
        )
        assert build_paginated_url(LEBONCOIN, url + "&page=2", 4) == (
            "https://www.leboncoin.fr/recherche?category=2&brand=Toyota&page=4"
        )

    def test_other_marketplaces_unchanged(self):
        """Test that unpaginated marketplaces keep the base URL."""
        url = "https://www.bilbasen.dk/brugt/bil/toyota"
        assert build_paginated_url(MarketplaceParser.BILBASEN, url, 3) == url


class TestNormalizeListingUrl:
    """Tests for normalize_listing_url."""

    def test_strips_query_and_fragment(self):
        """Test that tracking parameters do not defeat deduplication."""
        assert normalize_listing_url("https://www.leboncoin.fr/ad/1.htm?utm=x#top") == (
            "https://www.leboncoin.fr/ad/1.htm"
        )

    def test_relative_url_unchanged(self):
        """Test that non-absolute URLs are returned as-is."""
        assert normalize_listing_url("/ad/1.htm?x=1") == "/ad/1.htm?x=1"

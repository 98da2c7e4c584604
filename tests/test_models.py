"""Tests for data models."""

import pytest
from pydantic import ValidationError

from arbitrage_finder.config import Config, ScraperConfig
from arbitrage_finder.models.listing import Currency, DetailedListing, Listing, PriceType
from arbitrage_finder.models.study import MarketStats, StudyCriteria, StudyExecutionResult, StudyStatus


class TestListing:
    """Tests for Listing model."""

    def test_minimal_listing(self):
        """Test creating a listing with minimal required fields."""
        listing = Listing(
            title="Toyota Yaris Cross Dynamic",
            price=16950,
            listing_url="https://www.marktplaats.nl/v/auto-s/toyota/m1",
        )
        assert listing.currency == Currency.EUR
        assert listing.price_type == PriceType.ONE_OFF
        assert listing.mileage is None
        assert listing.year is None
        assert listing.description == ""

    def test_full_listing(self):
        """Test creating a listing with all fields."""
        listing = Listing(
            title="Toyota Yaris Cross",
            price=189900,
            currency=Currency.DKK,
            mileage=45000,
            year=2021,
            trim="Style",
            listing_url="https://www.bilbasen.dk/brugt/bil/toyota/yaris-cross/1",
            description="2021 · 45.000 km",
            price_type=PriceType.ONE_OFF,
            thumbnail_url="https://billeder.bilbasen.dk/1.jpeg",
        )
        assert listing.currency == Currency.DKK
        assert listing.trim == "Style"

    def test_price_must_be_positive(self):
        """Test that zero and negative prices are rejected."""
        with pytest.raises(ValidationError):
            Listing(title="Toyota", price=0, listing_url="https://x.nl/1")
        with pytest.raises(ValidationError):
            Listing(title="Toyota", price=-5, listing_url="https://x.nl/1")

    def test_price_must_be_finite(self):
        """Test that infinite and NaN prices are rejected."""
        with pytest.raises(ValidationError):
            Listing(title="Toyota", price=float("inf"), listing_url="https://x.nl/1")
        with pytest.raises(ValidationError):
            Listing(title="Toyota", price=float("nan"), listing_url="https://x.nl/1")

    def test_url_required(self):
        """Test that an empty listing URL is rejected."""
        with pytest.raises(ValidationError):
            Listing(title="Toyota", price=9000, listing_url="")

    def test_currency_from_string(self):
        """Test currency coercion from its code."""
        listing = Listing(title="Toyota", price=9000, currency="DKK", listing_url="https://x.dk/1")
        assert listing.currency == Currency.DKK

    def test_invalid_currency(self):
        """Test that unknown currency codes are rejected."""
        with pytest.raises(ValidationError):
            Listing(title="Toyota", price=9000, currency="USD", listing_url="https://x.nl/1")


class TestDetailedListing:
    """Tests for DetailedListing model."""

    def test_defaults(self):
        """Test that detail fields default to empty."""
        detailed = DetailedListing(title="Toyota", price=9000, listing_url="https://x.nl/1")
        assert detailed.full_description == ""
        assert detailed.technical_info is None
        assert detailed.options == []
        assert detailed.car_image_urls == []

    def test_is_a_listing(self):
        """Test that detailed listings can be used wherever listings are."""
        assert isinstance(DetailedListing(title="Toyota", price=9000, listing_url="https://x.nl/1"), Listing)


class TestStudyModels:
    """Tests for study models."""

    def test_criteria_defaults(self):
        """Test that year and mileage gates are off by default."""
        criteria = StudyCriteria(brand="Toyota", model="Yaris Cross")
        assert criteria.year == 0
        assert criteria.max_year == 0
        assert criteria.max_mileage == 0

    def test_criteria_requires_brand_and_model(self):
        """Test missing required fields."""
        with pytest.raises(ValidationError):
            StudyCriteria(brand="Toyota")

    def test_market_stats_count_bounded(self):
        """Test that stats never cover more than 6 listings."""
        with pytest.raises(ValidationError):
            MarketStats(count=7)

    def test_result_serialization(self):
        """Test that results serialize with plain status strings."""
        result = StudyExecutionResult(status=StudyStatus.TARGET_BLOCKED, error_reason="MARKTPLAATS_BLOCKED: captcha")
        data = result.model_dump(mode="json")
        assert data["status"] == "TARGET_BLOCKED"
        assert data["best_source_price"] is None
        assert data["interesting_listings"] == []


class TestConfig:
    """Tests for configuration."""

    def test_defaults(self):
        """Test the default retry budget and backoff."""
        scraper = ScraperConfig()
        assert scraper.max_retries == 3
        assert scraper.fast_max_retries == 2
        assert scraper.retry_eligible == ["MARKTPLAATS"]
        assert Config().pagination.early_stop_after == 2

    def test_retry_delay_clamped(self):
        """Test backoff lookups past the configured list."""
        scraper = ScraperConfig()
        assert scraper.retry_delay_seconds(1) == 0.5
        assert scraper.retry_delay_seconds(2) == 1.0
        assert scraper.retry_delay_seconds(9) == 2.0

    def test_with_overrides(self):
        """Test that only given values override."""
        scraper = ScraperConfig().with_overrides(api_key="k", max_retries=None)
        assert scraper.api_key == "k"
        assert scraper.max_retries == 3

    def test_attempts_at_least_one(self):
        """Test that a zero retry budget is rejected."""
        with pytest.raises(ValidationError):
            ScraperConfig(max_retries=0)

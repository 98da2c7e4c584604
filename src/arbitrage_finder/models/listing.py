"""Listing data models."""

from enum import Enum

from pydantic import BaseModel, Field


class Currency(str, Enum):
    """Currency a listing price is quoted in."""

    EUR = "EUR"
    DKK = "DKK"
    UNKNOWN = "UNKNOWN"


class PriceType(str, Enum):
    """Whether a price is a one-off sale price or a recurring lease payment."""

    ONE_OFF = "one-off"
    PER_MONTH = "per-month"
    UNKNOWN = "unknown"


class Listing(BaseModel):
    """One normalized vehicle advertisement from a search results page."""

    title: str = Field(..., description="Listing title")
    price: float = Field(..., gt=0, allow_inf_nan=False, description="Asking price in the original currency")
    currency: Currency = Field(Currency.EUR, description="Currency of `price`")
    mileage: int | None = Field(None, description="Odometer reading in km")
    year: int | None = Field(None, description="Registration / model year")
    trim: str | None = Field(None, description="Trim level, when the source exposes it")
    listing_url: str = Field(..., min_length=1, description="Absolute listing URL (unique key)")
    description: str = Field("", description="Source excerpt")
    price_type: PriceType = Field(PriceType.ONE_OFF, description="One-off price or monthly lease")
    thumbnail_url: str | None = Field(None, description="Search-card thumbnail")


class DetailedListing(Listing):
    """Listing enriched from its detail page, handed to the defect classifier."""

    full_description: str = Field("", description="Full description text from the detail page")
    technical_info: str | None = Field(None, description="Technical / equipment block")
    options: list[str] = Field(default_factory=list, description="Detected equipment keywords")
    car_image_urls: list[str] = Field(default_factory=list, description="Gallery image URLs")

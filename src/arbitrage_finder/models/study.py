"""Study and market analysis models."""

from enum import Enum

from pydantic import BaseModel, Field

from .listing import Listing


class StudyCriteria(BaseModel):
    """Filter criteria of a market study. Used to filter listings, never to fetch them."""

    brand: str = Field(..., description="Brand, matched as a substring of the title")
    model: str = Field(..., description="Model, every token must appear in the title")
    year: int = Field(0, description="Minimum year (0 = no year gate)")
    max_year: int = Field(0, description="Maximum year, for a year range (0 = no upper bound)")
    max_mileage: int = Field(0, description="Maximum mileage in km (0 = unlimited)")


class MarketStats(BaseModel):
    """Price statistics over the cheapest qualifying listings (EUR)."""

    median_price: float = 0.0
    average_price: float = 0.0
    min_price: float = 0.0
    max_price: float = 0.0
    count: int = Field(0, ge=0, le=6)
    percentile_25: float = 0.0
    percentile_75: float = 0.0


class OpportunityResult(BaseModel):
    """Comparison of a target market median against the cheapest source listing."""

    has_opportunity: bool = False
    target_median_price: float = 0.0
    best_source_price: float = 0.0
    price_difference: float = 0.0
    interesting_listings: list[Listing] = Field(default_factory=list)


class StudyStatus(str, Enum):
    """Outcome of one study execution."""

    NULL = "NULL"
    OPPORTUNITIES = "OPPORTUNITIES"
    TARGET_BLOCKED = "TARGET_BLOCKED"


class StudyExecutionResult(BaseModel):
    """Serializable result of running a study over target and source listings."""

    status: StudyStatus
    target_stats: MarketStats = Field(default_factory=MarketStats)
    target_median_price: float = 0.0
    best_source_price: float | None = None
    price_difference: float | None = None
    interesting_listings: list[Listing] = Field(default_factory=list)
    filtered_target_count: int = 0
    filtered_source_count: int = 0
    raw_target_count: int = 0
    raw_source_count: int = 0
    error_reason: str | None = Field(None, description="Why the study ended without a comparison")

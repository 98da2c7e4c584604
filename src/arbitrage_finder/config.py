"""Configuration management."""

from pathlib import Path
from pydantic import BaseModel, Field


class ScraperConfig(BaseModel):
    """Settings for the rendering provider and the retry loop."""

    endpoint: str = Field(
        default="https://api.zyte.com/v1/extract",
        description="Rendering API endpoint"
    )
    api_key: str = Field(default="", description="Rendering API key (sent as basic-auth username)")

    # Retry budget per scrape request
    max_retries: int = Field(default=3, ge=1, description="Attempts per request in full mode")
    fast_max_retries: int = Field(default=2, ge=1, description="Attempts per request in fast mode")
    retry_delays_ms: list[int] = Field(
        default=[500, 1000, 2000],
        description="Backoff before retry N (ms), strictly increasing"
    )
    timeout_seconds: float = Field(default=60.0, gt=0, description="Per-call network timeout")

    # Only these marketplaces retry on ban/block/zero listings.
    # Everyone else terminates on the first bad response.
    retry_eligible: list[str] = Field(
        default=["MARKTPLAATS"],
        description="Parser kinds that escalate profiles on ban, block or zero listings"
    )

    def retry_delay_seconds(self, retry_number: int) -> float:
        """Backoff before the given retry (1-based), clamped to the last configured delay."""
        if not self.retry_delays_ms:
            return 0.0
        index = min(retry_number - 1, len(self.retry_delays_ms) - 1)
        return self.retry_delays_ms[max(index, 0)] / 1000

    def with_overrides(
        self,
        api_key: str | None = None,
        max_retries: int | None = None,
        timeout_seconds: float | None = None,
        retry_eligible: list[str] | None = None,
    ) -> "ScraperConfig":
        """Create a new ScraperConfig with optional overrides.

        Only non-None values override the current settings.
        """
        return self.model_copy(update={
            key: value
            for key, value in {
                "api_key": api_key,
                "max_retries": max_retries,
                "timeout_seconds": timeout_seconds,
                "retry_eligible": retry_eligible,
            }.items()
            if value is not None
        })


class PaginationConfig(BaseModel):
    """Limits for full-mode pagination."""

    max_pages_marktplaats: int = Field(default=10, description="Page cap for Marktplaats")
    max_pages_leboncoin: int = Field(default=20, description="Page cap for Leboncoin")

    # Jittered politeness delay between page fetches
    delay_min_ms: int = Field(default=300, description="Lower bound of the inter-page delay")
    delay_max_ms: int = Field(default=900, description="Upper bound of the inter-page delay")

    early_stop_after: int = Field(
        default=2,
        description="Stop after this many consecutive failed or duplicate-only pages"
    )


class Config(BaseModel):
    """Application configuration."""

    # Project paths - config.py is at src/arbitrage_finder/config.py, so 3 parents up
    project_root: Path = Path(__file__).parent.parent.parent
    fixtures_dir: Path = project_root / "fixtures"

    scraper: ScraperConfig = Field(default_factory=ScraperConfig)
    pagination: PaginationConfig = Field(default_factory=PaginationConfig)

    # Browser settings (Playwright fetcher)
    headless: bool = True
    slow_mo: int = 0  # milliseconds between actions

    # Default arbitrage threshold in EUR
    threshold_eur: float = 5000.0


# Global config instance
config = Config()

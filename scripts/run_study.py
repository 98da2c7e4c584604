"""Run a market study: scrape a target and a source market and compare prices.

The Zyte fetcher requires ZYTE_API_KEY in environment or .env file.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

# Add src to path for script execution
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

# Load .env file
from dotenv import load_dotenv
load_dotenv(Path(__file__).parent.parent / ".env")

from rich.console import Console
from rich.table import Table

from arbitrage_finder.config import config
from arbitrage_finder.extractors import to_eur
from arbitrage_finder.models.listing import DetailedListing
from arbitrage_finder.models.study import StudyCriteria, StudyExecutionResult, StudyStatus
from arbitrage_finder.parity import hash_study_result
from arbitrage_finder.scrapers.base import Fetcher, ScrapeMode
from arbitrage_finder.scrapers.browser import PlaywrightFetcher
from arbitrage_finder.scrapers.detail import DetailScraper
from arbitrage_finder.scrapers.orchestrator import MarketScraper
from arbitrage_finder.scrapers.zyte import ZyteFetcher
from arbitrage_finder.study import StudyRunner

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler()],
)
logger = logging.getLogger(__name__)

console = Console()


# =============================================================================
# Display
# =============================================================================

def display_result(result: StudyExecutionResult, threshold: float) -> None:
    """Print a study result."""
    status_style = {
        StudyStatus.OPPORTUNITIES: "bold green",
        StudyStatus.TARGET_BLOCKED: "bold red",
        StudyStatus.NULL: "yellow",
    }[result.status]
    console.print(f"\n[{status_style}]Status: {result.status.value}[/{status_style}]")
    if result.error_reason:
        console.print(f"  Reason: {result.error_reason}")

    stats = result.target_stats
    console.print(
        f"  Target: {result.raw_target_count} raw, {result.filtered_target_count} kept, "
        f"median {stats.median_price:,.0f} EUR over {stats.count} cheapest "
        f"(P25 {stats.percentile_25:,.0f}, P75 {stats.percentile_75:,.0f})"
    )
    console.print(f"  Source: {result.raw_source_count} raw, {result.filtered_source_count} kept")

    if result.best_source_price is not None:
        console.print(
            f"  Best source: {result.best_source_price:,.0f} EUR, "
            f"difference {result.price_difference:,.0f} EUR (threshold {threshold:,.0f})"
        )

    if result.interesting_listings:
        table = Table(title="Interesting source listings")
        table.add_column("Title", style="cyan", max_width=50)
        table.add_column("Price", justify="right")
        table.add_column("EUR", justify="right")
        table.add_column("Year", justify="right")
        table.add_column("Km", justify="right")
        table.add_column("URL", style="dim", max_width=60)

        for listing in result.interesting_listings:
            table.add_row(
                listing.title,
                f"{listing.price:,.0f} {listing.currency.value}",
                f"{to_eur(listing.price, listing.currency):,.0f}",
                str(listing.year or "-"),
                f"{listing.mileage:,}" if listing.mileage else "-",
                listing.listing_url,
            )
        console.print(table)

    console.print(f"\n[dim]Result hash: {hash_study_result(result)}[/dim]")


def display_details(detailed: list[DetailedListing]) -> None:
    """Print detail-page enrichment of the interesting listings."""
    table = Table(title="Detail pages")
    table.add_column("Title", style="cyan", max_width=50)
    table.add_column("Price", justify="right")
    table.add_column("Options")
    table.add_column("Images", justify="right")

    for listing in detailed:
        table.add_row(
            listing.title,
            f"{listing.price:,.0f} {listing.currency.value}",
            ", ".join(listing.options) or "-",
            str(len(listing.car_image_urls)),
        )
    console.print(table)


# =============================================================================
# Main Study Function
# =============================================================================

async def run_study(
    criteria: StudyCriteria,
    target_url: str,
    source_url: str,
    threshold: float,
    mode: ScrapeMode,
    fetcher_name: str,
    api_key: str,
    trim_target: str | None = None,
    trim_source: str | None = None,
    details: bool = False,
) -> tuple[StudyExecutionResult, list[DetailedListing]]:
    """Run one study with the chosen fetcher.

    With `details`, the interesting source listings are enriched from their
    detail pages using the same fetcher.
    """
    console.print("\n[bold blue]Running market study[/bold blue]")
    console.print(f"  {criteria.brand} {criteria.model}, year >= {criteria.year or 'any'}")
    console.print(f"  Max mileage: {criteria.max_mileage or 'unlimited'}")
    console.print(f"  Target: {target_url}")
    console.print(f"  Source: {source_url}")
    console.print(f"  Mode: {mode.value}, fetcher: {fetcher_name}")
    console.print()

    fetcher: Fetcher
    if fetcher_name == "browser":
        fetcher = PlaywrightFetcher()
    else:
        fetcher = ZyteFetcher(config.scraper.with_overrides(api_key=api_key))

    async with fetcher:
        runner = StudyRunner(MarketScraper(fetcher, config.scraper, config.pagination))
        result = await runner.run(
            criteria,
            target_url,
            source_url,
            threshold,
            mode=mode,
            trim_target=trim_target,
            trim_source=trim_source,
        )

        detailed: list[DetailedListing] = []
        if details and result.interesting_listings:
            detailed = await DetailScraper(fetcher).fetch_details(result.interesting_listings)

    for err in runner.errors:
        console.print(f"  [red]✗[/red] {err.url}")
        console.print(f"    {err.error_type}: {err.error_message}")

    return result, detailed


# =============================================================================
# CLI Entry Point
# =============================================================================

def main() -> None:
    parser = argparse.ArgumentParser(
        description="Run a cross-market car price study",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --brand Toyota --model "Yaris Cross" --year 2022 \\
      --target "https://www.marktplaats.nl/l/auto-s/toyota/#f:10882" \\
      --source "https://www.leboncoin.fr/recherche?category=2&kst=k"
  %(prog)s ... --mode fast --threshold 3000
  %(prog)s ... --fetcher browser          # Local Chromium instead of Zyte
""",
    )
    parser.add_argument("--brand", required=True, help="Brand, matched in listing titles")
    parser.add_argument("--model", required=True, help="Model, every token must appear in titles")
    parser.add_argument("--year", type=int, default=0, help="Minimum year (default: any)")
    parser.add_argument("--max-year", type=int, default=0, help="Maximum year (default: any)")
    parser.add_argument("--max-mileage", type=int, default=0, help="Maximum km (default: unlimited)")
    parser.add_argument("--target", required=True, help="Target market search URL")
    parser.add_argument("--source", required=True, help="Source market search URL")
    parser.add_argument(
        "--threshold",
        type=float,
        default=config.threshold_eur,
        help=f"Minimum price gap in EUR (default: {config.threshold_eur:,.0f})",
    )
    parser.add_argument("--trim", default=None, help="Trim text applied to both searches")
    parser.add_argument("--trim-target", default=None, help="Trim text for the target search")
    parser.add_argument("--trim-source", default=None, help="Trim text for the source search")
    parser.add_argument(
        "--mode",
        choices=[mode.value for mode in ScrapeMode],
        default=ScrapeMode.FULL.value,
        help="fast: page 1 only, full: paginate (default: full)",
    )
    parser.add_argument(
        "--fetcher",
        choices=["zyte", "browser"],
        default="zyte",
        help="Page fetcher (default: zyte, needs ZYTE_API_KEY)",
    )
    parser.add_argument(
        "--details",
        action="store_true",
        help="Fetch detail pages of the interesting listings",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()

    # Configure logging level
    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logging.getLogger("arbitrage_finder").setLevel(logging.DEBUG)

    api_key = os.environ.get("ZYTE_API_KEY", "")
    if args.fetcher == "zyte" and not api_key:
        console.print("[red]ZYTE_API_KEY is not set[/red]")
        sys.exit(2)

    criteria = StudyCriteria(
        brand=args.brand,
        model=args.model,
        year=args.year,
        max_year=args.max_year,
        max_mileage=args.max_mileage,
    )

    try:
        result, detailed = asyncio.run(
            run_study(
                criteria,
                args.target,
                args.source,
                args.threshold,
                ScrapeMode(args.mode),
                args.fetcher,
                api_key,
                trim_target=args.trim_target or args.trim,
                trim_source=args.trim_source or args.trim,
                details=args.details,
            )
        )
        display_result(result, args.threshold)
        if detailed:
            display_details(detailed)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(1)


if __name__ == "__main__":
    main()

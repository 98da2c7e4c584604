"""Parse a saved search results page offline and print the listings.

Useful for checking a parser against a page captured from a live run, and for
comparing parity hashes between two captures of the same page.
"""

from __future__ import annotations

import argparse
import hashlib
import logging
import sys
from pathlib import Path

# Add src to path for script execution
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from rich.console import Console
from rich.table import Table

from arbitrage_finder.blocking import detect_blocked_content
from arbitrage_finder.config import config
from arbitrage_finder.parity import hash_listing_pool
from arbitrage_finder.parsers.registry import parse_search_page, select_parser_by_hostname

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler()],
)

console = Console()


def main() -> None:
    parser = argparse.ArgumentParser(description="Parse a saved marketplace search page")
    parser.add_argument("html_file", type=Path, help="Saved page HTML (also looked up under fixtures/)")
    parser.add_argument("url", help="URL the page was fetched from (selects the parser)")
    parser.add_argument("--limit", type=int, default=20, help="Listings to show (default: 20)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.debug:
        logging.getLogger("arbitrage_finder").setLevel(logging.DEBUG)

    html_file = args.html_file
    if not html_file.exists() and (config.fixtures_dir / html_file).exists():
        html_file = config.fixtures_dir / html_file
    html = html_file.read_text(encoding="utf-8")
    kind = select_parser_by_hostname(args.url)
    listings = parse_search_page(html, args.url)

    console.print(f"\n[bold]{html_file.name}[/bold]: {len(html):,} chars, parser {kind.value}")

    detection = detect_blocked_content(html, has_listings=bool(listings))
    if detection.is_blocked:
        console.print(f"[red]Looks blocked: '{detection.matched_keyword}' ({detection.reason})[/red]")

    table = Table(title=f"{len(listings)} listings")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Title", style="cyan", max_width=50)
    table.add_column("Price", justify="right")
    table.add_column("Year", justify="right")
    table.add_column("Km", justify="right")
    table.add_column("Type")
    table.add_column("URL", style="dim", max_width=60)

    for i, listing in enumerate(listings[:args.limit], 1):
        table.add_row(
            str(i),
            listing.title,
            f"{listing.price:,.0f} {listing.currency.value}",
            str(listing.year or "-"),
            f"{listing.mileage:,}" if listing.mileage else "-",
            listing.price_type.value,
            listing.listing_url,
        )
    console.print(table)

    if len(listings) > args.limit:
        console.print(f"[dim]... and {len(listings) - args.limit} more[/dim]")

    digest = hashlib.sha256(hash_listing_pool(listings).encode("utf-8")).hexdigest()
    console.print(f"\n[dim]Pool hash (sha256): {digest}[/dim]")


if __name__ == "__main__":
    main()

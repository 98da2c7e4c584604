"""Shared fixtures and page builders."""

import json

import pytest

from arbitrage_finder.models.listing import Currency, Listing
from arbitrage_finder.scrapers.base import Fetcher


MARKTPLAATS_URL = "https://www.marktplaats.nl/l/auto-s/toyota/"
LEBONCOIN_URL = "https://www.leboncoin.fr/recherche?category=2&brand=Toyota"
BILBASEN_URL = "https://www.bilbasen.dk/brugt/bil/toyota"


# =============================================================================
# Page builders
# =============================================================================

def marktplaats_card(item_id: int, price_text: str, title: str = "Toyota Yaris Cross 1.5 Hybrid Dynamic",
                     details: str = "2021 · 45.000 km") -> str:
    """One server-rendered Marktplaats list item."""
    return (
        '<li class="hz-Listing hz-Listing--list-item">'
        f'<a class="hz-Listing-coverLink" href="/v/auto-s/toyota/m{item_id}-toyota-yaris-cross" title="{title}">'
        f'<img src="https://images.marktplaats.com/api/v1/thumbs/{item_id}.jpg"></a>'
        f'<span class="hz-Listing-price">{price_text}</span>'
        f'<span class="hz-Listing-attributes">{details}</span>'
        "</li>"
    )


def marktplaats_page(cards: list[str], last_page: int | None = None) -> str:
    """Marktplaats results page, optionally with pagination links up to `last_page`."""
    pagination = ""
    if last_page:
        pagination = "".join(
            f'<a href="/l/auto-s/toyota/p/{n}/">{n}</a>' for n in range(2, last_page + 1)
        )
    return f"<html><body><ul>{''.join(cards)}</ul><nav>{pagination}</nav></body></html>"


def leboncoin_ad(ad_id: int, price: int, subject: str = "Toyota Yaris Cross Hybride 116h",
                 year: str = "2021", mileage: str = "45000") -> dict:
    return {
        "subject": subject,
        "price": [price],
        "url": f"/ad/voitures/{ad_id}.htm",
        "body": "Premier propriétaire, entretien suivi chez Toyota.",
        "attributes": [
            {"key": "regdate", "value": year},
            {"key": "mileage", "value": mileage},
        ],
        "images": [{"urls": {"small": f"https://img.leboncoin.fr/api/v1/lbcpb1/images/{ad_id}.jpg"}}],
    }


def leboncoin_page(ads: list[dict], total_pages: int | None = None) -> str:
    """Leboncoin results page with its __NEXT_DATA__ payload."""
    search_data: dict = {"ads": ads}
    if total_pages is not None:
        search_data["totalPages"] = total_pages
    payload = json.dumps({"props": {"pageProps": {"searchData": search_data}}})
    return (
        "<html><head></head><body><div id=\"__next\"></div>"
        f'<script id="__NEXT_DATA__" type="application/json">{payload}</script>'
        "</body></html>"
    )


BILBASEN_SPACER = "<div>" + " " * 4200 + "</div>"


def bilbasen_card(item_id: int, price_text: str, title: str = "Toyota Yaris Cross 1.5 Hybrid") -> str:
    """One Bilbasen result; callers separate cards with BILBASEN_SPACER."""
    return (
        "<article>"
        f"<h3>{title}</h3>"
        f'<a href="/brugt/bil/toyota/yaris-cross/{item_id}">Se bil</a>'
        "<p>2021 · 45.000 km</p>"
        f"<p>{price_text}</p>"
        "</article>"
    )


def bilbasen_page(cards: list[str]) -> str:
    return "<html><body>" + BILBASEN_SPACER + BILBASEN_SPACER.join(cards) + BILBASEN_SPACER + "</body></html>"


EMPTY_PAGE = "<html><body><p>Geen resultaten gevonden</p></body></html>"
CAPTCHA_PAGE = "<html><body><div class=\"g-recaptcha\">Please solve the captcha</div></body></html>"


# =============================================================================
# Fakes
# =============================================================================

class FakeFetcher(Fetcher):
    """Scripted fetcher.

    `responses` maps a URL to one response or a list of responses; list
    entries are served in order and the last one repeats. Unknown URLs
    return None.
    """

    def __init__(self, responses: dict):
        self.responses = {
            url: list(value) if isinstance(value, list) else [value]
            for url, value in responses.items()
        }
        self.calls: list[tuple[str, int]] = []

    async def fetch(self, url: str, profile_level: int = 1) -> str | None:
        self.calls.append((url, profile_level))
        queue = self.responses.get(url)
        if not queue:
            return None
        return queue.pop(0) if len(queue) > 1 else queue[0]

    @property
    def urls(self) -> list[str]:
        return [url for url, _ in self.calls]


class RecordingSleep:
    """Async stand-in for asyncio.sleep that only records the delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def make_listing(price: float, title: str = "Toyota Yaris Cross Hybrid", url: str | None = None,
                 currency: Currency = Currency.EUR, **kwargs) -> Listing:
    """Listing factory with sensible defaults."""
    return Listing(
        title=title,
        price=price,
        currency=currency,
        listing_url=url or f"https://www.example.com/listing/{int(price)}",
        **kwargs,
    )


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def sleep():
    """Recording no-op sleep."""
    return RecordingSleep()


@pytest.fixture
def marktplaats_html():
    """A three-listing Marktplaats page without pagination links."""
    return marktplaats_page([
        marktplaats_card(101, "€ 16.950,-"),
        marktplaats_card(102, "€ 18.500,-"),
        marktplaats_card(103, "€ 21.250,-"),
    ])

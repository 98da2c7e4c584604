"""Attribute extraction from listing text and HTML.

Every function here is pure: text in, value (or None) out. Nothing raises on
unexpected input; an unparseable value is simply absent.

Price literals handled:
- EUR: "€ 16.950,-", "€24 650", "16 950 €", "16950 EUR", "16 950 euros", "Prix: 16950"
- DKK: "125.000 kr.", "kr. 125.000", "125.000 DKK" (converted at a fixed rate)
"""

from __future__ import annotations

import math
import re
from datetime import datetime
from urllib.parse import urlsplit

from .models.listing import Currency


# =============================================================================
# Currency Handling
# =============================================================================

# Fixed conversion rates to EUR. Rough figures, good enough to rank listings.
CURRENCY_TO_EUR_RATE = {
    Currency.EUR: 1.0,
    Currency.DKK: 0.13,
    Currency.UNKNOWN: 1.0,
}

DKK_TO_EUR = CURRENCY_TO_EUR_RATE[Currency.DKK]


class PriceLimits:
    """Plausibility bounds (exclusive) for extracted values."""
    EUR_MIN = 100
    EUR_MAX = 500_000
    DKK_MIN = 100
    DKK_MAX = 5_000_000
    MILEAGE_MIN = 0
    MILEAGE_MAX = 1_000_000
    YEAR_MIN = 2000
    # Longer digit runs are outside every range above
    MAX_DIGITS = 9


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positive values."""
    return int(math.floor(value + 0.5))


def _digits_to_int(digits: str) -> int | None:
    unsigned = digits.lstrip("+-")
    significant = unsigned.lstrip("0")
    if not unsigned or len(significant) > PriceLimits.MAX_DIGITS:
        return None
    value = int(significant or "0")
    return -value if digits.startswith("-") else value


def finite_number(value: object) -> float | None:
    """Return a JSON number as a finite float, or None for bools, NaN and infinities."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def to_eur(price: float, currency: Currency | str) -> float:
    """Convert a price to EUR using the fixed rate table."""
    try:
        rate = CURRENCY_TO_EUR_RATE[Currency(currency)]
    except ValueError:
        rate = 1.0
    return price * rate


def parse_leading_int(value: object) -> int | None:
    """Parse the leading integer of a value ("16950abc" -> 16950).

    Numbers are truncated, strings read up to the first non-digit.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return int(value)
    match = re.match(r"\s*([+-]?\d+)", str(value))
    return _digits_to_int(match.group(1)) if match else None


def digits_only_int(value: object) -> int | None:
    """Keep only the digits of a value and parse them ("85.000 km" -> 85000)."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return parse_leading_int(value)
    cleaned = re.sub(r"\D", "", str(value))
    return _digits_to_int(cleaned)


# =============================================================================
# Price Extraction
# =============================================================================

EUR_PATTERNS = (
    re.compile(r"€\s*([\d\s.]+)(?:,-|,\d{1,2})?"),
    re.compile(r"([\d\s.]+)\s*€"),
    re.compile(r"([\d\s.]+)\s*EUR\b", re.IGNORECASE),
    re.compile(r"([\d\s.]+)\s*euros?\b", re.IGNORECASE),
    re.compile(r"prix[:\s]*([\d\s.]+)", re.IGNORECASE),
)

# No greedy whitespace in the number run, so a trailing mileage is never absorbed
DKK_PATTERNS = (
    re.compile(r"(\d[\d.,']*)\s*kr\.?", re.IGNORECASE),
    re.compile(r"kr\.?\s*(\d[\d.,']*)", re.IGNORECASE),
    re.compile(r"(\d[\d.,']*)\s*DKK\b", re.IGNORECASE),
)


def _normalize_price_text(text: str) -> str:
    return (
        text.replace(" ", " ")
        .replace("&nbsp;", " ")
        .replace("&euro;", "€")
    )


def extract_euro_price(text: str | None) -> int | None:
    """Extract a EUR price from text.

    Patterns are tried in order; the first match of each pattern is checked
    against the plausibility range and the next pattern is tried if it fails.

    Returns:
        Whole-euro price, or None.
    """
    if not text or not isinstance(text, str):
        return None

    normalized = _normalize_price_text(text)
    for pattern in EUR_PATTERNS:
        match = pattern.search(normalized)
        if not match:
            continue
        cleaned = re.sub(r"[\s.]", "", match.group(1))
        if not cleaned:
            continue
        price = _digits_to_int(cleaned)
        if price is not None and PriceLimits.EUR_MIN < price < PriceLimits.EUR_MAX:
            return price
    return None


def extract_dkk_amount(text: str | None) -> int | None:
    """Extract a DKK amount from text, unconverted."""
    if not text or not isinstance(text, str):
        return None

    normalized = text.replace(" ", " ")
    for pattern in DKK_PATTERNS:
        match = pattern.search(normalized)
        if not match:
            continue
        cleaned = re.sub(r"[\s.,']", "", match.group(1))
        if not cleaned:
            continue
        amount = _digits_to_int(cleaned)
        if amount is not None and PriceLimits.DKK_MIN < amount < PriceLimits.DKK_MAX:
            return amount
    return None


def extract_price_with_currency(text: str | None) -> tuple[int, Currency] | None:
    """Extract a price in its quoted currency.

    EUR patterns win over DKK patterns.

    Returns:
        Tuple of (amount, currency), or None.
    """
    eur = extract_euro_price(text)
    if eur is not None:
        return eur, Currency.EUR
    dkk = extract_dkk_amount(text)
    if dkk is not None:
        return dkk, Currency.DKK
    return None


def extract_price(text: str | None) -> int | None:
    """Extract a price and normalize it to whole EUR.

    DKK amounts are converted at the fixed rate and rounded to the nearest euro,
    e.g. "125.000 kr" -> 16250.
    """
    found = extract_price_with_currency(text)
    if found is None:
        return None
    amount, currency = found
    if currency == Currency.DKK:
        return round_half_up(amount * DKK_TO_EUR)
    return amount


# =============================================================================
# Year / Mileage
# =============================================================================

YEAR_PATTERN = re.compile(r"\b(20[0-2][0-9])\b")

MILEAGE_PATTERNS = (
    re.compile(r"(\d[\d\s.,']*?)\s*km\b", re.IGNORECASE),
    re.compile(r"(\d[\d\s.,']*?)km\b", re.IGNORECASE),
    re.compile(r"kilom[eéè]trage[:\s]*(\d[\d\s.,']*)", re.IGNORECASE),
)


def extract_year(text: str | None, current_year: int | None = None) -> int | None:
    """Extract the first 20xx year token, if it is not in the future.

    Only the first token is considered: "2029 ... 2019" in 2026 yields None.
    """
    if not text:
        return None
    if current_year is None:
        current_year = datetime.now().year
    match = YEAR_PATTERN.search(text)
    if match:
        year = int(match.group(1))
        if PriceLimits.YEAR_MIN <= year <= current_year:
            return year
    return None


def bounded_year(value: object, current_year: int | None = None) -> int | None:
    """Parse a structured year field ("2021", 2021, "2021-03"), None outside 2000..current year."""
    year = parse_leading_int(value)
    if year is None:
        return None
    if current_year is None:
        current_year = datetime.now().year
    return year if PriceLimits.YEAR_MIN <= year <= current_year else None


def extract_mileage(text: str | None) -> int | None:
    """Extract a mileage in km ("85.000 km", "85000km", "Kilométrage: 85 000")."""
    if not text:
        return None

    normalized = text.replace(" ", " ")
    for pattern in MILEAGE_PATTERNS:
        match = pattern.search(normalized)
        if not match:
            continue
        cleaned = re.sub(r"[\s.,']", "", match.group(1))
        if not cleaned:
            continue
        mileage = _digits_to_int(cleaned)
        if mileage is not None and PriceLimits.MILEAGE_MIN < mileage < PriceLimits.MILEAGE_MAX:
            return mileage
    return None


# =============================================================================
# HTML Helpers
# =============================================================================

TAG_PATTERN = re.compile(r"<[^>]+>")
WHITESPACE_PATTERN = re.compile(r"\s+")


def strip_tags(html: str) -> str:
    """Replace tags with spaces and collapse whitespace."""
    return WHITESPACE_PATTERN.sub(" ", TAG_PATTERN.sub(" ", html)).strip()


CARD_TITLE_PATTERNS = (
    re.compile(r"<h[1-6][^>]*>(.*?)</h[1-6]>", re.IGNORECASE | re.DOTALL),
    re.compile(r"<a[^>]*title=\"([^\"]+)\"", re.IGNORECASE),
    re.compile(r"<span[^>]*class=\"[^\"]*title[^\"]*\"[^>]*>(.*?)</span>", re.IGNORECASE | re.DOTALL),
)

PAGE_TITLE_PATTERNS = (
    re.compile(r"<h[1-6][^>]*>(.*?)</h[1-6]>", re.IGNORECASE | re.DOTALL),
    re.compile(r"title=[\"']([^\"']+)[\"']", re.IGNORECASE),
    re.compile(r"<title[^>]*>(.*?)</title>", re.IGNORECASE | re.DOTALL),
)


def extract_card_title(card_html: str) -> str | None:
    """Extract a title from a search card (heading, anchor title, title span).

    Candidates of 5 characters or fewer are ignored.
    """
    for pattern in CARD_TITLE_PATTERNS:
        match = pattern.search(card_html)
        if match:
            title = TAG_PATTERN.sub("", match.group(1)).strip()
            if len(title) > 5:
                return title
    return None


def extract_title(html: str) -> str | None:
    """Extract a title from a page fragment (heading, title attribute, <title>)."""
    for pattern in PAGE_TITLE_PATTERNS:
        match = pattern.search(html)
        if match:
            title = strip_tags(match.group(1))
            if title:
                return title
    return None


THUMBNAIL_PATTERNS = (
    re.compile(r"<img[^>]*src=[\"']([^\"']+)[\"']", re.IGNORECASE),
    re.compile(r"<img[^>]*data-src=[\"']([^\"']+)[\"']", re.IGNORECASE),
)


def extract_thumbnail(card_html: str) -> str | None:
    """Extract a thumbnail URL from a card; inline data: URIs are skipped."""
    for pattern in THUMBNAIL_PATTERNS:
        match = pattern.search(card_html)
        if match:
            url = match.group(1)
            if url and not url.startswith("data:") and len(url) > 10:
                return url
    return None


def normalize_url(href: str, origin: str) -> str:
    """Make an href absolute against a scheme://host origin."""
    if href.startswith("http://") or href.startswith("https://"):
        return href
    if href.startswith("//"):
        return f"https:{href}"
    if href.startswith("/"):
        return f"{origin}{href}"
    return f"{origin}/{href}"


def url_origin(url: str) -> str:
    """Return scheme://host for a URL, or a placeholder origin if it can't be parsed."""
    try:
        parts = urlsplit(url)
    except ValueError:
        parts = None
    if parts and parts.scheme and parts.hostname:
        return f"{parts.scheme}://{parts.hostname}"
    match = re.match(r"^(https?://[^/]+)", url)
    return match.group(1) if match else "https://unknown"


# =============================================================================
# Lease / Damage Detection
# =============================================================================

# Substring matching, not tokenized: "lease" also matches "release".
MONTHLY_KEYWORDS = frozenset({
    "/mois", "€/mois", "€ / mois", "per month", "€/month", "par mois", "p/m",
    "/maand", "€/mnd", "per maand", "/month",
    "lease", "privé lease", "private lease", "loa", "lld", "operational lease",
    "leasing", "maandelijkse betaling",
})

# Substring matching: "no accident damage" still matches "accident damage".
DAMAGE_KEYWORDS = frozenset({
    # French
    "accidenté", "véhicule accidenté", "épave", "choc", "réparé suite à choc",
    "châssis tordu", "pour pièces", "non roulant", "hs", "hors service",
    "dépanneuse", "moteur hs",
    # English
    "damaged", "accident damage", "salvage", "cat c", "cat d", "cat s", "cat n",
    "written off", "write off", "total loss", "for parts", "as is", "parts only",
    "not running",
    # Dutch
    "schade", "ongeval", "schadeauto",
    # Danish
    "skadet", "skade", "kollisionsskade", "ulykke",
})


def is_price_monthly(text: str | None) -> bool:
    """Check whether text describes a monthly / lease price."""
    if not text:
        return False
    lowered = text.lower()
    return any(keyword in lowered for keyword in MONTHLY_KEYWORDS)


def is_damaged_vehicle(text: str | None) -> bool:
    """Check whether text describes a damaged, salvage or non-running vehicle."""
    if not text:
        return False
    lowered = text.lower()
    return any(keyword in lowered for keyword in DAMAGE_KEYWORDS)


def detect_currency(url: str, text: str) -> Currency:
    """Guess the currency of a page: DKK for Danish sites or "kr" prices, else EUR."""
    url_lower = url.lower()
    try:
        hostname = (urlsplit(url_lower).hostname or "")
    except ValueError:
        hostname = ""
    if hostname.endswith(".dk") or "bilbasen" in url_lower or " kr" in text.lower():
        return Currency.DKK
    return Currency.EUR

"""Bot-block and CAPTCHA detection for fetched HTML."""

from __future__ import annotations

from dataclasses import dataclass


# Hard block markers: any occurrence means the page is a block page.
# Ordered; the first match is reported.
BLOCKED_KEYWORDS = (
    "captcha",
    "recaptcha",
    "hcaptcha",
    "access denied",
    "blocked",
    "bot detection",
    "unusual traffic",
    "not a robot",
    "security check",
    "verify you are human",
    "cloudflare",
)

# Soft markers, only trusted on short pages that yielded no listings
SUSPICIOUS_KEYWORDS = (
    "robot",
    "access denied",
    "blocked",
    "security",
    "verification",
)

SUSPICIOUS_MAX_LENGTH = 50_000

REASON_KEYWORD_MATCH = "keyword_match"
REASON_SUSPICIOUS_CONTENT = "no_listings_with_suspicious_content"


@dataclass(frozen=True)
class BlockDetection:
    """Outcome of blocked-content detection."""

    is_blocked: bool
    matched_keyword: str | None = None
    reason: str | None = None


NOT_BLOCKED = BlockDetection(is_blocked=False)


def detect_blocked_content(html: str, has_listings: bool) -> BlockDetection:
    """Classify fetched HTML as a bot-block page.

    Args:
        html: Raw page HTML.
        has_listings: Whether parsing already produced at least one listing.

    Returns:
        BlockDetection with the first matched keyword and the rule that fired.
    """
    lowered = html.lower()

    for keyword in BLOCKED_KEYWORDS:
        if keyword in lowered:
            return BlockDetection(True, keyword, REASON_KEYWORD_MATCH)

    # Long result pages mention "security" in footers all the time
    if not has_listings and len(html) < SUSPICIOUS_MAX_LENGTH:
        for keyword in SUSPICIOUS_KEYWORDS:
            if keyword in lowered:
                return BlockDetection(True, keyword, REASON_SUSPICIOUS_CONTENT)

    return NOT_BLOCKED


def is_website_ban(html: str) -> bool:
    """Check for the rendering provider's "website ban" error page."""
    return "/download/website-ban" in html or "website ban" in html.lower()


def is_bad_endpoint(html: str) -> bool:
    """Check the head of a response for a provider bad-endpoint / robots.txt refusal."""
    head = html[:500].lower()
    if "request failed (bad_endpoint)" in head:
        return True
    if "robots.txt" in head and "not available" in head:
        return True
    return "blocked" in head or "access denied" in head

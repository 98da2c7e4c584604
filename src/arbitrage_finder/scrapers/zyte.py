"""Fetch client for the Zyte rendering API.

Request body: {"url": ..., "browserHtml": true, [geolocation, javascript, actions]}
Response body: {"browserHtml": "<html>..."}
Auth: HTTP basic, API key as username, empty password.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..config import ScraperConfig
from .base import Fetcher

logger = logging.getLogger(__name__)

MAX_PROFILE_LEVEL = 3

# Marketplaces that get geo-located, JS-rendered profiles on escalation
PROFILE_GEOLOCATION = {
    "marktplaats.nl": "NL",
}

WAIT_ACTION = {"action": "waitForTimeout", "timeout": 2.0}


def build_request_profile(url: str, level: int) -> dict[str, Any]:
    """Build the provider request body for a profile level.

    Level 1 is a plain render. Level 2 adds geolocation and JS execution,
    level 3 also waits 2s after load. Levels above 3 use level 3. Only
    marketplaces listed in PROFILE_GEOLOCATION escalate; others always get
    the plain profile.
    """
    profile: dict[str, Any] = {"url": url, "browserHtml": True}
    if level <= 1:
        return profile

    geolocation = next(
        (country for domain, country in PROFILE_GEOLOCATION.items() if domain in url),
        None,
    )
    if geolocation is None:
        return profile

    profile["geolocation"] = geolocation
    profile["javascript"] = True
    if min(level, MAX_PROFILE_LEVEL) >= 3:
        profile["actions"] = [dict(WAIT_ACTION)]
    return profile


class ZyteFetcher(Fetcher):
    """Fetcher backed by the Zyte extract API.

    Use as an async context manager, or call `aclose()` when done. Any network
    error, timeout, non-2xx status or empty browserHtml yields None.
    """

    def __init__(
        self,
        scraper_config: ScraperConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = scraper_config
        self._client = httpx.AsyncClient(
            auth=httpx.BasicAuth(scraper_config.api_key, ""),
            timeout=scraper_config.timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "ZyteFetcher":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch(self, url: str, profile_level: int = 1) -> str | None:
        body = build_request_profile(url, profile_level)
        logger.info(f"Fetching {url[:100]} (profile level {profile_level})")

        try:
            response = await self._client.post(self.config.endpoint, json=body)
        except httpx.TimeoutException:
            logger.warning(f"Zyte request timed out after {self.config.timeout_seconds}s: {url[:100]}")
            return None
        except httpx.HTTPError as e:
            logger.warning(f"Zyte request failed: {type(e).__name__}: {e}")
            return None

        if not response.is_success:
            logger.warning(f"Zyte API error: {response.status_code} - {response.text[:200]}")
            return None

        try:
            payload = response.json()
        except ValueError:
            logger.warning("Zyte API returned a non-JSON body")
            return None

        html = payload.get("browserHtml") if isinstance(payload, dict) else None
        if not isinstance(html, str) or not html:
            logger.warning(f"Zyte API returned no browserHtml for {url[:100]}")
            return None
        return html

"""Tests for the Zyte fetch client."""

import asyncio
import base64
import json

import httpx

from arbitrage_finder.config import ScraperConfig
from arbitrage_finder.scrapers.zyte import ZyteFetcher, build_request_profile

from conftest import LEBONCOIN_URL, MARKTPLAATS_URL


def fetch_with(handler, url: str = MARKTPLAATS_URL, profile_level: int = 1) -> str | None:
    """Run one fetch against a mocked transport."""
    async def run():
        transport = httpx.MockTransport(handler)
        async with ZyteFetcher(ScraperConfig(api_key="secret-key"), transport=transport) as fetcher:
            return await fetcher.fetch(url, profile_level=profile_level)

    return asyncio.run(run())


class TestBuildRequestProfile:
    """Tests for request profile escalation."""

    def test_level_one_is_plain(self):
        """Test the plain render profile."""
        assert build_request_profile(MARKTPLAATS_URL, 1) == {"url": MARKTPLAATS_URL, "browserHtml": True}

    def test_level_two_adds_geolocation(self):
        """Test the geo + JS profile for Marktplaats."""
        profile = build_request_profile(MARKTPLAATS_URL, 2)
        assert profile["geolocation"] == "NL"
        assert profile["javascript"] is True
        assert "actions" not in profile

    def test_level_three_adds_wait(self):
        """Test the wait action at level 3 and above."""
        for level in (3, 7):
            profile = build_request_profile(MARKTPLAATS_URL, level)
            assert profile["actions"] == [{"action": "waitForTimeout", "timeout": 2.0}]

    def test_other_marketplaces_never_escalate(self):
        """Test that only geo-mapped marketplaces get escalated profiles."""
        assert build_request_profile(LEBONCOIN_URL, 3) == {"url": LEBONCOIN_URL, "browserHtml": True}


class TestZyteFetcher:
    """Tests for ZyteFetcher."""

    def test_posts_profile_with_basic_auth(self):
        """Test the request body and credentials."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"browserHtml": "<html>ok</html>"})

        html = fetch_with(handler, profile_level=2)

        assert html == "<html>ok</html>"
        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == "https://api.zyte.com/v1/extract"
        expected = base64.b64encode(b"secret-key:").decode()
        assert request.headers["authorization"] == f"Basic {expected}"
        assert json.loads(request.content) == build_request_profile(MARKTPLAATS_URL, 2)

    def test_error_status_returns_none(self):
        """Test that a non-2xx response yields no HTML."""
        assert fetch_with(lambda request: httpx.Response(520, text="upstream error")) is None

    def test_empty_browser_html_returns_none(self):
        """Test that an empty render yields no HTML."""
        assert fetch_with(lambda request: httpx.Response(200, json={"browserHtml": ""})) is None
        assert fetch_with(lambda request: httpx.Response(200, json={"statusCode": 200})) is None

    def test_non_json_body_returns_none(self):
        """Test a malformed provider response."""
        assert fetch_with(lambda request: httpx.Response(200, text="<html>")) is None

    def test_timeout_returns_none(self):
        """Test that a timeout yields no HTML instead of raising."""
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        assert fetch_with(handler) is None

    def test_connection_error_returns_none(self):
        """Test that a transport error yields no HTML instead of raising."""
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        assert fetch_with(handler) is None

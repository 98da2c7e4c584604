"""Fetch client driving a local Chromium through Playwright.

Useful for development and for marketplaces that render acceptably without
the rendering API. Profile levels map to progressively more patient loads.
"""

from __future__ import annotations

import logging

from playwright.async_api import Browser, BrowserContext, Error as PlaywrightError, Page, async_playwright

from ..config import Config, config as default_config
from .base import Fetcher

logger = logging.getLogger(__name__)


class BrowserTimeouts:
    """Timeout constants in milliseconds."""
    NAVIGATION = 30000
    NETWORK_IDLE = 15000
    SETTLE = 2000  # extra wait at profile level 3


class PlaywrightFetcher(Fetcher):
    """Fetcher backed by a headless Chromium page."""

    def __init__(self, app_config: Config | None = None):
        self.config = app_config or default_config
        self._playwright = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None

    async def setup(self) -> None:
        """Initialize Playwright browser."""
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.config.headless,
            slow_mo=self.config.slow_mo,
        )
        self._context = await self._browser.new_context()
        self._page = await self._context.new_page()
        self._page.set_default_timeout(BrowserTimeouts.NAVIGATION)

    async def teardown(self) -> None:
        """Cleanup browser resources."""
        if self._page:
            await self._page.close()
        if self._context:
            await self._context.close()
        if self._browser:
            await self._browser.close()
        if self._playwright:
            await self._playwright.stop()

    @property
    def page(self) -> Page:
        """Get the current page, raising if not initialized."""
        if self._page is None:
            raise RuntimeError("Fetcher not initialized. Call setup() first.")
        return self._page

    async def fetch(self, url: str, profile_level: int = 1) -> str | None:
        logger.info(f"Loading {url[:100]} in browser (profile level {profile_level})")
        try:
            await self.page.goto(url)
            await self.page.wait_for_load_state("domcontentloaded")
            if profile_level >= 2:
                await self.page.wait_for_load_state("networkidle", timeout=BrowserTimeouts.NETWORK_IDLE)
            if profile_level >= 3:
                await self.page.wait_for_timeout(BrowserTimeouts.SETTLE)
            html = await self.page.content()
        except PlaywrightError as e:
            # TimeoutError subclasses Error
            logger.warning(f"Browser fetch failed for {url[:100]}: {e}")
            return None
        return html or None

    async def __aenter__(self):
        await self.setup()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.teardown()

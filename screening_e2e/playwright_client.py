"""
Direct Playwright client for browser-driven suites.

Launches the configured browser in-process and hands out pages/contexts to
fixtures. Separate contexts give isolated cookies and storage, which the
permission suites use to act as admin and applicant at the same time.

Usage:
    async with PlaywrightClient() as client:
        await client.page.goto(settings.app_page("/login"))
        applicant = await client.new_context()
"""

import logging
from typing import Any, List, Optional

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from screening_e2e.config import settings

logger = logging.getLogger(__name__)

BROWSER_TYPES = ("chromium", "firefox", "webkit")


class PlaywrightClient:
    """
    Playwright client owning one browser, a default context and page.

    Example:
        async with PlaywrightClient(headless=True) as client:
            page = await client.new_page()
            await page.goto("https://example.com")
    """

    def __init__(
        self,
        browser_type: Optional[str] = None,
        headless: Optional[bool] = None,
        timeout: int = 30000,
        base_url: Optional[str] = None,
    ):
        """
        Initialize Playwright client.

        Args:
            browser_type: Browser to use (chromium, firefox, webkit); None = PLAYWRIGHT_BROWSER
            headless: Run in headless mode (None = PLAYWRIGHT_HEADLESS)
            timeout: Default timeout in milliseconds
            base_url: Base URL for relative navigation (None = APP_URL)
        """
        self.browser_type = browser_type or settings.playwright_browser
        if self.browser_type not in BROWSER_TYPES:
            raise ValueError(f"Unsupported browser {self.browser_type!r}. Valid: {', '.join(BROWSER_TYPES)}")
        self.headless = settings.playwright_headless if headless is None else headless
        self.timeout = timeout
        self.base_url = base_url if base_url is not None else (settings.app_url or None)

        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None
        self._extra_contexts: List[BrowserContext] = []

    async def __aenter__(self) -> "PlaywrightClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def connect(self) -> None:
        """Launch the browser and create the default context and page."""
        self._playwright = await async_playwright().start()
        launcher = getattr(self._playwright, self.browser_type)
        self._browser = await launcher.launch(headless=self.headless)
        logger.debug(f"Launched {self.browser_type} (headless={self.headless})")

        self._context = await self._new_context()
        self._page = await self._context.new_page()

    async def _new_context(self, **kwargs: Any) -> BrowserContext:
        if not self._browser:
            raise RuntimeError("Client not connected. Use 'async with' or call connect()")
        if self.base_url:
            kwargs.setdefault("base_url", self.base_url)
        context = await self._browser.new_context(**kwargs)
        context.set_default_timeout(self.timeout)
        return context

    async def new_page(self) -> Page:
        """Create a new page in the default context."""
        if not self._context:
            raise RuntimeError("Client not connected. Use 'async with' or call connect()")
        return await self._context.new_page()

    async def new_context(self, **kwargs: Any) -> BrowserContext:
        """Create an isolated context; it is closed together with the client."""
        context = await self._new_context(**kwargs)
        self._extra_contexts.append(context)
        return context

    async def close(self) -> None:
        """Close all contexts and the browser."""
        for context in self._extra_contexts:
            try:
                await context.close()
            except Exception as exc:
                logger.warning(f"Error closing context: {exc}")
        self._extra_contexts = []

        if self._context:
            await self._context.close()
            self._context = None
            self._page = None

        if self._browser:
            await self._browser.close()
            self._browser = None

        if self._playwright:
            await self._playwright.stop()
            self._playwright = None

    @property
    def browser(self) -> Browser:
        if not self._browser:
            raise RuntimeError("Client not connected")
        return self._browser

    @property
    def context(self) -> BrowserContext:
        if not self._context:
            raise RuntimeError("Client not connected")
        return self._context

    @property
    def page(self) -> Page:
        if not self._page:
            raise RuntimeError("Client not connected or page not created")
        return self._page

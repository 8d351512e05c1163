"""Browser session management using patchright."""

import logging
from types import TracebackType

from patchright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from jobs_etl.core.config import SpiderConfig

logger = logging.getLogger(__name__)


class BrowserSession:
    """Async context manager that owns one patchright browser + context.

    Usage::

        async with BrowserSession(config) as session:
            page = await session.new_page()
            await page.goto("https://...")
    """

    def __init__(self, config: SpiderConfig) -> None:
        self._config = config
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None

    @property
    def context(self) -> BrowserContext:
        """The browser context for this session. Raises if not entered."""
        if self._context is None:
            msg = "BrowserSession not entered - use 'async with'"
            raise RuntimeError(msg)
        return self._context

    async def new_page(self) -> Page:
        """Open a new tab in the shared context. Callers close it."""
        return await self.context.new_page()

    async def __aenter__(self) -> "BrowserSession":
        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch(headless=self._config.headless)
            self._context = await self._browser.new_context(
                user_agent=self._config.user_agent,
                viewport={"width": 1920, "height": 1080},
            )
        except Exception:
            await self.close()
            raise
        self._context.set_default_timeout(self._config.timeout_ms)
        logger.info("Browser launched (headless=%s, timeout=%dms)", self._config.headless, self._config.timeout_ms)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        """Tear down context, browser and driver. Safe to call twice."""
        context, browser, pw = self._context, self._browser, self._playwright
        self._context = self._browser = self._playwright = None
        if context is not None:
            await context.close()
        if browser is not None:
            await browser.close()
        if pw is not None:
            await pw.stop()
        logger.debug("Browser session closed")

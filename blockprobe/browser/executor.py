"""Playwright browser lifecycle: launch or attach over CDP, hand out one page."""

import asyncio
import logging
from typing import Optional

from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Page,
    Playwright,
    async_playwright,
)

logger = logging.getLogger("blockprobe.browser.executor")

DEFAULT_PAGE_TIMEOUT_MS = 60_000
CDP_CONNECT_RETRIES = 3


class BrowserExecutor:
    """Owns the Playwright driver, browser and the single page a run uses."""

    def __init__(
        self,
        cdp_port: int | None = None,
        headless: bool = True,
        default_timeout_ms: int = DEFAULT_PAGE_TIMEOUT_MS,
    ) -> None:
        self.cdp_port = cdp_port
        self.headless = headless
        self.default_timeout_ms = default_timeout_ms
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    async def start(self) -> Page:
        """Start the browser (or attach to one) and return the active page."""
        if self._playwright is None:
            self._playwright = await async_playwright().start()

        if self.cdp_port is not None:
            await self._connect_over_cdp()
        else:
            logger.info("Launching chromium (headless=%s)", self.headless)
            self._browser = await self._playwright.chromium.launch(headless=self.headless)
            self._context = await self._browser.new_context()
            self._page = await self._context.new_page()

        page = self.require_page()
        # Installs can be slow.
        page.set_default_timeout(self.default_timeout_ms)
        return page

    async def _connect_over_cdp(self) -> None:
        cdp_url = f"http://localhost:{self.cdp_port}"
        logger.info("Connecting to browser CDP endpoint %s", cdp_url)
        last_error: Exception | None = None

        for attempt in range(1, CDP_CONNECT_RETRIES + 1):
            try:
                self._browser = await self._playwright.chromium.connect_over_cdp(cdp_url)
                contexts = self._browser.contexts
                self._context = contexts[0] if contexts else await self._browser.new_context()
                pages = self._context.pages
                self._page = pages[0] if pages else await self._context.new_page()
                logger.info("Connected to CDP and ready with active page")
                return
            except Exception as exc:
                last_error = exc
                message = str(exc).lower()
                is_retryable = isinstance(exc, PlaywrightError) or (
                    "econnreset" in message or "connection refused" in message
                )
                if not is_retryable or attempt == CDP_CONNECT_RETRIES:
                    break
                await asyncio.sleep(1)

        raise RuntimeError(
            f"Failed to connect to browser CDP endpoint after {CDP_CONNECT_RETRIES} retries"
        ) from last_error

    def require_page(self) -> Page:
        """Return current page or fail if start() has not been called."""
        if self._page is None:
            raise RuntimeError("BrowserExecutor is not started. Call start() first.")
        if self._page.is_closed():
            raise RuntimeError("Page is closed.")
        return self._page

    async def close(self) -> None:
        """Close browser and Playwright resources."""
        logger.info("Closing browser executor resources")

        if self._browser is not None:
            await self._browser.close()
            self._browser = None

        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

        self._context = None
        self._page = None

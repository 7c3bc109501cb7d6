import unittest
from unittest import mock

from playwright.async_api import Error as PlaywrightError

from blockprobe.browser.executor import BrowserExecutor


class _FakePage:
    def __init__(self) -> None:
        self.default_timeout = None
        self.closed = False

    def set_default_timeout(self, timeout: float) -> None:
        self.default_timeout = timeout

    def is_closed(self) -> bool:
        return self.closed


class _FakeContext:
    def __init__(self, pages=None) -> None:
        self.pages = pages or []

    async def new_page(self):
        page = _FakePage()
        self.pages.append(page)
        return page


class _FakeBrowser:
    def __init__(self, contexts=None) -> None:
        self.contexts = contexts or []
        self.closed = False

    async def new_context(self):
        context = _FakeContext()
        self.contexts.append(context)
        return context

    async def close(self) -> None:
        self.closed = True


class _FakeChromium:
    def __init__(self, browser: _FakeBrowser, cdp_failures: int = 0) -> None:
        self.browser = browser
        self.cdp_failures = cdp_failures
        self.launch_kwargs = None
        self.cdp_attempts = 0

    async def launch(self, **kwargs):
        self.launch_kwargs = kwargs
        return self.browser

    async def connect_over_cdp(self, url: str):
        self.cdp_attempts += 1
        if self.cdp_attempts <= self.cdp_failures:
            raise PlaywrightError("connect ECONNREFUSED")
        return self.browser


class _FakePlaywright:
    def __init__(self, chromium: _FakeChromium) -> None:
        self.chromium = chromium
        self.stopped = False

    async def stop(self) -> None:
        self.stopped = True


class _FakeStarter:
    def __init__(self, playwright: _FakePlaywright) -> None:
        self._playwright = playwright

    async def start(self):
        return self._playwright


def _patch_playwright(chromium: _FakeChromium):
    playwright = _FakePlaywright(chromium)
    patcher = mock.patch(
        "blockprobe.browser.executor.async_playwright",
        return_value=_FakeStarter(playwright),
    )
    return playwright, patcher


class BrowserExecutorTests(unittest.IsolatedAsyncioTestCase):
    def test_require_page_before_start_raises(self) -> None:
        with self.assertRaises(RuntimeError):
            BrowserExecutor().require_page()

    async def test_launch_sets_default_timeout_and_closes(self) -> None:
        browser = _FakeBrowser()
        chromium = _FakeChromium(browser)
        playwright, patcher = _patch_playwright(chromium)

        with patcher:
            executor = BrowserExecutor(headless=False, default_timeout_ms=1234)
            page = await executor.start()
            self.assertEqual(chromium.launch_kwargs, {"headless": False})
            self.assertEqual(page.default_timeout, 1234)
            self.assertIs(executor.require_page(), page)
            await executor.close()

        self.assertTrue(browser.closed)
        self.assertTrue(playwright.stopped)
        with self.assertRaises(RuntimeError):
            executor.require_page()

    async def test_cdp_reuses_existing_page_after_retry(self) -> None:
        existing = _FakePage()
        browser = _FakeBrowser(contexts=[_FakeContext(pages=[existing])])
        chromium = _FakeChromium(browser, cdp_failures=1)
        _, patcher = _patch_playwright(chromium)

        with patcher, mock.patch("blockprobe.browser.executor.asyncio.sleep", new=mock.AsyncMock()):
            page = await BrowserExecutor(cdp_port=9222).start()

        self.assertIs(page, existing)
        self.assertEqual(chromium.cdp_attempts, 2)

    async def test_cdp_gives_up_after_retries(self) -> None:
        chromium = _FakeChromium(_FakeBrowser(), cdp_failures=10)
        _, patcher = _patch_playwright(chromium)

        with patcher, mock.patch("blockprobe.browser.executor.asyncio.sleep", new=mock.AsyncMock()):
            with self.assertRaises(RuntimeError) as ctx:
                await BrowserExecutor(cdp_port=9222).start()

        self.assertIsInstance(ctx.exception.__cause__, PlaywrightError)
        self.assertEqual(chromium.cdp_attempts, 3)


if __name__ == "__main__":
    unittest.main()

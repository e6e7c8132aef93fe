"""Playwright implementation of the browser-automation gateway."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, async_playwright

from ..errors import UpstreamError
from .base import BrowserGateway, PageLoad

logger = logging.getLogger(__name__)

DEFAULT_VIEWPORT = {"width": 1280, "height": 720}


class PlaywrightBrowserGateway(BrowserGateway):
    """One Chromium tab driven through Playwright's async API.

    Use ``launch()`` to get an instance bound to a running browser:

        async with PlaywrightBrowserGateway.launch() as browser:
            await browser.navigate("https://example.com")
            html = await browser.extract_dom()
    """

    def __init__(self, page: Page, timeout_ms: int = 30000):
        self._page = page
        self.timeout_ms = timeout_ms

    @classmethod
    @asynccontextmanager
    async def launch(
        cls,
        headless: bool = True,
        timeout_ms: int = 30000,
        user_agent: Optional[str] = None,
    ) -> AsyncIterator["PlaywrightBrowserGateway"]:
        async with async_playwright() as p:
            browser = await p.chromium.launch(headless=headless)
            try:
                context = await browser.new_context(
                    viewport=DEFAULT_VIEWPORT,
                    user_agent=user_agent,
                )
                page = await context.new_page()
                yield cls(page, timeout_ms=timeout_ms)
            finally:
                await browser.close()

    async def navigate(self, url: str) -> PageLoad:
        try:
            response = await self._page.goto(
                url, wait_until="domcontentloaded", timeout=self.timeout_ms
            )
            try:
                await self._page.wait_for_load_state("networkidle", timeout=self.timeout_ms // 3)
            except PlaywrightError:
                # Pages with long-polling never go idle; DOM content is enough
                logger.debug(f"networkidle not reached for {url}")
            title = await self._page.title()
        except PlaywrightError as e:
            raise UpstreamError(f"Navigation failed for {url}: {e}", url=url)

        status = response.status if response else None
        if status is not None and status >= 400:
            raise UpstreamError(f"HTTP {status} for {url}", url=url, status=status)

        return PageLoad(url=self._page.url, title=title, status=status)

    async def extract_dom(self) -> str:
        try:
            return await self._page.content()
        except PlaywrightError as e:
            raise UpstreamError(f"DOM extraction failed: {e}")

    async def capture_screenshot(self) -> bytes:
        try:
            return await self._page.screenshot(full_page=True)
        except PlaywrightError as e:
            raise UpstreamError(f"Screenshot failed: {e}")

    async def get_links(self) -> List[str]:
        try:
            return await self._page.eval_on_selector_all(
                "a[href]", "els => els.map(el => el.href)"
            )
        except PlaywrightError as e:
            raise UpstreamError(f"Link extraction failed: {e}")


def playwright_browser_factory(timeout_ms: int = 30000):
    """Zero-arg factory returning an async context manager, as the worker expects."""

    def _factory():
        return PlaywrightBrowserGateway.launch(timeout_ms=timeout_ms)

    return _factory

"""
Shared Chromium handle and per-row page sessions.

One browser process is owned by the application (see the lifespan in
main.py), launched on first use and closed on shutdown. Every row gets
its own browser context + page which is always closed on exit.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

from playwright.async_api import (
    Browser,
    Error as PlaywrightError,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from bbox_service.config import Settings
from bbox_service.errors import NavigationError


logger = logging.getLogger(__name__)


CHROME_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
]


def is_mobile(user_agent: str | None) -> bool:
    return bool(user_agent) and "mobile" in user_agent.lower()


class BrowserManager:
    """Lazily launched, process-wide Chromium instance."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._lock = asyncio.Lock()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @property
    def is_running(self) -> bool:
        return self._browser is not None

    async def get_browser(self) -> Browser:
        if self._browser is not None:
            return self._browser
        async with self._lock:
            if self._browser is None:
                logger.info("[browser] Launching Chromium (headless=%s)", self.settings.headless)
                self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(
                    headless=self.settings.headless,
                    executable_path=self.settings.chrome_bin or None,
                    args=CHROME_ARGS,
                )
        return self._browser

    async def close(self):
        async with self._lock:
            if self._browser is not None:
                logger.info("[browser] Closing Chromium")
                try:
                    await self._browser.close()
                finally:
                    self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None


@asynccontextmanager
async def open_page(
    browser: Browser,
    url: str,
    user_agent: str | None,
    settings: Settings,
) -> AsyncIterator[Page | None]:
    """
    Open ``url`` in a fresh context and yield the page.

    Yields None when navigation times out or fails; the caller skips the
    row. The context (and its page) is closed on every exit path.
    """
    if is_mobile(user_agent):
        context = await browser.new_context(
            viewport={
                "width": settings.mobile_viewport_width,
                "height": settings.mobile_viewport_height,
            },
            user_agent=user_agent,
            is_mobile=True,
            has_touch=True,
        )
    else:
        context = await browser.new_context(
            viewport={
                "width": settings.desktop_viewport_width,
                "height": settings.desktop_viewport_height,
            },
        )

    try:
        page = await context.new_page()
        try:
            await page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=settings.navigation_timeout_ms,
            )
        except PlaywrightTimeoutError:
            err = NavigationError(url, f"timed out after {settings.navigation_timeout_ms}ms")
            logger.warning("[browser] %s", err)
            yield None
            return
        except PlaywrightError as e:
            err = NavigationError(url, e.message)
            logger.warning("[browser] %s", err)
            yield None
            return
        yield page
    finally:
        await context.close()


@dataclass(frozen=True)
class ConsoleRecord:
    type: str
    text: str
    url: str


async def console_records(page: Page) -> AsyncIterator[ConsoleRecord]:
    """
    Yield the console messages of ``page`` until the page closes.

    Listeners are attached on first iteration, so start consuming before
    the page does any work you want to observe.
    """
    queue: asyncio.Queue = asyncio.Queue()
    closed = object()

    def on_console(msg):
        queue.put_nowait(ConsoleRecord(type=msg.type, text=msg.text, url=page.url))

    def on_close(_page):
        queue.put_nowait(closed)

    page.on("console", on_console)
    page.on("close", on_close)
    try:
        while True:
            item = await queue.get()
            if item is closed:
                return
            yield item
    finally:
        page.remove_listener("console", on_console)
        page.remove_listener("close", on_close)

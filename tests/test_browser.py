import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from playwright.async_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError

from bbox_service.browser import BrowserManager, console_records, is_mobile, open_page


MOBILE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)


def _browser(page):
    context = MagicMock()
    context.new_page = AsyncMock(return_value=page)
    context.close = AsyncMock()
    browser = MagicMock()
    browser.new_context = AsyncMock(return_value=context)
    return browser, context


class TestIsMobile:
    @pytest.mark.parametrize("ua,expected", [
        (MOBILE_UA, True),
        ("something MOBILE something", True),
        ("Mozilla/5.0 (Windows NT 10.0; Win64; x64)", False),
        ("", False),
        (None, False),
    ])
    def test_substring_match(self, ua, expected):
        assert is_mobile(ua) is expected


class TestOpenPage:
    @pytest.mark.asyncio
    async def test_yields_loaded_page_and_closes(self, settings):
        page = MagicMock()
        page.goto = AsyncMock()
        browser, context = _browser(page)

        async with open_page(browser, "https://example.com/", None, settings) as opened:
            assert opened is page

        page.goto.assert_awaited_once_with(
            "https://example.com/", wait_until="domcontentloaded", timeout=128000
        )
        assert browser.new_context.await_args.kwargs["viewport"]["width"] == settings.desktop_viewport_width
        context.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_mobile_context(self, settings):
        page = MagicMock()
        page.goto = AsyncMock()
        browser, context = _browser(page)

        async with open_page(browser, "https://example.com/", MOBILE_UA, settings):
            pass

        kwargs = browser.new_context.await_args.kwargs
        assert kwargs["viewport"] == {"width": 375, "height": 812}
        assert kwargs["user_agent"] == MOBILE_UA
        assert kwargs["is_mobile"] is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        PlaywrightTimeoutError("Timeout 128000ms exceeded."),
        PlaywrightError("net::ERR_NAME_NOT_RESOLVED"),
    ])
    async def test_navigation_failure_yields_none(self, settings, error):
        page = MagicMock()
        page.goto = AsyncMock(side_effect=error)
        browser, context = _browser(page)

        async with open_page(browser, "https://nope.invalid/", None, settings) as opened:
            assert opened is None

        context.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_closes_when_body_raises(self, settings):
        page = MagicMock()
        page.goto = AsyncMock()
        browser, context = _browser(page)

        with pytest.raises(RuntimeError):
            async with open_page(browser, "https://example.com/", None, settings):
                raise RuntimeError("boom")

        context.close.assert_awaited_once()


class TestBrowserManager:
    @pytest.mark.asyncio
    async def test_lazy_single_launch_and_close(self, settings):
        chromium_browser = MagicMock()
        chromium_browser.close = AsyncMock()
        pw = MagicMock()
        pw.chromium.launch = AsyncMock(return_value=chromium_browser)
        pw.stop = AsyncMock()
        starter = MagicMock()
        starter.start = AsyncMock(return_value=pw)

        with patch("bbox_service.browser.async_playwright", return_value=starter):
            async with BrowserManager(settings) as manager:
                assert not manager.is_running
                first, second = await asyncio.gather(manager.get_browser(), manager.get_browser())
                assert first is second is chromium_browser
                assert manager.is_running

        pw.chromium.launch.assert_awaited_once()
        assert "--no-sandbox" in pw.chromium.launch.await_args.kwargs["args"]
        assert pw.chromium.launch.await_args.kwargs["executable_path"] is None
        chromium_browser.close.assert_awaited_once()
        pw.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_without_launch(self, settings):
        manager = BrowserManager(settings)
        await manager.close()
        assert not manager.is_running


class FakePage:
    def __init__(self):
        self.url = "https://example.com/"
        self.handlers = {}

    def on(self, event, handler):
        self.handlers[event] = handler

    def remove_listener(self, event, handler):
        if self.handlers.get(event) is handler:
            del self.handlers[event]

    def emit(self, event, payload):
        self.handlers[event](payload)


class TestConsoleRecords:
    @pytest.mark.asyncio
    async def test_yields_until_page_closes(self):
        page = FakePage()

        async def collect():
            return [r async for r in console_records(page)]

        task = asyncio.create_task(collect())
        await asyncio.sleep(0)
        page.emit("console", MagicMock(type="warning", text="Invalid selector: [["))
        page.emit("console", MagicMock(type="log", text="hello"))
        page.emit("close", page)
        records = await asyncio.wait_for(task, timeout=1)

        assert [(r.type, r.text) for r in records] == [
            ("warning", "Invalid selector: [["),
            ("log", "hello"),
        ]
        assert records[0].url == "https://example.com/"
        assert page.handlers == {}

"""Tests for the page fetcher and the static HTTP fallback.

Mocking strategy:
- The browser session, context and page are ``MagicMock`` objects with
  ``AsyncMock`` coroutine methods, so no Chromium is ever launched.
- ``resolve_interstitials`` is patched at the fetcher's import site; its own
  behaviour is covered in ``test_interstitials.py``.
- ``respx`` patches ``httpx`` at the transport layer for ``fetch_static``.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
import respx
from playwright.async_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError

from shelfscan.browser.fetcher import AUTO_SCROLL_SCRIPT, FetchOptions, PageFetcher, fetch_static
from shelfscan.config import Settings
from shelfscan.errors import BrowserLaunchError, EnvironmentSetupError

_URL = "https://shop.example.com/menu"
_HTML = "<html><head><title>Menu</title></head><body><p>Hello</p></body></html>"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

def _settings() -> Settings:
    return Settings(
        constrained=False,
        navigation_settle_ms=0,
        interstitial_settle_ms=0,
        scroll_step_px=250,
        scroll_interval_ms=50,
        scroll_max_steps=40,
    )


def _page() -> MagicMock:
    page = MagicMock()
    page.url = _URL + "?ref=1"
    for name in ("goto", "wait_for_timeout", "wait_for_selector", "evaluate", "screenshot", "close"):
        setattr(page, name, AsyncMock())
    page.content = AsyncMock(return_value=_HTML)
    page.title = AsyncMock(return_value="Menu")
    page.screenshot = AsyncMock(return_value=b"png-bytes")
    return page


def _context() -> MagicMock:
    context = MagicMock()
    context.close = AsyncMock()
    cdp = MagicMock()
    cdp.send = AsyncMock(side_effect=[{}, {"metrics": [{"name": "Nodes", "value": 9}, {"name": "LayoutCount", "value": 42}]}])
    context.new_cdp_session = AsyncMock(return_value=cdp)
    return context


@pytest.fixture()
def page() -> MagicMock:
    return _page()


@pytest.fixture()
def context() -> MagicMock:
    return _context()


@pytest.fixture()
def session(page: MagicMock, context: MagicMock) -> MagicMock:
    session = MagicMock()
    session.settings = _settings()
    session.acquire_browser = AsyncMock(return_value=MagicMock(name="browser"))
    session.configure_page = AsyncMock(return_value=(context, page))
    return session


@pytest.fixture(autouse=True)
def no_interstitials():
    with patch("shelfscan.browser.fetcher.resolve_interstitials", AsyncMock(return_value=2)) as mock:
        yield mock


def _fetch(session: MagicMock, options: FetchOptions | None = None):
    return asyncio.run(PageFetcher(session).fetch(_URL, options))


# ---------------------------------------------------------------------------
# Browser fetch
# ---------------------------------------------------------------------------

class TestPageFetcher:
    def test_success(self, session, page, context) -> None:
        result = _fetch(session, FetchOptions(wait_time_ms=0))

        assert result.success is True
        assert result.html == _HTML
        assert result.title == "Menu"
        assert result.final_url == _URL + "?ref=1"
        assert result.popups_handled == 2
        assert result.screenshot is None
        assert result.metrics.layout_count == 42
        assert result.metrics.environment == "standard"
        assert result.metrics.render_time_ms >= 0
        page.goto.assert_awaited_once_with(_URL, wait_until="domcontentloaded", timeout=FetchOptions().timeout_ms)
        page.close.assert_awaited_once()
        context.close.assert_awaited_once()

    def test_scroll_uses_configured_step(self, session, page) -> None:
        _fetch(session, FetchOptions(wait_time_ms=0))
        page.evaluate.assert_awaited_once_with(AUTO_SCROLL_SCRIPT, {"step": 250, "interval": 50, "maxSteps": 40})

    def test_scroll_that_never_settles_times_out(self, session, page, context) -> None:
        async def endless_scroll(*args, **kwargs):
            await asyncio.Event().wait()

        page.evaluate = AsyncMock(side_effect=endless_scroll)

        async def run():
            return await asyncio.wait_for(PageFetcher(session).fetch(_URL, FetchOptions(timeout_ms=50, wait_time_ms=0)), 5)

        result = asyncio.run(run())

        assert result.success is False
        assert "Scrolling https://shop.example.com/menu timed out after 50ms" in result.error
        page.close.assert_awaited_once()
        context.close.assert_awaited_once()

    def test_no_scroll_no_popups(self, session, page, no_interstitials) -> None:
        result = _fetch(session, FetchOptions(wait_time_ms=0, scroll_to_bottom=False, handle_popups=False))

        assert result.success is True
        assert result.popups_handled == 0
        page.evaluate.assert_not_awaited()
        no_interstitials.assert_not_awaited()

    def test_screenshot_when_requested(self, session, page) -> None:
        result = _fetch(session, FetchOptions(wait_time_ms=0, take_screenshot=True))

        assert result.screenshot == b"png-bytes"
        page.screenshot.assert_awaited_once_with(full_page=True)

    def test_dialog_listener_attached_during_render(self, session, page) -> None:
        _fetch(session, FetchOptions(wait_time_ms=0))

        page.on.assert_called_once()
        assert page.on.call_args.args[0] == "dialog"
        page.remove_listener.assert_called_once()

    def test_navigation_timeout_is_failure(self, session, page, context) -> None:
        page.goto = AsyncMock(side_effect=PlaywrightTimeoutError("Timeout 30000ms exceeded."))

        result = _fetch(session, FetchOptions(timeout_ms=30000))

        assert result.success is False
        assert result.html is None
        assert result.title is None
        assert "timed out after 30000ms" in result.error
        page.close.assert_awaited_once()
        context.close.assert_awaited_once()

    def test_navigation_error_is_failure(self, session, page) -> None:
        page.goto = AsyncMock(side_effect=PlaywrightError("net::ERR_NAME_NOT_RESOLVED"))

        result = _fetch(session)

        assert result.success is False
        assert "ERR_NAME_NOT_RESOLVED" in result.error

    def test_missing_selector_is_soft(self, session, page, caplog) -> None:
        page.wait_for_selector = AsyncMock(side_effect=PlaywrightTimeoutError("Timeout"))

        result = _fetch(session, FetchOptions(wait_time_ms=0, wait_for_selector=".never"))

        assert result.success is True
        assert "'.never' not found" in caplog.text

    def test_invalid_selector_is_soft(self, session, page, caplog) -> None:
        page.wait_for_selector = AsyncMock(side_effect=PlaywrightError("Unexpected token \"]\" while parsing selector"))

        result = _fetch(session, FetchOptions(wait_time_ms=0, wait_for_selector="div]["))

        assert result.success is True
        assert "'div][' could not be awaited" in caplog.text

    def test_close_failure_does_not_change_result(self, session, page) -> None:
        page.close = AsyncMock(side_effect=PlaywrightError("Target closed"))

        result = _fetch(session, FetchOptions(wait_time_ms=0))

        assert result.success is True

    def test_metrics_unavailable(self, session, context) -> None:
        context.new_cdp_session = AsyncMock(side_effect=PlaywrightError("CDP only on Chromium"))

        result = _fetch(session, FetchOptions(wait_time_ms=0))

        assert result.success is True
        assert result.metrics.layout_count is None

    def test_session_errors_propagate(self, session) -> None:
        session.acquire_browser = AsyncMock(side_effect=EnvironmentSetupError("no chromium"))
        with pytest.raises(EnvironmentSetupError):
            _fetch(session)

        session.acquire_browser = AsyncMock(side_effect=BrowserLaunchError("crashed"))
        with pytest.raises(BrowserLaunchError):
            _fetch(session)

    def test_default_options(self, session, page) -> None:
        options = FetchOptions()
        assert options.handle_popups is True
        assert options.scroll_to_bottom is True
        assert options.take_screenshot is False
        assert options.wait_for_selector is None


# ---------------------------------------------------------------------------
# Static fallback
# ---------------------------------------------------------------------------

class TestFetchStatic:
    @respx.mock
    def test_success(self) -> None:
        respx.get(_URL).mock(return_value=httpx.Response(200, text=_HTML))

        result = asyncio.run(fetch_static(_URL))

        assert result.success is True
        assert result.html == _HTML
        assert result.title == "Menu"
        assert result.popups_handled == 0
        assert result.metrics.layout_count is None

    @respx.mock
    def test_http_error(self) -> None:
        respx.get(_URL).mock(return_value=httpx.Response(503))

        result = asyncio.run(fetch_static(_URL))

        assert result.success is False
        assert "503" in result.error

    @respx.mock
    def test_connection_error(self) -> None:
        respx.get(_URL).mock(side_effect=httpx.ConnectError("Connection refused"))

        result = asyncio.run(fetch_static(_URL))

        assert result.success is False
        assert result.error == "Connection refused"

    @respx.mock
    def test_missing_title(self) -> None:
        respx.get(_URL).mock(return_value=httpx.Response(200, text="<p>No head</p>"))

        result = asyncio.run(fetch_static(_URL))

        assert result.success is True
        assert result.title == ""

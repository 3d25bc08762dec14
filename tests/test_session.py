"""Tests for the browser session lifecycle.

Mocking strategy:
- ``BrowserSession._start_playwright`` is replaced with an ``AsyncMock`` that
  returns a fake Playwright whose ``chromium.launch`` is scripted per test.
- ``_install_browser`` is patched where the install fallback is exercised, so
  no subprocess is spawned.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from playwright.async_api import Error as PlaywrightError

from shelfscan.browser.session import (
    EXTRA_HEADERS,
    LAUNCH_ARGS,
    STEALTH_SCRIPT,
    USER_AGENT,
    VIEWPORT,
    BrowserSession,
)
from shelfscan.config import Settings
from shelfscan.errors import BrowserLaunchError, EnvironmentSetupError

_MISSING = "BrowserType.launch: Executable doesn't exist at /ms-playwright/chromium/chrome"


def _browser(connected: bool = True) -> MagicMock:
    browser = MagicMock()
    browser.is_connected = MagicMock(return_value=connected)
    browser.close = AsyncMock()
    return browser


def _session(launch: AsyncMock, constrained: bool = False) -> tuple[BrowserSession, MagicMock]:
    playwright = MagicMock()
    playwright.chromium.launch = launch
    playwright.stop = AsyncMock()
    session = BrowserSession(Settings(constrained=constrained))
    session._start_playwright = AsyncMock(return_value=playwright)  # type: ignore[method-assign]
    return session, playwright


class TestAcquireBrowser:
    def test_reuses_connected_browser(self) -> None:
        browser = _browser()
        session, playwright = _session(AsyncMock(return_value=browser))

        async def run():
            return await session.acquire_browser(), await session.acquire_browser()

        first, second = asyncio.run(run())

        assert first is second is browser
        playwright.chromium.launch.assert_awaited_once()

    def test_relaunches_after_disconnect(self) -> None:
        stale, fresh = _browser(), _browser()
        session, playwright = _session(AsyncMock(side_effect=[stale, fresh]))

        async def run():
            await session.acquire_browser()
            stale.is_connected.return_value = False
            return await session.acquire_browser()

        assert asyncio.run(run()) is fresh
        assert playwright.chromium.launch.await_count == 2

    def test_concurrent_callers_share_one_launch(self) -> None:
        browser = _browser()
        session, playwright = _session(AsyncMock(return_value=browser))

        async def run():
            return await asyncio.gather(*(session.acquire_browser() for _ in range(5)))

        assert all(b is browser for b in asyncio.run(run()))
        playwright.chromium.launch.assert_awaited_once()

    def test_launch_arguments(self) -> None:
        session, playwright = _session(AsyncMock(return_value=_browser()))
        asyncio.run(session.acquire_browser())

        kwargs = playwright.chromium.launch.await_args.kwargs
        assert kwargs["args"] == LAUNCH_ARGS
        assert "--disable-blink-features=AutomationControlled" in kwargs["args"]
        assert kwargs["ignore_default_args"] == ["--enable-automation"]

    def test_constrained_launch_arguments(self) -> None:
        session, playwright = _session(AsyncMock(return_value=_browser()), constrained=True)
        asyncio.run(session.acquire_browser())

        args = playwright.chromium.launch.await_args.kwargs["args"]
        assert "--memory-pressure-off" in args
        assert args[: len(LAUNCH_ARGS)] == LAUNCH_ARGS

    def test_missing_binary_installs_once_and_retries(self) -> None:
        browser = _browser()
        session, playwright = _session(AsyncMock(side_effect=[PlaywrightError(_MISSING), browser]))

        with patch.object(BrowserSession, "_install_browser", AsyncMock()) as install:
            assert asyncio.run(session.acquire_browser()) is browser

        install.assert_awaited_once()
        assert playwright.chromium.launch.await_count == 2

    def test_install_then_still_missing(self) -> None:
        session, _ = _session(AsyncMock(side_effect=PlaywrightError(_MISSING)))

        with patch.object(BrowserSession, "_install_browser", AsyncMock()):
            with pytest.raises(EnvironmentSetupError):
                asyncio.run(session.acquire_browser())

    def test_install_failure(self) -> None:
        session, _ = _session(AsyncMock(side_effect=PlaywrightError(_MISSING)))

        with patch.object(
            BrowserSession, "_install_browser", AsyncMock(side_effect=EnvironmentSetupError("install timed out"))
        ):
            with pytest.raises(EnvironmentSetupError, match="install timed out"):
                asyncio.run(session.acquire_browser())

    def test_other_launch_failure(self) -> None:
        session, _ = _session(AsyncMock(side_effect=PlaywrightError("Browser closed unexpectedly")))

        with patch.object(BrowserSession, "_install_browser", AsyncMock()) as install:
            with pytest.raises(BrowserLaunchError, match="closed unexpectedly"):
                asyncio.run(session.acquire_browser())

        install.assert_not_awaited()


class TestClose:
    def test_close_is_idempotent(self) -> None:
        browser = _browser()
        session, playwright = _session(AsyncMock(return_value=browser))
        session._playwright = playwright  # what _start_playwright would have stored

        async def run():
            await session.acquire_browser()
            await session.close()
            await session.close()

        asyncio.run(run())

        browser.close.assert_awaited_once()
        playwright.stop.assert_awaited_once()

    def test_context_manager_closes(self) -> None:
        browser = _browser()
        session, _ = _session(AsyncMock(return_value=browser))

        async def run():
            async with session:
                await session.acquire_browser()

        asyncio.run(run())
        browser.close.assert_awaited_once()


class TestConfigurePage:
    def test_fingerprint(self) -> None:
        page = MagicMock()
        context = MagicMock()
        context.add_init_script = AsyncMock()
        context.new_page = AsyncMock(return_value=page)
        browser = MagicMock()
        browser.new_context = AsyncMock(return_value=context)

        result = asyncio.run(BrowserSession(Settings()).configure_page(browser))

        assert result == (context, page)
        kwargs = browser.new_context.await_args.kwargs
        assert kwargs["user_agent"] == USER_AGENT
        assert kwargs["viewport"] == VIEWPORT
        assert kwargs["locale"] == "en-US"
        assert kwargs["timezone_id"] == "America/New_York"
        assert kwargs["permissions"] == ["geolocation"]
        assert kwargs["extra_http_headers"] == EXTRA_HEADERS
        context.add_init_script.assert_awaited_once_with(STEALTH_SCRIPT)

    def test_context_closed_when_page_creation_fails(self) -> None:
        context = MagicMock()
        context.add_init_script = AsyncMock()
        context.new_page = AsyncMock(side_effect=PlaywrightError("Target closed"))
        context.close = AsyncMock()
        browser = MagicMock()
        browser.new_context = AsyncMock(return_value=context)

        with pytest.raises(PlaywrightError):
            asyncio.run(BrowserSession(Settings()).configure_page(browser))

        context.close.assert_awaited_once()

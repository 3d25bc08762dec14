"""Page fetcher: browser-driven rendering with an httpx static fallback."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field

import httpx
from playwright.async_api import (
    BrowserContext,
    Error as PlaywrightError,
    Page,
    TimeoutError as PlaywrightTimeoutError,
)

from shelfscan.browser.interstitials import DialogSubscription, resolve_interstitials
from shelfscan.browser.session import USER_AGENT, BrowserSession
from shelfscan.config import Settings, settings
from shelfscan.errors import FetchTimeoutError, NavigationError, SelectorNotFoundError
from shelfscan.scraper.models import FetchMetrics, FetchResult

logger = logging.getLogger(__name__)

# Scrolls in fixed steps until the document height is covered or maxSteps is
# reached, then returns to the top so snapshots start from the header.
AUTO_SCROLL_SCRIPT = """
async ({ step, interval, maxSteps }) => {
    await new Promise((resolve) => {
        let scrolled = 0;
        let steps = 0;
        const timer = setInterval(() => {
            const height = document.body ? document.body.scrollHeight : 0;
            window.scrollBy(0, step);
            scrolled += step;
            steps += 1;
            if (scrolled >= height || steps >= maxSteps) {
                clearInterval(timer);
                resolve();
            }
        }, interval);
    });
    window.scrollTo(0, 0);
}
"""

_TITLE_RE = re.compile(r"<title[^>]*>([^<]*)</title>", re.IGNORECASE)


@dataclass
class FetchOptions:
    wait_for_selector: str | None = None
    wait_time_ms: int = field(default_factory=lambda: settings.fetch_wait_ms)
    handle_popups: bool = True
    scroll_to_bottom: bool = True
    take_screenshot: bool = False
    timeout_ms: int = field(default_factory=lambda: settings.fetch_timeout_ms)


async def _layout_count(context: BrowserContext, page: Page) -> int | None:
    """Chromium ``LayoutCount`` performance metric, best effort."""
    try:
        cdp = await context.new_cdp_session(page)
        await cdp.send("Performance.enable")
        response = await cdp.send("Performance.getMetrics")
    except PlaywrightError as exc:
        logger.debug("Performance metrics unavailable: %s", exc)
        return None
    for metric in response.get("metrics", []):
        if metric.get("name") == "LayoutCount":
            return int(metric.get("value", 0))
    return None


class PageFetcher:
    """Render URLs through a :class:`BrowserSession`.

    Navigation problems are returned as ``FetchResult(success=False)``;
    only session-level failures (browser missing or unlaunchable) raise.
    """

    def __init__(self, session: BrowserSession, config: Settings | None = None) -> None:
        self._session = session
        self._settings = config or session.settings

    async def _render(self, page: Page, url: str, options: FetchOptions) -> tuple[str, str, str, bytes | None, int]:
        page.set_default_timeout(options.timeout_ms)
        handled = 0
        with DialogSubscription(page) as dialogs:
            try:
                await page.goto(url, wait_until="domcontentloaded", timeout=options.timeout_ms)
            except PlaywrightTimeoutError as exc:
                raise FetchTimeoutError(f"Navigation to {url} timed out after {options.timeout_ms}ms") from exc
            except PlaywrightError as exc:
                raise NavigationError(str(exc)) from exc

            await page.wait_for_timeout(self._settings.navigation_settle_ms)

            if options.handle_popups:
                handled = await resolve_interstitials(page, self._settings.interstitial_settle_ms)

            if options.wait_for_selector:
                try:
                    await page.wait_for_selector(options.wait_for_selector, timeout=options.timeout_ms)
                except PlaywrightTimeoutError:
                    logger.warning("%s", SelectorNotFoundError(f"{options.wait_for_selector!r} not found on {url}"))
                except PlaywrightError as exc:
                    logger.warning(
                        "%s", SelectorNotFoundError(f"{options.wait_for_selector!r} could not be awaited on {url}: {exc}")
                    )

            if options.scroll_to_bottom:
                await self._scroll(page, url, options.timeout_ms)

            await page.wait_for_timeout(options.wait_time_ms)

            html = await page.content()
            title = await page.title()
            screenshot = await page.screenshot(full_page=True) if options.take_screenshot else None
            handled += dialogs.handled
        return html, title, page.url, screenshot, handled

    async def _scroll(self, page: Page, url: str, timeout_ms: int) -> None:
        """Run the auto-scroll script, bounded by the per-fetch timeout."""
        script_args = {
            "step": self._settings.scroll_step_px,
            "interval": self._settings.scroll_interval_ms,
            "maxSteps": self._settings.scroll_max_steps,
        }
        try:
            await asyncio.wait_for(page.evaluate(AUTO_SCROLL_SCRIPT, script_args), timeout_ms / 1000)
        except asyncio.TimeoutError as exc:
            raise FetchTimeoutError(f"Scrolling {url} timed out after {timeout_ms}ms") from exc

    async def fetch(self, url: str, options: FetchOptions | None = None) -> FetchResult:
        """Render *url* and snapshot the resulting document.

        Raises:
            EnvironmentSetupError: Propagated from the session.
            BrowserLaunchError: Propagated from the session.
        """
        options = options or FetchOptions()
        started = time.monotonic()
        browser = await self._session.acquire_browser()

        context: BrowserContext | None = None
        page: Page | None = None
        try:
            context, page = await self._session.configure_page(browser)
            html, title, final_url, screenshot, handled = await self._render(page, url, options)
            layout_count = await _layout_count(context, page)
            return FetchResult(
                success=True,
                url=url,
                html=html,
                title=title,
                final_url=final_url,
                popups_handled=handled,
                screenshot=screenshot,
                metrics=FetchMetrics(
                    render_time_ms=int((time.monotonic() - started) * 1000),
                    layout_count=layout_count,
                    environment=self._settings.environment,
                ),
            )
        except NavigationError as exc:
            logger.warning("Fetch failed for %s: %s", url, exc)
            return FetchResult.failure(url, str(exc))
        except PlaywrightTimeoutError as exc:
            logger.warning("Fetch timed out for %s: %s", url, exc)
            return FetchResult.failure(url, str(FetchTimeoutError(str(exc))))
        except PlaywrightError as exc:
            logger.warning("Fetch failed for %s: %s", url, exc)
            return FetchResult.failure(url, str(exc))
        finally:
            await self._cleanup(page, context)

    async def _cleanup(self, page: Page | None, context: BrowserContext | None) -> None:
        for label, target in (("page", page), ("context", context)):
            if target is None:
                continue
            try:
                await target.close()
            except Exception as exc:  # noqa: BLE001 - close never changes the result
                logger.warning("Error closing %s: %s", label, exc)


async def fetch_static(url: str, timeout: float | None = None) -> FetchResult:
    """Plain HTTP GET, no JavaScript; the fallback when rendering fails."""
    started = time.monotonic()
    try:
        async with httpx.AsyncClient(
            headers={"User-Agent": USER_AGENT, "Accept-Language": "en-US,en;q=0.9"},
            timeout=timeout or settings.http_timeout,
            follow_redirects=True,
        ) as client:
            response = await client.get(url)
            response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.warning("Static fetch failed for %s: %s", url, exc)
        return FetchResult.failure(url, str(exc) or exc.__class__.__name__)

    html = response.text
    match = _TITLE_RE.search(html)
    return FetchResult(
        success=True,
        url=url,
        html=html,
        title=match.group(1).strip() if match else "",
        final_url=str(response.url),
        popups_handled=0,
        metrics=FetchMetrics(
            render_time_ms=int((time.monotonic() - started) * 1000),
            layout_count=None,
            environment=settings.environment,
        ),
    )

"""Browser session: one lazily launched Chromium shared by every fetch.

The session is an explicitly owned object.  Callers that want process-wide
reuse (the CLI and the HTTP app) go through :func:`get_default_session`; tests
and embedders construct their own.

Playwright's async API is used so a single browser can serve several
concurrent fetches, each in its own isolated context.
"""

from __future__ import annotations

import asyncio
import logging
import sys

from playwright.async_api import Browser, BrowserContext, Error as PlaywrightError, Page, Playwright, async_playwright

from shelfscan.config import Settings, settings as default_settings
from shelfscan.errors import BrowserLaunchError, EnvironmentSetupError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Launch configuration and client fingerprint
# ---------------------------------------------------------------------------

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-accelerated-2d-canvas",
    # Stealth
    "--disable-blink-features=AutomationControlled",
    "--disable-infobars",
]

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)
VIEWPORT = {"width": 1920, "height": 1080}
LOCALE = "en-US"
TIMEZONE = "America/New_York"
# New York City
GEOLOCATION = {"latitude": 40.7128, "longitude": -74.0060}
EXTRA_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate, br",
    "DNT": "1",
    "Upgrade-Insecure-Requests": "1",
}

STEALTH_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });

window.chrome = { runtime: {} };

const originalQuery = window.navigator.permissions && window.navigator.permissions.query;
if (originalQuery) {
    window.navigator.permissions.query = (parameters) => (
        parameters.name === 'notifications'
            ? Promise.resolve({ state: Notification.permission })
            : originalQuery(parameters)
    );
}

Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });
"""

_MISSING_BINARY_MARKER = "Executable doesn't exist"


class BrowserSession:
    """Owns at most one live browser and hands out configured pages."""

    def __init__(self, config: Settings | None = None) -> None:
        self._settings = config or default_settings
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._lock = asyncio.Lock()
        self._install_attempted = False

    @property
    def settings(self) -> Settings:
        return self._settings

    async def __aenter__(self) -> "BrowserSession":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Browser lifecycle
    # ------------------------------------------------------------------

    def _launch_args(self) -> list[str]:
        return LAUNCH_ARGS + self._settings.extra_launch_args

    async def _start_playwright(self) -> Playwright:
        if self._playwright is None:
            self._playwright = await async_playwright().start()
        return self._playwright

    async def _launch(self) -> Browser:
        playwright = await self._start_playwright()
        return await playwright.chromium.launch(
            headless=self._settings.headless,
            args=self._launch_args(),
            ignore_default_args=["--enable-automation"],
        )

    async def _install_browser(self) -> None:
        """Run ``playwright install chromium`` once, bounded by the install timeout."""
        self._install_attempted = True
        logger.warning("Chromium binary missing; installing (timeout %ss)", self._settings.browser_install_timeout)
        process = await asyncio.create_subprocess_exec(
            sys.executable, "-m", "playwright", "install", "chromium",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            _, stderr = await asyncio.wait_for(process.communicate(), self._settings.browser_install_timeout)
        except asyncio.TimeoutError as exc:
            process.kill()
            await process.wait()
            raise EnvironmentSetupError("Timed out installing the Chromium browser") from exc
        if process.returncode != 0:
            raise EnvironmentSetupError(
                f"Chromium install failed ({process.returncode}): {stderr.decode(errors='replace').strip()}"
            )

    async def acquire_browser(self) -> Browser:
        """Return the live browser, launching (or re-launching) it when needed.

        Raises:
            EnvironmentSetupError: The binary is missing and could not be installed.
            BrowserLaunchError: Any other launch failure.
        """
        async with self._lock:
            if self._browser is not None and self._browser.is_connected():
                return self._browser
            if self._browser is not None:
                logger.warning("Browser disconnected; relaunching")

            try:
                self._browser = await self._launch()
            except PlaywrightError as exc:
                if _MISSING_BINARY_MARKER not in str(exc):
                    raise BrowserLaunchError(str(exc)) from exc
                if self._install_attempted:
                    raise EnvironmentSetupError(str(exc)) from exc
                await self._install_browser()
                try:
                    self._browser = await self._launch()
                except PlaywrightError as retry_exc:
                    raise EnvironmentSetupError(str(retry_exc)) from retry_exc

            logger.info("Chromium ready (%s, headless=%s)", self._settings.environment, self._settings.headless)
            return self._browser

    async def close(self) -> None:
        """Close the browser and stop Playwright; safe to call twice."""
        browser, self._browser = self._browser, None
        playwright, self._playwright = self._playwright, None
        if browser is not None:
            try:
                await browser.close()
            except PlaywrightError as exc:
                logger.warning("Error closing browser: %s", exc)
        if playwright is not None:
            await playwright.stop()

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------

    async def configure_page(self, browser: Browser) -> tuple[BrowserContext, Page]:
        """New isolated context and page with the fixed desktop fingerprint."""
        context = await browser.new_context(
            user_agent=USER_AGENT,
            viewport=VIEWPORT,
            locale=LOCALE,
            timezone_id=TIMEZONE,
            geolocation=GEOLOCATION,
            permissions=["geolocation"],
            extra_http_headers=EXTRA_HEADERS,
        )
        try:
            await context.add_init_script(STEALTH_SCRIPT)
            page = await context.new_page()
        except Exception:
            await context.close()
            raise
        return context, page


_default_session: BrowserSession | None = None


def get_default_session() -> BrowserSession:
    """Process-wide session shared by the CLI and the HTTP app."""
    global _default_session
    if _default_session is None:
        _default_session = BrowserSession()
    return _default_session

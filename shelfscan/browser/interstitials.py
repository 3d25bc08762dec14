"""Dismissal of overlay UI: age gates, consent banners, modals and dialogs.

Categories are resolved strictly in catalog order.  Every query runs against
the live page, so a later category only ever sees the DOM left behind after
the earlier categories were dismissed.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from types import TracebackType
from typing import Literal

from playwright.async_api import Dialog, Error as PlaywrightError, Page

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InterstitialCategory:
    name: str
    selectors: tuple[str, ...]
    keywords: tuple[str, ...]
    # Whether a keyword inside the selector itself is enough to click.
    match_selector: bool = False

    def matches(self, text: str, selector: str) -> bool:
        haystacks = [text.lower()]
        if self.match_selector:
            haystacks.append(selector.lower())
        return any(keyword in h for keyword in self.keywords for h in haystacks)


INTERSTITIAL_CATALOG: tuple[InterstitialCategory, ...] = (
    InterstitialCategory(
        name="age-verification",
        selectors=(
            'button[class*="age-confirm"], button[id*="age-confirm"]',
            'input[value*="yes" i], input[value*="confirm" i], input[value*="enter" i]',
            'button:has-text("Yes, I am"), button:has-text("I am 21"), button:has-text("I am 18")',
            'button:has-text("Enter Site"), button:has-text("Continue"), button:has-text("Proceed")',
            '[id*="age"] button, [class*="age"] button',
        ),
        keywords=("18", "21", "yes", "enter", "confirm", "proceed", "continue"),
        match_selector=True,
    ),
    InterstitialCategory(
        name="cookie-consent",
        selectors=(
            "#onetrust-accept-btn-handler",
            'button[class*="accept"], button[id*="accept"]',
            ".cookie-accept, .cookies-accept",
            'button:has-text("Accept"), button:has-text("Allow"), button:has-text("OK")',
            '[id*="cookie"] button, [class*="cookie"] button',
        ),
        keywords=("accept", "allow", "ok", "agree"),
    ),
    InterstitialCategory(
        name="gdpr-consent",
        selectors=(
            '[id*="gdpr"] button, [class*="gdpr"] button',
            '[id*="consent"] button, [class*="consent"] button',
            'button:has-text("I agree"), button:has-text("Agree")',
        ),
        keywords=("agree", "accept", "consent", "continue"),
    ),
    InterstitialCategory(
        name="newsletter-dismiss",
        selectors=(
            '[class*="newsletter"] button[class*="close"], [id*="newsletter"] button[class*="close"]',
            '[class*="newsletter"] [aria-label*="close" i], [class*="subscribe"] [aria-label*="close" i]',
            'button:has-text("No thanks"), button:has-text("Not now"), button:has-text("Maybe later")',
        ),
        keywords=("close", "no thanks", "not now", "later", "dismiss", "×"),
        match_selector=True,
    ),
    InterstitialCategory(
        name="location-deny",
        selectors=(
            '[class*="location"] button, [id*="location"] button',
            '[class*="geo"] button, [id*="geo"] button',
            'button:has-text("Not now"), button:has-text("Deny"), button:has-text("Block")',
        ),
        keywords=("not now", "deny", "block", "no thanks", "skip", "close"),
    ),
    InterstitialCategory(
        name="generic-modal-close",
        selectors=(
            '[role="dialog"] button[aria-label*="close" i]',
            '[class*="modal"] button[class*="close"], [class*="modal"] [aria-label*="close" i]',
            '[class*="popup"] button[class*="close"], [class*="overlay"] button[class*="close"]',
            'button:has-text("Close"), button:has-text("×")',
        ),
        keywords=("close", "dismiss", "×", "got it", "continue"),
        match_selector=True,
    ),
)


async def _click_first_match(page: Page, category: InterstitialCategory) -> bool:
    for selector in category.selectors:
        try:
            elements = await page.locator(selector).all()
            for element in elements:
                if not await element.is_visible():
                    continue
                text = (await element.text_content() or "").strip()
                if not category.matches(text, selector):
                    continue
                await element.click()
                logger.info("Handled %s: %s", category.name, text[:50])
                return True
        except PlaywrightError as exc:
            logger.debug("Selector %r failed for %s: %s", selector, category.name, exc)
            continue
    return False


async def resolve_interstitials(page: Page, settle_ms: int = 1500) -> int:
    """Dismiss at most one overlay per category; return how many were clicked.

    A failing selector is skipped.  Anything else aborts the pass and the
    count handled so far is returned.
    """
    handled = 0
    try:
        for category in INTERSTITIAL_CATALOG:
            if await _click_first_match(page, category):
                handled += 1
                await page.wait_for_timeout(settle_ms)
    except Exception as exc:  # noqa: BLE001 - partial count is the contract
        logger.warning("Interstitial resolution aborted after %d: %s", handled, exc)
    return handled


# ---------------------------------------------------------------------------
# Native dialogs
# ---------------------------------------------------------------------------

_ACCEPT_RE = re.compile(r"\b(?:age|18|21|years? old|older|consent|cookies?|agree)\b", re.I)
_DISMISS_RE = re.compile(r"\b(?:location|notifications?)\b", re.I)


def classify_dialog(message: str) -> Literal["accept", "dismiss"]:
    """Age/consent prompts are accepted, location/notification prompts dismissed.

    Anything else is accepted.
    """
    if _ACCEPT_RE.search(message):
        return "accept"
    if _DISMISS_RE.search(message):
        return "dismiss"
    return "accept"


class DialogSubscription:
    """Answer native dialogs on *page* for as long as the ``with`` block runs."""

    def __init__(self, page: Page) -> None:
        self._page = page
        self.handled = 0

    async def _on_dialog(self, dialog: Dialog) -> None:
        action = classify_dialog(dialog.message)
        logger.info("Dialog (%s) %s: %s", dialog.type, action, dialog.message[:80])
        try:
            if action == "accept":
                await dialog.accept()
            else:
                await dialog.dismiss()
        except PlaywrightError as exc:
            logger.debug("Dialog already handled: %s", exc)
            return
        self.handled += 1

    def __enter__(self) -> "DialogSubscription":
        self._page.on("dialog", self._on_dialog)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        try:
            self._page.remove_listener("dialog", self._on_dialog)
        except (KeyError, ValueError, PlaywrightError) as err:
            logger.debug("Dialog listener already removed: %s", err)

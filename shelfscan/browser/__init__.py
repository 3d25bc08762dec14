"""Browser package: session ownership, interstitial handling and page fetching."""

from shelfscan.browser.fetcher import FetchOptions, PageFetcher, fetch_static
from shelfscan.browser.session import BrowserSession, get_default_session

__all__ = ["BrowserSession", "get_default_session", "PageFetcher", "FetchOptions", "fetch_static"]

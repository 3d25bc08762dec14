"""End-to-end extraction used by the HTTP app and the CLI.

``extract_url`` strings the pipeline together: normalise the URL, render it in
the browser (falling back to a plain HTTP GET), classify and extract, and
optionally crawl the detail pages it links to.  The result is always a plain
dict carrying an explicit ``success`` flag.
"""

from __future__ import annotations

import logging
from typing import Any

from shelfscan.browser.fetcher import FetchOptions, PageFetcher, fetch_static
from shelfscan.browser.session import BrowserSession, get_default_session
from shelfscan.errors import BrowserLaunchError, EnvironmentSetupError
from shelfscan.scraper.cannabis import collect_domain_products
from shelfscan.scraper.crawler import CrawlOptions, LinkCrawler
from shelfscan.scraper.extractor import extract_structured_content
from shelfscan.scraper.links import LinkFilter
from shelfscan.scraper.models import FetchResult, ListingRecord
from shelfscan.scraper.parsing import utc_timestamp
from shelfscan.urls import normalize_url

logger = logging.getLogger(__name__)


async def _render(fetcher: PageFetcher, url: str, options: FetchOptions | None) -> FetchResult:
    try:
        return await fetcher.fetch(url, options)
    except (EnvironmentSetupError, BrowserLaunchError) as exc:
        logger.error("Browser unavailable for %s: %s", url, exc)
        return FetchResult.failure(url, str(exc))


async def extract_url(
    url: str,
    session: BrowserSession | None = None,
    follow_links: bool = False,
    max_links: int | None = None,
    link_filter: LinkFilter = "same-domain",
    fetch_options: FetchOptions | None = None,
) -> dict[str, Any]:
    """Fetch *url* and return its structured record as a JSON-ready payload."""
    original_url = url
    url = normalize_url(url)
    if not url:
        return {"success": False, "url": original_url, "error": "URL is required"}
    if url != original_url:
        logger.info("Extracting from %s (corrected from %s)", url, original_url)

    fetcher = PageFetcher(session or get_default_session())
    result = await _render(fetcher, url, fetch_options)
    method = "browser"
    if not result.success:
        logger.warning("Browser fetch failed for %s, falling back to static HTTP", url)
        static = await fetch_static(url)
        if not static.success:
            return {"success": False, "url": url, "error": f"{result.error}; static fallback: {static.error}"}
        result, method = static, "static"

    record = extract_structured_content(result.html or "", url)
    products = (
        [card for card in record.to_dict()["content"]["products"]]
        if isinstance(record, ListingRecord)
        else []
    )

    payload: dict[str, Any] = {
        "success": True,
        "url": url,
        "title": record.title or result.title,
        "content_type": record.content_type.value,
        "record": record.to_dict(),
        "products": products,
        "count": len(products),
        "popups_handled": result.popups_handled,
        "method": method,
        "timestamp": utc_timestamp(),
    }
    if url != original_url:
        payload["original_url"] = original_url

    if follow_links:
        options = CrawlOptions(link_filter=link_filter)
        if max_links is not None:
            options.max_links = max_links
        crawl = await LinkCrawler(fetcher).crawl(url, result.html or "", options)
        payload["crawl"] = crawl.to_dict()
        payload["domain_products"] = collect_domain_products(crawl)

    return payload

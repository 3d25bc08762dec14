"""Bounded crawl of the detail pages linked from a listing page."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable

from shelfscan.browser.fetcher import FetchOptions, PageFetcher
from shelfscan.config import settings
from shelfscan.errors import CrawlLinkError
from shelfscan.scraper.extractor import extract_structured_content
from shelfscan.scraper.links import LinkFilter, discover_links, filter_links_by_domain
from shelfscan.scraper.models import CrawlError, CrawlItem, CrawlResult, Record
from shelfscan.scraper.parsing import utc_timestamp

logger = logging.getLogger(__name__)

# Fixed politeness policy, not a tunable pool.
BATCH_SIZE = settings.crawl_batch_size


@dataclass
class CrawlOptions:
    max_links: int = settings.crawl_max_links
    link_filter: LinkFilter = "same-domain"
    timeout_ms: int = settings.crawl_timeout_ms


async def _politeness_pause(seconds: float) -> None:
    await asyncio.sleep(seconds)


class LinkCrawler:
    """Fetch and extract the detail pages of one listing page.

    At most :data:`BATCH_SIZE` pages are in flight at once; batches are
    separated by a fixed pause.  A failing link is recorded in
    ``error_details`` and never stops the crawl.
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        extractor: Callable[[str, str], Record] = extract_structured_content,
        batch_delay: float = settings.crawl_batch_delay,
    ) -> None:
        self._fetcher = fetcher
        self._extract = extractor
        self._batch_delay = batch_delay

    async def _process(self, url: str, timeout_ms: int) -> CrawlItem:
        result = await self._fetcher.fetch(
            url,
            FetchOptions(handle_popups=True, scroll_to_bottom=False, timeout_ms=timeout_ms),
        )
        if not result.success or result.html is None:
            raise CrawlLinkError(url, result.error or "Failed to fetch page")
        try:
            record = self._extract(result.html, url)
        except Exception as exc:  # noqa: BLE001 - recorded per link
            raise CrawlLinkError(url, f"extraction failed: {exc}") from exc
        logger.info("Extracted %s from %s", record.content_type.value, url)
        return CrawlItem(url=url, success=True, data=record)

    async def crawl(self, base_url: str, base_html: str, options: CrawlOptions | None = None) -> CrawlResult:
        options = options or CrawlOptions()
        found = discover_links(base_html, base_url)
        filtered = filter_links_by_domain(found, base_url, options.link_filter)
        to_process = filtered[: max(options.max_links, 0)]
        logger.info(
            "Crawling %s: %d found, %d after %s filter, processing %d",
            base_url, len(found), len(filtered), options.link_filter, len(to_process),
        )

        results: list[CrawlItem] = []
        errors: list[CrawlError] = []
        for start in range(0, len(to_process), BATCH_SIZE):
            batch = to_process[start:start + BATCH_SIZE]
            outcomes = await asyncio.gather(
                *(self._process(url, options.timeout_ms) for url in batch),
                return_exceptions=True,
            )
            for url, outcome in zip(batch, outcomes):
                if isinstance(outcome, CrawlItem):
                    results.append(outcome)
                    continue
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                reason = outcome.reason if isinstance(outcome, CrawlLinkError) else str(outcome)
                logger.warning("Crawl failed for %s: %s", url, reason)
                errors.append(CrawlError(url=url, error=reason))
            if start + BATCH_SIZE < len(to_process):
                await _politeness_pause(self._batch_delay)

        return CrawlResult(
            base_url=base_url,
            total_links_found=len(found),
            links_processed=len(to_process),
            successful=len(results),
            errors=len(errors),
            results=tuple(results),
            error_details=tuple(errors),
            timestamp=utc_timestamp(),
        )

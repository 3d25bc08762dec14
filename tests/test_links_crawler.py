"""Tests for link discovery, domain filtering and the batched crawler.

Mocking strategy:
- Link discovery and filtering run on inline HTML with no mocking.
  tldextract uses its bundled suffix snapshot, so no network is touched.
- The crawler gets a fake fetcher object whose ``fetch`` coroutine records
  how many calls are in flight.  ``_politeness_pause`` is patched so batches
  run without real sleeps and the pauses can be counted.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from shelfscan.scraper.crawler import BATCH_SIZE, CrawlOptions, LinkCrawler
from shelfscan.scraper.links import discover_links, filter_links_by_domain, registrable_domain
from shelfscan.scraper.models import FetchResult, GenericRecord

_BASE = "https://shop.example.com/menu"


def _listing(count: int, host: str = "shop.example.com") -> str:
    anchors = "".join(f'<a href="https://{host}/product/{i}">P{i}</a>' for i in range(count))
    return f"<html><body>{anchors}</body></html>"


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------

class TestDiscoverLinks:
    def test_absolute_ordered_and_deduplicated(self) -> None:
        html = """
        <a href="/product/1">One</a>
        <a href="/product/2#reviews">Two</a>
        <a href="/product/1">One again</a>
        <div class="product-card"><a href="/strain/three">Three</a></div>
        """
        assert discover_links(html, _BASE) == [
            "https://shop.example.com/product/1",
            "https://shop.example.com/product/2",
            "https://shop.example.com/strain/three",
        ]

    def test_blocklist_schemes_and_assets(self) -> None:
        html = """
        <div class="product">
          <a href="/cart">Cart</a>
          <a href="/account/login">Login</a>
          <a href="/search?q=x">Search</a>
          <a href="mailto:hi@example.com">Mail</a>
          <a href="javascript:void(0)">JS</a>
          <a href="/product/spec.pdf">Spec</a>
          <a href="/product/ok">Ok</a>
        </div>
        """
        assert discover_links(html, _BASE) == ["https://shop.example.com/product/ok"]

    def test_navigation_items_need_product_path(self) -> None:
        html = """
        <ul>
          <li class="nav-item"><a href="/about-us">About</a></li>
          <li class="menu-item"><a href="/contact">Contact</a></li>
        </ul>
        <div class="product-grid">
          <div class="item"><a href="/product/blue-dream">Blue Dream</a></div>
          <div class="product"><a href="/flower/og-kush">OG Kush</a></div>
          <div class="product"><a href="/p/unlisted">Unlisted</a></div>
        </div>
        """
        assert discover_links(html, _BASE) == [
            "https://shop.example.com/product/blue-dream",
            "https://shop.example.com/flower/og-kush",
        ]

    def test_base_url_excluded(self) -> None:
        html = f'<div class="item"><a href="{_BASE}/">Self</a></div>'
        assert discover_links(html, _BASE) == []

    def test_no_links(self) -> None:
        assert discover_links("<p>Nothing here</p>", _BASE) == []


class TestFilterLinksByDomain:
    _LINKS = [
        "https://shop.example.com/product/1",
        "https://www.example.com/product/2",
        "https://other.org/product/3",
        "https://cdn.example.co.uk/product/4",
    ]

    def test_same_domain_is_exact_host(self) -> None:
        assert filter_links_by_domain(self._LINKS, _BASE, "same-domain") == [
            "https://shop.example.com/product/1",
        ]

    def test_same_site_uses_registrable_domain(self) -> None:
        assert filter_links_by_domain(self._LINKS, _BASE, "same-site") == [
            "https://shop.example.com/product/1",
            "https://www.example.com/product/2",
        ]

    def test_all_keeps_everything(self) -> None:
        assert filter_links_by_domain(self._LINKS, _BASE, "all") == self._LINKS

    def test_unknown_policy(self) -> None:
        with pytest.raises(ValueError):
            filter_links_by_domain(self._LINKS, _BASE, "nearby")  # type: ignore[arg-type]

    def test_registrable_domain_multi_part_suffix(self) -> None:
        assert registrable_domain("cdn.example.co.uk") == "example.co.uk"
        assert registrable_domain("shop.example.com") == "example.com"


# ---------------------------------------------------------------------------
# Crawler
# ---------------------------------------------------------------------------

class _FakeFetcher:
    """Stands in for PageFetcher; records concurrency and call order."""

    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = failing or set()
        self.in_flight = 0
        self.max_in_flight = 0
        self.calls: list[str] = []
        self.options: list = []

    async def fetch(self, url, options=None) -> FetchResult:
        self.calls.append(url)
        self.options.append(options)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if url in self.failing:
                return FetchResult.failure(url, "Navigation timed out")
            return FetchResult(success=True, url=url, html="<html><body><p>Detail</p></body></html>")
        finally:
            self.in_flight -= 1


def _run(coro):
    return asyncio.run(coro)


class TestLinkCrawler:
    def test_batches_and_pauses(self) -> None:
        fetcher = _FakeFetcher()
        crawler = LinkCrawler(fetcher, batch_delay=2.0)  # type: ignore[arg-type]
        pause = AsyncMock()

        with patch("shelfscan.scraper.crawler._politeness_pause", pause):
            result = _run(crawler.crawl(_BASE, _listing(25), CrawlOptions(max_links=10)))

        assert result.total_links_found == 25
        assert result.links_processed == 10
        assert result.successful == 10
        assert result.errors == 0
        assert fetcher.max_in_flight == BATCH_SIZE == 3
        # Batches of 3, 3, 3, 1: no pause after the last one.
        assert pause.await_count == 3
        pause.assert_awaited_with(2.0)
        assert [item.url for item in result.results] == [
            f"https://shop.example.com/product/{i}" for i in range(10)
        ]

    def test_fetch_options_for_detail_pages(self) -> None:
        fetcher = _FakeFetcher()
        crawler = LinkCrawler(fetcher)  # type: ignore[arg-type]

        with patch("shelfscan.scraper.crawler._politeness_pause", AsyncMock()):
            _run(crawler.crawl(_BASE, _listing(1), CrawlOptions(max_links=5, timeout_ms=15000)))

        options = fetcher.options[0]
        assert options.handle_popups is True
        assert options.scroll_to_bottom is False
        assert options.timeout_ms == 15000

    def test_failures_are_isolated(self) -> None:
        failing = {"https://shop.example.com/product/1", "https://shop.example.com/product/4"}
        fetcher = _FakeFetcher(failing=failing)
        crawler = LinkCrawler(fetcher)  # type: ignore[arg-type]

        with patch("shelfscan.scraper.crawler._politeness_pause", AsyncMock()):
            result = _run(crawler.crawl(_BASE, _listing(6), CrawlOptions(max_links=10)))

        assert result.links_processed == 6
        assert result.successful == 4
        assert result.errors == 2
        assert {e.url for e in result.error_details} == failing
        assert all(e.error == "Navigation timed out" for e in result.error_details)
        assert all(isinstance(item.data, GenericRecord) for item in result.results)

    def test_extraction_error_recorded(self) -> None:
        def broken(html: str, url: str):
            raise RuntimeError("parser exploded")

        crawler = LinkCrawler(_FakeFetcher(), extractor=broken)  # type: ignore[arg-type]

        with patch("shelfscan.scraper.crawler._politeness_pause", AsyncMock()):
            result = _run(crawler.crawl(_BASE, _listing(2), CrawlOptions(max_links=10)))

        assert result.successful == 0
        assert result.errors == 2
        assert "parser exploded" in result.error_details[0].error

    def test_filter_applies_before_limit(self) -> None:
        html = _listing(2, host="other.org") + _listing(2)
        fetcher = _FakeFetcher()
        crawler = LinkCrawler(fetcher)  # type: ignore[arg-type]

        with patch("shelfscan.scraper.crawler._politeness_pause", AsyncMock()):
            result = _run(crawler.crawl(_BASE, html, CrawlOptions(max_links=10, link_filter="same-domain")))

        assert result.total_links_found == 4
        assert result.links_processed == 2
        assert all(url.startswith("https://shop.example.com/") for url in fetcher.calls)

    def test_zero_limit_processes_nothing(self) -> None:
        fetcher = _FakeFetcher()
        crawler = LinkCrawler(fetcher)  # type: ignore[arg-type]

        result = _run(crawler.crawl(_BASE, _listing(3), CrawlOptions(max_links=0)))

        assert result.links_processed == 0
        assert result.results == ()
        assert fetcher.calls == []

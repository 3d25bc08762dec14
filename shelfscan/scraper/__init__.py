"""Scraper package: classification, structured extraction and link discovery.

The bounded crawler lives in :mod:`shelfscan.scraper.crawler`; it depends on
the browser package and is imported from there directly.
"""

from shelfscan.scraper.classifier import classify
from shelfscan.scraper.extractor import extract_structured_content
from shelfscan.scraper.links import discover_links, filter_links_by_domain
from shelfscan.scraper.models import ContentType, CrawlResult, FetchResult, Record

__all__ = [
    "classify",
    "extract_structured_content",
    "discover_links",
    "filter_links_by_domain",
    "ContentType",
    "CrawlResult",
    "FetchResult",
    "Record",
]

"""Structured extraction: turns rendered HTML into a typed record."""

from __future__ import annotations

import logging
from typing import Callable

from bs4 import BeautifulSoup

from shelfscan.scraper.article import extract_article
from shelfscan.scraper.cannabis import extract_domain_product
from shelfscan.scraper.classifier import classify
from shelfscan.scraper.generic import extract_generic, extract_listing
from shelfscan.scraper.models import ContentType, Record
from shelfscan.scraper.product import extract_product

logger = logging.getLogger(__name__)

Extractor = Callable[[str, BeautifulSoup, str], Record]

EXTRACTORS: dict[ContentType, Extractor] = {
    ContentType.DOMAIN_PRODUCT: extract_domain_product,
    ContentType.PRODUCT: extract_product,
    ContentType.ARTICLE: extract_article,
    ContentType.LISTING: extract_listing,
    ContentType.GENERIC: extract_generic,
}


def extract_structured_content(html: str, url: str) -> Record:
    """Parse *html* once, classify it and run the matching extractor."""
    soup = BeautifulSoup(html, "html.parser")
    content_type = classify(html, soup)
    logger.debug("Classified %s as %s", url, content_type.value)
    return EXTRACTORS[content_type](html, soup, url)

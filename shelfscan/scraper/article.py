"""Article extraction via trafilatura's reader-mode reduction."""

from __future__ import annotations

import logging
import math
from typing import Any

import trafilatura
from bs4 import BeautifulSoup

from shelfscan.scraper.generic import extract_generic, page_title
from shelfscan.scraper.models import ArticleContent, ArticleMetadata, ArticleRecord, GenericRecord
from shelfscan.scraper.parsing import clean_text, element_text, extract_headers, meta_content, utc_timestamp

logger = logging.getLogger(__name__)

WORDS_PER_MINUTE = 200
EXCERPT_LENGTH = 300

PUBLISHED_TIME_SELECTORS = [
    "time[datetime]",
    '[property="article:published_time"]',
    '[name="publish_date"]',
    ".published-date",
    ".post-date",
]


def reading_time_minutes(text: str) -> int:
    words = len(text.split())
    return math.ceil(words / WORDS_PER_MINUTE) if words else 0


def published_time(soup: BeautifulSoup, reader_date: str | None) -> str | None:
    """Markup timestamps first; the reader's own date guess last."""
    for selector in PUBLISHED_TIME_SELECTORS:
        element = soup.select_one(selector)
        if element is None:
            continue
        value = element.get("datetime") or element.get("content") or element_text(element)
        if value:
            return value.strip()
    return reader_date or None


def _reader_metadata(html: str, url: str) -> Any:
    try:
        return trafilatura.extract_metadata(html, default_url=url or None)
    except (TypeError, ValueError) as exc:
        logger.debug("Reader metadata unavailable for %s: %s", url, exc)
        return None


def extract_article(html: str, soup: BeautifulSoup, source_url: str) -> ArticleRecord | GenericRecord:
    """Reduce *html* to its main article.

    When the reduction yields no body text the generic record is returned
    instead of an empty article.
    """
    text: str | None = trafilatura.extract(
        html,
        url=source_url or None,
        include_comments=False,
        include_tables=True,
        include_links=False,
        include_images=False,
    )
    body = clean_text(text)
    if not body:
        logger.info("Reader reduction empty for %s; using generic extraction", source_url)
        return extract_generic(html, soup, source_url)

    body_html: str = (
        trafilatura.extract(
            html,
            url=source_url or None,
            output_format="html",
            include_comments=False,
            include_tables=True,
            include_formatting=True,
        )
        or ""
    )
    meta = _reader_metadata(html, source_url)
    description = getattr(meta, "description", None) or meta_content(soup, name="description")

    return ArticleRecord(
        title=getattr(meta, "title", None) or page_title(soup),
        headers=extract_headers(BeautifulSoup(body_html, "html.parser")) if body_html else [],
        content=ArticleContent(
            body=body,
            html=body_html,
            excerpt=clean_text(description) or body[:EXCERPT_LENGTH],
        ),
        metadata=ArticleMetadata(
            byline=getattr(meta, "author", None),
            site_name=getattr(meta, "sitename", None) or meta_content(soup, property="og:site_name") or None,
            length=len(body),
            reading_time_minutes=reading_time_minutes(body),
            published_time=published_time(soup, getattr(meta, "date", None)),
        ),
        extraction_timestamp=utc_timestamp(),
        source_url=source_url,
    )

"""Content classification.

:func:`classify` assigns exactly one :class:`ContentType` per document by
evaluating indicator sets in a fixed priority order:

    domain-product > product > listing > article > generic

The order matters.  A blog index can look like both a listing and an article
and must come out as a listing; a product page with an ``<article>`` wrapper
must come out as a product.
"""

from __future__ import annotations

import re

from bs4 import BeautifulSoup

from shelfscan.scraper.models import ContentType
from shelfscan.scraper.parsing import page_text

# ---------------------------------------------------------------------------
# Indicator sets
# ---------------------------------------------------------------------------

# Regulated-goods vocabulary: potency expressions and trade terms.
_DOMAIN_TEXT_PATTERNS = [
    re.compile(r"\b(?:cannabis|marijuana|dispensary|dispensaries|budtender|indica|sativa)\b", re.I),
    re.compile(r"\b\d+(?:\.\d+)?\s*%\s*(?:thca?|cbda?)\b", re.I),
    re.compile(r"\b(?:total\s+)?(?:thca?|cbda?)\s*:?\s*\d+(?:\.\d+)?\s*(?:%|mg)", re.I),
    re.compile(r"\bmg\s*(?:thc|cbd)\b", re.I),
    re.compile(r"\bmedical\s+(?:marijuana|cannabis)\b", re.I),
]
_DOMAIN_CLASS_RE = re.compile(
    r"""class=["'][^"']*(?:strain|cannabis|thc|cbd|indica|sativa)[^"']*["']""", re.I
)

_PRODUCT_PATTERNS = [
    re.compile(r'"@type"\s*:\s*"Product"', re.I),
    re.compile(r"""<meta[^>]*property=["']product:""", re.I),
    re.compile(r"""<meta[^>]*property=["']og:type["'][^>]*content=["']product["']""", re.I),
    re.compile(
        r"""class=["'][^"']*(?:price|add-to-cart|buy-now|product-price|item-price)[^"']*["']""",
        re.I,
    ),
    re.compile(
        r"""id=["'][^"']*(?:price|add-to-cart|buy-now|product-price|item-price)[^"']*["']""",
        re.I,
    ),
    re.compile(r"<button[^>]*>[^<]*(?:add.{0,10}cart|buy.{0,10}now)", re.I),
]
_CURRENCY_AMOUNT_RE = re.compile(r"[$€£¥₹]\s*\d+|\b\d+(?:\.\d{2})?\s*(?:USD|EUR|GBP)\b")

_LISTING_PATTERNS = [
    re.compile(r'"@type"\s*:\s*"(?:ItemList|CollectionPage)"', re.I),
    re.compile(r"""class=["'][^"']*(?:product-list|item-list|catalog|grid)[^"']*["']""", re.I),
]
_PRODUCT_LIKE_SELECTOR = '[class*="product"], [class*="item"]'
_PRODUCT_CARD_SELECTOR = '[class*="product-card"], [class*="item-card"], [class*="product-tile"]'
_PRODUCT_LIKE_THRESHOLD = 5
_PRODUCT_CARD_THRESHOLD = 2

_ARTICLE_PATTERNS = [
    re.compile(r'"@type"\s*:\s*"(?:Article|NewsArticle|BlogPosting)"', re.I),
    re.compile(r"""<meta[^>]*property=["']article:""", re.I),
    re.compile(r"<article[\s>]", re.I),
    re.compile(r"<time[\s>]", re.I),
]


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------

def is_domain_product(html: str, soup: BeautifulSoup) -> bool:
    if _DOMAIN_CLASS_RE.search(html):
        return True
    text = page_text(soup)
    return any(p.search(text) for p in _DOMAIN_TEXT_PATTERNS)


def is_product(html: str, soup: BeautifulSoup) -> bool:
    if any(p.search(html) for p in _PRODUCT_PATTERNS):
        return True
    return bool(_CURRENCY_AMOUNT_RE.search(page_text(soup)))


def is_listing(html: str, soup: BeautifulSoup) -> bool:
    if any(p.search(html) for p in _LISTING_PATTERNS):
        return True
    if len(soup.select(_PRODUCT_LIKE_SELECTOR)) > _PRODUCT_LIKE_THRESHOLD:
        return True
    return len(soup.select(_PRODUCT_CARD_SELECTOR)) > _PRODUCT_CARD_THRESHOLD


def is_article(html: str, soup: BeautifulSoup) -> bool:
    return any(p.search(html) for p in _ARTICLE_PATTERNS)


_PRIORITY = (
    (ContentType.DOMAIN_PRODUCT, is_domain_product),
    (ContentType.PRODUCT, is_product),
    (ContentType.LISTING, is_listing),
    (ContentType.ARTICLE, is_article),
)


def classify(html: str, soup: BeautifulSoup | None = None) -> ContentType:
    """Return the content type of *html*; the first matching indicator set wins."""
    if soup is None:
        soup = BeautifulSoup(html, "html.parser")
    for content_type, predicate in _PRIORITY:
        if predicate(html, soup):
            return content_type
    return ContentType.GENERIC

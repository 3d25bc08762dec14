"""Listing and generic-document extraction."""

from __future__ import annotations

import copy
import re

from bs4 import BeautifulSoup, Tag

from shelfscan.scraper.models import (
    GenericContent,
    GenericMetadata,
    GenericRecord,
    ListingContent,
    ListingMetadata,
    ListingRecord,
    ProductCard,
)
from shelfscan.scraper.parsing import (
    clean_text,
    element_classes,
    element_text,
    extract_headers,
    meta_content,
    parse_percentage,
    utc_timestamp,
)

_STRIP_TAGS = ["script", "style", "noscript", "nav", "header", "footer", "aside"]
_MAIN_SELECTORS = ["main", '[role="main"]', ".content", "#content", "article", ".post"]

_ITEM_SELECTOR = '[class*="product"], [class*="item"]'
_CARD_SELECTOR = '.product, .item, [class*="product"], .menu-item, .strain'
_CARD_NAME_SELECTOR = 'h1, h2, h3, h4, .name, .title, [class*="name"], [class*="title"]'
_CARD_PRICE_SELECTOR = '.price, [class*="price"], [class*="cost"]'

_CARD_PRICE_RE = re.compile(r"[$€£¥₹]\s*\d[\d,]*(?:\.\d{2})?")
_CARD_THC_RE = re.compile(r"\bTHC\b\s*:?\s*(\d+(?:\.\d+)?)\s*%|(\d+(?:\.\d+)?)\s*%\s*THC\b", re.I)
_CARD_CBD_RE = re.compile(r"\bCBD\b\s*:?\s*(\d+(?:\.\d+)?)\s*%|(\d+(?:\.\d+)?)\s*%\s*CBD\b", re.I)
_CARD_WEIGHT_RE = re.compile(r"\b\d+(?:\.\d+)?\s*(?:g|grams?|oz|ounces?|mg)\b", re.I)
_CONTAINER_CLASS_RE = re.compile(r"(?:^|[\s_-])(?:list|grid|container|wrapper|results|catalog)(?:$|\s)")
MAX_CARDS = 100


def page_title(soup: BeautifulSoup) -> str:
    """``<title>`` text, else the first ``<h1>``."""
    return element_text(soup.title) or element_text(soup.find("h1"))


def main_text(soup: BeautifulSoup) -> str:
    """Body text of the main content container.

    Chrome (navigation, header, footer, asides) is removed on a private copy so
    the caller's document is left untouched.
    """
    doc = copy.copy(soup)
    for tag in doc(_STRIP_TAGS):
        tag.decompose()
    for selector in _MAIN_SELECTORS:
        container = doc.select_one(selector)
        if container is not None:
            text = element_text(container)
            if text:
                return text
    root = doc.body or doc
    return clean_text(root.get_text(" "))


def _percentage(pattern: re.Pattern[str], text: str) -> str | None:
    match = pattern.search(text)
    if not match:
        return None
    raw = match.group(1) or match.group(2)
    if parse_percentage(raw) is None:
        return None
    return f"{raw}%"


def _product_card(element: Tag) -> ProductCard | None:
    name = element_text(element.select_one(_CARD_NAME_SELECTOR))
    if not name or len(name) < 3:
        return None
    text = element_text(element)
    price_element = element.select_one(_CARD_PRICE_SELECTOR)
    price_match = _CARD_PRICE_RE.search(element_text(price_element) or text)
    weight_match = _CARD_WEIGHT_RE.search(text)
    return ProductCard(
        name=name,
        price=price_match.group(0) if price_match else None,
        thc=_percentage(_CARD_THC_RE, text),
        cbd=_percentage(_CARD_CBD_RE, text),
        weight=weight_match.group(0) if weight_match else None,
    )


def product_cards(soup: BeautifulSoup) -> list[ProductCard]:
    """Coarse per-tile summaries of the products shown on a listing page.

    Grid and list wrappers are ignored, nested matches (a ``product-name``
    inside a ``product``) collapse to the outermost card, and cards are
    de-duplicated by name.
    """
    cards: list[ProductCard] = []
    seen: set[str] = set()
    matched = [e for e in soup.select(_CARD_SELECTOR) if not _CONTAINER_CLASS_RE.search(element_classes(e))]
    matched_ids = {id(e) for e in matched}
    for element in matched:
        if any(id(parent) in matched_ids for parent in element.parents):
            continue
        card = _product_card(element)
        if card is None or card.name in seen:
            continue
        seen.add(card.name)
        cards.append(card)
        if len(cards) >= MAX_CARDS:
            break
    return cards


def extract_listing(html: str, soup: BeautifulSoup, source_url: str) -> ListingRecord:
    """Catalog/listing page: title, headers, item count and product cards."""
    return ListingRecord(
        title=page_title(soup),
        headers=extract_headers(soup, with_ids=False),
        content=ListingContent(
            body=main_text(soup),
            item_count=len(soup.select(_ITEM_SELECTOR)),
            products=product_cards(soup),
        ),
        metadata=ListingMetadata(
            description=meta_content(soup, name="description"),
            keywords=meta_content(soup, name="keywords"),
        ),
        extraction_timestamp=utc_timestamp(),
        source_url=source_url,
    )


def extract_generic(html: str, soup: BeautifulSoup, source_url: str) -> GenericRecord:
    return GenericRecord(
        title=page_title(soup),
        headers=extract_headers(soup),
        content=GenericContent(body=main_text(soup)),
        metadata=GenericMetadata(
            description=meta_content(soup, name="description"),
            keywords=meta_content(soup, name="keywords"),
        ),
        extraction_timestamp=utc_timestamp(),
        source_url=source_url,
    )

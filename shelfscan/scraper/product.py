"""Generic e-commerce product extraction.

Every field is resolved through a cascade of attempts (see
:mod:`shelfscan.scraper.cascade`):

1. embedded JSON-LD ``Product`` data,
2. prioritised DOM selectors, most specific first,
3. full-text regex heuristics.

Prices are only ever parsed, never invented; the discount is derived from the
current and original prices rather than scraped.
"""

from __future__ import annotations

import re
from typing import Any
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from shelfscan.scraper.cascade import first_of
from shelfscan.scraper.models import (
    Pricing,
    ProductContent,
    ProductImage,
    ProductMetadata,
    ProductRecord,
    Reviews,
    VariantGroup,
    VariantOption,
)
from shelfscan.scraper.parsing import (
    clean_text,
    compute_discount,
    element_classes,
    element_text,
    extract_currency,
    extract_headers,
    extract_price,
    find_entity,
    load_json_ld,
    page_text,
    utc_timestamp,
)

# ---------------------------------------------------------------------------
# Selector catalogues
# ---------------------------------------------------------------------------

PRICE_SELECTORS = [
    '[class*="current-price"] [class*="price"]',
    '[class*="sale-price"]',
    '[class*="price-current"]',
    '[class*="price-now"]',
    '[data-testid*="price"]',
    '[class*="price"]',
    ".price",
    "#price",
    '[class*="cost"]',
    '[class*="amount"]',
    "[data-price]",
]

ORIGINAL_PRICE_SELECTORS = [
    '[class*="original-price"]',
    '[class*="was-price"]',
    '[class*="old-price"]',
    '[class*="price-was"]',
    '[class*="regular-price"]',
    ".price-old",
    ".was-price",
]

# A current price never comes from an element with one of these class words.
_NON_CURRENT_PRICE_CLASS_RE = re.compile(r"(?:^|[\s_-])(?:original|was|old)(?:$|[\s_-])", re.I)

AVAILABILITY_SELECTORS = [
    '[class*="availability"]',
    '[class*="stock"]',
    '[class*="inventory"]',
    '[data-testid*="availability"]',
]

TITLE_SELECTORS = [
    'h1[class*="product"]',
    'h1[class*="item"]',
    '[class*="product-title"] h1',
    '[class*="product-name"]',
    '[data-testid*="product-title"]',
    "h1.title",
    "h1",
]

DESCRIPTION_SELECTORS = [
    '[class*="product-description"]',
    '[class*="item-description"]',
    '[class*="description"]',
    '[id*="description"]',
    '[data-testid*="description"]',
]

IMAGE_SELECTORS = [
    '[class*="product-image"] img',
    '[class*="product-photo"] img',
    '[class*="item-image"] img',
    ".gallery img",
    ".carousel img",
    '[data-testid*="image"] img',
]
MAX_IMAGES = 10

RATING_SELECTORS = [
    '[class*="rating"] [class*="value"]',
    '[class*="star-rating"]',
    '[data-testid*="rating"]',
    ".rating",
    '[itemprop="ratingValue"]',
]

REVIEW_COUNT_SELECTORS = [
    '[class*="review-count"]',
    '[class*="rating-count"]',
    '[itemprop="reviewCount"]',
]

_CURRENCY_PRICE_RE = re.compile(r"([$€£¥₹])\s*(\d[\d,]*(?:\.\d+)?)")
_GTIN_RE = re.compile(r"^\d{8,14}$")


# ---------------------------------------------------------------------------
# JSON-LD helpers
# ---------------------------------------------------------------------------

def _offer(product: dict[str, Any] | None) -> dict[str, Any] | None:
    if not product:
        return None
    offers = product.get("offers")
    if isinstance(offers, list):
        offers = next((o for o in offers if isinstance(o, dict)), None)
    return offers if isinstance(offers, dict) else None


def _json_ld_name(value: Any) -> str | None:
    if isinstance(value, dict):
        value = value.get("name")
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


# ---------------------------------------------------------------------------
# Pricing attempts
# ---------------------------------------------------------------------------

def price_from_structured_data(soup: BeautifulSoup, product: dict | None) -> tuple[float, str | None] | None:
    offer = _offer(product)
    if not offer:
        return None
    price = extract_price(offer.get("price", offer.get("lowPrice")))
    if price is None:
        return None
    return price, offer.get("priceCurrency") or None


def price_from_selectors(soup: BeautifulSoup, product: dict | None) -> tuple[float, str | None] | None:
    for selector in PRICE_SELECTORS:
        for element in soup.select(selector):
            if _NON_CURRENT_PRICE_CLASS_RE.search(element_classes(element)):
                continue
            text = element_text(element) or element.get("data-price", "")
            price = extract_price(text)
            if price:
                return price, extract_currency(text)
            # First acceptable element decides for this selector.
            break
    return None


def price_from_text(soup: BeautifulSoup, product: dict | None) -> tuple[float, str | None] | None:
    match = _CURRENCY_PRICE_RE.search(page_text(soup))
    if not match:
        return None
    price = extract_price(match.group(2))
    return (price, match.group(1)) if price else None


CURRENT_PRICE_ATTEMPTS = [price_from_structured_data, price_from_selectors, price_from_text]


def original_price_from_selectors(soup: BeautifulSoup, current: float | None) -> float | None:
    """Return the first "was" price strictly greater than *current*."""
    if current is None:
        return None
    for selector in ORIGINAL_PRICE_SELECTORS:
        element = soup.select_one(selector)
        if element is None:
            continue
        price = extract_price(element_text(element))
        if price is not None and price > current:
            return price
    return None


def availability_from_structured_data(soup: BeautifulSoup, product: dict | None) -> str | None:
    offer = _offer(product)
    raw = offer.get("availability") if offer else None
    if not isinstance(raw, str) or not raw:
        return None
    return raw.rstrip("/").rsplit("/", 1)[-1]


def availability_from_selectors(soup: BeautifulSoup, product: dict | None) -> str | None:
    for selector in AVAILABILITY_SELECTORS:
        element = soup.select_one(selector)
        if element is not None:
            return element_text(element) or None
    return None


def extract_pricing(soup: BeautifulSoup, product: dict | None) -> Pricing:
    pricing = Pricing()
    found = first_of("pricing.current_price", CURRENT_PRICE_ATTEMPTS, soup, product)
    if found:
        pricing.current_price, pricing.currency = found
    pricing.original_price = first_of(
        "pricing.original_price",
        [original_price_from_selectors],
        soup,
        pricing.current_price,
    )
    pricing.discount = compute_discount(pricing.current_price, pricing.original_price)
    pricing.availability = first_of(
        "pricing.availability",
        [availability_from_structured_data, availability_from_selectors],
        soup,
        product,
    )
    return pricing


# ---------------------------------------------------------------------------
# Title / content attempts
# ---------------------------------------------------------------------------

def title_from_structured_data(soup: BeautifulSoup, product: dict | None) -> str | None:
    return _json_ld_name(product.get("name")) if product else None


def title_from_selectors(soup: BeautifulSoup, product: dict | None) -> str | None:
    for selector in TITLE_SELECTORS:
        element = soup.select_one(selector)
        text = element_text(element)
        if len(text) > 2:
            return text
    return None


def title_from_meta(soup: BeautifulSoup, product: dict | None) -> str | None:
    tag = soup.find("meta", attrs={"property": "og:title"})
    text = clean_text(tag.get("content")) if tag else ""
    if len(text) > 2:
        return text
    text = element_text(soup.title)
    return text if len(text) > 2 else None


def description_from_structured_data(soup: BeautifulSoup, product: dict | None) -> str | None:
    if not product or not isinstance(product.get("description"), str):
        return None
    return clean_text(product["description"]) or None


def description_from_selectors(soup: BeautifulSoup, product: dict | None) -> str | None:
    for selector in DESCRIPTION_SELECTORS:
        element = soup.select_one(selector)
        if element is not None:
            return element_text(element) or None
    return None


def extract_specifications(soup: BeautifulSoup) -> dict[str, str]:
    specs: dict[str, str] = {}
    tables = soup.select(
        'table[class*="spec"], dl[class*="spec"], .specifications table, .specs table'
    )
    for table in tables:
        for row in table.find_all(["tr", "dt"]):
            key = value = ""
            if row.name == "tr":
                cells = row.find_all(["td", "th"])
                if len(cells) >= 2:
                    key, value = element_text(cells[0]), element_text(cells[1])
            else:
                key = element_text(row)
                definition = row.find_next_sibling("dd")
                value = element_text(definition)
            if key and value:
                specs[key] = value
    return specs


def extract_features(soup: BeautifulSoup) -> list[str]:
    features: list[str] = []
    for container in soup.select('[class*="feature"], [class*="highlight"], .features ul, .highlights ul'):
        for item in container.find_all("li"):
            text = element_text(item)
            if len(text) > 3 and text not in features:
                features.append(text)
    return features


# ---------------------------------------------------------------------------
# Images / variants / reviews
# ---------------------------------------------------------------------------

def images_from_structured_data(soup: BeautifulSoup, product: dict | None, base_url: str) -> list[ProductImage]:
    if not product:
        return []
    raw = product.get("image")
    items = raw if isinstance(raw, list) else [raw]
    images: list[ProductImage] = []
    for item in items:
        url = item.get("url") if isinstance(item, dict) else item
        if isinstance(url, str) and url:
            images.append(ProductImage(url=urljoin(base_url, url)))
    return images[:MAX_IMAGES]


def images_from_selectors(soup: BeautifulSoup, product: dict | None, base_url: str) -> list[ProductImage]:
    images: list[ProductImage] = []
    seen: set[str] = set()
    for selector in IMAGE_SELECTORS:
        for img in soup.select(selector):
            src = img.get("src") or img.get("data-src") or img.get("data-lazy")
            if not src or src in seen:
                continue
            seen.add(src)
            images.append(
                ProductImage(
                    url=urljoin(base_url, src) if base_url else src,
                    alt=img.get("alt") or "",
                    title=img.get("title") or "",
                )
            )
        if len(images) >= MAX_IMAGES:
            break
    return images[:MAX_IMAGES]


def extract_variants(soup: BeautifulSoup) -> list[VariantGroup]:
    variants: list[VariantGroup] = []

    for select in soup.select('[class*="size"] select, select[class*="size"], [data-testid*="size"] select'):
        options = []
        for option in select.find_all("option"):
            value = option.get("value")
            text = element_text(option)
            if value and text:
                options.append(VariantOption(value=value, text=text, available=not option.has_attr("disabled")))
        if options:
            variants.append(VariantGroup(type="size", name=select.get("name") or "size", options=options))

    for group in soup.select('[class*="color"], [class*="colour"], [data-testid*="color"]'):
        options = []
        for radio in group.select('input[type="radio"], input[type="checkbox"]'):
            value = radio.get("value")
            if not value:
                continue
            label = radio.find_next_sibling("label")
            text = element_text(label) or element_text(radio.parent) or value
            options.append(VariantOption(value=value, text=text, available=not radio.has_attr("disabled")))
        if options:
            variants.append(VariantGroup(type="color", name="color", options=options))
            # Only the first colour group; nested wrappers would repeat it.
            break

    return variants


def _rating_value(raw: Any) -> float | None:
    try:
        rating = float(str(raw).strip())
    except (TypeError, ValueError):
        return None
    return rating if 0 <= rating <= 5 else None


def _count_value(raw: Any) -> int | None:
    digits = re.sub(r"[^\d]", "", str(raw or ""))
    return int(digits) if digits else None


def extract_reviews(soup: BeautifulSoup, product: dict | None) -> Reviews:
    reviews = Reviews()
    aggregate = product.get("aggregateRating") if product else None
    if isinstance(aggregate, dict):
        reviews.rating = _rating_value(aggregate.get("ratingValue"))
        reviews.count = _count_value(aggregate.get("reviewCount") or aggregate.get("ratingCount"))

    if reviews.rating is None:
        for selector in RATING_SELECTORS:
            element = soup.select_one(selector)
            if element is None:
                continue
            raw = element_text(element) or element.get("content") or element.get("data-rating")
            rating = _rating_value(raw)
            if rating is not None:
                reviews.rating = rating
                break

    if reviews.count is None:
        for selector in REVIEW_COUNT_SELECTORS:
            element = soup.select_one(selector)
            if element is None:
                continue
            count = _count_value(element_text(element) or element.get("content"))
            if count is not None:
                reviews.count = count
                break

    return reviews


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------

def _first_selector_text(soup: BeautifulSoup, selectors: list[str]) -> str | None:
    for selector in selectors:
        text = element_text(soup.select_one(selector))
        if text:
            return text
    return None


def extract_metadata(soup: BeautifulSoup, product: dict | None) -> ProductMetadata:
    product = product or {}

    brand = first_of(
        "metadata.brand",
        [
            lambda: _json_ld_name(product.get("brand")),
            lambda: _first_selector_text(
                soup, ['[itemprop="brand"]', '[class*="brand"]', '[data-testid*="brand"]']
            ),
        ],
    )
    sku = first_of(
        "metadata.sku",
        [
            lambda: str(product["sku"]) if product.get("sku") else None,
            lambda: _first_selector_text(soup, ['[itemprop="sku"]', '[class*="sku"]', '[data-testid*="sku"]']),
        ],
    )

    def gtin_from_selectors() -> str | None:
        for selector in ('[itemprop="gtin"]', '[class*="gtin"]', '[class*="upc"]', '[class*="ean"]'):
            text = element_text(soup.select_one(selector))
            if _GTIN_RE.match(text):
                return text
        return None

    gtin = first_of(
        "metadata.gtin",
        [
            lambda: next(
                (str(product[k]) for k in ("gtin", "gtin13", "gtin12", "gtin14", "gtin8") if product.get(k)),
                None,
            ),
            gtin_from_selectors,
        ],
    )

    def category_from_selectors() -> list[str] | None:
        for selector in ('[class*="breadcrumb"] a', '[itemprop="category"]', '[class*="category"]'):
            categories: list[str] = []
            for element in soup.select(selector):
                text = element_text(element)
                if text and text not in categories:
                    categories.append(text)
            if categories:
                return categories
        return None

    category = first_of(
        "metadata.category",
        [lambda: product.get("category") or None, category_from_selectors],
    )

    tags: list[str] = []
    for element in soup.select('[class*="tag"], [class*="label"], .badge'):
        text = element_text(element)
        if text and len(text) < 50 and text not in tags:
            tags.append(text)

    return ProductMetadata(brand=brand, sku=sku, gtin=gtin, category=category, tags=tags)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def fill_product(record: ProductRecord, html: str, soup: BeautifulSoup, source_url: str) -> ProductRecord:
    """Populate the commerce fields of *record* in place and return it."""
    product = find_entity(load_json_ld(soup), "Product")

    record.title = first_of(
        "title",
        [title_from_structured_data, title_from_selectors, title_from_meta],
        soup,
        product,
        default="",
    )
    record.headers = extract_headers(soup)
    record.pricing = extract_pricing(soup, product)
    record.content = ProductContent(
        description=first_of(
            "content.description",
            [description_from_structured_data, description_from_selectors],
            soup,
            product,
            default="",
        ),
        specifications=first_of("content.specifications", [extract_specifications], soup, default={}),
        features=first_of("content.features", [extract_features], soup, default=[]),
    )
    record.images = first_of(
        "images",
        [images_from_structured_data, images_from_selectors],
        soup,
        product,
        source_url,
        default=[],
    )
    record.variants = first_of("variants", [extract_variants], soup, default=[])
    record.reviews = first_of("reviews", [extract_reviews], soup, product, default=Reviews())
    record.metadata = first_of("metadata", [extract_metadata], soup, product, default=ProductMetadata())
    record.extraction_timestamp = utc_timestamp()
    record.source_url = source_url
    return record


def extract_product(html: str, soup: BeautifulSoup, source_url: str) -> ProductRecord:
    """Extract a commerce :class:`ProductRecord` from *html*."""
    return fill_product(ProductRecord(), html, soup, source_url)

"""Data models for the fetch → classify → extract → crawl pipeline.

These are plain dataclasses.  Every top-level result exposes ``to_dict()``
which returns JSON-ready data; serialisation itself is the caller's job.
"""

from __future__ import annotations

import base64
import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


def _to_plain(value: Any) -> Any:
    """Recursively convert dataclasses / enums / bytes into JSON-ready values."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _to_plain(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bytes):
        return base64.b64encode(value).decode("ascii")
    if isinstance(value, dict):
        return {k: _to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_plain(v) for v in value]
    return value


class ContentType(str, Enum):
    """Classification tag assigned once per fetched document."""

    DOMAIN_PRODUCT = "domain-product"
    PRODUCT = "product"
    ARTICLE = "article"
    LISTING = "listing"
    GENERIC = "generic"


# ---------------------------------------------------------------------------
# Fetching
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FetchMetrics:
    render_time_ms: int
    layout_count: int | None
    environment: str


@dataclass(frozen=True)
class FetchResult:
    """Outcome of one browser-driven (or static fallback) page load.

    On ``success=False`` the ``html`` and ``title`` fields are ``None`` and
    ``error`` explains what went wrong.
    """

    success: bool
    url: str
    html: str | None = None
    title: str | None = None
    final_url: str | None = None
    popups_handled: int = 0
    screenshot: bytes | None = None
    metrics: FetchMetrics | None = None
    error: str | None = None

    @classmethod
    def failure(cls, url: str, error: str) -> "FetchResult":
        return cls(success=False, url=url, error=error)

    def to_dict(self) -> dict[str, Any]:
        return _to_plain(self)


# ---------------------------------------------------------------------------
# Shared record parts
# ---------------------------------------------------------------------------

@dataclass
class Header:
    level: int
    text: str
    id: str | None = None


@dataclass
class Record:
    """Fields every structured record carries."""

    content_type: ContentType = ContentType.GENERIC
    title: str = ""
    headers: list[Header] = field(default_factory=list)
    extraction_timestamp: str = ""
    source_url: str = ""

    def to_dict(self) -> dict[str, Any]:
        return _to_plain(self)


# ---------------------------------------------------------------------------
# Commerce product
# ---------------------------------------------------------------------------

@dataclass
class Discount:
    amount: float
    percentage: int


@dataclass
class Pricing:
    current_price: float | None = None
    original_price: float | None = None
    currency: str | None = None
    availability: str | None = None
    discount: Discount | None = None


@dataclass
class ProductImage:
    url: str
    alt: str = ""
    title: str = ""


@dataclass
class VariantOption:
    value: str
    text: str
    available: bool = True


@dataclass
class VariantGroup:
    type: str
    name: str
    options: list[VariantOption] = field(default_factory=list)


@dataclass
class Reviews:
    rating: float | None = None
    count: int | None = None
    summary: str = ""


@dataclass
class ProductMetadata:
    brand: str | None = None
    sku: str | None = None
    gtin: str | None = None
    category: str | list[str] | None = None
    tags: list[str] = field(default_factory=list)


@dataclass
class ProductContent:
    description: str = ""
    specifications: dict[str, str] = field(default_factory=dict)
    features: list[str] = field(default_factory=list)


@dataclass
class ProductRecord(Record):
    content_type: ContentType = ContentType.PRODUCT
    content: ProductContent = field(default_factory=ProductContent)
    pricing: Pricing = field(default_factory=Pricing)
    images: list[ProductImage] = field(default_factory=list)
    variants: list[VariantGroup] = field(default_factory=list)
    reviews: Reviews = field(default_factory=Reviews)
    metadata: ProductMetadata = field(default_factory=ProductMetadata)


# ---------------------------------------------------------------------------
# Domain-specific (cannabis retail) product
# ---------------------------------------------------------------------------

@dataclass
class Range:
    min: float | None = None
    max: float | None = None


@dataclass
class Measurement:
    percentage: float | None = None
    mg: float | None = None
    range: Range = field(default_factory=Range)


@dataclass
class Terpenes:
    dominant: list[str] = field(default_factory=list)
    profile: dict[str, float] = field(default_factory=dict)


@dataclass
class Potency:
    thc: Measurement = field(default_factory=Measurement)
    cbd: Measurement = field(default_factory=Measurement)
    cbg: Measurement = field(default_factory=Measurement)
    cbn: Measurement = field(default_factory=Measurement)
    thca: Measurement = field(default_factory=Measurement)
    cbda: Measurement = field(default_factory=Measurement)
    terpenes: Terpenes = field(default_factory=Terpenes)


@dataclass
class Strain:
    name: str | None = None
    type: str | None = None
    genetics: list[str] = field(default_factory=list)
    breeder: str | None = None
    aliases: list[str] = field(default_factory=list)


@dataclass
class ProductFacts:
    form: str | None = None
    weight: str | None = None
    packaging: str | None = None
    batch: str | None = None
    harvest_date: str | None = None
    test_date: str | None = None
    lab: str | None = None


@dataclass
class BulkPrice:
    quantity: float
    price: float
    unit: str


@dataclass
class DomainPricing:
    current_price: float | None = None
    price_per_gram: float | None = None
    price_per_ounce: float | None = None
    currency: str | None = None
    discounted_price: float | None = None
    discount_percentage: float | None = None
    bulk_pricing: list[BulkPrice] = field(default_factory=list)
    membership_price: float | None = None


@dataclass
class Availability:
    in_stock: bool | None = None
    quantity_available: int | None = None
    stock_level: str | None = None
    last_restocked: str | None = None
    estimated_restock: str | None = None


@dataclass
class Location:
    state: str | None = None
    city: str | None = None
    address: str | None = None


@dataclass
class Dispensary:
    name: str | None = None
    location: Location = field(default_factory=Location)
    license_type: str | None = None
    menu_type: str | None = None


@dataclass
class Effects:
    reported_effects: list[str] = field(default_factory=list)
    medical_uses: list[str] = field(default_factory=list)
    flavors: list[str] = field(default_factory=list)
    aromas: list[str] = field(default_factory=list)


@dataclass
class DomainReviews:
    rating: float | None = None
    review_count: int | None = None
    top_effects: list[str] = field(default_factory=list)
    helps_with: list[str] = field(default_factory=list)


@dataclass
class Tracking:
    """First/last-seen bookkeeping.

    The history lists are filled by the persistence layer, never here.
    """

    first_seen: str = ""
    last_updated: str = ""
    price_history: list[dict[str, Any]] = field(default_factory=list)
    availability_history: list[dict[str, Any]] = field(default_factory=list)
    potency_variance: dict[str, Any] = field(default_factory=dict)
    source_url: str = ""
    extraction_timestamp: str = ""


@dataclass
class CannabisProfile:
    strain: Strain = field(default_factory=Strain)
    potency: Potency = field(default_factory=Potency)
    product: ProductFacts = field(default_factory=ProductFacts)
    pricing: DomainPricing = field(default_factory=DomainPricing)
    availability: Availability = field(default_factory=Availability)
    dispensary: Dispensary = field(default_factory=Dispensary)
    effects: Effects = field(default_factory=Effects)
    reviews: DomainReviews = field(default_factory=DomainReviews)
    tracking: Tracking = field(default_factory=Tracking)


@dataclass
class DomainProductRecord(ProductRecord):
    content_type: ContentType = ContentType.DOMAIN_PRODUCT
    domain: CannabisProfile = field(default_factory=CannabisProfile)


# ---------------------------------------------------------------------------
# Article / listing / generic
# ---------------------------------------------------------------------------

@dataclass
class ArticleContent:
    body: str = ""
    html: str = ""
    excerpt: str = ""


@dataclass
class ArticleMetadata:
    byline: str | None = None
    site_name: str | None = None
    length: int = 0
    reading_time_minutes: int = 0
    published_time: str | None = None


@dataclass
class ArticleRecord(Record):
    content_type: ContentType = ContentType.ARTICLE
    content: ArticleContent = field(default_factory=ArticleContent)
    metadata: ArticleMetadata = field(default_factory=ArticleMetadata)


@dataclass
class ProductCard:
    """Coarse summary of one product tile on a listing page."""

    name: str
    price: str | None = None
    thc: str | None = None
    cbd: str | None = None
    weight: str | None = None


@dataclass
class ListingContent:
    body: str = ""
    item_count: int = 0
    products: list[ProductCard] = field(default_factory=list)


@dataclass
class ListingMetadata:
    description: str = ""
    keywords: str = ""
    listing_type: str = "product-catalog"


@dataclass
class ListingRecord(Record):
    content_type: ContentType = ContentType.LISTING
    content: ListingContent = field(default_factory=ListingContent)
    metadata: ListingMetadata = field(default_factory=ListingMetadata)


@dataclass
class GenericContent:
    body: str = ""


@dataclass
class GenericMetadata:
    description: str = ""
    keywords: str = ""


@dataclass
class GenericRecord(Record):
    content_type: ContentType = ContentType.GENERIC
    content: GenericContent = field(default_factory=GenericContent)
    metadata: GenericMetadata = field(default_factory=GenericMetadata)


# ---------------------------------------------------------------------------
# Crawling
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CrawlItem:
    url: str
    success: bool
    data: Record


@dataclass(frozen=True)
class CrawlError:
    url: str
    error: str


@dataclass(frozen=True)
class CrawlResult:
    base_url: str
    total_links_found: int
    links_processed: int
    successful: int
    errors: int
    results: tuple[CrawlItem, ...] = ()
    error_details: tuple[CrawlError, ...] = ()
    timestamp: str = ""

    def to_dict(self) -> dict[str, Any]:
        return _to_plain(self)

"""Cannabis retail product extraction.

Dispensary menus are commerce pages with a lot of extra vocabulary: strain
names and types, cannabinoid and terpene percentages, per-gram pricing and
stock counts.  The commerce fields are filled by
:func:`shelfscan.scraper.product.fill_product`; this module adds the
:class:`CannabisProfile` payload on top.

All measurements are parsed from visible page text, never from raw markup, so
class names and inline scripts cannot produce false readings.
"""

from __future__ import annotations

import logging
import re
from typing import Any
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from shelfscan.scraper.cascade import first_of
from shelfscan.scraper.models import (
    Availability,
    BulkPrice,
    CannabisProfile,
    CrawlResult,
    Dispensary,
    DomainPricing,
    DomainProductRecord,
    DomainReviews,
    Effects,
    Location,
    Measurement,
    Potency,
    ProductFacts,
    Range,
    Strain,
    Terpenes,
    Tracking,
)
from shelfscan.scraper.parsing import (
    OUNCE_IN_GRAMS,
    element_text,
    extract_price,
    page_text,
    parse_percentage,
    price_per_gram,
    stock_level,
)
from shelfscan.scraper.product import fill_product

logger = logging.getLogger(__name__)

DISPENSARY_NAMES = {
    "risecannabis.com": "RISE Cannabis",
    "curaleaf.com": "Curaleaf",
    "trulieve.com": "Trulieve",
    "greendot.com": "Green Dot",
    "cresco.com": "Cresco",
}

TERPENES = [
    "limonene", "myrcene", "pinene", "linalool", "caryophyllene",
    "humulene", "terpinolene", "ocimene", "bisabolol", "camphene",
]
DOMINANT_TERPENES = 3

EFFECTS = [
    "relaxing", "euphoric", "uplifting", "energizing", "calming", "creative",
    "focused", "happy", "sleepy", "hungry", "giggly", "talkative",
]

FLAVORS = [
    "citrus", "lemon", "berry", "grape", "sweet", "earthy", "pine",
    "diesel", "skunky", "spicy", "woody", "fruity", "floral", "herbal",
]

MINOR_CANNABINOIDS = ("cbg", "cbn", "thca", "cbda")

# Checked in order; the first family that appears in the text wins.
_FORM_PATTERNS = [
    re.compile(r"\b(flower|bud|pre-roll|joint|blunt)\b", re.I),
    re.compile(r"\b(concentrate|shatter|wax|live resin|rosin|hash|kief)\b", re.I),
    re.compile(r"\b(cartridge|vape|cart)\b", re.I),
    re.compile(r"\b(edible|gummy|gummies|chocolate|cookie|brownie|candy)\b", re.I),
    re.compile(r"\b(tincture|capsule|topical)\b", re.I),
]

_WEIGHT_PATTERNS = [
    re.compile(r"\b(?:weight|size)\s*:?\s*(\d+(?:\.\d+)?)\s*(grams?|g|ounces?|oz)\b", re.I),
    re.compile(r"\b(\d+(?:\.\d+)?)\s*(grams?|g|ounces?|oz|lbs?|pounds?)\b", re.I),
]

_STRAIN_TYPE_RE = re.compile(r"\b(indica|sativa|hybrid)\b", re.I)
_STRAIN_LABEL_RE = re.compile(r"\b(?:strain|variety)\s*:\s*([A-Za-z0-9'#][A-Za-z0-9 '#-]{1,48})", re.I)
_ALIASES_RE = re.compile(r"\b(?:aka|a\.k\.a\.|also known as)\s*:?\s*([^.;\n]+)", re.I)
_GENETICS_RE = re.compile(r"\b(?:genetics|lineage|cross)\s*:?\s*([^.;\n]+)", re.I)
_BREEDER_RE = re.compile(r"\b(?:bred by|breeder)\s*:?\s*([A-Z][\w&' -]{1,40})")
_HELPS_WITH_RE = re.compile(r"\bhelps with\s*:?\s*([^.;\n]+)", re.I)
_LAB_RE = re.compile(r"\b(?:tested by|testing lab|lab)\s*:\s*([A-Z][\w&' -]{1,60})")
_HARVEST_RE = re.compile(r"\bharvest(?:ed)?(?: date)?\s*:\s*([\d/.-]{6,10})", re.I)
_TEST_DATE_RE = re.compile(r"\b(?:test(?:ed)? date|date tested)\s*:\s*([\d/.-]{6,10})", re.I)
_BULK_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(g|grams?|oz|ounces?)\b.*?\$\s*(\d+(?:\.\d+)?)", re.I)
_QUANTITY_RE = re.compile(r"(\d+)\s*(?:left|available|in stock)")
_NUMBER = r"(\d+(?:\.\d+)?)"

_STRAIN_SELECTORS = [
    '[class*="strain"] h1',
    '[class*="strain"] h2',
    '[class*="strain"] h3',
    '[class*="strain-name"]',
    '[class*="product-name"]',
    '[class*="item-name"]',
    "h1",
]
_STOCK_SELECTORS = [
    '[class*="stock"], [class*="inventory"]',
    '[class*="available"], [class*="in-stock"]',
    '[class*="quantity"]',
]
_BATCH_SELECTORS = ['[class*="batch"], [id*="batch"]', '[class*="lot-"], [id*="lot-"]']
_ADDRESS_SELECTORS = ['[class*="address"]', "address", '[itemprop="streetAddress"]']
_MEMBER_PRICE_SELECTORS = ['[class*="member-price"]', '[class*="loyalty-price"]', '[class*="member"] [class*="price"]']


# ---------------------------------------------------------------------------
# Dispensary
# ---------------------------------------------------------------------------

def _host(url: str) -> str:
    host = (urlparse(url).hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


def dispensary_name(url: str) -> str | None:
    """Known chain name for the host, else the bare hostname."""
    host = _host(url)
    if not host:
        return None
    return DISPENSARY_NAMES.get(host, host)


def location_from_path(url: str) -> Location:
    """Infer state and city tokens from URL path segments.

    ``/dispensaries/<state>/<city>/...`` is preferred; otherwise the first
    two-letter segment is taken as the state.
    """
    segments = [s for s in urlparse(url).path.split("/") if s]
    location = Location()
    lowered = [s.lower() for s in segments]
    for marker in ("dispensaries", "dispensary"):
        if marker in lowered:
            rest = segments[lowered.index(marker) + 1:]
            if rest:
                location.state = rest[0].lower()
            if len(rest) > 1:
                location.city = rest[1].replace("-", " ").lower()
            return location
    for segment in segments:
        if len(segment) == 2 and segment.isalpha():
            location.state = segment.lower()
            break
    return location


def license_type(text: str) -> str | None:
    lowered = text.lower()
    medical = "medical" in lowered
    recreational = "recreational" in lowered or "adult-use" in lowered or "adult use" in lowered
    if medical and recreational:
        return "both"
    if medical:
        return "medical"
    if recreational:
        return "recreational"
    return None


def _menu_type(url: str) -> str | None:
    path = urlparse(url).path.lower()
    if "medical" in path:
        return "medical"
    if "recreational" in path or "adult-use" in path:
        return "recreational"
    return None


def extract_dispensary(soup: BeautifulSoup, text: str, url: str) -> Dispensary:
    dispensary = Dispensary(location=location_from_path(url) if url else Location())

    def name_from_page() -> str | None:
        for selector in ('h1[class*="dispensary"], h1[class*="store"]', '[class*="dispensary-name"], [class*="store-name"]'):
            name = re.sub(r"\s*\b(?:menu|dispensary|cannabis|marijuana)\b\s*", " ", element_text(soup.select_one(selector)), flags=re.I).strip()
            if len(name) > 2:
                return name
        return None

    dispensary.name = first_of("dispensary.name", [lambda: dispensary_name(url), name_from_page])
    for selector in _ADDRESS_SELECTORS:
        address = element_text(soup.select_one(selector))
        if address:
            dispensary.location.address = address
            break
    dispensary.license_type = license_type(text)
    dispensary.menu_type = _menu_type(url)
    return dispensary


# ---------------------------------------------------------------------------
# Strain
# ---------------------------------------------------------------------------

def strain_from_label(soup: BeautifulSoup, text: str) -> str | None:
    match = _STRAIN_LABEL_RE.search(text)
    return match.group(1).strip() if match else None


def strain_from_selectors(soup: BeautifulSoup, text: str) -> str | None:
    for selector in _STRAIN_SELECTORS:
        name = element_text(soup.select_one(selector))
        # "Blue Dream (Hybrid)" / "Blue Dream - Sativa" -> "Blue Dream"
        name = re.split(r"\s*(?:\(|\s-\s)\s*(?:indica|sativa|hybrid)", name, flags=re.I)[0].strip()
        if 2 < len(name) < 50:
            return name
    return None


def _split_names(raw: str) -> list[str]:
    parts = re.split(r"\s+x\s+|\s*×\s*|,|/", raw, flags=re.I)
    return [p.strip() for p in parts if 2 < len(p.strip()) < 50]


def extract_strain(soup: BeautifulSoup, text: str) -> Strain:
    strain = Strain()
    strain.name = first_of("strain.name", [strain_from_label, strain_from_selectors], soup, text)
    match = _STRAIN_TYPE_RE.search(text)
    strain.type = match.group(1).lower() if match else None
    match = _ALIASES_RE.search(text)
    strain.aliases = _split_names(match.group(1)) if match else []
    match = _GENETICS_RE.search(text)
    strain.genetics = _split_names(match.group(1)) if match else []
    match = _BREEDER_RE.search(text)
    strain.breeder = match.group(1).strip() if match else None
    return strain


# ---------------------------------------------------------------------------
# Potency
# ---------------------------------------------------------------------------

def _percentage_patterns(compound: str) -> list[re.Pattern[str]]:
    name = rf"\b{compound}\b"
    return [
        re.compile(rf"\btotal\s+{compound}\b\s*:?\s*{_NUMBER}\s*%", re.I),
        re.compile(rf"{name}\s*:?\s*{_NUMBER}\s*%", re.I),
        re.compile(rf"{_NUMBER}\s*%\s*{name}", re.I),
    ]


def _first_percentage(text: str, patterns: list[re.Pattern[str]]) -> float | None:
    for pattern in patterns:
        for match in pattern.finditer(text):
            value = parse_percentage(match.group(1))
            if value is not None:
                return value
    return None


def measure(text: str, compound: str) -> Measurement:
    """Percentage, milligram and range readings for one cannabinoid."""
    measurement = Measurement()
    measurement.percentage = _first_percentage(text, _percentage_patterns(compound))

    for pattern in (
        re.compile(rf"\b{compound}\b\s*:?\s*{_NUMBER}\s*mg\b", re.I),
        re.compile(rf"{_NUMBER}\s*mg\s*{compound}\b", re.I),
    ):
        match = pattern.search(text)
        if match:
            measurement.mg = float(match.group(1))
            break

    match = re.search(rf"\b{compound}\b\s*:?\s*{_NUMBER}\s*%?\s*(?:-|–|to)\s*{_NUMBER}\s*%", text, re.I)
    if match:
        low, high = parse_percentage(match.group(1)), parse_percentage(match.group(2))
        if low is not None and high is not None and low <= high:
            measurement.range = Range(min=low, max=high)
    return measurement


def terpene_profile(text: str) -> Terpenes:
    """Match every known terpene independently; dominant is the top three.

    Ties keep vocabulary order because :func:`sorted` is stable.
    """
    profile: dict[str, float] = {}
    for terpene in TERPENES:
        value = _first_percentage(text, [re.compile(rf"\b{terpene}\b\s*:?\s*{_NUMBER}\s*%", re.I)])
        if value is not None:
            profile[terpene] = value
    ranked = sorted(profile.items(), key=lambda item: item[1], reverse=True)
    return Terpenes(dominant=[name for name, _ in ranked[:DOMINANT_TERPENES]], profile=profile)


def extract_potency(text: str) -> Potency:
    potency = Potency(thc=measure(text, "thc"), cbd=measure(text, "cbd"))
    for compound in MINOR_CANNABINOIDS:
        value = _first_percentage(text, _percentage_patterns(compound))
        setattr(potency, compound, Measurement(percentage=value))
    potency.terpenes = terpene_profile(text)
    return potency


# ---------------------------------------------------------------------------
# Product facts / pricing / availability
# ---------------------------------------------------------------------------

def extract_weight(text: str) -> str | None:
    for pattern in _WEIGHT_PATTERNS:
        match = pattern.search(text)
        if match:
            return f"{match.group(1)}{match.group(2).lower()}"
    return None


def _regex_group(pattern: re.Pattern[str], text: str) -> str | None:
    match = pattern.search(text)
    return match.group(1).strip() if match else None


def extract_facts(soup: BeautifulSoup, text: str) -> ProductFacts:
    facts = ProductFacts()
    for pattern in _FORM_PATTERNS:
        match = pattern.search(text)
        if match:
            facts.form = match.group(1).lower()
            break
    facts.weight = extract_weight(text)
    for selector in _BATCH_SELECTORS:
        batch = element_text(soup.select_one(selector))
        if batch:
            facts.batch = batch
            break
    facts.lab = _regex_group(_LAB_RE, text)
    facts.harvest_date = _regex_group(_HARVEST_RE, text)
    facts.test_date = _regex_group(_TEST_DATE_RE, text)
    return facts


def bulk_pricing(soup: BeautifulSoup) -> list[BulkPrice]:
    tiers: list[BulkPrice] = []
    for element in soup.select('[class*="bulk"], [class*="quantity"]'):
        match = _BULK_RE.search(element_text(element))
        if not match:
            continue
        unit = "oz" if match.group(2).lower().startswith("o") else "g"
        tier = BulkPrice(quantity=float(match.group(1)), price=float(match.group(3)), unit=unit)
        if tier not in tiers:
            tiers.append(tier)
    return tiers


def extract_domain_pricing(soup: BeautifulSoup, record: DomainProductRecord, weight: str | None) -> DomainPricing:
    base = record.pricing
    pricing = DomainPricing(current_price=base.current_price, currency=base.currency)
    pricing.price_per_gram = price_per_gram(base.current_price, weight)
    if pricing.price_per_gram is not None:
        pricing.price_per_ounce = round(pricing.price_per_gram * OUNCE_IN_GRAMS, 2)
    if base.discount is not None:
        pricing.discounted_price = base.current_price
        pricing.discount_percentage = base.discount.percentage
    pricing.bulk_pricing = bulk_pricing(soup)
    for selector in _MEMBER_PRICE_SELECTORS:
        price = extract_price(element_text(soup.select_one(selector)) or None)
        if price:
            pricing.membership_price = price
            break
    return pricing


def extract_availability(soup: BeautifulSoup) -> Availability:
    availability = Availability()
    for selector in _STOCK_SELECTORS:
        element = soup.select_one(selector)
        if element is None:
            continue
        text = element_text(element).lower()
        if "out of stock" in text or "sold out" in text:
            availability.in_stock = False
        elif "in stock" in text or "available" in text:
            availability.in_stock = True
        match = _QUANTITY_RE.search(text)
        if match:
            availability.quantity_available = int(match.group(1))
            availability.stock_level = stock_level(availability.quantity_available)
        if availability.in_stock is not None or availability.quantity_available is not None:
            break
    return availability


# ---------------------------------------------------------------------------
# Effects / reviews
# ---------------------------------------------------------------------------

def _vocabulary_hits(text: str, vocabulary: list[str]) -> list[str]:
    lowered = text.lower()
    return [term for term in vocabulary if re.search(rf"\b{re.escape(term)}\b", lowered)]


def extract_effects(text: str) -> Effects:
    effects = Effects(
        reported_effects=_vocabulary_hits(text, EFFECTS),
        flavors=_vocabulary_hits(text, FLAVORS),
    )
    match = _HELPS_WITH_RE.search(text)
    if match:
        effects.medical_uses = [p.strip().lower() for p in re.split(r",|\band\b", match.group(1)) if p.strip()]
    return effects


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def extract_domain_product(html: str, soup: BeautifulSoup, source_url: str) -> DomainProductRecord:
    """Commerce record plus the cannabis profile for one product page."""
    record = fill_product(DomainProductRecord(), html, soup, source_url)
    text = page_text(soup)

    profile = CannabisProfile()
    profile.dispensary = first_of("domain.dispensary", [extract_dispensary], soup, text, source_url, default=Dispensary())
    profile.strain = first_of("domain.strain", [extract_strain], soup, text, default=Strain())
    profile.potency = first_of("domain.potency", [extract_potency], text, default=Potency())
    profile.product = first_of("domain.product", [extract_facts], soup, text, default=ProductFacts())
    profile.pricing = first_of(
        "domain.pricing", [extract_domain_pricing], soup, record, profile.product.weight, default=DomainPricing()
    )
    profile.availability = first_of("domain.availability", [extract_availability], soup, default=Availability())
    profile.effects = first_of("domain.effects", [extract_effects], text, default=Effects())
    profile.reviews = DomainReviews(
        rating=record.reviews.rating,
        review_count=record.reviews.count,
        top_effects=profile.effects.reported_effects[:3],
        helps_with=list(profile.effects.medical_uses),
    )
    profile.tracking = Tracking(
        first_seen=record.extraction_timestamp,
        last_updated=record.extraction_timestamp,
        source_url=source_url,
        extraction_timestamp=record.extraction_timestamp,
    )
    record.domain = profile
    return record


def collect_domain_products(crawl_result: CrawlResult) -> list[dict[str, Any]]:
    """Flatten the cannabis products of a crawl into one summary per URL."""
    products: list[dict[str, Any]] = []
    for item in crawl_result.results:
        if not item.success or not isinstance(item.data, DomainProductRecord):
            continue
        profile = item.data.to_dict()["domain"]
        products.append(
            {
                "url": item.url,
                "strain": profile["strain"],
                "potency": profile["potency"],
                "pricing": profile["pricing"],
                "product": profile["product"],
                "dispensary": profile["dispensary"],
                "availability": profile["availability"],
                "effects": profile["effects"],
                "reviews": profile["reviews"],
                "extracted_at": item.data.extraction_timestamp,
            }
        )
    logger.debug("Collected %d domain products from %s", len(products), crawl_result.base_url)
    return products

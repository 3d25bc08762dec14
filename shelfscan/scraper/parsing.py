"""Shared parsing helpers used by the classifier and every extractor.

Everything in here is pure: it reads strings or an already-parsed
BeautifulSoup document and never touches the network or a browser.
"""

from __future__ import annotations

import json
import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, Iterable

from bs4 import BeautifulSoup, Comment, Tag

from shelfscan.scraper.models import Discount, Header

logger = logging.getLogger(__name__)

OUNCE_IN_GRAMS = 28.35

_PRICE_RE = re.compile(r"\d[\d,]*(?:\.\d+)?")
_CURRENCY_RE = re.compile(r"[$€£¥₹]|USD|EUR|GBP|JPY|INR")
_WEIGHT_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(grams?|g|ounces?|oz)\b", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Numbers, money and units
# ---------------------------------------------------------------------------

def extract_price(text: Any) -> float | None:
    """Return the first decimal amount in *text*, ignoring currency symbols.

    >>> extract_price("$45.00")
    45.0
    >>> extract_price("Contact us") is None
    True
    """
    if text is None:
        return None
    match = _PRICE_RE.search(str(text))
    if not match:
        return None
    try:
        return float(match.group(0).replace(",", ""))
    except ValueError:
        return None


def extract_currency(text: str | None) -> str | None:
    """Return the currency symbol or ISO code found in *text*, if any."""
    if not text:
        return None
    match = _CURRENCY_RE.search(text)
    return match.group(0) if match else None


def convert_to_grams(weight: str | None) -> float | None:
    """Normalise a weight string to grams.

    Gram units pass through unchanged, ounce units are multiplied by
    :data:`OUNCE_IN_GRAMS`.  Anything else returns ``None``.
    """
    if not weight:
        return None
    match = _WEIGHT_RE.search(weight)
    if not match:
        return None
    value = float(match.group(1))
    unit = match.group(2).lower()
    if unit.startswith("g"):
        return value
    if unit.startswith("o"):
        return value * OUNCE_IN_GRAMS
    return None


def price_per_gram(price: float | None, weight: str | None) -> float | None:
    """Price divided by the normalised weight, rounded to 2 decimals."""
    if price is None:
        return None
    grams = convert_to_grams(weight)
    if not grams:
        return None
    return round(price / grams, 2)


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def compute_discount(current: float | None, original: float | None) -> Discount | None:
    """Derive a discount; never scraped directly.

    Returns ``None`` unless both prices are known and the original price is
    strictly greater than the current one.
    """
    if current is None or original is None or original <= current:
        return None
    amount = round(original - current, 2)
    return Discount(amount=amount, percentage=round_half_up(amount / original * 100))


def stock_level(quantity: int | None) -> str | None:
    """Bucket a raw stock quantity: ≤3 low, ≤10 medium, otherwise high."""
    if quantity is None:
        return None
    if quantity <= 3:
        return "low"
    if quantity <= 10:
        return "medium"
    return "high"


def parse_percentage(raw: Any) -> float | None:
    """Parse a percentage value, discarding anything outside 0–100."""
    if raw is None:
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if value < 0 or value > 100:
        return None
    return value


# ---------------------------------------------------------------------------
# Text
# ---------------------------------------------------------------------------

def clean_text(text: str | None) -> str:
    """Collapse runs of whitespace and strip."""
    if not text:
        return ""
    return _WHITESPACE_RE.sub(" ", text).strip()


def element_text(element: Tag | None) -> str:
    if element is None:
        return ""
    return clean_text(element.get_text(" "))


def page_text(soup: BeautifulSoup) -> str:
    """Visible-ish text of the whole document, scripts and styles excluded."""
    root = soup.body or soup
    parts = [
        s for s in root.find_all(string=True)
        if not isinstance(s, Comment)
        and s.parent is not None
        and s.parent.name not in ("script", "style", "noscript", "template")
    ]
    return clean_text(" ".join(parts))


def element_classes(element: Tag) -> str:
    classes = element.get("class") or []
    if isinstance(classes, str):
        return classes.lower()
    return " ".join(classes).lower()


def extract_headers(soup: BeautifulSoup | Tag, with_ids: bool = True) -> list[Header]:
    """Return every h1–h6 with more than two characters of text, in document order."""
    headers: list[Header] = []
    for element in soup.find_all(["h1", "h2", "h3", "h4", "h5", "h6"]):
        text = element_text(element)
        if len(text) > 2:
            headers.append(
                Header(
                    level=int(element.name[1]),
                    text=text,
                    id=element.get("id") if with_ids else None,
                )
            )
    return headers


def meta_content(soup: BeautifulSoup, **attrs: str) -> str:
    tag = soup.find("meta", attrs=attrs)
    if tag is None:
        return ""
    return (tag.get("content") or "").strip()


# ---------------------------------------------------------------------------
# Embedded structured data (JSON-LD)
# ---------------------------------------------------------------------------

def load_json_ld(soup: BeautifulSoup) -> list[dict[str, Any]]:
    """Return every JSON-LD entity in the document.

    Top-level arrays and ``@graph`` containers are flattened.  Blocks that are
    not valid JSON are skipped.
    """
    entities: list[dict[str, Any]] = []
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        raw = script.string or script.get_text()
        if not raw or not raw.strip():
            continue
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.debug("Skipping invalid JSON-LD block: %s", exc)
            continue
        entities.extend(_flatten_json_ld(data))
    return entities


def _flatten_json_ld(data: Any) -> Iterable[dict[str, Any]]:
    if isinstance(data, list):
        for item in data:
            yield from _flatten_json_ld(item)
    elif isinstance(data, dict):
        if isinstance(data.get("@graph"), list):
            yield from _flatten_json_ld(data["@graph"])
        else:
            yield data


def entity_types(entity: dict[str, Any]) -> list[str]:
    raw = entity.get("@type")
    if isinstance(raw, str):
        return [raw]
    if isinstance(raw, list):
        return [t for t in raw if isinstance(t, str)]
    return []


def find_entity(entities: list[dict[str, Any]], *types: str) -> dict[str, Any] | None:
    """Return the first entity whose ``@type`` is one of *types*."""
    wanted = set(types)
    for entity in entities:
        if wanted.intersection(entity_types(entity)):
            return entity
    return None


def utc_timestamp() -> str:
    """Current UTC time as an ISO-8601 string with a ``Z`` suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")

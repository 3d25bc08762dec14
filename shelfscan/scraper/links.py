"""Detail-link discovery and domain filtering for listing pages."""

from __future__ import annotations

import logging
import re
from typing import Literal
from urllib.parse import urldefrag, urljoin, urlparse

import tldextract
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

LinkFilter = Literal["all", "same-domain", "same-site"]

DETAIL_LINK_SELECTORS = [
    'a[href*="/product/"]',
    'a[href*="/strain/"]',
    'a[href*="/item/"]',
    '[class*="product"] a',
    '[class*="strain"] a',
    '[class*="item"] a',
    '[data-testid*="product"] a',
    ".product-card a",
    ".strain-card a",
    ".item-card a",
]

_SKIP_SCHEMES_RE = re.compile(r"^\s*(?:mailto|tel|javascript|data):", re.I)
_ASSET_RE = re.compile(r"\.(?:pdf|jpe?g|png|gif|webp|svg|ico|css|js|zip|mp4|mp3)$", re.I)
_BLOCKED_PATH_RE = re.compile(
    r"/(?:cart|checkout|login|signin|sign-in|register|signup|account|search|category|categories|brand|brands)(?:/|$)",
    re.I,
)
# Required of every candidate: class selectors alone also match `li.nav-item a`.
_PRODUCT_PATH_RE = re.compile(r"/(?:product|strain|item|cannabis|flower|concentrate|edible)/", re.I)

# Offline: the public-suffix snapshot bundled with tldextract, never fetched.
_extract = tldextract.TLDExtract(suffix_list_urls=())


def _resolve(href: str, base_url: str) -> str | None:
    if not href or _SKIP_SCHEMES_RE.match(href):
        return None
    url, _ = urldefrag(urljoin(base_url, href.strip()))
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    if _ASSET_RE.search(parsed.path) or _BLOCKED_PATH_RE.search(parsed.path):
        return None
    if not _PRODUCT_PATH_RE.search(parsed.path):
        return None
    return url


def discover_links(html: str, base_url: str) -> list[str]:
    """Absolute detail-page URLs found on *html*, in discovery order, no repeats."""
    soup = BeautifulSoup(html, "html.parser")
    links: list[str] = []
    seen: set[str] = set()
    for selector in DETAIL_LINK_SELECTORS:
        for anchor in soup.select(selector):
            url = _resolve(anchor.get("href") or "", base_url)
            if url and url not in seen and url.rstrip("/") != base_url.rstrip("/"):
                seen.add(url)
                links.append(url)
    logger.debug("Discovered %d detail links on %s", len(links), base_url)
    return links


def registrable_domain(host: str) -> str:
    """eTLD+1 of *host*; the host itself when it has no public suffix."""
    host = (host or "").lower()
    parts = _extract(host)
    domain = getattr(parts, "top_domain_under_public_suffix", None) or parts.registered_domain
    return domain or host


def filter_links_by_domain(links: list[str], base_url: str, policy: LinkFilter = "same-domain") -> list[str]:
    """Keep the links allowed by *policy*.

    ``same-domain`` compares exact hostnames; ``same-site`` compares the
    registrable domain, so ``shop.example.com`` and ``www.example.com`` match.
    """
    if policy == "all":
        return list(links)
    if policy not in ("same-domain", "same-site"):
        raise ValueError(f"Unknown link filter: {policy!r}")

    base_host = (urlparse(base_url).hostname or "").lower()
    kept: list[str] = []
    for link in links:
        host = (urlparse(link).hostname or "").lower()
        if not host:
            continue
        if policy == "same-domain" and host == base_host:
            kept.append(link)
        elif policy == "same-site" and registrable_domain(host) == registrable_domain(base_host):
            kept.append(link)
    return kept

"""Caller-side URL normalisation applied before a URL enters the pipeline."""

from __future__ import annotations

import re
from urllib.parse import urlsplit, urlunsplit

# Hosts that only answer reliably on their www. name.
WWW_HOSTS = frozenset({"nytimes.com", "washingtonpost.com", "cnn.com"})

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)


def normalize_url(url: str) -> str:
    """Default the scheme to ``https://`` and add ``www.`` for :data:`WWW_HOSTS`.

    >>> normalize_url("nytimes.com/section/food")
    'https://www.nytimes.com/section/food'
    >>> normalize_url("")
    ''
    """
    url = (url or "").strip()
    if not url:
        return ""
    if not _SCHEME_RE.match(url):
        url = "https://" + url.lstrip("/")
    parts = urlsplit(url)
    host = (parts.hostname or "").lower()
    if host in WWW_HOSTS:
        netloc = parts.netloc.lower().replace(host, f"www.{host}", 1)
        url = urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))
    return url

"""Exception taxonomy for the fetch / extract / crawl pipeline.

Only environment-level failures are fatal to a session.  Everything scoped to
a single page, field or link is caught where it happens and reported through
the result objects in :mod:`shelfscan.scraper.models`.
"""

from __future__ import annotations


class ShelfscanError(Exception):
    """Base class for all shelfscan errors."""


class EnvironmentSetupError(ShelfscanError):
    """The browser binary is missing and could not be installed."""


class BrowserLaunchError(ShelfscanError):
    """The browser process failed to start for a reason other than a missing binary."""


class NavigationError(ShelfscanError):
    """Navigation to a URL failed."""


class FetchTimeoutError(NavigationError):
    """A navigation or page operation exceeded its per-fetch timeout."""


class SelectorNotFoundError(ShelfscanError):
    """An optional wait-for-selector did not resolve in time."""


class ExtractionError(ShelfscanError):
    """A single field could not be extracted from a document."""

    def __init__(self, field_name: str, cause: BaseException | None = None) -> None:
        self.field_name = field_name
        self.cause = cause
        message = f"extraction of {field_name!r} failed"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class CrawlLinkError(ShelfscanError):
    """A discovered link could not be fetched or extracted."""

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(reason)

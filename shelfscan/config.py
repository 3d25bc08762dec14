"""Centralised settings for shelfscan.

All runtime configuration is resolved here in one place.  Values can be
overridden via environment variables or a `.env` file in the project root
(loaded automatically when this module is imported).

The hosting environment is detected once, at import time.  Constrained hosts
(App Service style sandboxes) get shorter timeouts, a shorter settle delay and
extra memory-pressure launch flags; everywhere else the more generous
defaults apply.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (two levels up from this file)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)

_CONSTRAINED_ENV_MARKERS = (
    "WEBSITE_SITE_NAME",
    "APPSETTING_WEBSITE_SITE_NAME",
    "WEBSITE_RESOURCE_GROUP",
)


def detect_constrained_environment() -> bool:
    """Return ``True`` when running on a memory/time constrained host."""
    if os.environ.get("SHELFSCAN_CONSTRAINED", "").lower() in ("1", "true", "yes"):
        return True
    return any(os.environ.get(marker) for marker in _CONSTRAINED_ENV_MARKERS)


_CONSTRAINED = detect_constrained_environment()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------
    constrained: bool = _CONSTRAINED

    @property
    def environment(self) -> str:
        """Label reported in fetch metrics."""
        return "constrained" if self.constrained else "standard"

    @property
    def extra_launch_args(self) -> list[str]:
        """Memory-pressure mitigation flags added on constrained hosts."""
        if self.constrained:
            return ["--memory-pressure-off", "--disable-extensions"]
        return []

    log_level: str = field(
        default_factory=lambda: os.environ.get("SHELFSCAN_LOG_LEVEL", "INFO")
    )

    # ------------------------------------------------------------------
    # Browser session
    # ------------------------------------------------------------------
    headless: bool = field(
        default_factory=lambda: _env_bool("SHELFSCAN_HEADLESS", True)
    )
    browser_install_timeout: float = field(
        default_factory=lambda: float(os.environ.get("BROWSER_INSTALL_TIMEOUT", "300"))
    )

    # ------------------------------------------------------------------
    # Page fetcher
    # ------------------------------------------------------------------
    fetch_timeout_ms: int = field(
        default_factory=lambda: int(
            os.environ.get("FETCH_TIMEOUT_MS", "25000" if _CONSTRAINED else "30000")
        )
    )
    fetch_wait_ms: int = field(
        default_factory=lambda: int(
            os.environ.get("FETCH_WAIT_MS", "3000" if _CONSTRAINED else "5000")
        )
    )
    navigation_settle_ms: int = field(
        default_factory=lambda: int(os.environ.get("NAVIGATION_SETTLE_MS", "2000"))
    )
    interstitial_settle_ms: int = field(
        default_factory=lambda: int(os.environ.get("INTERSTITIAL_SETTLE_MS", "1500"))
    )
    scroll_step_px: int = field(
        default_factory=lambda: int(os.environ.get("SCROLL_STEP_PX", "100"))
    )
    scroll_interval_ms: int = field(
        default_factory=lambda: int(os.environ.get("SCROLL_INTERVAL_MS", "100"))
    )
    scroll_max_steps: int = field(
        default_factory=lambda: int(os.environ.get("SCROLL_MAX_STEPS", "200"))
    )
    http_timeout: float = field(
        default_factory=lambda: float(os.environ.get("HTTP_TIMEOUT", "15.0"))
    )

    # ------------------------------------------------------------------
    # Crawler
    # ------------------------------------------------------------------
    # Batch size is a fixed politeness policy, not a tunable pool.
    crawl_batch_size: int = 3
    crawl_batch_delay: float = field(
        default_factory=lambda: float(os.environ.get("CRAWL_BATCH_DELAY", "1.0"))
    )
    crawl_max_links: int = field(
        default_factory=lambda: int(os.environ.get("CRAWL_MAX_LINKS", "10"))
    )
    crawl_timeout_ms: int = field(
        default_factory=lambda: int(os.environ.get("CRAWL_TIMEOUT_MS", "30000"))
    )


# Module-level singleton, import this everywhere:
#   from shelfscan.config import settings
settings = Settings()

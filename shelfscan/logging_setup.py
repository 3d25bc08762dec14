"""Process-wide logging configuration for the CLI and HTTP entry points."""

from __future__ import annotations

import logging

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | int = "INFO") -> None:
    """Install one stream handler on the ``shelfscan`` logger.

    Safe to call more than once; the handler is only added the first time.
    """
    logger = logging.getLogger("shelfscan")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logger.setLevel(level)
    if not any(getattr(h, "_shelfscan", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        handler._shelfscan = True  # type: ignore[attr-defined]
        logger.addHandler(handler)

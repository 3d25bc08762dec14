"""Field-level strategy cascade.

Each field is produced by an ordered list of *attempts*: small functions that
return a value or ``None``.  :func:`first_of` runs them in order and keeps the
first real value, so structured data beats DOM selectors and DOM selectors
beat full-text regexes without one monolithic function per field.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Sequence, TypeVar

from shelfscan.errors import ExtractionError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Attempt = Callable[..., Any]


def has_value(value: Any) -> bool:
    """``None``, empty strings and empty containers count as "no value"."""
    if value is None:
        return False
    if isinstance(value, (str, list, dict, tuple, set)):
        return len(value) > 0
    return True


def first_of(
    field_name: str,
    attempts: Sequence[Attempt],
    *args: Any,
    default: T | None = None,
) -> T | None:
    """Return the first value produced by *attempts*, called with *args*.

    An attempt that raises is logged as an :class:`ExtractionError` and
    treated as having produced nothing; the remaining attempts still run.
    """
    for attempt in attempts:
        try:
            value = attempt(*args)
        except Exception as exc:  # noqa: BLE001 - one field never aborts a record
            logger.warning("%s", ExtractionError(field_name, exc))
            continue
        if has_value(value):
            return value
    return default

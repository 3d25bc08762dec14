"""FastAPI HTTP layer package.

Public re-export so callers can write::

    from shelfscan.api import app

    uvicorn shelfscan.api:app --reload
"""

from shelfscan.api.app import app

__all__ = ["app"]

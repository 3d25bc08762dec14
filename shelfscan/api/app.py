"""FastAPI application factory.

A thin layer over :func:`shelfscan.service.extract_url`; validation is left to
pydantic.

Lifespan
--------
The browser session is created lazily on the first request and shared by all
requests via ``request.app.state.session``.  It is closed on shutdown.

Routes
------
POST /extract   Body: {"url": "...", "follow_links": false, ...}
GET  /health
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Literal, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from shelfscan.browser.session import BrowserSession, get_default_session
from shelfscan.config import settings
from shelfscan.logging_setup import configure_logging
from shelfscan.service import extract_url


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Attach the shared browser session; close it on shutdown."""
    configure_logging(settings.log_level)
    session = get_default_session()
    app.state.session = session
    try:
        yield
    finally:
        await session.close()


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class ExtractRequest(BaseModel):
    url: Optional[str] = None
    follow_links: bool = False
    max_links: int = Field(default=settings.crawl_max_links, ge=0, le=50)
    link_filter: Literal["all", "same-domain", "same-site"] = "same-domain"


def _session(request: Request) -> BrowserSession | None:
    return getattr(request.app.state, "session", None)


def create_app() -> FastAPI:
    """Return a fully-configured FastAPI application instance."""
    app = FastAPI(
        title="shelfscan API",
        description=(
            "Renders a URL in a headless browser, dismisses interstitials, "
            "classifies the page and returns its structured record, "
            "optionally crawling the detail pages it links to."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {"status": "healthy", "environment": settings.environment}

    @app.post("/extract")
    async def extract(body: ExtractRequest, request: Request) -> JSONResponse:
        """Fetch, classify and extract one URL."""
        if not body.url or not body.url.strip():
            return JSONResponse(status_code=400, content={"error": "URL is required"})
        payload = await extract_url(
            body.url,
            session=_session(request),
            follow_links=body.follow_links,
            max_links=body.max_links,
            link_filter=body.link_filter,
        )
        return JSONResponse(status_code=200 if payload["success"] else 502, content=payload)

    return app


# Module-level instance used by uvicorn:
#   uvicorn shelfscan.api.app:app --reload
app = create_app()

"""shelfscan CLI: entry-point for the fetch / extract / crawl pipeline.

Usage:
    python cli/main.py --help

Every command prints JSON to stdout:
    fetch     render a page and print the fetch result
    extract   render, classify and extract one URL (optionally crawl it)
    crawl     render a listing page and crawl its detail links
    links     list the detail links discovered on a page
    serve     run the HTTP API
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the project root is on sys.path so that `from shelfscan.xxx import ...`
# works when the CLI is invoked as `python cli/main.py` from any directory.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import asyncio
import json
from typing import Any, Optional

import typer

from shelfscan.config import settings
from shelfscan.errors import BrowserLaunchError, EnvironmentSetupError
from shelfscan.logging_setup import configure_logging

app = typer.Typer(
    name="shelfscan",
    help="Render, classify and extract structured records from web pages.",
    no_args_is_help=True,
)

LINK_FILTERS = ("all", "same-domain", "same-site")


@app.callback()
def main(
    log_level: str = typer.Option(settings.log_level, "--log-level", help="Logging level."),
) -> None:
    """Configure logging once for every command."""
    configure_logging(log_level)


def _echo_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))


def _check_filter(link_filter: str) -> None:
    if link_filter not in LINK_FILTERS:
        typer.echo(f"Unknown link filter {link_filter!r}. Use: {' | '.join(LINK_FILTERS)}", err=True)
        raise typer.Exit(2)


def _run(coro: Any) -> Any:
    """Run *coro*; browser environment failures exit with status 1."""
    try:
        return asyncio.run(coro)
    except (EnvironmentSetupError, BrowserLaunchError) as exc:
        typer.echo(f"Browser unavailable: {exc}", err=True)
        raise typer.Exit(1) from exc


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
@app.command("fetch")
def fetch(
    url: str = typer.Argument(..., help="URL to render."),
    selector: Optional[str] = typer.Option(None, "--wait-for", help="CSS selector to wait for."),
    popups: bool = typer.Option(True, "--popups/--no-popups", help="Dismiss interstitials."),
    scroll: bool = typer.Option(True, "--scroll/--no-scroll", help="Scroll to trigger lazy loading."),
    include_html: bool = typer.Option(False, "--html", help="Include the rendered HTML."),
) -> None:
    """Render URL in the browser and print the fetch result."""
    from shelfscan.browser import BrowserSession, FetchOptions, PageFetcher
    from shelfscan.urls import normalize_url

    async def _fetch() -> dict[str, Any]:
        async with BrowserSession() as session:
            options = FetchOptions(wait_for_selector=selector, handle_popups=popups, scroll_to_bottom=scroll)
            result = await PageFetcher(session).fetch(normalize_url(url), options)
        payload = result.to_dict()
        if not include_html:
            payload.pop("html", None)
        return payload

    payload = _run(_fetch())
    _echo_json(payload)
    if not payload["success"]:
        raise typer.Exit(1)


@app.command("extract")
def extract(
    url: str = typer.Argument(..., help="URL to extract."),
    follow_links: bool = typer.Option(False, "--follow-links", help="Crawl detail links too."),
    max_links: int = typer.Option(settings.crawl_max_links, "--max-links", help="Crawl limit."),
    link_filter: str = typer.Option("same-domain", "--link-filter", help="all | same-domain | same-site"),
) -> None:
    """Render, classify and extract URL into a structured record."""
    from shelfscan.browser import BrowserSession
    from shelfscan.service import extract_url

    _check_filter(link_filter)

    async def _extract() -> dict[str, Any]:
        async with BrowserSession() as session:
            return await extract_url(
                url,
                session=session,
                follow_links=follow_links,
                max_links=max_links,
                link_filter=link_filter,  # type: ignore[arg-type]
            )

    payload = _run(_extract())
    _echo_json(payload)
    if not payload["success"]:
        raise typer.Exit(1)


@app.command("crawl")
def crawl(
    url: str = typer.Argument(..., help="Listing page to crawl from."),
    max_links: int = typer.Option(settings.crawl_max_links, "--max-links", help="Crawl limit."),
    link_filter: str = typer.Option("same-domain", "--link-filter", help="all | same-domain | same-site"),
) -> None:
    """Crawl the detail pages linked from URL and print the crawl result."""
    from shelfscan.browser import BrowserSession, PageFetcher
    from shelfscan.scraper.crawler import CrawlOptions, LinkCrawler
    from shelfscan.urls import normalize_url

    _check_filter(link_filter)

    async def _crawl() -> dict[str, Any]:
        base_url = normalize_url(url)
        async with BrowserSession() as session:
            fetcher = PageFetcher(session)
            base = await fetcher.fetch(base_url)
            if not base.success:
                return {"success": False, "url": base_url, "error": base.error}
            result = await LinkCrawler(fetcher).crawl(
                base_url,
                base.html or "",
                CrawlOptions(max_links=max_links, link_filter=link_filter),  # type: ignore[arg-type]
            )
        return {"success": True, **result.to_dict()}

    payload = _run(_crawl())
    _echo_json(payload)
    if not payload["success"]:
        raise typer.Exit(1)


@app.command("links")
def links(
    url: str = typer.Argument(..., help="Page to scan for detail links."),
    link_filter: str = typer.Option("same-domain", "--link-filter", help="all | same-domain | same-site"),
    static: bool = typer.Option(False, "--static", help="Plain HTTP GET instead of the browser."),
) -> None:
    """List the detail links discovered on URL after domain filtering."""
    from shelfscan.browser import BrowserSession, PageFetcher, fetch_static
    from shelfscan.scraper.links import discover_links, filter_links_by_domain
    from shelfscan.urls import normalize_url

    _check_filter(link_filter)

    async def _links() -> dict[str, Any]:
        base_url = normalize_url(url)
        if static:
            result = await fetch_static(base_url)
        else:
            async with BrowserSession() as session:
                result = await PageFetcher(session).fetch(base_url)
        if not result.success:
            return {"success": False, "url": base_url, "error": result.error}
        found = discover_links(result.html or "", base_url)
        kept = filter_links_by_domain(found, base_url, link_filter)  # type: ignore[arg-type]
        return {"success": True, "url": base_url, "total_links_found": len(found), "links": kept}

    payload = _run(_links())
    _echo_json(payload)
    if not payload["success"]:
        raise typer.Exit(1)


@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address."),
    port: int = typer.Option(8000, help="Bind port."),
) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    uvicorn.run("shelfscan.api.app:app", host=host, port=port)


if __name__ == "__main__":
    app()

"""citescrape CLI: entry-point for scraping, search and research.

Usage:
    python cli/main.py --help

Commands:
    scrape    fetch a page and print clean, citation-annotated content
    search    query SearXNG (with developer-query rewriting)
    research  search, then scrape the top results
    history   list recent operations from the local history log
    serve     run the HTTP API with uvicorn
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the project root is on sys.path so that `from citescrape.xxx import ...`
# works when the CLI is invoked as `python cli/main.py` from any directory.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import asyncio
import json
import logging
from typing import Awaitable, Callable, Optional, TypeVar

import typer

from citescrape.config import settings
from citescrape.errors import CiteScrapeError
from citescrape.history import SQLiteHistory
from citescrape.scraper.formatter import render
from citescrape.search.formatting import render_search
from citescrape.search.models import SearchParams
from citescrape.service import ContentService, ScrapeRequest

T = TypeVar("T")

app = typer.Typer(
    name="citescrape",
    help="Fetch web pages as clean, bounded, citation-annotated content.",
    no_args_is_help=True,
)


def _build_service() -> ContentService:
    return ContentService.from_settings()


def _run(label: str, work: Callable[[ContentService], Awaitable[T]]) -> T:
    """Run *work* against a fresh service; map library errors to exit code 1."""

    async def runner() -> T:
        async with _build_service() as service:
            return await work(service)

    try:
        return asyncio.run(runner())
    except CiteScrapeError as exc:
        typer.echo(f"[{label}] Failed ({exc.kind}: {exc.reason}) {exc.message}", err=True)
        raise typer.Exit(1) from exc
    except ValueError as exc:
        typer.echo(f"[{label}] {exc}", err=True)
        raise typer.Exit(2) from exc


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level."),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


# ---------------------------------------------------------------------------
# Scrape
# ---------------------------------------------------------------------------
@app.command("scrape")
def scrape(
    url: str = typer.Option(..., help="URL to scrape."),
    max_chars: Optional[int] = typer.Option(
        None, help="Body character budget (100-50000). Defaults to MAX_CONTENT_CHARS."
    ),
    max_links: Optional[int] = typer.Option(
        None, help="Max entries in the Sources list (1-500). Defaults to MAX_LINKS."
    ),
    output_format: str = typer.Option("text", "--format", help="Output format: text | json."),
    all_links: bool = typer.Option(
        False, "--all-links", help="Collect links from the whole page, not just the content."
    ),
) -> None:
    """Scrape a URL and print its clean content with numbered citations."""
    typer.echo(f"[scrape] Fetching {url!r} …", err=True)
    request = ScrapeRequest(
        url=url,
        content_links_only=not all_links,
        max_links=max_links,
        max_chars=max_chars,
        output_format=output_format,
    )
    typer.echo(_run("scrape", lambda service: service.scrape_page(request)))


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------
@app.command("search")
def search(
    query: str = typer.Option(..., help="Search query."),
    engines: Optional[str] = typer.Option(None, help="Comma-separated SearXNG engines."),
    categories: str = typer.Option("general", help="Comma-separated SearXNG categories."),
    language: str = typer.Option("en", help="Language code, e.g. en or de."),
    safesearch: int = typer.Option(0, min=0, max=2, help="Safe search level 0-2."),
    time_range: str = typer.Option("", help="day | week | month | year."),
    pageno: int = typer.Option(1, min=1, help="Result page."),
    max_results: int = typer.Option(10, min=1, max=100, help="Results to show (1-100)."),
    output_format: str = typer.Option("text", "--format", help="Output format: text | json."),
) -> None:
    """Search the web through SearXNG."""
    try:
        params = SearchParams(
            engines=engines,
            categories=categories,
            language=language,
            safesearch=safesearch,
            time_range=time_range,
            pageno=pageno,
            max_results=max_results,
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    typer.echo(f"[search] Searching {query!r} …", err=True)
    response = _run("search", lambda service: service.search(query, params))
    if output_format == "json":
        typer.echo(json.dumps(response.to_dict(), indent=2, ensure_ascii=False))
    else:
        typer.echo(render_search(response, max_results))


# ---------------------------------------------------------------------------
# Research
# ---------------------------------------------------------------------------
@app.command("research")
def research(
    query: str = typer.Option(..., help="Research question / search query."),
    top_n: Optional[int] = typer.Option(
        None, min=1, max=20, help="Results to scrape. Defaults to RESEARCH_SCRAPE_TOP_N."
    ),
    max_chars: int = typer.Option(3000, help="Body character budget per page."),
    max_links: int = typer.Option(20, help="Max Sources entries per page."),
) -> None:
    """Search, then scrape the top results and print each page."""
    typer.echo(f"[research] Researching {query!r} …", err=True)
    report = _run("research", lambda service: service.research(query, top_n=top_n))

    typer.echo(render_search(report.search))
    for page in report.pages:
        typer.echo("=" * 72)
        typer.echo(render(page, "text", max_chars, max_links))
    if report.failures:
        typer.echo("=" * 72)
        typer.echo(f"[research] {len(report.failures)} page(s) could not be scraped:")
        for failure in report.failures:
            typer.echo(f"  {failure['url']}  ({failure['kind']}: {failure['reason']}) {failure['message']}")


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------
@app.command("history")
def history(
    limit: int = typer.Option(20, min=1, help="Entries to show."),
    kind: Optional[str] = typer.Option(None, help="Filter by kind: search | scrape."),
) -> None:
    """List recent scrapes and searches, newest first."""
    if not settings.history_enabled:
        typer.echo("[history] History logging is disabled (HISTORY_ENABLED=false).")
        raise typer.Exit(1)
    store = SQLiteHistory()
    try:
        entries = asyncio.run(store.recent(limit, kind=kind))
    finally:
        store.close()
    if not entries:
        typer.echo("[history] No entries yet.")
        return
    for entry in entries:
        stamp = entry.created_at.strftime("%Y-%m-%d %H:%M")
        typer.echo(f"  {stamp}  [{entry.kind}]  {entry.query!r}  {entry.summary}")


# ---------------------------------------------------------------------------
# Serve
# ---------------------------------------------------------------------------
@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address."),
    port: int = typer.Option(8000, help="Bind port."),
    reload: bool = typer.Option(False, help="Reload on code changes."),
) -> None:
    """Run the HTTP API."""
    import uvicorn

    uvicorn.run("citescrape.api.app:app", host=host, port=port, reload=reload)


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    app()

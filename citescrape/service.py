"""Request orchestration: cache -> gate -> fetch -> extract -> cache -> format.

:class:`ContentService` owns the shared components (HTTP client, concurrency
gate, caches, history sink) and is the only thing the HTTP app and the CLI
talk to.  Construct one per process and pass it around; tests build fresh
instances with their own caches and gate.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

import httpx

from citescrape.config import settings
from citescrape.errors import CacheUnavailable, CiteScrapeError
from citescrape.history import HistoryEntry, HistorySink, SQLiteHistory
from citescrape.scraper.cache import TTLCache, fetch_key, search_key
from citescrape.scraper.extractor import extract
from citescrape.scraper.fetcher import Fetcher
from citescrape.scraper.formatter import OUTPUT_FORMATS, render
from citescrape.scraper.gate import ConcurrencyGate
from citescrape.scraper.models import ExtractionResult
from citescrape.search.models import SearchExtras, SearchParams, SearchResponse, SearchResult
from citescrape.search.query_rewriter import QueryRewriter
from citescrape.search.searxng import SearxngClient

logger = logging.getLogger(__name__)

DUPLICATE_WINDOW_HOURS = 6.0


@dataclass
class ScrapeRequest:
    url: str
    content_links_only: bool = True
    max_links: Optional[int] = None
    max_chars: Optional[int] = None
    output_format: str = "text"


@dataclass
class ResearchReport:
    """A search plus extractions of its top results."""

    query: str
    search: SearchResponse
    pages: List[ExtractionResult] = field(default_factory=list)
    failures: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _time_ago(then: datetime, now: datetime) -> str:
    minutes = max(0, int((now - then).total_seconds() // 60))
    if minutes >= 60:
        hours = minutes // 60
        return f"{hours} hour{'' if hours == 1 else 's'} ago"
    return f"{minutes} minute{'' if minutes == 1 else 's'} ago"


class ContentService:
    """Composes fetching, extraction, formatting, search and history."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        gate: Optional[ConcurrencyGate] = None,
        scrape_cache: Optional[TTLCache[ExtractionResult]] = None,
        search_cache: Optional[TTLCache[List[SearchResult]]] = None,
        fetcher: Optional[Fetcher] = None,
        searxng: Optional[SearxngClient] = None,
        history: Optional[HistorySink] = None,
        rewriter: Optional[QueryRewriter] = None,
    ) -> None:
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            follow_redirects=True, timeout=settings.request_timeout
        )
        self.gate = gate or ConcurrencyGate(settings.outbound_concurrency)
        if scrape_cache is None:
            scrape_cache = TTLCache(
                settings.scrape_cache_ttl, settings.scrape_cache_capacity, name="scrape"
            )
        if search_cache is None:
            search_cache = TTLCache(
                settings.search_cache_ttl, settings.search_cache_capacity, name="search"
            )
        self.scrape_cache = scrape_cache
        self.search_cache = search_cache
        self.fetcher = fetcher or Fetcher(self.client, self.gate)
        self.searxng = searxng or SearxngClient(self.client, self.gate)
        self.history = history
        self.rewriter = rewriter or QueryRewriter()
        self._pending: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls) -> "ContentService":
        """Service wired from :data:`settings`, with SQLite history if enabled."""
        history = SQLiteHistory() if settings.history_enabled else None
        return cls(history=history)

    async def __aenter__(self) -> "ContentService":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Cache access (CacheUnavailable is never fatal)
    # ------------------------------------------------------------------

    @staticmethod
    def _lookup(cache: TTLCache, key: str) -> Any:
        try:
            return cache.lookup(key)
        except CacheUnavailable as exc:
            logger.warning("%s cache unavailable, treating as miss: %s", cache.name, exc.message)
            return None

    @staticmethod
    def _store(cache: TTLCache, key: str, value: Any) -> None:
        try:
            cache.store(key, value)
        except CacheUnavailable as exc:
            logger.warning("%s cache unavailable, result not stored: %s", cache.name, exc.message)

    # ------------------------------------------------------------------
    # History (fire-and-forget)
    # ------------------------------------------------------------------

    def _notify(self, entry: HistoryEntry) -> None:
        if self.history is None:
            return
        task = asyncio.create_task(self._record(self.history, entry))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _record(self, history: HistorySink, entry: HistoryEntry) -> None:
        try:
            await history.record(entry)
        except Exception as exc:
            logger.warning("History logging failed for %s %r: %s", entry.kind, entry.query, exc)

    async def _duplicate_warning(self, query: str) -> Optional[str]:
        if self.history is None:
            return None
        try:
            entry = await self.history.find_recent(query, DUPLICATE_WINDOW_HOURS)
        except Exception as exc:
            logger.warning("History lookup failed for %r: %s", query, exc)
            return None
        if entry is None:
            return None
        ago = _time_ago(entry.created_at, datetime.now(timezone.utc))
        logger.info("Similar search %r found from %s", entry.query, ago)
        return (
            f"Similar search '{entry.query}' was run {ago}. "
            "Consider checking history first."
        )

    # ------------------------------------------------------------------
    # Scraping
    # ------------------------------------------------------------------

    async def scrape(self, url: str, content_links_only: bool = True) -> ExtractionResult:
        """Return the (cached or fresh) extraction of *url*.

        Raises:
            TransientFetchError: Retries exhausted.
            PermanentFetchError: Non-retryable fetch failure.
            ParseFailure: The payload is not parseable HTML.
        """
        key = fetch_key(url, content_links_only)
        result = self._lookup(self.scrape_cache, key)
        if result is not None:
            logger.info("Scrape cache hit for %s", url)
        else:
            raw = await self.fetcher.fetch(url)
            result = extract(
                raw.html,
                raw.final_url or raw.url,
                content_links_only=content_links_only,
                status_code=raw.status_code,
                content_type=raw.content_type or "text/html",
                fetched_at=datetime.now(timezone.utc).isoformat(timespec="seconds"),
            )
            self._store(self.scrape_cache, key, result)

        self._notify(
            HistoryEntry(
                kind="scrape",
                query=url,
                summary=f"{result.title or 'No Title'} ({result.word_count} words)",
                payload=result.to_dict(),
                domain=result.domain,
            )
        )
        return result

    async def scrape_page(self, request: ScrapeRequest) -> str:
        """Scrape and render according to *request*.

        Raises:
            ValueError: If ``output_format`` is not ``text`` or ``json``.
        """
        if request.output_format not in OUTPUT_FORMATS:
            raise ValueError(
                f"Unknown output format {request.output_format!r}; "
                f"expected one of {OUTPUT_FORMATS}"
            )
        result = await self.scrape(request.url, request.content_links_only)
        return render(result, request.output_format, request.max_chars, request.max_links)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search(self, query: str, params: Optional[SearchParams] = None) -> SearchResponse:
        """Search via SearXNG with developer-query rewriting and caching.

        Raises:
            ValueError: If *query* is blank.
            SearchError: If the aggregator fails.
        """
        query = query.strip()
        if not query:
            raise ValueError("query must not be empty")
        params = params or SearchParams()

        duplicate = await self._duplicate_warning(query)
        rewrite = self.rewriter.rewrite(query)
        key = search_key(query, params.cache_items())

        cached = self._lookup(self.search_cache, key)
        if cached is not None:
            logger.info("Search cache hit for %r", query)
            results: List[SearchResult] = cached
            extras = SearchExtras()
        else:
            results, extras = await self.searxng.search(rewrite.best_query, params)
            self._store(self.search_cache, key, results)
        extras.query_rewrite = rewrite
        extras.duplicate_warning = duplicate

        shown = results[: params.max_results]
        self._notify(
            HistoryEntry(
                kind="search",
                query=query,
                summary=f"{len(results)} result(s)",
                payload={"results": [asdict(r) for r in shown]},
            )
        )
        return SearchResponse(query=query, results=shown, extras=extras, cached=cached is not None)

    async def research(
        self,
        query: str,
        top_n: Optional[int] = None,
        params: Optional[SearchParams] = None,
    ) -> ResearchReport:
        """Search, then scrape the top *top_n* results concurrently.

        Individual scrape failures are collected in ``failures``; only the
        search itself can fail the call.
        """
        top_n = settings.research_top_n if top_n is None else top_n
        response = await self.search(query, params)
        targets = response.results[: max(0, top_n)]
        outcomes = await asyncio.gather(
            *(self.scrape(result.url) for result in targets), return_exceptions=True
        )

        report = ResearchReport(query=query, search=response)
        for target, outcome in zip(targets, outcomes):
            if isinstance(outcome, CiteScrapeError):
                logger.warning("Research scrape of %s failed: %s", target.url, outcome.message)
                report.failures.append({**outcome.to_dict(), "url": target.url})
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                report.pages.append(outcome)
        return report

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        """Wait for pending history writes, then release owned resources."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        if self._owns_client:
            await self.client.aclose()
        close = getattr(self.history, "close", None)
        if callable(close):
            close()

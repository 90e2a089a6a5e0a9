"""SearXNG JSON client.

The aggregator is treated as a black box: one ``GET {base}/search?format=json``
per attempt, under a slot of the shared concurrency gate, with the same
explicit retry loop the page fetcher uses.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
from urllib.parse import urlparse

import httpx

from citescrape.config import settings
from citescrape.errors import SearchError
from citescrape.scraper.gate import ConcurrencyGate
from citescrape.scraper.retry import RetryPolicy, RetryState
from citescrape.search.models import SearchExtras, SearchParams, SearchResult

logger = logging.getLogger(__name__)

_HEADERS = {
    "Accept": "application/json",
    "User-Agent": "citescrape/0.1",
}

# Searches are interactive; keep their backoff short.
DEFAULT_SEARCH_POLICY = RetryPolicy(max_attempts=3, base_delay=0.2, max_delay=2.0, total_budget=4.0)


# ---------------------------------------------------------------------------
# Result classification
# ---------------------------------------------------------------------------

_SOURCE_TYPES: List[Tuple[str, Tuple[str, ...]]] = [
    (
        "docs",
        (
            "docs.rs",
            "readthedocs",
            "rust-lang.org",
            "developer.mozilla.org",
            "learn.microsoft.com",
            "man7.org",
            "devdocs.io",
            "docs.python.org",
        ),
    ),
    ("repo", ("github.com", "gitlab.com", "bitbucket.org", "codeberg.org")),
    ("blog", ("news", "blog", "medium.com", "dev.to", "hackernews", "reddit.com", "thenewstack.io")),
    ("video", ("youtube.com", "vimeo.com")),
    ("qa", ("stackoverflow.com", "stackexchange.com")),
    ("package", ("crates.io", "npmjs.com", "pypi.org")),
    ("gaming", ("steam", "facepunch", "game")),
]


def classify_search_result(url: str) -> Tuple[Optional[str], str]:
    """Return ``(domain, source_type)`` for a result URL."""
    domain = urlparse(url).hostname
    if not domain:
        return None, "other"
    lowered = domain.lower()
    if lowered.endswith(".github.io"):
        return domain, "docs"
    for source_type, needles in _SOURCE_TYPES:
        if any(needle in lowered for needle in needles):
            return domain, source_type
    return domain, "other"


# ---------------------------------------------------------------------------
# Payload parsing
# ---------------------------------------------------------------------------

def _strings(value: Any, key: str = "") -> List[str]:
    """Flatten a SearXNG list of strings or ``{key: ...}`` objects."""
    if not isinstance(value, list):
        return []
    out: List[str] = []
    for item in value:
        if isinstance(item, str) and item.strip():
            out.append(item.strip())
        elif isinstance(item, dict) and key and isinstance(item.get(key), str):
            out.append(item[key].strip())
    return out


def _unresponsive(value: Any) -> List[str]:
    # Either [[engine, reason], ...] or {engine: reason}.
    if isinstance(value, dict):
        return [str(name) for name in value]
    if isinstance(value, list):
        names = []
        for item in value:
            if isinstance(item, (list, tuple)) and item:
                names.append(str(item[0]))
            elif isinstance(item, str):
                names.append(item)
        return names
    return []


def parse_results(data: Dict[str, Any]) -> List[SearchResult]:
    """De-duplicate by URL and classify the raw ``results`` array."""
    results: List[SearchResult] = []
    seen: set[str] = set()
    for item in data.get("results") or []:
        if not isinstance(item, dict):
            continue
        url = item.get("url")
        if not isinstance(url, str) or not url or url in seen:
            continue
        seen.add(url)
        domain, source_type = classify_search_result(url)
        score = item.get("score")
        results.append(
            SearchResult(
                url=url,
                title=str(item.get("title") or ""),
                content=str(item.get("content") or ""),
                engine=item.get("engine"),
                score=float(score) if isinstance(score, (int, float)) else None,
                domain=domain,
                source_type=source_type,
            )
        )
    return results


def parse_extras(data: Dict[str, Any]) -> SearchExtras:
    total = data.get("number_of_results")
    return SearchExtras(
        answers=_strings(data.get("answers"), "answer"),
        suggestions=_strings(data.get("suggestions")),
        corrections=_strings(data.get("corrections")),
        unresponsive_engines=_unresponsive(data.get("unresponsive_engines")),
        number_of_results=int(total) if isinstance(total, (int, float)) else 0,
    )


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class SearxngClient:
    """Queries a SearXNG instance with bounded retries."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        gate: ConcurrencyGate,
        base_url: Optional[str] = None,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._client = client
        self.gate = gate
        self.base_url = (base_url or settings.searxng_url).rstrip("/")
        self.policy = policy or DEFAULT_SEARCH_POLICY
        self._sleep = sleep
        self._clock = clock
        self._rng = rng or random.Random()

    async def search(
        self, query: str, params: Optional[SearchParams] = None
    ) -> Tuple[List[SearchResult], SearchExtras]:
        """Run *query* and return ``(results, extras)``.

        Raises:
            SearchError: On a permanent failure, or once retries run out
                (``retryable=True`` in that case).
        """
        params = params or SearchParams()
        state = RetryState()
        started = self._clock()

        while True:
            try:
                async with self.gate.slot():
                    data = await self._attempt(query, params)
                break
            except SearchError as exc:
                if not exc.retryable:
                    logger.warning("SearXNG search for %r failed: %s", query, exc.message)
                    raise
                state.last_error = exc
                state.next_delay = self.policy.backoff(state.attempt, self._rng)
                attempts = state.attempt + 1
                if not state.can_retry(self.policy, self._clock() - started):
                    logger.warning(
                        "Giving up on SearXNG search %r after %d attempt(s)", query, attempts
                    )
                    raise SearchError(
                        f"{exc.message} (gave up after {attempts} attempt(s))",
                        reason=exc.reason,
                        url=exc.url,
                        status_code=exc.status_code,
                        retryable=True,
                    ) from exc
                logger.info(
                    "SearXNG attempt %d/%d failed (%s); retrying in %.2fs",
                    attempts,
                    self.policy.max_attempts,
                    exc.reason,
                    state.next_delay,
                )
            await self._sleep(state.next_delay)
            state.attempt += 1

        results = parse_results(data)
        logger.info("SearXNG returned %d result(s) for %r", len(results), query)
        return results, parse_extras(data)

    async def _attempt(self, query: str, params: SearchParams) -> Dict[str, Any]:
        url = f"{self.base_url}/search"
        try:
            response = await self._client.get(url, params=params.to_query(query), headers=_HEADERS)
        except httpx.TimeoutException as exc:
            raise SearchError(
                f"SearXNG request timed out: {exc!r}", reason="timeout", url=url, retryable=True
            ) from exc
        except httpx.TransportError as exc:
            raise SearchError(
                f"Failed to reach SearXNG at {self.base_url}: {exc!r}",
                reason="connection",
                url=url,
                retryable=True,
            ) from exc

        status = response.status_code
        if status >= 500 or status == 429:
            raise SearchError(
                f"SearXNG returned HTTP {status}",
                reason="rate_limited" if status == 429 else "server_error",
                url=url,
                status_code=status,
                retryable=True,
            )
        if status == 403:
            raise SearchError(
                "SearXNG refused the request (HTTP 403); is the json format enabled "
                "under search.formats in settings.yml?",
                reason="blocked",
                url=url,
                status_code=status,
            )
        if status >= 400:
            raise SearchError(
                f"SearXNG rejected the request with HTTP {status}: {response.text[:200]}",
                reason="client_error",
                url=url,
                status_code=status,
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise SearchError(
                "SearXNG returned a malformed JSON payload",
                reason="unparseable",
                url=url,
                status_code=status,
                retryable=True,
            ) from exc
        if not isinstance(data, dict):
            raise SearchError(
                "SearXNG returned an unexpected JSON payload",
                reason="unparseable",
                url=url,
                status_code=status,
                retryable=True,
            )
        return data

"""Async HTTP fetcher with bounded retry and admission control.

One call to :meth:`Fetcher.fetch` is one logical request.  Each attempt
takes a slot from the shared :class:`~citescrape.scraper.gate.ConcurrencyGate`
and gives it back before any backoff sleep, so the gate's ceiling always
counts live network operations only.
"""

from __future__ import annotations

import asyncio
import logging
import random
import socket
import ssl
import time
from typing import Awaitable, Callable, Dict, Optional
from urllib.parse import urlparse

import httpx

from citescrape.config import settings
from citescrape.errors import FetchError, PermanentFetchError, TransientFetchError
from citescrape.scraper.gate import ConcurrencyGate
from citescrape.scraper.models import RawPage
from citescrape.scraper.retry import RetryPolicy, RetryState

logger = logging.getLogger(__name__)

_USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:123.0) Gecko/20100101 Firefox/123.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.3 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
]

_ACCEPT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "DNT": "1",
    "Upgrade-Insecure-Requests": "1",
}

_HTML_TYPES = {"text/html", "application/xhtml+xml"}

_DNS_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "name resolution",
    "no address associated",
)
_TLS_MARKERS = ("ssl", "certificate", "tls")

_MAX_RETRY_AFTER = 30.0


# ---------------------------------------------------------------------------
# Classification helpers
# ---------------------------------------------------------------------------

def _connect_failure_reason(exc: BaseException) -> str:
    """Return ``dns``, ``tls`` or ``connection`` for a connect-phase error."""
    seen: Optional[BaseException] = exc
    while seen is not None:
        if isinstance(seen, socket.gaierror):
            return "dns"
        if isinstance(seen, ssl.SSLError):
            return "tls"
        seen = seen.__cause__ or seen.__context__
    message = str(exc).lower()
    if any(marker in message for marker in _DNS_MARKERS):
        return "dns"
    if any(marker in message for marker in _TLS_MARKERS):
        return "tls"
    return "connection"


def _client_error_reason(status: int) -> str:
    if status in (401, 403, 451):
        return "blocked"
    if status in (404, 410):
        return "not_found"
    return "client_error"


def _retry_after(headers: Dict[str, str]) -> Optional[float]:
    value = headers.get("retry-after", "").strip()
    if not value:
        return None
    try:
        return min(max(float(value), 0.0), _MAX_RETRY_AFTER)
    except ValueError:
        return None


def _validate_url(url: str) -> None:
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise PermanentFetchError(
            f"Invalid URL {url!r}: only absolute http(s) URLs are supported",
            reason="invalid_url",
            url=url,
        )


# ---------------------------------------------------------------------------
# Fetcher
# ---------------------------------------------------------------------------

class Fetcher:
    """Performs GET requests with timeout, classification and backoff."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        gate: ConcurrencyGate,
        policy: Optional[RetryPolicy] = None,
        timeout: Optional[float] = None,
        max_bytes: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._client = client
        self.gate = gate
        self.policy = policy or RetryPolicy.from_settings()
        self.timeout = settings.request_timeout if timeout is None else timeout
        self.max_bytes = settings.fetch_max_bytes if max_bytes is None else max_bytes
        self._sleep = sleep
        self._clock = clock
        self._rng = rng or random.Random()

    async def fetch(self, url: str) -> RawPage:
        """Fetch *url* and return a :class:`RawPage`.

        Raises:
            PermanentFetchError: On the first non-retryable failure.
            TransientFetchError: Once the retry budget is exhausted.
        """
        _validate_url(url)
        state = RetryState()
        started = self._clock()

        while True:
            try:
                async with self.gate.slot():
                    return await self._attempt(url)
            except TransientFetchError as exc:
                state.last_error = exc
                if exc.retry_after is not None:
                    state.next_delay = exc.retry_after
                else:
                    state.next_delay = self.policy.backoff(state.attempt, self._rng)
                attempts = state.attempt + 1
                if not state.can_retry(self.policy, self._clock() - started):
                    logger.warning(
                        "Giving up on %s after %d attempt(s): %s", url, attempts, exc.message
                    )
                    raise TransientFetchError(
                        f"{exc.message} (gave up after {attempts} attempt(s))",
                        reason=exc.reason,
                        url=url,
                        status_code=exc.status_code,
                        attempts=attempts,
                    ) from exc
                logger.info(
                    "Transient failure for %s (attempt %d/%d, %s); retrying in %.2fs",
                    url,
                    attempts,
                    self.policy.max_attempts,
                    exc.reason,
                    state.next_delay,
                )
            except FetchError as exc:
                exc.attempts = state.attempt + 1
                logger.warning("Permanent failure for %s: %s", url, exc.message)
                raise

            await self._sleep(state.next_delay)
            state.attempt += 1

    async def _attempt(self, url: str) -> RawPage:
        """Issue a single GET; raise a classified FetchError on failure."""
        headers = {"User-Agent": self._rng.choice(_USER_AGENTS), **_ACCEPT_HEADERS}
        try:
            async with self._client.stream(
                "GET", url, headers=headers, timeout=self.timeout
            ) as response:
                status = response.status_code
                resp_headers = {k.lower(): v for k, v in response.headers.items()}
                self._check_status(url, status, resp_headers)
                self._check_content_type(url, status, resp_headers)
                body = await self._read_body(url, response, resp_headers)
                final_url = str(response.url)
        except httpx.TimeoutException as exc:
            raise TransientFetchError(
                f"Timed out fetching {url}", reason="timeout", url=url
            ) from exc
        except httpx.TooManyRedirects as exc:
            raise PermanentFetchError(
                f"Too many redirects for {url}", reason="redirect_loop", url=url
            ) from exc
        except (httpx.UnsupportedProtocol, httpx.InvalidURL) as exc:
            raise PermanentFetchError(
                f"Invalid URL {url!r}: {exc}", reason="invalid_url", url=url
            ) from exc
        except httpx.ConnectError as exc:
            reason = _connect_failure_reason(exc)
            if reason == "connection":
                raise TransientFetchError(
                    f"Connection to {url} failed: {exc}", reason=reason, url=url
                ) from exc
            label = "DNS lookup" if reason == "dns" else "TLS handshake"
            raise PermanentFetchError(
                f"{label} failed for {url}: {exc}", reason=reason, url=url
            ) from exc
        except httpx.TransportError as exc:
            raise TransientFetchError(
                f"Network error fetching {url}: {exc!r}", reason="connection", url=url
            ) from exc

        return RawPage(
            url=url,
            status_code=status,
            content=body,
            headers=resp_headers,
            final_url=final_url,
        )

    @staticmethod
    def _check_status(url: str, status: int, headers: Dict[str, str]) -> None:
        if status == 429:
            raise TransientFetchError(
                f"Rate limited by {url} (HTTP 429)",
                reason="rate_limited",
                url=url,
                status_code=status,
                retry_after=_retry_after(headers),
            )
        if status >= 500:
            raise TransientFetchError(
                f"Server error from {url} (HTTP {status})",
                reason="server_error",
                url=url,
                status_code=status,
            )
        if status >= 400:
            raise PermanentFetchError(
                f"HTTP {status} from {url}",
                reason=_client_error_reason(status),
                url=url,
                status_code=status,
            )
        if not 200 <= status < 300:
            raise PermanentFetchError(
                f"Unexpected HTTP {status} from {url}",
                reason="unexpected_status",
                url=url,
                status_code=status,
            )

    @staticmethod
    def _check_content_type(url: str, status: int, headers: Dict[str, str]) -> None:
        media = headers.get("content-type", "").split(";", 1)[0].strip().lower()
        if media and media not in _HTML_TYPES:
            raise PermanentFetchError(
                f"Unsupported content type {media!r} for {url}",
                reason="unsupported_content",
                url=url,
                status_code=status,
            )

    async def _read_body(
        self, url: str, response: httpx.Response, headers: Dict[str, str]
    ) -> bytes:
        declared = headers.get("content-length", "")
        if declared.isdigit() and int(declared) > self.max_bytes:
            raise PermanentFetchError(
                f"Response from {url} is too large ({declared} bytes)",
                reason="too_large",
                url=url,
                status_code=response.status_code,
            )
        chunks: list[bytes] = []
        size = 0
        async for chunk in response.aiter_bytes():
            size += len(chunk)
            if size > self.max_bytes:
                raise PermanentFetchError(
                    f"Response from {url} exceeds {self.max_bytes} bytes",
                    reason="too_large",
                    url=url,
                    status_code=response.status_code,
                )
            chunks.append(chunk)
        return b"".join(chunks)

"""Failure taxonomy shared by the fetch, extraction and search layers.

Every fatal error carries a ``kind`` (which family it belongs to) and a
``reason`` (why it happened, e.g. ``timeout`` or ``blocked``) so transports
can render a precise message without inspecting exception chains.
"""

from __future__ import annotations

from typing import Any, Optional


class CiteScrapeError(Exception):
    """Base class for every error raised by citescrape."""

    kind = "error"
    retryable = False

    def __init__(
        self,
        message: str,
        *,
        reason: str = "unknown",
        url: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.reason = reason
        self.url = url
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        """Return the ``{kind, reason, message}`` record surfaced to callers."""
        payload: dict[str, Any] = {
            "kind": self.kind,
            "reason": self.reason,
            "message": self.message,
        }
        if self.url:
            payload["url"] = self.url
        if self.status_code is not None:
            payload["status_code"] = self.status_code
        return payload


class FetchError(CiteScrapeError):
    """A page could not be retrieved."""

    kind = "fetch"

    def __init__(
        self,
        message: str,
        *,
        attempts: int = 1,
        retry_after: Optional[float] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.attempts = attempts
        self.retry_after = retry_after


class TransientFetchError(FetchError):
    """Timeout, connection reset, 5xx or rate limiting.

    Raised by the fetcher only once its retry budget is exhausted.
    """

    kind = "transient_fetch"
    retryable = True


class PermanentFetchError(FetchError):
    """4xx (other than 429), DNS/TLS failure or a non-HTML payload."""

    kind = "permanent_fetch"


class ParseFailure(CiteScrapeError):
    """The payload cannot be parsed as HTML at all."""

    kind = "parse"

    def __init__(self, message: str, **kwargs: Any) -> None:
        kwargs.setdefault("reason", "unparseable")
        super().__init__(message, **kwargs)


class SearchError(CiteScrapeError):
    """The search aggregator failed or returned an unusable payload."""

    kind = "search"

    def __init__(self, message: str, *, retryable: bool = False, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.retryable = retryable


class CacheUnavailable(CiteScrapeError):
    """Non-fatal: the cache could not be consulted; treat as a miss."""

    kind = "cache"


class HistoryLoggingFailure(CiteScrapeError):
    """Non-fatal: a history notification could not be recorded."""

    kind = "history"

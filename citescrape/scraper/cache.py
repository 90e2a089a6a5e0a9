"""Bounded TTL cache and the key builders used to address it.

Two independent instances exist at runtime: a short-lived one for search
results and a longer-lived one for page extractions.  Expired entries are
dropped lazily when they are looked up; there is no background sweeper.
"""

from __future__ import annotations

import re
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Generic, Iterable, Optional, Tuple, TypeVar
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

V = TypeVar("V")

_DEFAULT_PORTS = {"http": 80, "https": 443}


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------

def normalize_url(url: str) -> str:
    """Return a canonical form of *url* for cache addressing.

    Lower-cases scheme and host, drops default ports and fragments, turns an
    empty path into ``/`` and sorts query parameters.
    """
    parts = urlsplit(url.strip())
    scheme = parts.scheme.lower()
    host = (parts.hostname or "").lower()
    netloc = host
    if parts.port is not None and _DEFAULT_PORTS.get(scheme) != parts.port:
        netloc = f"{host}:{parts.port}"
    if parts.username:
        auth = parts.username
        if parts.password:
            auth = f"{auth}:{parts.password}"
        netloc = f"{auth}@{netloc}"
    path = parts.path or "/"
    query = urlencode(sorted(parse_qsl(parts.query, keep_blank_values=True)))
    return urlunsplit((scheme, netloc, path, query, ""))


def fetch_key(url: str, content_links_only: bool = True) -> str:
    """Cache key for a page extraction.

    The link-scoping mode is part of the key because it changes the
    extracted link list.
    """
    scope = "content" if content_links_only else "all"
    return f"{normalize_url(url)}|links={scope}"


def search_key(query: str, params: Iterable[Tuple[str, object]] = ()) -> str:
    """Fingerprint of a search request: query plus every passthrough param."""
    q = re.sub(r"\s+", " ", query).strip()
    parts = [f"q={q}"]
    for name, value in params:
        parts.append(f"{name}={'' if value is None else value}")
    return "|".join(parts)


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    key: str
    value: V
    created_at: float
    expires_at: float

    def expired(self, now: float) -> bool:
        return now > self.expires_at


class TTLCache(Generic[V]):
    """Capacity-bounded, TTL-keyed store with insertion-order eviction.

    Thread-safe: every operation runs under an internal lock, so callers
    never need their own synchronisation.
    """

    def __init__(
        self,
        ttl: float,
        capacity: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
        name: str = "cache",
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.ttl = ttl
        self.capacity = capacity
        self.name = name
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry[V]]" = OrderedDict()
        self._lock = threading.Lock()

    def lookup(self, key: str) -> Optional[V]:
        """Return the cached value, or ``None`` on miss or expiry."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expired(self._clock()):
                del self._entries[key]
                return None
            return entry.value

    def store(self, key: str, value: V, ttl: Optional[float] = None) -> None:
        """Insert or replace *key*; evicts the oldest insertion when full."""
        now = self._clock()
        entry = CacheEntry(
            key=key,
            value=value,
            created_at=now,
            expires_at=now + (self.ttl if ttl is None else ttl),
        )
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            while len(self._entries) >= self.capacity:
                self._entries.popitem(last=False)
            self._entries[key] = entry

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.lookup(key) is not None

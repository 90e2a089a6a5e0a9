"""Data models for the search path."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from citescrape.config import settings

TIME_RANGES = ("", "day", "week", "month", "year")


@dataclass
class SearchParams:
    """SearXNG passthrough parameters.

    ``engines=None`` means the configured default engine list.
    """

    engines: Optional[str] = None
    categories: str = "general"
    language: str = "en"
    safesearch: int = 0
    time_range: str = ""
    pageno: int = 1
    max_results: int = 10

    def __post_init__(self) -> None:
        if self.safesearch not in (0, 1, 2):
            raise ValueError(f"safesearch must be 0, 1 or 2, got {self.safesearch}")
        if self.time_range not in TIME_RANGES:
            raise ValueError(f"time_range must be one of {TIME_RANGES}, got {self.time_range!r}")
        if self.pageno < 1:
            raise ValueError(f"pageno must be >= 1, got {self.pageno}")
        if not 1 <= self.max_results <= 100:
            raise ValueError(f"max_results must be between 1 and 100, got {self.max_results}")

    @property
    def effective_engines(self) -> str:
        return self.engines or settings.searxng_engines

    def cache_items(self) -> List[Tuple[str, str]]:
        """Every parameter that changes what the aggregator returns."""
        return [
            ("engines", self.effective_engines),
            ("categories", self.categories),
            ("language", self.language),
            ("safesearch", str(self.safesearch)),
            ("time_range", self.time_range),
            ("pageno", str(self.pageno)),
        ]

    def to_query(self, query: str) -> Dict[str, str]:
        """Query-string parameters for ``GET /search``."""
        return {"q": query, "format": "json", **dict(self.cache_items())}


@dataclass
class SearchResult:
    url: str
    title: str
    content: str = ""
    engine: Optional[str] = None
    score: Optional[float] = None
    domain: Optional[str] = None
    source_type: str = "other"


@dataclass
class QueryRewrite:
    """Outcome of developer-query analysis for one search."""

    original: str
    rewritten: Optional[str] = None
    suggestions: List[str] = field(default_factory=list)
    detected_keywords: List[str] = field(default_factory=list)
    is_developer_query: bool = False

    @property
    def best_query(self) -> str:
        return self.rewritten or self.original

    @property
    def was_rewritten(self) -> bool:
        return self.rewritten is not None


@dataclass
class SearchExtras:
    answers: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)
    corrections: List[str] = field(default_factory=list)
    unresponsive_engines: List[str] = field(default_factory=list)
    number_of_results: int = 0
    query_rewrite: Optional[QueryRewrite] = None
    duplicate_warning: Optional[str] = None


@dataclass
class SearchResponse:
    query: str
    results: List[SearchResult]
    extras: SearchExtras = field(default_factory=SearchExtras)
    cached: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

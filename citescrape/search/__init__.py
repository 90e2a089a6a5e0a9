"""Search package: SearXNG client, query rewriting and result rendering."""

from citescrape.search.formatting import render_search
from citescrape.search.models import (
    QueryRewrite,
    SearchExtras,
    SearchParams,
    SearchResponse,
    SearchResult,
)
from citescrape.search.query_rewriter import QueryRewriter
from citescrape.search.searxng import SearxngClient, classify_search_result

__all__ = [
    "SearxngClient",
    "QueryRewriter",
    "classify_search_result",
    "render_search",
    "SearchParams",
    "SearchResult",
    "SearchExtras",
    "SearchResponse",
    "QueryRewrite",
]

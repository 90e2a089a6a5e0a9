"""Scraper package: fetch orchestration and content extraction."""

from citescrape.scraper.cache import TTLCache, fetch_key, normalize_url, search_key
from citescrape.scraper.extractor import extract
from citescrape.scraper.fetcher import Fetcher
from citescrape.scraper.formatter import render
from citescrape.scraper.gate import ConcurrencyGate
from citescrape.scraper.models import ExtractionResult, RawPage
from citescrape.scraper.retry import RetryPolicy

__all__ = [
    "Fetcher",
    "ConcurrencyGate",
    "RetryPolicy",
    "TTLCache",
    "fetch_key",
    "search_key",
    "normalize_url",
    "extract",
    "render",
    "RawPage",
    "ExtractionResult",
]

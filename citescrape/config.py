"""Centralised settings for citescrape.

All runtime configuration is resolved here in one place.  Values can be
overridden via environment variables or a `.env` file in the project root
(loaded automatically when this module is imported).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (one level up from this package)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # Workspace / storage
    # ------------------------------------------------------------------
    workspace_dir: Path = field(
        default_factory=lambda: Path(
            os.environ.get("CITESCRAPE_WORKSPACE", Path.home() / ".citescrape")
        )
    )

    @property
    def history_db_path(self) -> Path:
        """Absolute path to the SQLite history log."""
        return self.workspace_dir / "history.db"

    history_enabled: bool = field(
        default_factory=lambda: _env_bool("HISTORY_ENABLED", "true")
    )

    # ------------------------------------------------------------------
    # Search aggregator (SearXNG)
    # ------------------------------------------------------------------
    searxng_url: str = field(
        default_factory=lambda: os.environ.get("SEARXNG_URL", "http://localhost:8888")
    )
    searxng_engines: str = field(
        default_factory=lambda: os.environ.get("SEARXNG_ENGINES", "duckduckgo,google,bing")
    )

    # ------------------------------------------------------------------
    # Outbound fetching
    # ------------------------------------------------------------------
    outbound_concurrency: int = field(
        default_factory=lambda: int(os.environ.get("OUTBOUND_CONCURRENCY", "32"))
    )
    request_timeout: float = field(
        default_factory=lambda: float(os.environ.get("REQUEST_TIMEOUT", "30.0"))
    )
    fetch_max_attempts: int = field(
        default_factory=lambda: int(os.environ.get("FETCH_MAX_ATTEMPTS", "3"))
    )
    fetch_backoff_base: float = field(
        default_factory=lambda: float(os.environ.get("FETCH_BACKOFF_BASE", "0.5"))
    )
    fetch_backoff_max: float = field(
        default_factory=lambda: float(os.environ.get("FETCH_BACKOFF_MAX", "4.0"))
    )
    fetch_retry_budget: float = field(
        default_factory=lambda: float(os.environ.get("FETCH_RETRY_BUDGET", "60.0"))
    )
    fetch_max_bytes: int = field(
        default_factory=lambda: int(os.environ.get("FETCH_MAX_BYTES", str(5 * 1024 * 1024)))
    )

    # ------------------------------------------------------------------
    # Caches
    # ------------------------------------------------------------------
    search_cache_ttl: float = field(
        default_factory=lambda: float(os.environ.get("SEARCH_CACHE_TTL", "600"))
    )
    scrape_cache_ttl: float = field(
        default_factory=lambda: float(os.environ.get("SCRAPE_CACHE_TTL", "1800"))
    )
    search_cache_capacity: int = field(
        default_factory=lambda: int(os.environ.get("SEARCH_CACHE_CAPACITY", "10000"))
    )
    scrape_cache_capacity: int = field(
        default_factory=lambda: int(os.environ.get("SCRAPE_CACHE_CAPACITY", "10000"))
    )

    # ------------------------------------------------------------------
    # Output budget
    # ------------------------------------------------------------------
    max_content_chars: int = field(
        default_factory=lambda: int(os.environ.get("MAX_CONTENT_CHARS", "10000"))
    )
    max_links: int = field(
        default_factory=lambda: int(os.environ.get("MAX_LINKS", "100"))
    )
    research_top_n: int = field(
        default_factory=lambda: int(os.environ.get("RESEARCH_SCRAPE_TOP_N", "5"))
    )

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = field(
        default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO").upper()
    )

    def ensure_workspace(self) -> None:
        """Create the workspace directory if it does not exist."""
        self.workspace_dir.mkdir(parents=True, exist_ok=True)


# Module-level singleton; import this everywhere:
#   from citescrape.config import settings
settings = Settings()

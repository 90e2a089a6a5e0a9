"""Developer-query rewriting.

Queries that look like programming questions get site suggestions and, when
a pattern is unambiguous, a ``site:`` filter appended automatically.  Keyword
detection works on whole tokens, so ``go`` does not fire on ``google``.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Sequence

from citescrape.search.models import QueryRewrite

logger = logging.getLogger(__name__)

DEV_KEYWORDS = (
    # Languages
    "rust", "python", "javascript", "typescript", "go", "java", "c++", "cpp",
    "ruby", "php", "swift", "kotlin", "scala", "haskell", "elixir", "clojure",
    # Frameworks and libraries
    "react", "vue", "angular", "svelte", "next", "nuxt", "django", "flask",
    "fastapi", "express", "koa", "tokio", "actix", "axum", "rocket", "warp",
    "spring", "laravel", "rails", "phoenix",
    # Concepts
    "async", "await", "promise", "future", "mutex", "arc", "thread", "concurrency",
    "api", "rest", "graphql", "grpc", "websocket", "http", "tcp", "udp",
    "database", "sql", "nosql", "postgres", "mongodb", "redis", "sqlite",
    "docker", "kubernetes", "ci", "cd", "git", "github", "gitlab",
    "npm", "cargo", "pip", "maven", "gradle",
    # Dev terms
    "tutorial", "docs", "documentation", "guide", "example", "code",
    "install", "setup", "configure", "error", "bug", "fix", "deploy",
    "test", "testing", "debug", "benchmark", "performance", "optimize",
    "crate", "package", "issue",
)

SITE_MAPPINGS: Dict[str, List[str]] = {
    "docs": ["docs.rs", "doc.rust-lang.org", "developer.mozilla.org", "devdocs.io"],
    "documentation": ["docs.rs", "doc.rust-lang.org", "developer.mozilla.org"],
    "rust": ["doc.rust-lang.org", "docs.rs", "rust-lang.org"],
    "python": ["docs.python.org", "pypi.org"],
    "javascript": ["developer.mozilla.org", "javascript.info"],
    "typescript": ["typescriptlang.org"],
    "go": ["go.dev", "pkg.go.dev"],
    "tokio": ["tokio.rs", "docs.rs"],
    "react": ["react.dev", "reactjs.org"],
    "vue": ["vuejs.org"],
    "django": ["docs.djangoproject.com"],
    "error": ["stackoverflow.com", "github.com"],
    "bug": ["stackoverflow.com", "github.com"],
    "issue": ["stackoverflow.com", "github.com"],
    "crate": ["crates.io", "docs.rs"],
    "package": ["npmjs.com", "pypi.org", "crates.io"],
}

_DEV_PATTERNS = ("how to", "tutorial", "docs", "api", "install", "error", "example")
_HOWTO_LANGUAGES = ("rust", "python", "javascript", "go", "typescript")
_TOKEN = re.compile(r"[a-z0-9+#]+")
SIMILARITY_THRESHOLD = 0.7


def _tokens(text: str) -> List[str]:
    return _TOKEN.findall(text.lower())


class QueryRewriter:
    """Analyses a query and proposes developer-oriented refinements."""

    def __init__(
        self,
        keywords: Sequence[str] = DEV_KEYWORDS,
        site_mappings: Optional[Dict[str, List[str]]] = None,
    ) -> None:
        self.keywords = tuple(keywords)
        self.site_mappings = SITE_MAPPINGS if site_mappings is None else site_mappings

    def detect_keywords(self, query: str) -> List[str]:
        tokens = set(_tokens(query))
        return [kw for kw in self.keywords if kw in tokens]

    def is_developer_query(self, query: str) -> bool:
        lower = query.lower()
        if self.detect_keywords(query):
            return True
        return any(pattern in lower for pattern in _DEV_PATTERNS)

    def rewrite(self, query: str) -> QueryRewrite:
        """Return the rewrite outcome for *query*; never raises."""
        if not self.is_developer_query(query):
            return QueryRewrite(original=query)

        keywords = self.detect_keywords(query)
        sites: List[str] = []
        for keyword in keywords:
            for site in self.site_mappings.get(keyword, []):
                if site not in sites:
                    sites.append(site)

        rewritten = self._auto_rewrite(query, sites)
        if rewritten:
            logger.info("Query rewritten: %r -> %r", query, rewritten)
        return QueryRewrite(
            original=query,
            rewritten=rewritten,
            suggestions=self._suggestions(query, keywords, sites),
            detected_keywords=keywords,
            is_developer_query=True,
        )

    @staticmethod
    def _suggestions(query: str, keywords: List[str], sites: List[str]) -> List[str]:
        lower = query.lower()
        suggestions: List[str] = []
        if keywords and not any(w in lower for w in ("docs", "documentation", "tutorial")):
            suggestions.append(f"{query} documentation")
            suggestions.append(f"{query} tutorial")
        for site in sites[:2]:
            suggestions.append(f"{query} site:{site}")
        if ("error" in lower or "bug" in lower) and "stackoverflow" not in lower:
            suggestions.append(f"{query} site:stackoverflow.com")
        return suggestions

    def _auto_rewrite(self, query: str, sites: List[str]) -> Optional[str]:
        lower = query.lower()
        if "site:" in lower:
            return None
        if ("docs" in lower or "documentation" in lower) and sites:
            return f"{query} site:{sites[0]}"
        if "error:" in lower or "error message" in lower:
            return f"{query} site:stackoverflow.com"
        if "how to" in lower:
            tokens = set(_tokens(query))
            for lang in _HOWTO_LANGUAGES:
                if lang in tokens and self.site_mappings.get(lang):
                    return f"{query} site:{self.site_mappings[lang][0]}"
        if "crate" in _tokens(query):
            return f"{query} site:docs.rs"
        return None

    @staticmethod
    def is_similar(first: str, second: str) -> bool:
        """True for equal queries, token subsets, or >70% token overlap."""
        a, b = first.strip().lower(), second.strip().lower()
        if a == b:
            return True
        tokens_a, tokens_b = a.split(), b.split()
        if not tokens_a or not tokens_b:
            return False
        set_a, set_b = set(tokens_a), set(tokens_b)
        if set_a <= set_b or set_b <= set_a:
            return True
        if len(tokens_a) >= 2 and len(tokens_b) >= 2:
            common = sum(1 for token in tokens_a if token in set_b)
            return common / max(len(tokens_a), len(tokens_b)) > SIMILARITY_THRESHOLD
        return False

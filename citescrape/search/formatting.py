"""Human-readable rendering of a :class:`SearchResponse`."""

from __future__ import annotations

from typing import List, Optional

from citescrape.search.models import SearchResponse

_SNIPPET_CHARS = 300
_MAX_SUGGESTIONS = 3


def render_search(response: SearchResponse, max_results: Optional[int] = None) -> str:
    extras = response.extras
    results = response.results if max_results is None else response.results[:max_results]
    lines: List[str] = []

    if extras.duplicate_warning:
        lines.append(extras.duplicate_warning)
        lines.append("")

    rewrite = extras.query_rewrite
    if rewrite is not None and rewrite.was_rewritten:
        lines.append(f"Query rewritten: {rewrite.original} -> {rewrite.best_query}")
        lines.append("")

    if extras.answers:
        lines.append("Answers:")
        lines.extend(f"- {answer}" for answer in extras.answers)
        lines.append("")

    total = len(response.results)
    lines.append(
        f"Found {total} result(s) for '{response.query}'"
        + (f" (showing {len(results)})" if len(results) < total else "")
        + (" [cached]" if response.cached else "")
        + ":"
    )
    lines.append("")

    for index, result in enumerate(results, start=1):
        lines.append(f"{index}. {result.title or result.url}")
        lines.append(f"   URL: {result.url}")
        tags = [result.source_type]
        if result.domain:
            tags.insert(0, result.domain)
        if result.engine:
            tags.append(f"via {result.engine}")
        lines.append(f"   Source: {' | '.join(tags)}")
        snippet = result.content.strip()
        if snippet:
            if len(snippet) > _SNIPPET_CHARS:
                snippet = snippet[:_SNIPPET_CHARS].rstrip() + "..."
            lines.append(f"   {snippet}")
        lines.append("")

    if not results:
        lines.append("No results.")
        lines.append("")

    if extras.corrections:
        lines.append(f"Did you mean: {', '.join(extras.corrections)}")
    if extras.suggestions:
        lines.append(f"Related searches: {', '.join(extras.suggestions)}")
    if rewrite is not None and rewrite.suggestions:
        lines.append("Suggested refined searches:")
        for index, suggestion in enumerate(rewrite.suggestions[:_MAX_SUGGESTIONS], start=1):
            lines.append(f"   {index}. {suggestion}")
    if extras.unresponsive_engines:
        lines.append(f"Unresponsive engines: {', '.join(extras.unresponsive_engines)}")

    return "\n".join(lines).rstrip() + "\n"

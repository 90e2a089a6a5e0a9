"""Renders an :class:`ExtractionResult` as text or JSON under a size budget.

Citation numbers are fixed at extraction time; this module only trims the
body and caps the Sources list, so the same result always renders with the
same numbering whatever the budget.
"""

from __future__ import annotations

import json
import re
from dataclasses import replace
from typing import List, Optional, Tuple

from citescrape.config import settings
from citescrape.scraper.models import ExtractionResult

MIN_CHARS = 100
MAX_CHARS = 50_000
MIN_LINKS = 1
MAX_LINKS = 500
MAX_HEADINGS = 10

OUTPUT_FORMATS = ("text", "json")

# An unfinished citation marker at the end of a cut, e.g. "see docs [1".
_PARTIAL_MARKER = re.compile(r"\s?\[\d*$")
_FENCE = "```"
# A fence cut short at the start of a line, e.g. "\n``".
_PARTIAL_FENCE = re.compile(r"(?<=\n)`{1,2}$")

_NO_CONTENT_NOTICE = (
    "[No content extracted]\n\n"
    "Possible reasons:\n"
    "- Page is JavaScript-heavy (requires browser execution)\n"
    "- Content is behind authentication or a paywall\n"
    "- Site blocks automated access"
)


def clamp_max_chars(value: Optional[int] = None) -> int:
    """Clamp a character budget to 100-50,000; ``None`` means the configured default."""
    if value is None:
        value = settings.max_content_chars
    return max(MIN_CHARS, min(MAX_CHARS, int(value)))


def clamp_max_links(value: Optional[int] = None) -> int:
    """Clamp a link cap to 1-500; ``None`` means the configured default."""
    if value is None:
        value = settings.max_links
    return max(MIN_LINKS, min(MAX_LINKS, int(value)))


def apply_budget(text: str, max_chars: int) -> Tuple[str, bool]:
    """Trim *text* to at most *max_chars* characters.

    Returns ``(trimmed, truncated)``; ``truncated`` is true exactly when the
    input was longer than the budget.  A citation marker is never cut in half
    and a code fence opened before the cut is always closed.
    """
    if len(text) <= max_chars:
        return text, False
    trimmed = _PARTIAL_MARKER.sub("", text[:max_chars]).rstrip()
    return _close_fence(trimmed, max_chars), True


def _close_fence(trimmed: str, max_chars: int) -> str:
    """Close a code fence left open by the cut, keeping whole code lines only.

    When not even one code line fits next to the closing fence, the open
    block is dropped.
    """
    trimmed = _PARTIAL_FENCE.sub("", trimmed).rstrip()
    if trimmed.count(_FENCE) % 2 == 0:
        return trimmed
    opener = trimmed.rfind(_FENCE)
    room = trimmed[: max(0, max_chars - len(_FENCE) - 1)]
    last_line = room.rfind("\n")
    if last_line > opener and "\n" in room[opener:last_line]:
        return room[:last_line] + "\n" + _FENCE
    return trimmed[:opener].rstrip()


def budget(result: ExtractionResult, max_chars: int) -> ExtractionResult:
    """Return a budgeted copy of *result*; the original is left untouched."""
    body, truncated = apply_budget(result.clean_content, max_chars)
    warnings = list(result.warnings)
    if truncated and "content_truncated" not in warnings:
        warnings.append("content_truncated")
    return replace(
        result,
        clean_content=body,
        truncated=truncated,
        actual_chars=len(result.clean_content),
        max_chars_limit=max_chars,
        warnings=warnings,
    )


# ---------------------------------------------------------------------------
# Encodings
# ---------------------------------------------------------------------------

def _or_dash(value: Optional[str]) -> str:
    return value if value else "-"


def _sources(result: ExtractionResult, max_links: int) -> List[str]:
    if not result.links:
        return []
    lines = ["", "Sources:"]
    for link in result.links[:max_links]:
        if link.text:
            lines.append(f"[{link.number}]: {link.url} ({link.text})")
        else:
            lines.append(f"[{link.number}]: {link.url}")
    if len(result.links) > max_links:
        lines.append("")
        lines.append(f"(Showing {max_links} of {len(result.links)} total links)")
    return lines


def render_text(result: ExtractionResult, max_links: int) -> str:
    """Human-readable rendering of an already budgeted result."""
    lines = [
        result.title or "No Title",
        f"URL: {result.url}",
        f"Canonical: {_or_dash(result.canonical_url)}",
        f"Word Count: {result.word_count} ({result.reading_time_minutes}m)",
        f"Language: {result.language}",
        f"Site: {_or_dash(result.site_name)}",
        f"Author: {_or_dash(result.author)}",
        f"Published: {_or_dash(result.published_at)}",
        f"Quality: {result.extraction_score:.2f} (profile: {result.profile}, strategy: {result.strategy})",
    ]
    if result.warnings:
        lines.append(f"Warnings: {', '.join(result.warnings)}")
    if result.meta_description:
        lines.append("")
        lines.append(f"Description: {result.meta_description}")

    headings = result.headings[:MAX_HEADINGS]
    if headings:
        lines.append("")
        lines.append("Headings:")
        lines.extend(f"- {h.level.upper()} {h.text}" for h in headings)

    lines.append("")
    lines.append(f"Links: {len(result.links)}  Images: {len(result.images)}  Code blocks: {len(result.code_blocks)}")
    lines.append("")
    lines.append("Content:")
    lines.append(result.clean_content if result.clean_content else _NO_CONTENT_NOTICE)
    if result.truncated:
        lines.append("")
        lines.append(
            f"[Content truncated: {len(result.clean_content)}/{result.actual_chars} chars shown. "
            "Increase max_chars to see more]"
        )
    lines.extend(_sources(result, max_links))
    return "\n".join(lines)


def render_json(result: ExtractionResult, max_links: int) -> str:
    """Every field of an already budgeted result as one JSON object."""
    payload = result.to_dict()
    payload["links"] = payload["links"][:max_links]
    return json.dumps(payload, indent=2, ensure_ascii=False)


def render(
    result: ExtractionResult,
    output_format: str = "text",
    max_chars: Optional[int] = None,
    max_links: Optional[int] = None,
) -> str:
    """Budget *result* and encode it as ``text`` or ``json``.

    Raises:
        ValueError: If *output_format* is not recognised.
    """
    if output_format not in OUTPUT_FORMATS:
        raise ValueError(
            f"Unknown output format {output_format!r}; expected one of {OUTPUT_FORMATS}"
        )
    budgeted = budget(result, clamp_max_chars(max_chars))
    links = clamp_max_links(max_links)
    if output_format == "json":
        return render_json(budgeted, links)
    return render_text(budgeted, links)

"""Boilerplate detection and text post-processing.

Noise removal is expressed as a predicate over elements rather than a
destructive pass, so several localisation strategies can be tried against
the same parsed document.  Only elements that never carry readable content
(scripts, styles, embeds) are decomposed up front.
"""

from __future__ import annotations

import re
from typing import Iterator, List

from bs4 import BeautifulSoup, Tag

# Elements decomposed before anything else runs.
DROP_TAGS = (
    "script",
    "style",
    "noscript",
    "template",
    "svg",
    "canvas",
    "iframe",
    "object",
    "embed",
)

# Elements pruned from the localised container.
NOISE_TAGS = {"nav", "footer", "aside", "dialog", "menu", "button", "select"}

# A <header> inside one of these belongs to the content, not the page chrome.
_CONTENT_SECTIONS = ["article", "main", "section"]

NOISE_ROLES = {
    "navigation",
    "banner",
    "contentinfo",
    "complementary",
    "search",
    "menu",
    "menubar",
    "dialog",
    "alertdialog",
}

# Whole tokens of class/id values (split on "-", "_" and whitespace).
_NOISE_TOKENS = {
    "nav",
    "navbar",
    "navigation",
    "menu",
    "footer",
    "sidebar",
    "ad",
    "ads",
    "adsense",
    "adunit",
    "advert",
    "advertisement",
    "banner",
    "cookie",
    "cookies",
    "consent",
    "gdpr",
    "modal",
    "popup",
    "promo",
    "share",
    "sharing",
    "social",
    "subscribe",
    "newsletter",
    "related",
    "comments",
    "breadcrumb",
    "breadcrumbs",
    "pagination",
    "pager",
    "toolbar",
    "sponsor",
    "sponsored",
    "skip",
}

# Substrings that mark noise even when glued to other words.
_NOISE_SUBSTRINGS = ("advert", "sponsor", "cookie", "newsletter", "sidebar", "breadcrumb")

_TOKEN_SPLIT = re.compile(r"[\s_\-]+")

_GARBAGE_LINE = re.compile(
    r"subscribe|sign up|cookie|accept all|advert|sponsor|newsletter|\bshare\b"
    r"|related articles|^comments?$|read more|continue reading|terms of service"
    r"|privacy policy|skip to (?:main )?content",
    re.IGNORECASE,
)
_GARBAGE_MAX_WORDS = 8


def drop_unreadable(soup: BeautifulSoup) -> None:
    """Decompose script/style/embed elements in place."""
    for tag in soup.find_all(DROP_TAGS):
        tag.decompose()


def is_noise_identifier(value: str) -> bool:
    """Return ``True`` if a class or id value looks like page chrome."""
    lowered = value.lower()
    if any(needle in lowered for needle in _NOISE_SUBSTRINGS):
        return True
    return any(token in _NOISE_TOKENS for token in _TOKEN_SPLIT.split(lowered) if token)


def _in_content_section(tag: Tag) -> bool:
    """True when *tag* sits inside an article, main, section or role=main element."""
    if tag.find_parent(_CONTENT_SECTIONS) is not None:
        return True
    return tag.find_parent(attrs={"role": "main"}) is not None


def is_noise(tag: Tag) -> bool:
    """Return ``True`` if *tag* is boilerplate that should be pruned."""
    name = tag.name or ""
    if name in NOISE_TAGS:
        return True
    if name == "header" and not _in_content_section(tag):
        return True
    attrs = tag.attrs or {}
    if "hidden" in attrs or attrs.get("aria-hidden") == "true":
        return True
    style = attrs.get("style")
    if isinstance(style, str) and re.search(r"display\s*:\s*none", style, re.IGNORECASE):
        return True
    role = attrs.get("role")
    if isinstance(role, str) and role.lower() in NOISE_ROLES:
        return True
    ident = attrs.get("id")
    if isinstance(ident, str) and is_noise_identifier(ident):
        return True
    classes = attrs.get("class") or []
    if isinstance(classes, str):
        classes = classes.split()
    return any(is_noise_identifier(cls) for cls in classes)


def inside_noise(tag: Tag) -> bool:
    """Return ``True`` if *tag* or any of its ancestors is noise."""
    node = tag
    while isinstance(node, Tag) and node.name not in ("body", "html", "[document]"):
        if is_noise(node):
            return True
        node = node.parent
    return False


def iter_content(root: Tag) -> Iterator[Tag]:
    """Yield descendants of *root* in document order, skipping noise subtrees.

    *root* itself is never pruned, even when it matches a noise signature.
    """
    stack: List[Tag] = [child for child in reversed(root.contents) if isinstance(child, Tag)]
    while stack:
        tag = stack.pop()
        if is_noise(tag):
            continue
        yield tag
        stack.extend(child for child in reversed(tag.contents) if isinstance(child, Tag))


def collapse_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def post_clean(blocks: List[str]) -> List[str]:
    """Drop short boilerplate lines and adjacent duplicates.

    Fenced code blocks are passed through untouched.
    """
    kept: List[str] = []
    for block in blocks:
        if block.startswith("```"):
            kept.append(block)
            continue
        text = block.strip()
        if len(text) < 3:
            continue
        if (
            not text.startswith("#")
            and len(text.split()) <= _GARBAGE_MAX_WORDS
            and _GARBAGE_LINE.search(text)
        ):
            continue
        if kept and kept[-1] == text:
            continue
        kept.append(text)
    return kept

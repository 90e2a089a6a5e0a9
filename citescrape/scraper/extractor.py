"""Content extraction: turns raw HTML into an :class:`ExtractionResult`.

The pipeline is classify -> localise -> prune -> render.  Localisation walks
the profile's candidate chain and keeps the first container that yields
usable text; ``<body>`` is always the last candidate, so only markup that
cannot be parsed at all raises :class:`~citescrape.errors.ParseFailure`.
Metadata comes from meta/OpenGraph tags with gaps filled by ``trafilatura``.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Union
from urllib.parse import urldefrag, urljoin, urlparse

import trafilatura
from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.builder import ParserRejectedMarkup
from bs4.element import CData, Comment, Declaration, Doctype, ProcessingInstruction

from citescrape.errors import ParseFailure
from citescrape.scraper.cleaning import (
    collapse_whitespace,
    drop_unreadable,
    is_noise,
    iter_content,
    post_clean,
)
from citescrape.scraper.models import CodeBlock, ExtractionResult, Heading, Image, Link
from citescrape.scraper.profiles import ExtractionProfile, classify_document, get_profile

logger = logging.getLogger(__name__)

LOW_QUALITY_THRESHOLD = 0.4
MIN_WORDS = 50
WORDS_PER_MINUTE = 200

# A container with fewer words than this is not accepted outright.
_MIN_CONTAINER_WORDS = 10

_HEADINGS = ("h1", "h2", "h3", "h4", "h5", "h6")
_BLOCK_TAGS = {
    "p",
    "div",
    "section",
    "article",
    "main",
    "blockquote",
    "table",
    "thead",
    "tbody",
    "tr",
    "ul",
    "ol",
    "dl",
    "dt",
    "dd",
    "figure",
    "figcaption",
    "header",
    "details",
    "summary",
    "form",
    "fieldset",
    "address",
    "hr",
}
_SKIPPED_STRINGS = (Comment, CData, Declaration, Doctype, ProcessingInstruction)
_SKIPPED_SCHEMES = ("javascript:", "mailto:", "tel:", "data:")
_LANG_CLASS = re.compile(r"^(?:language|lang|highlight-source|highlight)-([\w+#.-]+)$")
_MARKER = re.compile(r" \[\d+\]")
_MARKER_NUMBER = re.compile(r" \[(\d+)\]")
_HEADERLINK = "¶"
_BINARY_RATIO = 0.3


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _looks_binary(raw_html: str) -> bool:
    if "\x00" in raw_html:
        return True
    sample = raw_html[:4096]
    if not sample:
        return False
    junk = sum(
        1 for ch in sample if ch == "\ufffd" or (ord(ch) < 32 and ch not in "\t\n\r\f")
    )
    return junk / len(sample) > _BINARY_RATIO


def _parse(raw_html: str, source_url: str) -> BeautifulSoup:
    if _looks_binary(raw_html):
        raise ParseFailure(
            f"Payload from {source_url} looks binary, not HTML", url=source_url
        )
    try:
        return BeautifulSoup(raw_html, "html.parser")
    except (ParserRejectedMarkup, AssertionError) as exc:
        raise ParseFailure(
            f"Could not parse HTML from {source_url}: {exc}", url=source_url
        ) from exc


# ---------------------------------------------------------------------------
# Structure
# ---------------------------------------------------------------------------

def _absolute(base_url: str, href: str) -> str:
    return urljoin(base_url, href.strip())


def code_language(pre: Tag) -> Optional[str]:
    """Language hint from ``data-lang`` or a ``language-*``/``lang-*``/``highlight-*`` class.

    The ``<pre>``, its ``<code>`` child and the two enclosing wrappers are
    checked, which covers Prism, highlight.js, Pygments and GitHub markup.
    """
    nodes = [pre, pre.find("code"), pre.parent]
    if isinstance(pre.parent, Tag):
        nodes.append(pre.parent.parent)
    for node in nodes:
        if not isinstance(node, Tag):
            continue
        lang = node.get("data-lang")
        if isinstance(lang, str) and lang.strip():
            return lang.strip().lower()
        for cls in node.get("class") or []:
            match = _LANG_CLASS.match(cls)
            if match:
                return match.group(1).lower()
    return None


def _code_text(pre: Tag) -> str:
    return pre.get_text().strip("\n")


def _collect_headings(tags: Iterable[Tag]) -> List[Heading]:
    headings: List[Heading] = []
    for tag in tags:
        if tag.name in _HEADINGS:
            text = collapse_whitespace(tag.get_text(" ")).rstrip(_HEADERLINK).strip()
            if text:
                headings.append(Heading(level=tag.name, text=text))
    return headings


def _collect_code_blocks(tags: Iterable[Tag]) -> List[CodeBlock]:
    blocks: List[CodeBlock] = []
    for tag in tags:
        if tag.name == "pre":
            code = _code_text(tag)
            if code.strip():
                blocks.append(CodeBlock(code=code, language=code_language(tag)))
    return blocks


def _collect_images(tags: Iterable[Tag], base_url: str) -> List[Image]:
    images: List[Image] = []
    seen: set[str] = set()
    for tag in tags:
        if tag.name != "img":
            continue
        src = tag.get("src") or tag.get("data-src")
        if not isinstance(src, str) or not src.strip() or src.startswith("data:"):
            continue
        src = _absolute(base_url, src)
        if src in seen:
            continue
        seen.add(src)
        images.append(
            Image(
                src=src,
                alt=collapse_whitespace(str(tag.get("alt", ""))),
                title=collapse_whitespace(str(tag.get("title", ""))),
            )
        )
    return images


def _link_target(anchor: Tag, base_url: str) -> Optional[str]:
    href = anchor.get("href")
    if not isinstance(href, str):
        return None
    href = href.strip()
    if not href or href.startswith("#") or href.lower().startswith(_SKIPPED_SCHEMES):
        return None
    url, _ = urldefrag(_absolute(base_url, href))
    if urlparse(url).scheme not in ("http", "https"):
        return None
    return url


def _anchor_text(anchor: Tag) -> str:
    text = collapse_whitespace(anchor.get_text(" "))
    if text:
        return text
    title = anchor.get("title")
    if isinstance(title, str) and title.strip():
        return collapse_whitespace(title)
    img = anchor.find("img")
    if isinstance(img, Tag):
        return collapse_whitespace(str(img.get("alt", "")))
    return ""


def collect_links(anchors: Iterable[Tag], base_url: str) -> List[Link]:
    """Number distinct link targets ``1..N`` in the order they are met."""
    links: List[Link] = []
    seen: set[str] = set()
    for anchor in anchors:
        if anchor.name != "a":
            continue
        url = _link_target(anchor, base_url)
        if url is None or url in seen:
            continue
        seen.add(url)
        links.append(Link(number=len(links) + 1, url=url, text=_anchor_text(anchor)))
    return links


# ---------------------------------------------------------------------------
# Body rendering
# ---------------------------------------------------------------------------

class _TextRenderer:
    """Renders a container as markdown-ish blocks with inline citation markers."""

    def __init__(self, base_url: str, numbers: Dict[str, int]) -> None:
        self.base_url = base_url
        self.numbers = numbers
        self.blocks: List[str] = []
        self.inline: List[str] = []

    def render(self, root: Tag) -> str:
        self._walk(root)
        self._flush()
        return "\n\n".join(post_clean(self.blocks))

    def _flush(self) -> None:
        text = collapse_whitespace("".join(self.inline))
        self.inline = []
        if text:
            self.blocks.append(text)

    def _nested(self, tag: Tag) -> List[str]:
        """Render *tag* on its own and return the blocks it produced."""
        self._flush()
        start = len(self.blocks)
        self._walk(tag)
        self._flush()
        produced = self.blocks[start:]
        del self.blocks[start:]
        return produced

    def _walk(self, node: Tag) -> None:
        for child in node.children:
            if isinstance(child, _SKIPPED_STRINGS):
                continue
            if isinstance(child, NavigableString):
                self.inline.append(str(child))
                continue
            if not isinstance(child, Tag) or is_noise(child):
                continue
            self._element(child)

    def _element(self, tag: Tag) -> None:
        name = tag.name
        if name in _HEADINGS:
            text = " ".join(self._nested(tag)).rstrip(_HEADERLINK).strip()
            if text:
                self.blocks.append("#" * int(name[1]) + " " + text)
        elif name == "pre":
            self._flush()
            code = _code_text(tag)
            if code.strip():
                self.blocks.append(f"```{code_language(tag) or ''}\n{code}\n```")
        elif name == "li":
            produced = self._nested(tag)
            if produced:
                first = produced[0]
                if not first.startswith(("```", "- ")):
                    produced[0] = "- " + first
                self.blocks.extend(produced)
        elif name == "a":
            self._walk(tag)
            url = _link_target(tag, self.base_url)
            if url is not None and url in self.numbers:
                self.inline.append(f" [{self.numbers[url]}]")
        elif name in ("td", "th"):
            self._walk(tag)
            self.inline.append(" ")
        elif name == "br":
            self.inline.append(" ")
        elif name == "img":
            return
        elif name in _BLOCK_TAGS:
            self._flush()
            self._walk(tag)
            self._flush()
        else:
            self._walk(tag)


def word_count(text: str) -> int:
    """Words in *text* with citation markers removed."""
    return len(_MARKER.sub("", text).split())


# ---------------------------------------------------------------------------
# Localisation
# ---------------------------------------------------------------------------

@dataclass
class _Rendered:
    strategy: str
    container: Tag
    links: List[Link]
    text: str
    words: int
    nodes: List[Tag] = field(default_factory=list)


def _render_text(container: Tag, base_url: str, links: List[Link]) -> str:
    numbers = {link.url: link.number for link in links}
    return _TextRenderer(base_url, numbers).render(container)


def _render_candidate(
    strategy: str,
    container: Tag,
    base_url: str,
    document_links: Optional[List[Link]],
) -> _Rendered:
    nodes = list(iter_content(container))
    if document_links is None:
        links = collect_links(nodes, base_url)
    else:
        links = document_links
    text = _render_text(container, base_url, links)
    if document_links is None:
        cited = {int(n) for n in _MARKER_NUMBER.findall(text)}
        if len(cited) < len(links):
            # Blocks dropped as boilerplate took their only marker with them.
            kept = [link for link in links if link.number in cited]
            links = [replace(link, number=n) for n, link in enumerate(kept, 1)]
            text = _render_text(container, base_url, links)
    return _Rendered(
        strategy=strategy,
        container=container,
        links=links,
        text=text,
        words=word_count(text),
        nodes=nodes,
    )


def _localise(
    profile: ExtractionProfile,
    soup: BeautifulSoup,
    base_url: str,
    document_links: Optional[List[Link]],
) -> tuple[_Rendered, bool]:
    """Return the accepted candidate and whether body was a fallback."""
    best: Optional[_Rendered] = None
    tried_other = False
    for strategy, container in profile.candidates(soup):
        if container is None:
            continue
        attempt = _render_candidate(strategy, container, base_url, document_links)
        logger.debug(
            "Profile %s strategy %s yielded %d words", profile.name, strategy, attempt.words
        )
        if attempt.words >= _MIN_CONTAINER_WORDS:
            return attempt, strategy == "body" and tried_other
        if best is None or attempt.words > best.words:
            best = attempt
        if strategy != "body":
            tried_other = True
    if best is None:
        best = _render_candidate("body", soup.body or soup, base_url, document_links)
    return best, best.strategy == "body" and tried_other


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------

def _meta(soup: BeautifulSoup, *names: str) -> str:
    for name in names:
        for attr in ("name", "property", "itemprop"):
            tag = soup.find("meta", attrs={attr: name})
            if isinstance(tag, Tag):
                content = tag.get("content")
                if isinstance(content, str) and content.strip():
                    return collapse_whitespace(content)
    return ""


def _title(soup: BeautifulSoup) -> str:
    if soup.title is not None:
        title = collapse_whitespace(soup.title.get_text())
        if title:
            return title
    og_title = _meta(soup, "og:title", "twitter:title")
    if og_title:
        return og_title
    h1 = soup.find("h1")
    if isinstance(h1, Tag):
        return collapse_whitespace(h1.get_text(" ")).rstrip(_HEADERLINK).strip()
    return ""


def _published(soup: BeautifulSoup) -> str:
    value = _meta(
        soup,
        "article:published_time",
        "datePublished",
        "date",
        "dc.date",
        "DC.date.issued",
        "pubdate",
    )
    if value:
        return value
    time_tag = soup.find("time", attrs={"datetime": True})
    if isinstance(time_tag, Tag):
        return str(time_tag["datetime"]).strip()
    return ""


def _canonical(soup: BeautifulSoup, base_url: str) -> Optional[str]:
    link = soup.find("link", rel="canonical")
    if isinstance(link, Tag):
        href = link.get("href")
        if isinstance(href, str) and href.strip():
            return _absolute(base_url, href)
    og_url = _meta(soup, "og:url")
    return _absolute(base_url, og_url) if og_url else None


def _language(soup: BeautifulSoup) -> str:
    html = soup.find("html")
    if isinstance(html, Tag):
        lang = html.get("lang") or html.get("xml:lang")
        if isinstance(lang, str) and lang.strip():
            return lang.strip()
    for tag in soup.find_all("meta"):
        equiv = str(tag.get("http-equiv", "")).lower()
        name = str(tag.get("name", "")).lower()
        content = tag.get("content")
        if (equiv == "content-language" or name == "language") and isinstance(content, str):
            if content.strip():
                return content.split(",")[0].strip()
    return "unknown"


@dataclass
class _Metadata:
    title: str = ""
    description: str = ""
    keywords: str = ""
    author: str = ""
    published_at: str = ""
    canonical_url: Optional[str] = None
    site_name: str = ""
    og_image: str = ""
    language: str = "unknown"


def extract_metadata(soup: BeautifulSoup, raw_html: str, source_url: str, base_url: str) -> _Metadata:
    """Read meta/OpenGraph tags, then fill gaps from trafilatura."""
    meta = _Metadata(
        title=_title(soup),
        description=_meta(soup, "description", "og:description", "twitter:description"),
        keywords=_meta(soup, "keywords"),
        author=_meta(soup, "author", "article:author", "twitter:creator"),
        published_at=_published(soup),
        canonical_url=_canonical(soup, base_url),
        site_name=_meta(soup, "og:site_name", "application-name"),
        og_image=_meta(soup, "og:image", "twitter:image"),
        language=_language(soup),
    )
    if meta.og_image:
        meta.og_image = _absolute(base_url, meta.og_image)

    if not (meta.title and meta.author and meta.published_at and meta.description and meta.site_name):
        fallback = trafilatura.extract_metadata(raw_html, default_url=source_url)
        if fallback is not None:
            meta.title = meta.title or (fallback.title or "")
            meta.author = meta.author or (fallback.author or "")
            meta.published_at = meta.published_at or (fallback.date or "")
            meta.description = meta.description or (fallback.description or "")
            meta.site_name = meta.site_name or (fallback.sitename or "")
    return meta


# ---------------------------------------------------------------------------
# Quality
# ---------------------------------------------------------------------------

def quality_score(
    words: int,
    *,
    has_date: bool = False,
    has_author: bool = False,
    has_description: bool = False,
    code_blocks: int = 0,
    headings: int = 0,
) -> float:
    """Weighted heuristic in ``[0, 1]``; thin content scores low, never fails."""
    score = 0.0
    if words > MIN_WORDS:
        score += 0.3
    elif words > 20:
        score += 0.15
    if has_date:
        score += 0.1
    if has_author:
        score += 0.05
    if has_description:
        score += 0.05
    score += min(code_blocks * 0.1, 0.2)
    if headings > 2:
        score += 0.15
    elif headings > 0:
        score += 0.075
    score += 0.15 * min(1.0, words / 500)
    return round(min(score, 1.0), 3)


def quality_warnings(words: int, score: float, body_fallback: bool) -> List[str]:
    warnings: List[str] = []
    if words == 0:
        warnings.append("no_content")
    elif words < MIN_WORDS:
        warnings.append("short_content")
    if score < LOW_QUALITY_THRESHOLD:
        warnings.append("low_extraction_score")
    if body_fallback:
        warnings.append("body_fallback")
    return warnings


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def _base_url(soup: BeautifulSoup, source_url: str) -> str:
    base = soup.find("base", href=True)
    if isinstance(base, Tag):
        return _absolute(source_url, str(base["href"]))
    return source_url


def extract(
    raw_html: str,
    source_url: str,
    *,
    content_links_only: bool = True,
    profile: Union[str, ExtractionProfile, None] = None,
    status_code: int = 200,
    content_type: str = "text/html",
    fetched_at: str = "",
) -> ExtractionResult:
    """Extract clean, citation-annotated content from *raw_html*.

    Args:
        raw_html: Decoded document.
        source_url: URL the document was fetched from; relative URLs are
            resolved against it (or a ``<base href>``).
        content_links_only: Collect links from the localised container only
            rather than from the whole document.
        profile: Force a profile (instance or name) instead of classifying.

    Raises:
        ParseFailure: If the payload is binary or rejected by the parser.
    """
    soup = _parse(raw_html, source_url)
    if isinstance(profile, str):
        chosen = get_profile(profile)
    else:
        chosen = profile or classify_document(soup)

    base_url = _base_url(soup, source_url)
    meta = extract_metadata(soup, raw_html, source_url, base_url)
    drop_unreadable(soup)

    document_links = None
    if not content_links_only:
        document_links = collect_links(soup.find_all("a", href=True), base_url)

    rendered, body_fallback = _localise(chosen, soup, base_url, document_links)
    headings = _collect_headings(rendered.nodes)
    code_blocks = _collect_code_blocks(rendered.nodes)
    images = _collect_images(rendered.nodes, base_url)

    words = rendered.words
    score = quality_score(
        words,
        has_date=bool(meta.published_at),
        has_author=bool(meta.author),
        has_description=bool(meta.description),
        code_blocks=len(code_blocks),
        headings=len(headings),
    )
    logger.info(
        "Extracted %s with profile=%s strategy=%s words=%d score=%.2f",
        source_url,
        chosen.name,
        rendered.strategy,
        words,
        score,
    )

    return ExtractionResult(
        url=source_url,
        domain=urlparse(source_url).hostname,
        title=meta.title,
        clean_content=rendered.text,
        canonical_url=meta.canonical_url,
        headings=headings,
        links=rendered.links,
        images=images,
        code_blocks=code_blocks,
        meta_description=meta.description,
        meta_keywords=meta.keywords,
        author=meta.author or None,
        published_at=meta.published_at or None,
        site_name=meta.site_name or None,
        og_image=meta.og_image or None,
        language=meta.language,
        word_count=words,
        reading_time_minutes=math.ceil(words / WORDS_PER_MINUTE),
        extraction_score=score,
        profile=chosen.name,
        strategy=rendered.strategy,
        warnings=quality_warnings(words, score, body_fallback),
        status_code=status_code,
        content_type=content_type,
        fetched_at=fetched_at,
    )

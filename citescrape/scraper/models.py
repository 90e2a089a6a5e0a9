"""Data models for the scraper pipeline."""

from __future__ import annotations

import codecs
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from bs4.dammit import UnicodeDammit


@dataclass
class RawPage:
    """The raw HTTP response for a single URL fetch."""

    url: str
    status_code: int
    content: bytes
    headers: Dict[str, str] = field(default_factory=dict)
    final_url: str = ""

    @property
    def content_type(self) -> str:
        """Media type without parameters, e.g. ``text/html``."""
        raw = self.headers.get("content-type", "")
        return raw.split(";", 1)[0].strip().lower()

    @property
    def charset(self) -> Optional[str]:
        """Charset declared in the ``Content-Type`` header, if any."""
        raw = self.headers.get("content-type", "")
        for param in raw.split(";")[1:]:
            name, _, value = param.partition("=")
            if name.strip().lower() == "charset" and value.strip():
                return value.strip().strip("\"'")
        return None

    @property
    def html(self) -> str:
        """Decoded body: declared charset first, then byte sniffing."""
        charset = self.charset
        if charset:
            try:
                codecs.lookup(charset)
            except LookupError:
                charset = None
        if charset:
            return self.content.decode(charset, errors="replace")
        dammit = UnicodeDammit(self.content, is_html=True)
        if dammit.unicode_markup is not None:
            return dammit.unicode_markup
        return self.content.decode("utf-8", errors="replace")


@dataclass
class Heading:
    level: str
    text: str


@dataclass
class Link:
    """A citation target; ``number`` is fixed at extraction time."""

    number: int
    url: str
    text: str


@dataclass
class Image:
    src: str
    alt: str = ""
    title: str = ""


@dataclass
class CodeBlock:
    code: str
    language: Optional[str] = None


@dataclass
class ExtractionResult:
    """Cleaned, structured content extracted from a single page.

    Instances stored in the cache are treated as read-only; the formatter
    works on a :func:`dataclasses.replace` copy when it applies a budget.
    """

    url: str
    domain: Optional[str]
    title: str
    clean_content: str
    canonical_url: Optional[str] = None
    headings: List[Heading] = field(default_factory=list)
    links: List[Link] = field(default_factory=list)
    images: List[Image] = field(default_factory=list)
    code_blocks: List[CodeBlock] = field(default_factory=list)
    meta_description: str = ""
    meta_keywords: str = ""
    author: Optional[str] = None
    published_at: Optional[str] = None
    site_name: Optional[str] = None
    og_image: Optional[str] = None
    language: str = "unknown"
    word_count: int = 0
    reading_time_minutes: int = 0
    extraction_score: float = 0.0
    profile: str = "generic"
    strategy: str = "body"
    warnings: List[str] = field(default_factory=list)
    truncated: bool = False
    actual_chars: int = 0
    max_chars_limit: Optional[int] = None
    status_code: int = 200
    content_type: str = "text/html"
    fetched_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

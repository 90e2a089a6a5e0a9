"""Document profiles: where the main content lives on a given kind of page.

Each profile is a small class that recognises its documents and yields an
ordered chain of candidate containers.  The extractor tries the candidates
in turn and keeps the first one that produces usable text, so adding
support for a new documentation generator means adding a profile here and
nothing else.
"""

from __future__ import annotations

from typing import Dict, Iterator, List, Optional, Tuple

from bs4 import BeautifulSoup, NavigableString, Tag

from citescrape.scraper.cleaning import collapse_whitespace, inside_noise, iter_content

Candidate = Tuple[str, Optional[Tag]]

# Block elements whose own text counts towards a container's density.
_TEXT_CHILDREN = {
    "p",
    "pre",
    "blockquote",
    "ul",
    "ol",
    "dl",
    "table",
    "h1",
    "h2",
    "h3",
    "h4",
    "h5",
    "h6",
    "a",
    "em",
    "strong",
    "code",
    "span",
}
_DENSITY_BLOCKS = ("div", "section", "article", "main", "td")
_TAG_OVERHEAD = 10


# ---------------------------------------------------------------------------
# Generic localisation helpers
# ---------------------------------------------------------------------------

def _text_length(tag: Tag) -> int:
    return len(collapse_whitespace(tag.get_text(" ")))


def _body(soup: BeautifulSoup) -> Tag:
    return soup.body or soup


def best_semantic_container(soup: BeautifulSoup) -> Optional[Tag]:
    """Return the ``article``/``main``/``[role=main]`` element with the most text.

    Containers sitting inside page chrome are ignored.
    """
    found: List[Tag] = list(soup.find_all(["article", "main"]))
    seen = {id(tag) for tag in found}
    found.extend(tag for tag in soup.select('[role="main"]') if id(tag) not in seen)
    candidates = [tag for tag in found if not inside_noise(tag)]
    if not candidates:
        return None
    best = max(candidates, key=_text_length)
    return best if _text_length(best) > 0 else None


def density_score(tag: Tag) -> int:
    """Own text length minus a fixed overhead per structural child tag."""
    text = 0
    overhead = 0
    for child in tag.children:
        if isinstance(child, NavigableString):
            text += len(child.strip())
        elif isinstance(child, Tag):
            if child.name in _TEXT_CHILDREN:
                text += _text_length(child)
            else:
                overhead += _TAG_OVERHEAD
    return text - overhead


def densest_block(soup: BeautifulSoup) -> Optional[Tag]:
    """Return the block reached through non-noise markup with the best density."""
    best: Optional[Tag] = None
    best_score = 0
    for tag in iter_content(_body(soup)):
        if tag.name not in _DENSITY_BLOCKS:
            continue
        score = density_score(tag)
        if score > best_score:
            best, best_score = tag, score
    return best


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------

class ExtractionProfile:
    """Generic pages: semantic container, then densest block, then body."""

    name = "generic"

    def matches(self, soup: BeautifulSoup) -> bool:
        return True

    def candidates(self, soup: BeautifulSoup) -> Iterator[Candidate]:
        yield "semantic", best_semantic_container(soup)
        yield "density", densest_block(soup)
        yield "body", _body(soup)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"


class SelectorProfile(ExtractionProfile):
    """A documentation generator recognised by CSS signatures.

    Subclasses list ``signatures`` (any match classifies the page),
    ``generators`` (substrings of ``<meta name="generator">``) and
    ``containers`` tried in order before falling back to ``<body>``.
    """

    signatures: Tuple[str, ...] = ()
    generators: Tuple[str, ...] = ()
    containers: Tuple[str, ...] = ()

    def matches(self, soup: BeautifulSoup) -> bool:
        generator = soup.find("meta", attrs={"name": "generator"})
        if generator is not None:
            content = str(generator.get("content", "")).lower()
            if any(name in content for name in self.generators):
                return True
        return any(soup.select_one(selector) is not None for selector in self.signatures)

    def candidates(self, soup: BeautifulSoup) -> Iterator[Candidate]:
        for selector in self.containers:
            yield f"container:{selector}", soup.select_one(selector)
        yield "body", _body(soup)


class MdBookProfile(SelectorProfile):
    name = "mdbook"
    signatures = ("div#page-wrapper.page-wrapper", "nav#sidebar ol.chapter", "div#menu-bar")
    generators = ("mdbook",)
    containers = ("div#content main", "div#content")


class SphinxProfile(SelectorProfile):
    """Sphinx, including the Read the Docs theme."""

    name = "sphinx"
    signatures = (
        "div.rst-content",
        "div.wy-grid-for-nav",
        "div.sphinxsidebar",
        "div.bodywrapper",
    )
    generators = ("sphinx",)
    containers = (
        '[itemprop="articleBody"]',
        'div.rst-content [role="main"]',
        'div.body[role="main"]',
        "div.body",
        "div.document",
    )


class MkDocsProfile(SelectorProfile):
    name = "mkdocs"
    signatures = ("div.md-container", "div.md-content", "article.md-content__inner")
    generators = ("mkdocs",)
    containers = ("article.md-content__inner", "div.md-content", 'div[role="main"]')


class DocusaurusProfile(SelectorProfile):
    name = "docusaurus"
    signatures = ("div#__docusaurus", "div.theme-doc-markdown")
    generators = ("docusaurus",)
    containers = ("div.theme-doc-markdown", "article", "main")


class RustdocProfile(SelectorProfile):
    name = "rustdoc"
    signatures = ("body.rustdoc", "section#main-content.content")
    generators = ("rustdoc",)
    containers = ("section#main-content", "div.docblock")


GENERIC = ExtractionProfile()

# Order matters: the first matching profile wins.
PROFILES: List[ExtractionProfile] = [
    MdBookProfile(),
    SphinxProfile(),
    MkDocsProfile(),
    DocusaurusProfile(),
    RustdocProfile(),
]

_BY_NAME: Dict[str, ExtractionProfile] = {p.name: p for p in [*PROFILES, GENERIC]}


def classify_document(soup: BeautifulSoup) -> ExtractionProfile:
    """Return the first specialised profile matching *soup*, else generic."""
    for profile in PROFILES:
        if profile.matches(soup):
            return profile
    return GENERIC


def get_profile(name: str) -> ExtractionProfile:
    """Look up a profile by name.

    Raises:
        KeyError: If no profile has that name.
    """
    try:
        return _BY_NAME[name]
    except KeyError:
        raise KeyError(
            f"Unknown profile {name!r}; expected one of {sorted(_BY_NAME)}"
        ) from None

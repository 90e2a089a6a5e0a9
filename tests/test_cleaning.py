"""Tests for noise detection and text post-processing."""

from __future__ import annotations

import pytest
from bs4 import BeautifulSoup

from citescrape.scraper.cleaning import (
    drop_unreadable,
    inside_noise,
    is_noise,
    is_noise_identifier,
    iter_content,
    post_clean,
)


def _tag(html: str):
    return BeautifulSoup(html, "html.parser").find(True)


class TestNoiseIdentifier:
    @pytest.mark.parametrize(
        "value",
        ["main-nav", "site_footer", "cookie-banner", "newsletterSignup", "left-sidebar", "ad"],
    )
    def test_chrome_identifiers(self, value: str) -> None:
        assert is_noise_identifier(value)

    @pytest.mark.parametrize("value", ["content", "article-body", "download", "shadow", "header-title"])
    def test_content_identifiers(self, value: str) -> None:
        # "download" and "shadow" contain "ad" but not as a whole token.
        assert not is_noise_identifier(value)


class TestIsNoise:
    @pytest.mark.parametrize(
        "html",
        [
            "<nav>links</nav>",
            "<footer>legal</footer>",
            "<aside>more</aside>",
            '<div role="navigation">x</div>',
            '<div class="share-buttons">x</div>',
            '<div id="cookie-consent">x</div>',
            '<div style="display: none">x</div>',
            '<div aria-hidden="true">x</div>',
            "<div hidden>x</div>",
        ],
    )
    def test_noise_elements(self, html: str) -> None:
        assert is_noise(_tag(html))

    def test_forms_are_content(self) -> None:
        # ASP.NET pages wrap the whole body in a form.
        assert not is_noise(_tag('<form id="aspnetForm"><p>Text</p></form>'))

    def test_header_is_noise_only_outside_content_sections(self) -> None:
        soup = BeautifulSoup(
            "<body><header>Site</header>"
            "<article><header>Post title</header></article>"
            "<main><header>Main title</header></main>"
            "<section><header>Section title</header></section>"
            '<div role="main"><header>Role title</header></div>'
            "</body>",
            "html.parser",
        )
        site, *content = soup.find_all("header")
        assert is_noise(site)
        assert [is_noise(header) for header in content] == [False, False, False, False]

    def test_inside_noise_checks_ancestors(self) -> None:
        soup = BeautifulSoup('<div class="sidebar"><main><p>x</p></main></div>', "html.parser")
        assert inside_noise(soup.main)
        assert not inside_noise(BeautifulSoup("<main>x</main>", "html.parser").main)


class TestIterContent:
    def test_prunes_noise_subtrees_in_document_order(self) -> None:
        soup = BeautifulSoup(
            "<div><p>one</p><nav><p>skip</p></nav><section><p>two</p></section></div>",
            "html.parser",
        )
        names = [tag.get_text() for tag in iter_content(soup.div) if tag.name == "p"]
        assert names == ["one", "two"]

    def test_root_is_never_pruned(self) -> None:
        soup = BeautifulSoup('<div class="wy-nav-content"><p>kept</p></div>', "html.parser")
        assert [tag.name for tag in iter_content(soup.div)] == ["p"]

    def test_is_non_destructive(self) -> None:
        soup = BeautifulSoup("<div><nav>menu</nav><p>body</p></div>", "html.parser")
        list(iter_content(soup.div))
        assert soup.nav is not None


class TestDropUnreadable:
    def test_removes_scripts_and_styles(self) -> None:
        soup = BeautifulSoup(
            "<body><script>x()</script><style>p{}</style><p>text</p></body>", "html.parser"
        )
        drop_unreadable(soup)
        assert soup.find("script") is None
        assert soup.find("style") is None
        assert soup.p.get_text() == "text"


class TestPostClean:
    def test_drops_short_boilerplate_lines(self) -> None:
        blocks = ["Real paragraph of text.", "Subscribe to our newsletter", "Read more", "ok"]
        assert post_clean(blocks) == ["Real paragraph of text."]

    def test_keeps_long_paragraphs_mentioning_boilerplate_words(self) -> None:
        text = "Browsers store each cookie for a domain and send it back with every request made."
        assert post_clean([text]) == [text]

    def test_keeps_headings(self) -> None:
        assert post_clean(["## Share state between tasks"]) == ["## Share state between tasks"]

    def test_collapses_adjacent_duplicates(self) -> None:
        assert post_clean(["Same line here", "Same line here", "Other"]) == [
            "Same line here",
            "Other",
        ]

    def test_code_blocks_pass_through(self) -> None:
        block = "```\nx = 1\n```"
        assert post_clean([block, block]) == [block, block]

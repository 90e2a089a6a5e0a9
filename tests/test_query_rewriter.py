"""Tests for developer-query detection and rewriting."""

from __future__ import annotations

import pytest

from citescrape.search.query_rewriter import QueryRewriter


@pytest.fixture()
def rewriter() -> QueryRewriter:
    return QueryRewriter()


class TestDetection:
    @pytest.mark.parametrize(
        "query",
        ["rust async programming", "python flask tutorial", "how to install docker", "react hooks api"],
    )
    def test_developer_queries(self, rewriter: QueryRewriter, query: str) -> None:
        assert rewriter.is_developer_query(query)

    @pytest.mark.parametrize("query", ["weather forecast", "coffee shops near me", "google search tips"])
    def test_general_queries(self, rewriter: QueryRewriter, query: str) -> None:
        assert not rewriter.is_developer_query(query)

    def test_keywords_match_whole_tokens(self, rewriter: QueryRewriter) -> None:
        assert rewriter.detect_keywords("google scholar") == []
        assert rewriter.detect_keywords("go generics") == ["go"]
        assert rewriter.detect_keywords("C++ templates") == ["c++"]


class TestRewrite:
    def test_docs_query_gets_site_filter(self, rewriter: QueryRewriter) -> None:
        outcome = rewriter.rewrite("rust docs")
        assert outcome.rewritten == "rust docs site:doc.rust-lang.org"
        assert outcome.best_query == outcome.rewritten
        assert outcome.is_developer_query
        assert outcome.detected_keywords == ["rust", "docs"]

    def test_error_message_goes_to_stackoverflow(self, rewriter: QueryRewriter) -> None:
        outcome = rewriter.rewrite("error: cannot borrow as mutable")
        assert outcome.rewritten == "error: cannot borrow as mutable site:stackoverflow.com"

    def test_how_to_uses_language_site(self, rewriter: QueryRewriter) -> None:
        outcome = rewriter.rewrite("how to read a file in python")
        assert outcome.rewritten == "how to read a file in python site:docs.python.org"

    def test_crate_query_goes_to_docs_rs(self, rewriter: QueryRewriter) -> None:
        assert rewriter.rewrite("serde crate").rewritten == "serde crate site:docs.rs"

    def test_existing_site_filter_is_respected(self, rewriter: QueryRewriter) -> None:
        outcome = rewriter.rewrite("rust docs site:docs.rs")
        assert outcome.rewritten is None
        assert outcome.best_query == "rust docs site:docs.rs"

    def test_general_query_is_left_alone(self, rewriter: QueryRewriter) -> None:
        outcome = rewriter.rewrite("weather forecast")
        assert not outcome.was_rewritten
        assert not outcome.is_developer_query
        assert outcome.suggestions == []

    def test_suggestions(self, rewriter: QueryRewriter) -> None:
        outcome = rewriter.rewrite("rust async")
        assert outcome.rewritten is None
        assert outcome.suggestions == [
            "rust async documentation",
            "rust async tutorial",
            "rust async site:doc.rust-lang.org",
            "rust async site:docs.rs",
        ]

    def test_bug_query_suggests_stackoverflow(self, rewriter: QueryRewriter) -> None:
        outcome = rewriter.rewrite("tokio bug with timers")
        assert "tokio bug with timers site:stackoverflow.com" in outcome.suggestions


class TestSimilarity:
    @pytest.mark.parametrize(
        "first, second",
        [
            ("Rust async", "rust async"),
            ("rust async", "rust async tutorial"),
            ("a b c d", "a b c e"),
        ],
    )
    def test_similar(self, first: str, second: str) -> None:
        assert QueryRewriter.is_similar(first, second)

    @pytest.mark.parametrize(
        "first, second",
        [("python asyncio", "rust tokio"), ("", "rust"), ("a b c", "a d e")],
    )
    def test_not_similar(self, first: str, second: str) -> None:
        assert not QueryRewriter.is_similar(first, second)

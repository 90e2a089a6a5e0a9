"""Tests for the citescrape CLI commands.

Uses Typer's CliRunner; the service factory is patched so every invocation
talks to ``respx`` mocks instead of the network.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import httpx
import pytest
import respx
from typer.testing import CliRunner

import cli.main as cli_main
from cli.main import app
from citescrape.config import settings
from citescrape.history import HistoryEntry, SQLiteHistory
from tests.helpers import ARTICLE_HTML, ARTICLE_URL, make_service

runner = CliRunner()

_SEARCH_PAYLOAD = {
    "results": [
        {"url": ARTICLE_URL, "title": "Understanding Async IO", "engine": "duckduckgo"},
        {"url": "https://example.com/gone", "title": "Gone", "engine": "bing"},
    ],
    "suggestions": ["asyncio tutorial"],
}


@pytest.fixture(autouse=True)
def offline_service(monkeypatch):
    monkeypatch.setattr(
        cli_main, "_build_service", lambda: make_service(httpx.AsyncClient(follow_redirects=True))
    )


@pytest.fixture()
def mock_web():
    with respx.mock(assert_all_called=False) as router:
        router.get(ARTICLE_URL).mock(return_value=httpx.Response(200, html=ARTICLE_HTML))
        router.get("https://example.com/gone").mock(return_value=httpx.Response(410))
        router.get(host="searx.test", path="/search").mock(
            return_value=httpx.Response(200, json=_SEARCH_PAYLOAD)
        )
        yield router


# ---------------------------------------------------------------------------
# scrape
# ---------------------------------------------------------------------------

class TestScrapeCommand:
    def test_prints_content_and_sources(self, mock_web) -> None:
        result = runner.invoke(app, ["scrape", "--url", ARTICLE_URL])
        assert result.exit_code == 0, result.output
        assert "Understanding Async IO" in result.output
        assert "Sources:" in result.output
        assert "[1]: https://docs.python.org/3/library/asyncio.html" in result.output

    def test_json_format(self, mock_web) -> None:
        result = runner.invoke(app, ["scrape", "--url", ARTICLE_URL, "--format", "json"])
        assert result.exit_code == 0, result.output
        assert '"word_count":' in result.output

    def test_all_links(self, mock_web) -> None:
        result = runner.invoke(app, ["scrape", "--url", ARTICLE_URL, "--all-links"])
        assert result.exit_code == 0, result.output
        assert "https://example.com/footer-link" in result.output

    def test_budget(self, mock_web) -> None:
        result = runner.invoke(app, ["scrape", "--url", ARTICLE_URL, "--max-chars", "100"])
        assert result.exit_code == 0, result.output
        assert "[Content truncated: " in result.output

    def test_fetch_failure_exits_1(self, mock_web) -> None:
        result = runner.invoke(app, ["scrape", "--url", "https://example.com/gone"])
        assert result.exit_code == 1
        assert "permanent_fetch: not_found" in result.output

    def test_unknown_format_exits_2(self, mock_web) -> None:
        result = runner.invoke(app, ["scrape", "--url", ARTICLE_URL, "--format", "xml"])
        assert result.exit_code == 2


# ---------------------------------------------------------------------------
# search / research
# ---------------------------------------------------------------------------

class TestSearchCommand:
    def test_text(self, mock_web) -> None:
        result = runner.invoke(app, ["search", "--query", "python asyncio"])
        assert result.exit_code == 0, result.output
        assert "Found 2 result(s) for 'python asyncio'" in result.output
        assert "Related searches: asyncio tutorial" in result.output

    def test_json(self, mock_web) -> None:
        result = runner.invoke(app, ["search", "--query", "python asyncio", "--format", "json"])
        assert result.exit_code == 0, result.output
        assert '"query": "python asyncio"' in result.output

    def test_invalid_time_range_exits_nonzero(self, mock_web) -> None:
        result = runner.invoke(app, ["search", "--query", "x", "--time-range", "decade"])
        assert result.exit_code != 0


class TestResearchCommand:
    def test_pages_and_failures(self, mock_web) -> None:
        result = runner.invoke(app, ["research", "--query", "python asyncio", "--top-n", "2"])
        assert result.exit_code == 0, result.output
        assert "Content:" in result.output
        assert "1 page(s) could not be scraped" in result.output
        assert "https://example.com/gone" in result.output


# ---------------------------------------------------------------------------
# history
# ---------------------------------------------------------------------------

class TestHistoryCommand:
    def test_lists_entries(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setattr(settings, "workspace_dir", tmp_path)
        monkeypatch.setattr(settings, "history_enabled", True)
        store = SQLiteHistory()
        asyncio.run(
            store.record(
                HistoryEntry(
                    kind="search",
                    query="tokio select",
                    summary="4 result(s)",
                    created_at=datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc),
                )
            )
        )
        store.close()

        result = runner.invoke(app, ["history"])
        assert result.exit_code == 0, result.output
        assert "2024-05-01 09:30" in result.output
        assert "'tokio select'" in result.output

    def test_empty(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setattr(settings, "workspace_dir", tmp_path)
        monkeypatch.setattr(settings, "history_enabled", True)
        result = runner.invoke(app, ["history"])
        assert result.exit_code == 0
        assert "No entries yet" in result.output

    def test_disabled(self, monkeypatch) -> None:
        monkeypatch.setattr(settings, "history_enabled", False)
        result = runner.invoke(app, ["history"])
        assert result.exit_code == 1
        assert "disabled" in result.output

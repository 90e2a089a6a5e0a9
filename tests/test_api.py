"""Tests for the FastAPI layer.

The app is built around an injected ``ContentService`` whose outbound HTTP
is mocked with ``respx``; ``TestClient`` talks to the app in-process.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import httpx
import pytest
import respx
from fastapi.testclient import TestClient

from citescrape.api.app import create_app
from citescrape.history import HistoryEntry, SQLiteHistory
from tests.helpers import ARTICLE_HTML, ARTICLE_URL, make_service

_SEARCH_PAYLOAD = {
    "results": [
        {"url": ARTICLE_URL, "title": "Understanding Async IO", "engine": "duckduckgo"},
    ],
    "number_of_results": 1,
}


@pytest.fixture()
def service():
    return make_service(httpx.AsyncClient(follow_redirects=True))


@pytest.fixture()
def client(service):
    with TestClient(create_app(service)) as test_client:
        yield test_client


@pytest.fixture()
def mock_web():
    with respx.mock(assert_all_called=False) as router:
        router.get(ARTICLE_URL, name="article").mock(return_value=httpx.Response(200, html=ARTICLE_HTML))
        router.get("https://example.com/missing").mock(return_value=httpx.Response(404))
        router.get("https://example.com/down").mock(return_value=httpx.Response(503))
        router.get(host="searx.test", path="/search").mock(
            return_value=httpx.Response(200, json=_SEARCH_PAYLOAD)
        )
        yield router


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

class TestHealth:
    def test_reports_gate_and_caches(self, client: TestClient) -> None:
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert body["gate"]["limit"] == 8
        assert body["gate"]["in_flight"] == 0
        assert body["cache"] == {"scrape_entries": 0, "search_entries": 0}


# ---------------------------------------------------------------------------
# /tools/scrape
# ---------------------------------------------------------------------------

class TestScrapeEndpoint:
    def test_text(self, client: TestClient, mock_web) -> None:
        resp = client.post("/tools/scrape", json={"url": ARTICLE_URL, "max_chars": 300})
        assert resp.status_code == 200
        body = resp.json()
        assert body["format"] == "text"
        assert body["content"].startswith("Understanding Async IO")
        assert "Sources:" in body["content"]

    def test_json(self, client: TestClient, mock_web) -> None:
        resp = client.post("/tools/scrape", json={"url": ARTICLE_URL, "output_format": "json"})
        assert resp.status_code == 200
        assert '"title": "Understanding Async IO"' in resp.json()["content"]

    def test_result_is_cached(self, client: TestClient, mock_web) -> None:
        client.post("/tools/scrape", json={"url": ARTICLE_URL})
        client.post("/tools/scrape", json={"url": ARTICLE_URL})
        assert mock_web["article"].call_count == 1
        assert client.get("/health").json()["cache"]["scrape_entries"] == 1

    def test_permanent_failure_is_422(self, client: TestClient, mock_web) -> None:
        resp = client.post("/tools/scrape", json={"url": "https://example.com/missing"})
        assert resp.status_code == 422
        error = resp.json()["error"]
        assert error["kind"] == "permanent_fetch"
        assert error["reason"] == "not_found"
        assert error["status_code"] == 404

    def test_transient_failure_is_502(self, client: TestClient, mock_web) -> None:
        resp = client.post("/tools/scrape", json={"url": "https://example.com/down"})
        assert resp.status_code == 502
        assert resp.json()["error"]["kind"] == "transient_fetch"

    def test_invalid_url_is_422(self, client: TestClient, mock_web) -> None:
        resp = client.post("/tools/scrape", json={"url": "ftp://example.com/file"})
        assert resp.status_code == 422
        assert resp.json()["error"]["reason"] == "invalid_url"

    @pytest.mark.parametrize(
        "body",
        [
            {"url": ARTICLE_URL, "max_chars": 5},
            {"url": ARTICLE_URL, "max_links": 0},
            {"url": ARTICLE_URL, "output_format": "xml"},
            {},
        ],
    )
    def test_validation_errors_are_400(self, client: TestClient, body) -> None:
        resp = client.post("/tools/scrape", json=body)
        assert resp.status_code == 400
        assert resp.json()["error"]["kind"] == "validation"


# ---------------------------------------------------------------------------
# /tools/search and /tools/research
# ---------------------------------------------------------------------------

class TestSearchEndpoint:
    def test_text(self, client: TestClient, mock_web) -> None:
        resp = client.post("/tools/search", json={"query": "python asyncio"})
        assert resp.status_code == 200
        assert "Found 1 result(s) for 'python asyncio'" in resp.json()["content"]

    def test_json(self, client: TestClient, mock_web) -> None:
        resp = client.post(
            "/tools/search", json={"query": "python asyncio", "output_format": "json"}
        )
        assert '"source_type": "other"' in resp.json()["content"]

    def test_blank_query_is_400(self, client: TestClient, mock_web) -> None:
        resp = client.post("/tools/search", json={"query": "   "})
        assert resp.status_code == 400

    def test_bad_time_range_is_400(self, client: TestClient) -> None:
        resp = client.post("/tools/search", json={"query": "x", "time_range": "decade"})
        assert resp.status_code == 400


class TestResearchEndpoint:
    def test_search_then_scrape(self, client: TestClient, mock_web) -> None:
        resp = client.post("/tools/research", json={"query": "python asyncio", "top_n": 1})
        assert resp.status_code == 200
        body = resp.json()
        assert body["query"] == "python asyncio"
        assert [page["url"] for page in body["pages"]] == [ARTICLE_URL]
        assert body["pages"][0]["content"].startswith("Understanding Async IO")
        assert body["failures"] == []


# ---------------------------------------------------------------------------
# /history
# ---------------------------------------------------------------------------

class TestHistoryEndpoint:
    def test_disabled_history_is_404(self, client: TestClient) -> None:
        assert client.get("/history").status_code == 404

    def test_lists_entries(self, tmp_path) -> None:
        history = SQLiteHistory(tmp_path / "history.db")
        service = make_service(httpx.AsyncClient(), history=history)
        asyncio.run(
            history.record(
                HistoryEntry(
                    kind="search",
                    query="tokio select",
                    summary="3 result(s)",
                    created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
                )
            )
        )
        with TestClient(create_app(service)) as client:
            resp = client.get("/history", params={"kind": "search"})
        history.close()

        assert resp.status_code == 200
        [entry] = resp.json()
        assert entry["query"] == "tokio select"
        assert entry["summary"] == "3 result(s)"
        assert entry["created_at"].startswith("2024-01-01")

"""Tests for the SQLite research history log."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from citescrape.errors import HistoryLoggingFailure
from citescrape.history import HistoryEntry, SQLiteHistory

_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def history(tmp_path):
    store = SQLiteHistory(tmp_path / "history.db", now=lambda: _NOW)
    yield store
    store.close()


class TestRecord:
    async def test_assigns_id_and_round_trips(self, history: SQLiteHistory) -> None:
        entry = HistoryEntry(
            kind="scrape",
            query="https://example.com/",
            summary="Example (12 words)",
            payload={"title": "Example", "links": [{"number": 1}]},
            domain="example.com",
            created_at=_NOW,
        )
        await history.record(entry)
        assert entry.id == 1

        [stored] = await history.recent()
        assert stored.query == "https://example.com/"
        assert stored.domain == "example.com"
        assert stored.payload == {"title": "Example", "links": [{"number": 1}]}
        assert stored.created_at == _NOW

    async def test_unwritable_database_raises(self, tmp_path) -> None:
        # A directory cannot be opened as a database file.
        store = SQLiteHistory(tmp_path)
        with pytest.raises(HistoryLoggingFailure) as info:
            await store.record(HistoryEntry(kind="search", query="x"))
        assert info.value.reason == "storage"
        assert info.value.kind == "history"


class TestRecent:
    async def test_newest_first_with_kind_filter(self, history: SQLiteHistory) -> None:
        for minutes, kind, query in [(30, "search", "old"), (10, "scrape", "mid"), (1, "search", "new")]:
            await history.record(
                HistoryEntry(kind=kind, query=query, created_at=_NOW - timedelta(minutes=minutes))
            )

        assert [e.query for e in await history.recent()] == ["new", "mid", "old"]
        assert [e.query for e in await history.recent(kind="search")] == ["new", "old"]
        assert [e.query for e in await history.recent(limit=1)] == ["new"]


class TestFindRecent:
    async def test_finds_similar_search_within_window(self, history: SQLiteHistory) -> None:
        await history.record(
            HistoryEntry(kind="search", query="rust async tokio", created_at=_NOW - timedelta(hours=1))
        )
        found = await history.find_recent("rust async tokio tutorial")
        assert found is not None
        assert found.query == "rust async tokio"

    async def test_ignores_old_and_unrelated_entries(self, history: SQLiteHistory) -> None:
        await history.record(
            HistoryEntry(kind="search", query="rust async", created_at=_NOW - timedelta(hours=7))
        )
        await history.record(
            HistoryEntry(kind="search", query="python packaging", created_at=_NOW - timedelta(minutes=5))
        )
        await history.record(
            HistoryEntry(kind="scrape", query="rust async", created_at=_NOW - timedelta(minutes=5))
        )
        assert await history.find_recent("rust async") is None

    async def test_custom_window(self, history: SQLiteHistory) -> None:
        await history.record(
            HistoryEntry(kind="search", query="go generics", created_at=_NOW - timedelta(hours=7))
        )
        assert await history.find_recent("go generics", within_hours=8) is not None

"""Research history: a local log of past scrapes and searches.

The orchestrator hands every successful operation to a :class:`HistorySink`
as a fire-and-forget notification.  :class:`SQLiteHistory` is the shipped
sink; it keeps one table in ``<workspace>/history.db`` and runs its blocking
``sqlite3`` calls in a worker thread via :func:`asyncio.to_thread`.

Usage::

    from citescrape.history import SQLiteHistory

    history = SQLiteHistory()
    await history.record(HistoryEntry(kind="search", query="tokio select"))
    for entry in await history.recent(10):
        print(entry.query)
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol

from citescrape.config import settings
from citescrape.errors import HistoryLoggingFailure
from citescrape.search.query_rewriter import QueryRewriter

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS history (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    kind        TEXT NOT NULL,
    query       TEXT NOT NULL,
    summary     TEXT NOT NULL DEFAULT '',
    domain      TEXT,
    payload     TEXT NOT NULL DEFAULT '{}',
    created_at  TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_history_created ON history(created_at);
CREATE INDEX IF NOT EXISTS idx_history_kind ON history(kind, created_at);
"""

# Recent searches scanned when looking for a near-duplicate query.
_DUPLICATE_SCAN = 50


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class HistoryEntry:
    """One logged operation: ``kind`` is ``"scrape"`` or ``"search"``."""

    kind: str
    query: str
    summary: str = ""
    payload: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_utcnow)
    domain: Optional[str] = None
    id: Optional[int] = None


class HistorySink(Protocol):
    async def record(self, entry: HistoryEntry) -> None: ...

    async def find_recent(
        self, query: str, within_hours: float = 6.0
    ) -> Optional[HistoryEntry]: ...


def _row_to_entry(row: sqlite3.Row) -> HistoryEntry:
    return HistoryEntry(
        id=row["id"],
        kind=row["kind"],
        query=row["query"],
        summary=row["summary"],
        domain=row["domain"],
        payload=json.loads(row["payload"] or "{}"),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


class SQLiteHistory:
    """:class:`HistorySink` backed by a single SQLite table."""

    def __init__(
        self,
        db_path: Optional[Path] = None,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.db_path = db_path or settings.history_db_path
        self._now = now
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self._rewriter = QueryRewriter()

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            if str(self.db_path) != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode = WAL")
            conn.executescript(_SCHEMA)
            self._conn = conn
        return self._conn

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    # ------------------------------------------------------------------
    # Blocking implementations (run in a worker thread)
    # ------------------------------------------------------------------

    def _insert(self, entry: HistoryEntry) -> int:
        with self._lock:
            conn = self._connection()
            with conn:
                cursor = conn.execute(
                    """
                    INSERT INTO history (kind, query, summary, domain, payload, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        entry.kind,
                        entry.query,
                        entry.summary,
                        entry.domain,
                        json.dumps(entry.payload, default=str),
                        entry.created_at.isoformat(),
                    ),
                )
            return int(cursor.lastrowid)

    def _select(self, sql: str, params: tuple) -> List[HistoryEntry]:
        with self._lock:
            rows = self._connection().execute(sql, params).fetchall()
        return [_row_to_entry(row) for row in rows]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def record(self, entry: HistoryEntry) -> None:
        """Persist *entry*.

        Raises:
            HistoryLoggingFailure: If the database cannot be written.
        """
        try:
            entry.id = await asyncio.to_thread(self._insert, entry)
        except (sqlite3.Error, OSError) as exc:
            raise HistoryLoggingFailure(
                f"Could not record {entry.kind} history for {entry.query!r}: {exc}",
                reason="storage",
            ) from exc
        logger.debug("Recorded %s history entry #%s", entry.kind, entry.id)

    async def recent(self, limit: int = 20, kind: Optional[str] = None) -> List[HistoryEntry]:
        """Return up to *limit* entries, newest first."""
        if kind is None:
            sql = "SELECT * FROM history ORDER BY created_at DESC, id DESC LIMIT ?"
            params: tuple = (limit,)
        else:
            sql = (
                "SELECT * FROM history WHERE kind = ? "
                "ORDER BY created_at DESC, id DESC LIMIT ?"
            )
            params = (kind, limit)
        return await asyncio.to_thread(self._select, sql, params)

    async def find_recent(
        self, query: str, within_hours: float = 6.0
    ) -> Optional[HistoryEntry]:
        """Most recent search within *within_hours* whose query resembles *query*."""
        cutoff = (self._now() - timedelta(hours=within_hours)).isoformat()
        candidates = await asyncio.to_thread(
            self._select,
            "SELECT * FROM history WHERE kind = 'search' AND created_at >= ? "
            "ORDER BY created_at DESC, id DESC LIMIT ?",
            (cutoff, _DUPLICATE_SCAN),
        )
        for entry in candidates:
            if self._rewriter.is_similar(entry.query, query):
                return entry
        return None

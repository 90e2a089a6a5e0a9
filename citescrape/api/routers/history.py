"""History endpoint.

Routes
------
GET /history?limit=20&kind=search|scrape
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from fastapi import APIRouter, HTTPException, Query, Request

from citescrape.history import SQLiteHistory

router = APIRouter()


@router.get("")
async def list_history(
    request: Request,
    limit: int = Query(20, ge=1, le=500),
    kind: Optional[Literal["search", "scrape"]] = None,
) -> list[dict[str, Any]]:
    """Return the most recent operations, newest first.

    Payloads are omitted; only the summary of each entry is listed.
    """
    history = request.app.state.service.history
    if not isinstance(history, SQLiteHistory):
        raise HTTPException(status_code=404, detail="History logging is disabled.")
    entries = await history.recent(limit, kind=kind)
    return [
        {
            "id": entry.id,
            "kind": entry.kind,
            "query": entry.query,
            "summary": entry.summary,
            "domain": entry.domain,
            "created_at": entry.created_at.isoformat(),
        }
        for entry in entries
    ]

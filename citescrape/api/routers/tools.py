"""Tool endpoints: scrape, search and research.

Routes
------
POST /tools/scrape     Body: {"url": "https://...", "max_chars": 5000, ...}
POST /tools/search     Body: {"query": "...", "engines": "...", ...}
POST /tools/research   Body: {"query": "...", "top_n": 3}
"""

from __future__ import annotations

import json
from typing import Any, Literal, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from citescrape.scraper.formatter import MAX_CHARS, MAX_LINKS, MIN_CHARS, MIN_LINKS, render
from citescrape.search.formatting import render_search
from citescrape.search.models import SearchParams
from citescrape.service import ContentService, ScrapeRequest

router = APIRouter()

OutputFormat = Literal["text", "json"]
TimeRange = Literal["", "day", "week", "month", "year"]


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class ScrapeBody(BaseModel):
    url: str = Field(..., min_length=1)
    content_links_only: bool = True
    max_links: int = Field(100, ge=MIN_LINKS, le=MAX_LINKS)
    max_chars: Optional[int] = Field(None, ge=MIN_CHARS, le=MAX_CHARS)
    output_format: OutputFormat = "text"


class SearchBody(BaseModel):
    query: str = Field(..., min_length=1)
    engines: Optional[str] = None
    categories: str = "general"
    language: str = "en"
    safesearch: int = Field(0, ge=0, le=2)
    time_range: TimeRange = ""
    pageno: int = Field(1, ge=1)
    max_results: int = Field(10, ge=1, le=100)
    output_format: OutputFormat = "text"

    def params(self) -> SearchParams:
        return SearchParams(
            engines=self.engines,
            categories=self.categories,
            language=self.language,
            safesearch=self.safesearch,
            time_range=self.time_range,
            pageno=self.pageno,
            max_results=self.max_results,
        )


class ResearchBody(BaseModel):
    query: str = Field(..., min_length=1)
    top_n: Optional[int] = Field(None, ge=1, le=20)
    max_chars: Optional[int] = Field(None, ge=MIN_CHARS, le=MAX_CHARS)
    max_links: int = Field(20, ge=MIN_LINKS, le=MAX_LINKS)


class ToolResponse(BaseModel):
    format: OutputFormat
    content: str


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _service(request: Request) -> ContentService:
    return request.app.state.service


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/scrape", response_model=ToolResponse)
async def scrape_endpoint(body: ScrapeBody, request: Request) -> dict[str, Any]:
    """Fetch a page and return clean content with numbered citations.

    ``content`` is markdown-ish text, or a JSON document when
    ``output_format`` is ``json``.
    """
    content = await _service(request).scrape_page(
        ScrapeRequest(
            url=body.url.strip(),
            content_links_only=body.content_links_only,
            max_links=body.max_links,
            max_chars=body.max_chars,
            output_format=body.output_format,
        )
    )
    return {"format": body.output_format, "content": content}


@router.post("/search", response_model=ToolResponse)
async def search_endpoint(body: SearchBody, request: Request) -> dict[str, Any]:
    """Search the web through SearXNG."""
    try:
        response = await _service(request).search(body.query, body.params())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if body.output_format == "json":
        content = json.dumps(response.to_dict(), indent=2, ensure_ascii=False)
    else:
        content = render_search(response, body.max_results)
    return {"format": body.output_format, "content": content}


@router.post("/research")
async def research_endpoint(body: ResearchBody, request: Request) -> dict[str, Any]:
    """Search, then scrape the top results.

    Pages are rendered as text under the given budget; failed scrapes are
    listed with their error record instead of failing the request.
    """
    try:
        report = await _service(request).research(body.query, top_n=body.top_n)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {
        "query": report.query,
        "search": render_search(report.search),
        "pages": [
            {"url": page.url, "content": render(page, "text", body.max_chars, body.max_links)}
            for page in report.pages
        ],
        "failures": report.failures,
    }

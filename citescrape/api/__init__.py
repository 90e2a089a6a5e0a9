"""FastAPI HTTP layer package.

Public re-export so callers can write::

    from citescrape.api import app

    uvicorn citescrape.api:app --reload
"""

from citescrape.api.app import app, create_app

__all__ = ["app", "create_app"]

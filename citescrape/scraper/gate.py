"""Admission control for outbound network operations."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class ConcurrencyGate:
    """Counting semaphore with observability counters.

    ``async with gate.slot():`` suspends until a slot is free and releases it
    on every exit path, including exceptions and task cancellation.
    """

    def __init__(self, limit: int = 32) -> None:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self.limit = limit
        self._semaphore = asyncio.Semaphore(limit)
        self.in_flight = 0
        self.peak = 0

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        await self._semaphore.acquire()
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            yield
        finally:
            self.in_flight -= 1
            self._semaphore.release()

    def __repr__(self) -> str:
        return f"ConcurrencyGate(limit={self.limit}, in_flight={self.in_flight})"

"""Retry policy shared by the page fetcher and the search client.

Callers drive the retry themselves with an explicit loop; this module only
computes delays and carries the per-call attempt state.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Optional

from citescrape.config import settings


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 4.0
    total_budget: float = 10.0

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_attempts=max(1, settings.fetch_max_attempts),
            base_delay=settings.fetch_backoff_base,
            max_delay=settings.fetch_backoff_max,
            total_budget=settings.fetch_retry_budget,
        )

    def backoff(self, attempt: int, rng: random.Random) -> float:
        """Jittered delay after the zero-based *attempt* failed.

        The ceiling doubles each attempt; the actual delay is drawn from the
        upper half of ``[0, ceiling]``.
        """
        ceiling = min(self.max_delay, self.base_delay * (2 ** attempt))
        return ceiling * (0.5 + rng.random() / 2)


@dataclass
class RetryState:
    """Transient bookkeeping for one logical request; never persisted."""

    attempt: int = 0
    last_error: Optional[Exception] = None
    next_delay: float = 0.0

    def can_retry(self, policy: RetryPolicy, elapsed: float) -> bool:
        """True while attempts remain and the next sleep fits the budget."""
        if self.attempt + 1 >= policy.max_attempts:
            return False
        return elapsed + self.next_delay <= policy.total_budget

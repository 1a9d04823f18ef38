"""
Caller-owned cache of recent decisions.

Decisions are kept for attribution lookups when an outcome is tracked
later. The cache is bounded: entries expire after a TTL and the oldest
entry is evicted once the cache is full.
"""

import time
from collections import OrderedDict
from typing import Callable, Iterator, Optional, Tuple

from shared.logging import get_logger
from ..models import DecisionResult

DEFAULT_TTL_SECONDS = 3600.0
DEFAULT_MAX_ENTRIES = 100


class DecisionCache:
    """Insertion-ordered decision cache with TTL expiry."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic
    ):
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, DecisionResult]]" = OrderedDict()
        self.logger = get_logger("decisions.cache")

    def __len__(self) -> int:
        self._purge_expired()
        return len(self._entries)

    def _is_expired(self, stored_at: float) -> bool:
        return self._clock() - stored_at >= self.ttl_seconds

    def _purge_expired(self):
        expired = [key for key, (stored_at, _) in self._entries.items() if self._is_expired(stored_at)]
        for key in expired:
            del self._entries[key]

    def put(self, decision: DecisionResult):
        """Store a decision, evicting the oldest entry if full."""
        self._purge_expired()
        self._entries.pop(decision.decision_id, None)

        while len(self._entries) >= self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            self.logger.debug("Evicted cached decision", evicted_decision_id=evicted)

        self._entries[decision.decision_id] = (self._clock(), decision)

    def get(self, decision_id: str) -> Optional[DecisionResult]:
        """Get a cached decision, or ``None`` if unknown or expired."""
        entry = self._entries.get(decision_id)
        if entry is None:
            return None
        stored_at, decision = entry
        if self._is_expired(stored_at):
            del self._entries[decision_id]
            return None
        return decision

    def values(self) -> Iterator[DecisionResult]:
        """Live decisions, oldest first."""
        self._purge_expired()
        return iter([decision for _, decision in self._entries.values()])

    def clear(self):
        self._entries.clear()

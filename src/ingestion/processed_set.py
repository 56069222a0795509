"""
Bounded record of already-processed transaction ids.

Ids are marked as soon as a transaction is confirmed to be a mirrorable
swap, before execution, so a slow or failing execution is never retried
by a second notification for the same id (at-most-once attempt).
"""

import logging
import time
from collections import OrderedDict
from typing import Callable, Optional

from ..core.models import Direction

logger = logging.getLogger(__name__)


def composite_key(mint: str, direction: Direction) -> str:
    """Dedup key for feed events that carry no transaction signature."""
    return f"{mint}:{direction.value}"


class ProcessedSet:
    """
    Insertion-ordered id set with a TTL and a maximum size.

    Expired ids are dropped lazily on access; when full, the oldest id is
    evicted.
    """

    DEFAULT_TTL_SECONDS = 3600.0
    DEFAULT_MAX_SIZE = 10_000

    def __init__(
        self,
        ttl_seconds: Optional[float] = DEFAULT_TTL_SECONDS,
        max_size: int = DEFAULT_MAX_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            ttl_seconds: How long an id is remembered (None = until evicted by size)
            max_size: Maximum ids kept
            clock: Monotonic time source (injectable for tests)
        """
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._clock = clock
        self._entries: "OrderedDict[str, float]" = OrderedDict()
        self._evicted = 0

    def has_processed(self, key: str) -> bool:
        if not key:
            return False
        self._expire()
        return key in self._entries

    def mark_processed(self, key: str):
        if not key:
            return
        self._expire()
        self._entries[key] = self._clock()
        self._entries.move_to_end(key)

        while len(self._entries) > self.max_size:
            oldest, _ = self._entries.popitem(last=False)
            self._evicted += 1
            logger.debug(f"Evicted processed id {oldest[:16]}...")

    def _expire(self):
        if self.ttl_seconds is None:
            return
        cutoff = self._clock() - self.ttl_seconds
        while self._entries:
            key, marked_at = next(iter(self._entries.items()))
            if marked_at > cutoff:
                break
            self._entries.popitem(last=False)
            self._evicted += 1

    def __contains__(self, key: str) -> bool:
        return self.has_processed(key)

    def __len__(self) -> int:
        self._expire()
        return len(self._entries)

    def get_stats(self) -> dict:
        return {
            "tracked": len(self),
            "evicted": self._evicted,
            "max_size": self.max_size,
            "ttl_seconds": self.ttl_seconds,
        }

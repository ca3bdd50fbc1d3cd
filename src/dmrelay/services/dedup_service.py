"""Service for skipping messages already handled in this process."""

import heapq
import logging
import time
from typing import Callable

from ..models import ts_value

logger = logging.getLogger(__name__)


class SeenSet:
    """Set of (conversation, ts) pairs with time-based eviction.

    Entries are indexed by message time so pruning only touches the oldest
    ones. Anything older than ``retention_seconds`` is dropped by
    :meth:`cleanup_old_entries`; the watermark keeps such messages out of the
    query window anyway.
    """

    def __init__(self, retention_seconds: float = 3600.0, clock: Callable[[], float] = time.time):
        self.retention_seconds = retention_seconds
        self._clock = clock
        self._keys: set[tuple[str, str]] = set()
        self._by_time: list[tuple[float, tuple[str, str]]] = []

    def mark_if_new(self, conversation_id: str, ts: str) -> bool:
        """Record the pair if unseen.

        Returns:
            True if the message was not seen before, False for a duplicate.
        """
        key = (conversation_id, ts)
        if key in self._keys:
            logger.debug("Duplicate message skipped: %s:%s", conversation_id, ts)
            return False
        self._keys.add(key)
        heapq.heappush(self._by_time, (float(ts_value(ts)), key))
        return True

    def forget(self, conversation_id: str, ts: str) -> None:
        """Drop a pair so the message is processed again on the next tick."""
        self._keys.discard((conversation_id, ts))

    def cleanup_old_entries(self) -> int:
        """Evict entries older than the retention window.

        Returns:
            Number of evicted entries.
        """
        cutoff = self._clock() - self.retention_seconds
        evicted = 0
        while self._by_time and self._by_time[0][0] < cutoff:
            _, key = heapq.heappop(self._by_time)
            if key in self._keys:
                self._keys.discard(key)
                evicted += 1
        if evicted:
            logger.debug("Evicted %d dedup entries older than %ss", evicted, self.retention_seconds)
        return evicted

    def __contains__(self, key: tuple[str, str]) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

"""Per-conversation history cursor."""

import logging
from typing import Optional

from ..models import ts_value

logger = logging.getLogger(__name__)


class WatermarkStore:
    """Tracks the last processed Slack ts for each conversation."""

    def __init__(self) -> None:
        self._watermarks: dict[str, str] = {}

    def initialize(self, conversation_id: str, ts: str) -> None:
        """Set the starting watermark (bootstrap only)."""
        self._watermarks[conversation_id] = ts
        logger.debug("Watermark for %s starts at %s", conversation_id, ts)

    def advance(self, conversation_id: str, ts: str) -> bool:
        """Move the watermark forward to ``ts``.

        Returns:
            True if the watermark moved, False if ``ts`` is not newer.
        """
        current = self._watermarks.get(conversation_id)
        if current is not None and ts_value(ts) <= ts_value(current):
            return False
        self._watermarks[conversation_id] = ts
        return True

    def get(self, conversation_id: str) -> Optional[str]:
        return self._watermarks.get(conversation_id)

    def conversations(self) -> list[str]:
        """Conversation ids in bootstrap order."""
        return list(self._watermarks)

    def __contains__(self, conversation_id: str) -> bool:
        return conversation_id in self._watermarks

    def __len__(self) -> int:
        return len(self._watermarks)

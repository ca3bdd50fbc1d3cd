"""Service for collapsing message bursts into periodic summaries."""

import logging
import time
from typing import Callable, Optional

from ..models import SuppressionRecord, format_ts

logger = logging.getLogger(__name__)


class CooldownGate:
    """Per-conversation cooldown between WhatsApp deliveries.

    A conversation is in cooldown for ``cooldown_seconds`` after its last
    successful delivery. Messages arriving in that window are folded into a
    :class:`SuppressionRecord`, which is turned into a digest once the window
    has passed.
    """

    def __init__(
        self,
        cooldown_seconds: float,
        summary_enabled: bool = True,
        clock: Callable[[], float] = time.time,
        timezone: str = "UTC",
        timestamp_format: str = "%d/%m/%Y %H:%M:%S",
        preview_length: int = 300,
        max_length: int = 1000,
    ):
        self.cooldown_seconds = cooldown_seconds
        self.summary_enabled = summary_enabled
        self.timezone = timezone
        self.timestamp_format = timestamp_format
        self.preview_length = preview_length
        self.max_length = max_length
        self._clock = clock
        self._last_notify_at: dict[str, Optional[float]] = {}
        self._suppressed: dict[str, SuppressionRecord] = {}

    def reset(self, conversation_id: str) -> None:
        """Start with the cooldown already expired, so the first message goes out."""
        self._last_notify_at[conversation_id] = None

    def is_in_cooldown(self, conversation_id: str) -> bool:
        last = self._last_notify_at.get(conversation_id)
        if last is None:
            return False
        return (self._clock() - last) < self.cooldown_seconds

    def record_delivered(self, conversation_id: str) -> None:
        self._last_notify_at[conversation_id] = self._clock()

    def record_suppressed(
        self,
        conversation_id: str,
        sender_name: str,
        preview_text: str,
        ts: str,
        attachment_count: int = 0,
    ) -> SuppressionRecord:
        """Fold a withheld message into the conversation's suppression record.

        A non-empty ``preview_text`` counts as one message and becomes the
        latest preview, paired with its sender. Attachments are counted
        separately.
        """
        record = self._suppressed.get(conversation_id)
        if record is None:
            record = SuppressionRecord(first_ts=ts, last_ts=ts)
            self._suppressed[conversation_id] = record

        if preview_text:
            record.count += 1
            record.last_preview = preview_text
            record.last_sender = sender_name
        record.attachment_count += attachment_count
        record.last_ts = ts

        logger.debug(
            "Suppressed message in %s at %s (%d message(s), %d attachment(s) pending)",
            conversation_id,
            ts,
            record.count,
            record.attachment_count,
        )
        return record

    def get_suppressed(self, conversation_id: str) -> Optional[SuppressionRecord]:
        return self._suppressed.get(conversation_id)

    def clear_suppressed(self, conversation_id: str) -> None:
        self._suppressed.pop(conversation_id, None)

    def maybe_flush_summary(self, conversation_id: str) -> Optional[str]:
        """Return a digest of suppressed messages if the cooldown has passed.

        The record is kept until the caller confirms delivery with
        :meth:`clear_suppressed`. With summaries disabled, an expired record
        is discarded and nothing is returned.
        """
        record = self._suppressed.get(conversation_id)
        if record is None or self.is_in_cooldown(conversation_id):
            return None

        if not self.summary_enabled:
            logger.debug("Dropping suppression record for %s (summaries disabled)", conversation_id)
            self.clear_suppressed(conversation_id)
            return None

        return self.format_summary(record)

    def format_summary(self, record: SuppressionRecord) -> str:
        """Render a human-readable digest of a suppression record."""
        first = format_ts(record.first_ts, self.timezone, self.timestamp_format)
        last = format_ts(record.last_ts, self.timezone, self.timestamp_format)

        counts = []
        if record.count:
            counts.append(f"{record.count} new message(s)")
        if record.attachment_count:
            counts.append(f"{record.attachment_count} attachment(s)")

        body = f"🔔 Slack summary: {', '.join(counts)} between {first} and {last}."
        if record.last_preview:
            preview = record.last_preview[: self.preview_length]
            body += f"\nLatest: {record.last_sender}: {preview}"
        return body[: self.max_length]

"""Main relay loop: poll Slack DMs, gate bursts, deliver to WhatsApp."""

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from .config import Config
from .errors import AttachmentDownloadError, SourceFetchError
from .models import SlackMessage, format_ts, ts_now
from .services import CooldownGate, DeliveryService, NameResolver, SeenSet, WatermarkStore
from .slack_client import SlackReader

logger = logging.getLogger(__name__)

UNKNOWN_SENDER = "someone"


class MessageAction(Enum):
    """What the relay does with a polled message."""

    DUPLICATE = "duplicate"
    DISCARD = "discard"
    SKIP_SELF = "skip_self"
    SUPPRESS = "suppress"
    FORWARD = "forward"


def decide_action(
    message: SlackMessage,
    *,
    is_new: bool,
    in_cooldown: bool,
    self_user_id: Optional[str],
    forward_outgoing: bool,
    discarded_subtypes: set[str],
) -> MessageAction:
    """Classify a message, then gate it.

    Rows are checked in order; the first match wins:

    ==========================================  ===========
    already seen                                DUPLICATE
    system subtype, or no text and no files     DISCARD
    sent by the token owner (forwarding off)    SKIP_SELF
    conversation in cooldown                    SUPPRESS
    otherwise                                   FORWARD
    ==========================================  ===========
    """
    if not is_new:
        return MessageAction.DUPLICATE
    if message.subtype in discarded_subtypes:
        return MessageAction.DISCARD
    if not message.preview and not message.files:
        return MessageAction.DISCARD
    if not forward_outgoing and message.user is not None and message.user == self_user_id:
        return MessageAction.SKIP_SELF
    if in_cooldown:
        return MessageAction.SUPPRESS
    return MessageAction.FORWARD


class Relay:
    """Forwarding orchestrator.

    Owns all per-conversation state (watermarks, dedup set, cooldown gate).
    Conversations are processed one at a time within a tick.
    """

    def __init__(
        self,
        config: Config,
        reader: SlackReader,
        delivery: DeliveryService,
        names: NameResolver,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self.relay_config = config.relay
        self.reader = reader
        self.delivery = delivery
        self.names = names
        self._clock = clock
        self._sleep = sleep

        self.watermarks = WatermarkStore()
        self.seen = SeenSet(self.relay_config.seen_retention_seconds, clock=clock)
        self.gate = CooldownGate(
            self.relay_config.cooldown_seconds,
            summary_enabled=self.relay_config.cooldown_summary,
            clock=clock,
            timezone=self.relay_config.timezone,
            timestamp_format=self.relay_config.timestamp_format,
            preview_length=self.relay_config.summary_preview_length,
            max_length=self.relay_config.max_text_length,
        )
        self.discarded_subtypes = set(self.relay_config.discarded_subtypes)

        # Fetch backoff per conversation
        self._fetch_failures: dict[str, int] = {}
        self._retry_at: dict[str, float] = {}

    async def bootstrap(self) -> int:
        """Discover conversations and seed their watermarks.

        History that exists before bootstrap is never forwarded.

        Returns:
            Number of monitored conversations.

        Raises:
            SourceFetchError: If authentication or conversation listing fails.
        """
        await self.reader.authenticate()
        conversations = await self.reader.list_conversations()

        for conversation in conversations:
            try:
                latest = await self.reader.fetch_latest_timestamp(conversation.id)
            except SourceFetchError as e:
                latest = ts_now(self._clock)
                logger.warning("Could not read latest message of %s, starting from now: %s", conversation.id, e)
            self.watermarks.initialize(conversation.id, latest)
            self.gate.reset(conversation.id)

        logger.info(
            "Monitoring %d DM(s). forward_outgoing=%s",
            len(conversations),
            self.relay_config.forward_outgoing,
        )
        return len(conversations)

    async def run_once(self) -> int:
        """Run a single polling tick over every conversation.

        Returns:
            Number of new messages processed.
        """
        processed = 0
        now = self._clock()

        for conversation_id in self.watermarks.conversations():
            if self._retry_at.get(conversation_id, 0.0) > now:
                continue

            try:
                processed += await self.process_conversation(conversation_id)
            except SourceFetchError as e:
                logger.warning("Poll failed for %s: %s", conversation_id, e)
                self._record_fetch_failure(conversation_id, now)
            except Exception as e:
                logger.error("Error processing conversation %s: %s", conversation_id, e)
            else:
                self._fetch_failures.pop(conversation_id, None)
                self._retry_at.pop(conversation_id, None)

        self.seen.cleanup_old_entries()
        return processed

    async def run(self) -> None:
        """Poll forever with a fixed delay between ticks."""
        logger.info("Relaying Slack DMs to %d WhatsApp number(s)", len(self.delivery.dest_numbers))
        logger.info("Poll interval: %s seconds", self.relay_config.poll_interval)

        try:
            while True:
                await self.run_once()
                await self._sleep(self.relay_config.poll_interval)

        except KeyboardInterrupt:
            logger.info("Received shutdown signal, exiting...")

    async def process_conversation(self, conversation_id: str) -> int:
        """Process new messages of one conversation, then flush its summary.

        The watermark follows every handled message. If a message raises,
        processing stops there and the message is retried on the next tick.

        Returns:
            Number of messages handled (duplicates excluded).
        """
        since = self.watermarks.get(conversation_id)
        messages = await self.reader.fetch_new_messages(conversation_id, since)

        handled = 0
        for message in messages:
            try:
                action = await self.process_message(conversation_id, message)
            except Exception:
                self.seen.forget(conversation_id, message.ts)
                logger.exception("Failed processing message %s in %s", message.ts, conversation_id)
                raise

            self.watermarks.advance(conversation_id, message.ts)
            if action is not MessageAction.DUPLICATE:
                handled += 1

        await self.flush_summary(conversation_id)
        return handled

    async def process_message(self, conversation_id: str, message: SlackMessage) -> MessageAction:
        """Decide on and carry out the action for a single message."""
        is_new = self.seen.mark_if_new(conversation_id, message.ts)
        action = decide_action(
            message,
            is_new=is_new,
            in_cooldown=self.gate.is_in_cooldown(conversation_id),
            self_user_id=self.reader.self_user_id,
            forward_outgoing=self.relay_config.forward_outgoing,
            discarded_subtypes=self.discarded_subtypes,
        )

        if action in (MessageAction.DUPLICATE, MessageAction.DISCARD, MessageAction.SKIP_SELF):
            logger.debug("Skipping %s in %s: %s", message.ts, conversation_id, action.value)
            return action

        sender = await self.names.resolve(message.user) if message.user else UNKNOWN_SENDER

        if action is MessageAction.SUPPRESS:
            self.gate.record_suppressed(
                conversation_id,
                sender,
                message.preview,
                message.ts,
                attachment_count=len(message.files),
            )
            return action

        await self._forward(conversation_id, message, sender)
        return action

    async def flush_summary(self, conversation_id: str) -> bool:
        """Deliver the pending digest if the cooldown has passed.

        Returns:
            True if a summary was delivered to at least one number.
        """
        summary = self.gate.maybe_flush_summary(conversation_id)
        if summary is None:
            return False

        if await self.delivery.fan_out_text(summary):
            self.gate.record_delivered(conversation_id)
            self.gate.clear_suppressed(conversation_id)
            logger.info("Delivered cooldown summary for %s", conversation_id)
            return True

        logger.warning("Cooldown summary for %s not delivered, will retry", conversation_id)
        return False

    def header_for(self, sender: str, ts: str) -> str:
        when = format_ts(ts, self.relay_config.timezone, self.relay_config.timestamp_format)
        return f"💬 Slack DM from {sender} ({when})"

    async def _forward(self, conversation_id: str, message: SlackMessage, sender: str) -> None:
        header = self.header_for(sender, message.ts)
        preview = message.preview

        if preview:
            body = f"{header}\n\n{preview}"[: self.relay_config.max_text_length]
            if await self.delivery.fan_out_text(body):
                self.gate.record_delivered(conversation_id)
            else:
                logger.error("Message %s in %s reached no WhatsApp number", message.ts, conversation_id)

        caption = f"{header}\n\n{preview}".strip()[: self.relay_config.max_caption_length]
        for attachment in message.files:
            if not attachment.url:
                logger.warning("Skipping file %s in %s: no download URL", attachment.file_id, conversation_id)
                continue

            try:
                data = await self.reader.download_attachment(attachment)
            except AttachmentDownloadError as e:
                logger.warning(
                    "Failed downloading %s from message %s in %s: %s",
                    attachment.filename,
                    message.ts,
                    conversation_id,
                    e,
                )
                continue

            if await self.delivery.fan_out_media(caption, data, attachment.filename, attachment.mimetype):
                self.gate.record_delivered(conversation_id)
            else:
                logger.error(
                    "Attachment %s of message %s in %s reached no WhatsApp number",
                    attachment.filename,
                    message.ts,
                    conversation_id,
                )

    def _record_fetch_failure(self, conversation_id: str, now: float) -> None:
        failures = self._fetch_failures.get(conversation_id, 0) + 1
        self._fetch_failures[conversation_id] = failures

        max_backoff = self.relay_config.max_backoff_seconds
        if max_backoff <= 0 or failures < 2:
            return

        delay = min(self.relay_config.poll_interval * 2 ** (failures - 1), max_backoff)
        self._retry_at[conversation_id] = now + delay
        logger.info("Backing off %s for %.0fs after %d failed polls", conversation_id, delay, failures)

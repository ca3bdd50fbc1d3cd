"""Resilient WhatsApp delivery and fan-out to every destination number."""

import asyncio
import logging
from typing import Any, Awaitable, Callable

from ..errors import SessionExpiredError
from ..whatsapp_client import WhatsAppClient

logger = logging.getLogger(__name__)


class DeliveryService:
    """Sends payloads to WhatsApp, re-opening expired sessions once."""

    def __init__(
        self,
        client: WhatsAppClient,
        dest_numbers: list[str],
        handshake_delay: float = 1.2,
        max_caption_length: int = 900,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.client = client
        self.dest_numbers = list(dest_numbers)
        self.handshake_delay = handshake_delay
        self.max_caption_length = max_caption_length
        self._sleep = sleep

    async def send_text_resilient(self, to: str, body: str) -> dict[str, Any]:
        """Send text, retrying once after a session handshake if the window closed.

        Raises:
            DestinationDeliveryError: If the send fails for another reason,
                the handshake fails, or the retry fails.
        """
        try:
            return await self.client.send_text(to, body)
        except SessionExpiredError as e:
            logger.info("Session expired for %s (code %s), sending handshake", to, e.error_code)

        await self._handshake(to)
        return await self.client.send_text(to, body)

    async def send_media_resilient(
        self,
        to: str,
        header: str,
        data: bytes,
        filename: str,
        mimetype: str,
    ) -> dict[str, Any]:
        """Upload media once, then send it as an image or a document.

        Args:
            to: Destination phone number.
            header: Caption text, truncated to the caption limit.
            data: File bytes.
            filename: File name shown for documents.
            mimetype: MIME type; ``image/*`` is sent as an image.
        """
        media_id = await self.client.upload_media(data, filename, mimetype)
        caption = header[: self.max_caption_length]

        try:
            return await self._send_media(to, media_id, filename, mimetype, caption)
        except SessionExpiredError as e:
            logger.info("Session expired for %s (code %s), sending handshake", to, e.error_code)

        await self._handshake(to)
        return await self._send_media(to, media_id, filename, mimetype, caption)

    async def fan_out_text(self, body: str) -> bool:
        """Send text to every destination.

        Returns:
            True if at least one destination accepted it.
        """
        return await self._fan_out(
            "text",
            lambda to: self.send_text_resilient(to, body),
        )

    async def fan_out_media(self, header: str, data: bytes, filename: str, mimetype: str) -> bool:
        """Send media to every destination.

        Returns:
            True if at least one destination accepted it.
        """
        return await self._fan_out(
            f"attachment {filename}",
            lambda to: self.send_media_resilient(to, header, data, filename, mimetype),
        )

    async def _fan_out(self, what: str, send: Callable[[str], Awaitable[Any]]) -> bool:
        any_success = False
        for to in self.dest_numbers:
            try:
                await send(to)
                any_success = True
            except Exception as e:
                logger.error("WhatsApp %s to %s failed: %s", what, to, e)
        return any_success

    async def _send_media(
        self, to: str, media_id: str, filename: str, mimetype: str, caption: str
    ) -> dict[str, Any]:
        if (mimetype or "").startswith("image/"):
            return await self.client.send_image(to, media_id, caption)
        return await self.client.send_document(to, media_id, filename, caption)

    async def _handshake(self, to: str) -> None:
        await self.client.send_template(to)
        await self._sleep(self.handshake_delay)

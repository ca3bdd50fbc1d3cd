"""Slack Web API wrapper for reading direct messages with a user token."""

import asyncio
import logging
import time
from typing import Optional

import aiohttp
import httpx
from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_client import AsyncWebClient

from .config import SlackConfig
from .errors import AttachmentDownloadError, SourceFetchError
from .models import Attachment, Conversation, SlackMessage, ts_now, ts_value

logger = logging.getLogger(__name__)

# Failures of a Web API call: error responses, transport errors and timeouts
SLACK_ERRORS = (SlackApiError, aiohttp.ClientError, asyncio.TimeoutError)


class SlackReader:
    """Reads DM and group DM history visible to the configured user."""

    CONVERSATION_TYPES = "im,mpim"

    def __init__(
        self,
        config: SlackConfig,
        client: Optional[AsyncWebClient] = None,
        http: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ) -> None:
        self.config = config
        self._token = config.user_token.get_secret_value()
        self.client = client or AsyncWebClient(token=self._token, timeout=int(timeout))
        self.http = http or httpx.AsyncClient(timeout=timeout, follow_redirects=True)
        self.self_user_id: Optional[str] = None

    async def authenticate(self) -> str:
        """Look up the identity behind the token.

        Returns:
            Slack user id of the token owner.

        Raises:
            SourceFetchError: If auth.test fails.
        """
        try:
            auth = await self.client.auth_test()
        except SLACK_ERRORS as e:
            raise SourceFetchError(f"Slack auth.test failed: {e}") from e

        self.self_user_id = auth["user_id"]
        logger.info("Authenticated to Slack as user %s", self.self_user_id)
        return self.self_user_id

    async def list_conversations(self) -> list[Conversation]:
        """List every DM and group DM, following pagination to the end.

        Raises:
            SourceFetchError: If any page fails.
        """
        conversations: list[Conversation] = []
        cursor = None

        while True:
            try:
                response = await self.client.conversations_list(
                    types=self.CONVERSATION_TYPES,
                    limit=self.config.list_page_size,
                    cursor=cursor,
                )
            except SLACK_ERRORS as e:
                raise SourceFetchError(f"Slack conversations.list failed: {e}") from e

            conversations.extend(Conversation.from_slack(c) for c in response.get("channels") or [])

            cursor = (response.get("response_metadata") or {}).get("next_cursor")
            if not cursor:
                break

        return conversations

    async def fetch_latest_timestamp(self, conversation_id: str) -> str:
        """Ts of the newest message, or the current time for an empty history."""
        try:
            response = await self.client.conversations_history(channel=conversation_id, limit=1)
        except SLACK_ERRORS as e:
            raise SourceFetchError(
                f"Slack conversations.history failed for {conversation_id}: {e}",
                conversation_id=conversation_id,
            ) from e

        messages = response.get("messages") or []
        if messages:
            return str(messages[0]["ts"])
        return ts_now(time.time)

    async def fetch_new_messages(self, conversation_id: str, since_ts: str) -> list[SlackMessage]:
        """Messages strictly newer than ``since_ts``, oldest first.

        Slack returns the newest page first, so every page back to
        ``since_ts`` is read before anything is returned.
        """
        messages: list[SlackMessage] = []
        cursor = None

        while True:
            try:
                response = await self.client.conversations_history(
                    channel=conversation_id,
                    oldest=since_ts,
                    inclusive=False,
                    limit=self.config.page_size,
                    cursor=cursor,
                )
            except SLACK_ERRORS as e:
                raise SourceFetchError(
                    f"Slack conversations.history failed for {conversation_id}: {e}",
                    conversation_id=conversation_id,
                ) from e

            messages.extend(SlackMessage.from_slack(m) for m in response.get("messages") or [])

            cursor = (response.get("response_metadata") or {}).get("next_cursor")
            if not response.get("has_more") or not cursor:
                break
            logger.debug("Reading older history page of %s", conversation_id)

        messages.sort(key=lambda m: ts_value(m.ts))
        return messages

    async def download_attachment(self, attachment: Attachment) -> bytes:
        """Fetch attachment bytes using the user token.

        Raises:
            AttachmentDownloadError: On a missing URL, transport error or
                non-2xx response.
        """
        if not attachment.url:
            raise AttachmentDownloadError(f"No download URL for file {attachment.file_id}", url="")

        try:
            response = await self.http.get(
                attachment.url,
                headers={"Authorization": f"Bearer {self._token}"},
            )
        except httpx.HTTPError as e:
            raise AttachmentDownloadError(f"Download failed: {e}", url=attachment.url) from e

        if response.status_code >= 400:
            raise AttachmentDownloadError(
                f"Download failed (HTTP {response.status_code})",
                url=attachment.url,
                status_code=response.status_code,
            )
        return response.content

    async def close(self) -> None:
        await self.http.aclose()

"""Slack user id to display name lookup."""

import logging

from slack_sdk.web.async_client import AsyncWebClient

logger = logging.getLogger(__name__)


class NameResolver:
    """Resolves Slack user ids to display names, caching successful lookups."""

    def __init__(self, client: AsyncWebClient):
        self.client = client
        self._cache: dict[str, str] = {}

    async def resolve(self, user_id: str) -> str:
        """Display name for ``user_id``.

        Falls back to the raw id if the lookup fails; never raises.
        """
        if user_id in self._cache:
            return self._cache[user_id]

        try:
            response = await self.client.users_info(user=user_id)
        except Exception as e:
            logger.warning("Failed to resolve Slack user %s: %s", user_id, e)
            return user_id

        user = response.get("user") or {}
        profile = user.get("profile") or {}
        name = (
            profile.get("real_name_normalized")
            or user.get("real_name")
            or user.get("name")
            or user_id
        )
        self._cache[user_id] = name
        return name

    def __len__(self) -> int:
        return len(self._cache)

"""Tests for NameResolver."""

from unittest.mock import AsyncMock

import pytest
from slack_sdk.errors import SlackApiError

from dmrelay.services import NameResolver


class TestNameResolver:
    """Test user name lookup and caching."""

    def setup_method(self):
        self.client = AsyncMock()
        self.names = NameResolver(self.client)

    @pytest.mark.asyncio
    async def test_prefers_normalized_real_name(self):
        self.client.users_info.return_value = {
            "user": {
                "name": "alice",
                "real_name": "Alice Á",
                "profile": {"real_name_normalized": "Alice A"},
            }
        }

        assert await self.names.resolve("U1") == "Alice A"

    @pytest.mark.asyncio
    async def test_falls_back_through_fields(self):
        self.client.users_info.side_effect = [
            {"user": {"name": "bob", "real_name": "Bob B", "profile": {}}},
            {"user": {"name": "carol"}},
            {"user": {}},
        ]

        assert await self.names.resolve("U1") == "Bob B"
        assert await self.names.resolve("U2") == "carol"
        assert await self.names.resolve("U3") == "U3"

    @pytest.mark.asyncio
    async def test_caches_successful_lookup(self):
        self.client.users_info.return_value = {"user": {"name": "alice"}}

        await self.names.resolve("U1")
        await self.names.resolve("U1")

        self.client.users_info.assert_awaited_once_with(user="U1")
        assert len(self.names) == 1

    @pytest.mark.asyncio
    async def test_failure_returns_id_and_is_not_cached(self):
        self.client.users_info.side_effect = [
            SlackApiError("user_not_found", {"ok": False, "error": "user_not_found"}),
            {"user": {"name": "alice"}},
        ]

        assert await self.names.resolve("U1") == "U1"
        assert len(self.names) == 0
        assert await self.names.resolve("U1") == "alice"

"""Tests for Slack payload parsing and timestamp helpers."""

from decimal import Decimal

import pytest

from dmrelay.models import Attachment, SlackMessage, format_ts, ts_now, ts_value


class TestAttachment:
    """Test Attachment parsing."""

    def test_prefers_download_url(self):
        attachment = Attachment.from_slack(
            {
                "id": "F1",
                "url_private": "https://files/private",
                "url_private_download": "https://files/download",
                "permalink": "https://slack/permalink",
            }
        )
        assert attachment.url == "https://files/download"

    def test_falls_back_to_permalink(self):
        attachment = Attachment.from_slack({"id": "F1", "permalink": "https://slack/permalink"})
        assert attachment.url == "https://slack/permalink"

    def test_defaults(self):
        attachment = Attachment.from_slack({"id": "F9"})

        assert attachment.url is None
        assert attachment.filename == "slack-file-F9"
        assert attachment.mimetype == "application/octet-stream"
        assert not attachment.is_image


class TestSlackMessage:
    """Test SlackMessage parsing."""

    def test_from_slack(self):
        message = SlackMessage.from_slack(
            {"ts": "1700000001.000100", "user": "U1", "text": "  hi  ", "subtype": ""}
        )

        assert message.ts == "1700000001.000100"
        assert message.subtype is None
        assert message.preview == "hi"
        assert message.files == []


class TestTimestamps:
    """Test ts helpers."""

    def test_ts_value_orders_exactly(self):
        assert ts_value("1700000000.000010") > ts_value("1700000000.000009")
        assert ts_value("1700000000.000100") == Decimal("1700000000.0001")

    def test_ts_value_rejects_garbage(self):
        with pytest.raises(ValueError):
            ts_value("not-a-ts")

    def test_ts_now(self):
        assert ts_now(lambda: 1_700_000_000.5) == "1700000000.500000"

    def test_format_ts_in_timezone(self):
        assert format_ts("1700000000.000100") == "14/11/2023 22:13:20"
        assert format_ts("1700000000.000100", "America/Sao_Paulo") == "14/11/2023 19:13:20"

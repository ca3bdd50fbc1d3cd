"""Data models shared by the Slack reader, the gate and the relay loop."""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
from zoneinfo import ZoneInfo


@dataclass
class Attachment:
    """A file attached to a Slack message."""

    file_id: str
    url: Optional[str]
    mimetype: str = "application/octet-stream"
    filename: str = ""
    size: Optional[int] = None

    @classmethod
    def from_slack(cls, data: dict[str, Any]) -> "Attachment":
        """Build from a Slack file object."""
        file_id = data.get("id", "")
        url = data.get("url_private_download") or data.get("url_private") or data.get("permalink")
        return cls(
            file_id=file_id,
            url=url,
            mimetype=data.get("mimetype") or "application/octet-stream",
            filename=data.get("name") or f"slack-file-{file_id}",
            size=data.get("size"),
        )

    @property
    def is_image(self) -> bool:
        return self.mimetype.startswith("image/")


@dataclass
class SlackMessage:
    """A message read from a Slack conversation history."""

    ts: str
    user: Optional[str] = None
    subtype: Optional[str] = None
    text: str = ""
    files: list[Attachment] = field(default_factory=list)

    @classmethod
    def from_slack(cls, data: dict[str, Any]) -> "SlackMessage":
        """Build from a Slack message object."""
        return cls(
            ts=str(data["ts"]),
            user=data.get("user"),
            subtype=data.get("subtype") or None,
            text=data.get("text") or "",
            files=[Attachment.from_slack(f) for f in data.get("files") or []],
        )

    @property
    def preview(self) -> str:
        return self.text.strip()


@dataclass
class Conversation:
    """A monitored DM or group DM."""

    id: str
    is_mpim: bool = False
    user: Optional[str] = None

    @classmethod
    def from_slack(cls, data: dict[str, Any]) -> "Conversation":
        return cls(id=data["id"], is_mpim=bool(data.get("is_mpim")), user=data.get("user"))


@dataclass
class SuppressionRecord:
    """Messages withheld while a conversation is in cooldown."""

    first_ts: str
    last_ts: str
    count: int = 0
    attachment_count: int = 0
    last_sender: str = ""
    last_preview: str = ""


def ts_value(ts: str) -> Decimal:
    """Numeric value of a Slack ts, for exact ordering."""
    try:
        return Decimal(str(ts))
    except InvalidOperation:
        raise ValueError(f"Invalid Slack timestamp: {ts!r}") from None


def ts_now(clock=time.time) -> str:
    """Current time formatted as a Slack ts."""
    return f"{clock():.6f}"


def format_ts(ts: str, tz: str = "UTC", fmt: str = "%d/%m/%Y %H:%M:%S") -> str:
    """Render a Slack ts in the configured timezone."""
    moment = datetime.fromtimestamp(float(ts), tz=timezone.utc)
    return moment.astimezone(ZoneInfo(tz)).strftime(fmt)

"""Configuration management for the DM relay."""

import os
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator

from .errors import ConfigurationError

DEFAULT_DISCARDED_SUBTYPES = [
    "message_deleted",
    "message_changed",
    "channel_join",
    "channel_leave",
    "channel_topic",
    "channel_purpose",
    "channel_name",
    "bot_message",
]


class SlackConfig(BaseModel):
    """Slack (source) connection settings."""

    user_token: SecretStr = Field(..., description="User OAuth token (xoxp-...)")
    page_size: int = Field(default=200, ge=1, le=1000, description="History messages per poll")
    list_page_size: int = Field(default=1000, ge=1, le=1000)

    @field_validator("user_token")
    @classmethod
    def check_user_token(cls, v: SecretStr) -> SecretStr:
        if not v.get_secret_value().strip().startswith("xoxp-"):
            raise ValueError("user_token must be a Slack user token (starts with xoxp-)")
        return SecretStr(v.get_secret_value().strip())


class WhatsAppConfig(BaseModel):
    """WhatsApp Cloud API (destination) settings."""

    access_token: SecretStr = Field(..., description="Graph API access token")
    phone_number_id: str = Field(..., min_length=1)
    dest_numbers: list[str] = Field(..., min_length=1, description="Recipient phone numbers")
    template_name: str = "hello_world"
    template_lang: str = "en_US"
    api_version: str = "v20.0"
    api_base_url: str = "https://graph.facebook.com"
    session_expired_codes: list[int] = Field(default_factory=lambda: [131047, 131051])
    handshake_delay: float = Field(default=1.2, ge=0.0, description="Seconds to wait after handshake")

    @field_validator("dest_numbers", mode="before")
    @classmethod
    def parse_dest_numbers(cls, v):
        """Accept a comma-separated string as well as a list."""
        if isinstance(v, str):
            v = v.split(",")
        if isinstance(v, list):
            return [str(item).strip() for item in v if str(item).strip()]
        return v


class RelayConfig(BaseModel):
    """Relay loop behavior settings."""

    poll_interval: float = Field(default=5.0, gt=0, description="Seconds between ticks")
    cooldown_seconds: float = Field(default=120.0, ge=0)
    cooldown_summary: bool = True
    forward_outgoing: bool = Field(default=False, description="Forward messages sent by the token owner")
    request_timeout: float = Field(default=30.0, gt=0)
    seen_retention_seconds: float = Field(default=3600.0, gt=0)
    max_backoff_seconds: float = Field(default=300.0, ge=0, description="0 disables fetch backoff")
    timezone: str = "UTC"
    timestamp_format: str = "%d/%m/%Y %H:%M:%S"
    max_text_length: int = Field(default=1000, ge=1, le=4096)
    max_caption_length: int = Field(default=900, ge=1, le=1024)
    summary_preview_length: int = Field(default=300, ge=0)
    discarded_subtypes: list[str] = Field(default_factory=lambda: list(DEFAULT_DISCARDED_SUBTYPES))

    @field_validator("timezone")
    @classmethod
    def check_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}") from None
        return v


class Config(BaseModel):
    """Root configuration model."""

    slack: SlackConfig
    whatsapp: WhatsAppConfig
    relay: RelayConfig = RelayConfig()


def _expand_env_vars(obj):
    """Replace whole-string ${VAR_NAME} values with the environment value, recursively."""
    if isinstance(obj, dict):
        return {key: _expand_env_vars(value) for key, value in obj.items()}
    if isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    if isinstance(obj, str) and obj.startswith("${") and obj.endswith("}"):
        name = obj[2:-1]
        if name not in os.environ:
            raise ConfigurationError(f"Environment variable '{name}' is not set")
        return os.environ[name]
    return obj


def load_config(config_path: str | Path = "config.yaml") -> Config:
    """Load and validate configuration from YAML file.

    Supports ${VAR_NAME} syntax for environment variable expansion.

    Args:
        config_path: Path to the configuration file.

    Returns:
        Validated Config object.

    Raises:
        ConfigurationError: If the file is missing, references an unset
            environment variable, or fails validation.
    """
    path = Path(config_path)
    if not path.exists():
        raise ConfigurationError(
            f"Config file not found: {path}\n"
            "Copy config.example.yaml to config.yaml and fill in your values."
        )

    with path.open() as f:
        try:
            raw_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    raw_config = _expand_env_vars(raw_config)

    try:
        return Config(**raw_config)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration in {path}:\n{e}") from e

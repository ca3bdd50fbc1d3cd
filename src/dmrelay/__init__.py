"""Relay Slack direct messages to WhatsApp with per-conversation cooldown."""

__version__ = "0.1.0"

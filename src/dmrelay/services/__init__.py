"""Stateful services used by the relay loop."""

from .cooldown_service import CooldownGate
from .dedup_service import SeenSet
from .delivery_service import DeliveryService
from .name_resolver import NameResolver
from .watermark_service import WatermarkStore

__all__ = [
    "CooldownGate",
    "DeliveryService",
    "NameResolver",
    "SeenSet",
    "WatermarkStore",
]

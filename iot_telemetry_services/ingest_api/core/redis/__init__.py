"""Redis layer - push en vivo de lecturas nuevas."""

from .publisher import RealtimePublisher
from .connection import RedisConnection

__all__ = ["RealtimePublisher", "RedisConnection"]

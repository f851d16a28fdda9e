"""Publicador de eventos en vivo (Redis pub/sub)."""

from __future__ import annotations

import logging

import orjson
import redis

from .connection import RedisConnection
from ..domain import ReadingCreated

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL = "sensors"
EVENT_NAME = "sensor.data"


class RealtimePublisher:
    """Publica cada lectura nueva para los dashboards en vivo.

    Best-effort: sin confirmación ni orden garantizado respecto a la
    persistencia. Nunca lanza hacia el pipeline de ingesta.
    """

    def __init__(self, connection: RedisConnection, channel: str = DEFAULT_CHANNEL):
        self._conn = connection
        self._channel = channel
        self._published = 0
        self._dropped = 0

    def __call__(self, event: ReadingCreated) -> None:
        self.publish(event)

    def publish(self, event: ReadingCreated) -> bool:
        if not self._conn.is_connected:
            self._dropped += 1
            return False

        try:
            message = orjson.dumps({"event": EVENT_NAME, "data": event.to_realtime_payload()})
            self._conn.publish(self._channel, message)
            self._published += 1
            logger.debug(
                "[REDIS] Published %s: sensor_id=%d value=%.4f",
                EVENT_NAME,
                event.sensor.id,
                event.reading.value,
            )
            return True
        except redis.RedisError as e:
            self._dropped += 1
            logger.warning("[REDIS] Publish failed: %s", e)
            return False

    @property
    def channel(self) -> str:
        return self._channel

    @property
    def stats(self) -> dict:
        return {"published": self._published, "dropped": self._dropped}

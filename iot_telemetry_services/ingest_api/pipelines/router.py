"""Router de ingesta: topic → sensor activo → lectura persistida → evento."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.engine import Engine

from ...common.timeutils import utc_now
from ..core.domain import EventBus, ReadingCreated
from .reading_repository import insert_reading
from .router_models import RouteOutcome, RouteResult
from .sensor_resolver import resolve_active_sensor

logger = logging.getLogger(__name__)


class IngestionRouter:
    """Resuelve el topic a un sensor y persiste la lectura.

    La lectura se confirma en su propia transacción y sólo después se
    publica ``ReadingCreated``: cada lectura dispara los handlers (alertas,
    push en vivo) exactamente una vez.
    """

    def __init__(
        self,
        engine: Engine,
        bus: Optional[EventBus] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._engine = engine
        self._bus = bus or EventBus()
        self._clock = clock

        self._total_stored = 0
        self._total_unknown = 0

    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def stats(self) -> dict:
        return {
            "total_stored": self._total_stored,
            "total_unknown_topic": self._total_unknown,
        }

    def route(self, topic: str, value: float, raw_payload: Optional[str] = None) -> RouteResult:
        with self._engine.begin() as conn:
            sensor = resolve_active_sensor(conn, topic)
            if sensor is None:
                self._total_unknown += 1
                logger.warning("[ROUTER] Unknown or inactive sensor for topic: %s", topic)
                return RouteResult(outcome=RouteOutcome.UNKNOWN_TOPIC)

            reading = insert_reading(
                conn,
                sensor_id=sensor.id,
                value=value,
                created_at=self._clock(),
                raw_payload=raw_payload,
            )

        self._total_stored += 1
        logger.debug(
            "[ROUTER] Stored reading_id=%d sensor=%s value=%.4f",
            reading.id,
            sensor.name,
            reading.value,
        )

        self._bus.publish(ReadingCreated(reading=reading, sensor=sensor))
        return RouteResult(outcome=RouteOutcome.STORED, reading=reading, sensor=sensor)

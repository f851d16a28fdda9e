"""Evaluación de umbrales sobre cada lectura nueva.

No hay deduplicación: cada lectura que cruza un umbral crea una alerta
por umbral coincidente. ``suppression_hook`` queda expuesto para un
futuro debounce; por defecto no se suprime nada.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from sqlalchemy.engine import Engine

from ....common.timeutils import utc_now
from ...core.domain import Alert, Reading, ReadingCreated, Sensor, Threshold
from ..sensor_resolver import get_sensor
from . import alert_repository as repo
from .notification_service import NotificationDispatcher
from .threshold_queries import get_matching_thresholds

logger = logging.getLogger(__name__)

SuppressionHook = Callable[[Sensor, Threshold, Reading], bool]


class AlertEvaluator:
    """Handler de ``ReadingCreated`` que crea alertas y notifica."""

    def __init__(
        self,
        engine: Engine,
        dispatcher: NotificationDispatcher,
        suppression_hook: Optional[SuppressionHook] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._engine = engine
        self._dispatcher = dispatcher
        self._suppress = suppression_hook
        self._clock = clock

    def __call__(self, event: ReadingCreated) -> None:
        self.on_reading_created(event)

    def on_reading_created(self, event: ReadingCreated) -> List[Alert]:
        return self.evaluate(event.reading)

    def evaluate(self, reading: Reading) -> List[Alert]:
        created: List[Tuple[Alert, Threshold]] = []

        with self._engine.begin() as conn:
            sensor = get_sensor(conn, reading.sensor_id)
            if sensor is None:
                logger.warning("[ALERTS] Sensor %d not found for reading_id=%d", reading.sensor_id, reading.id)
                return []

            for threshold in get_matching_thresholds(conn, sensor):
                if not threshold.is_triggered_by(reading.value):
                    continue
                if self._suppress is not None and self._suppress(sensor, threshold, reading):
                    logger.debug("[ALERTS] Suppressed threshold_id=%d reading_id=%d", threshold.id, reading.id)
                    continue

                alert = repo.insert_alert(conn, sensor, reading, threshold, self._clock())
                created.append((alert, threshold))
                logger.info(
                    "[ALERTS] alert_id=%d sensor=%s %s %.2f (actual %.2f)",
                    alert.id,
                    sensor.name,
                    threshold.direction.value,
                    threshold.value,
                    reading.value,
                )

        for alert, threshold in created:
            self._dispatcher.dispatch(alert, sensor, threshold)

        return [alert for alert, _ in created]

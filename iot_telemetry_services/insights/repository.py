"""Lectura de la ventana para insights (sólo lectura).

La fase de lectura corre en un hilo aparte con timeout: la ventana la
elige el llamador y puede ser grande.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from datetime import datetime
from typing import List

from sqlalchemy import text
from sqlalchemy.engine import Engine

from ..common.timeutils import from_db, to_db
from ..ingest_api.core.domain import Reading, Sensor
from ..ingest_api.pipelines.sensor_resolver import list_active_sensors

logger = logging.getLogger(__name__)

_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="insights-read")


class InsightsTimeout(TimeoutError):
    """La lectura de la ventana superó el timeout."""


@dataclass(frozen=True)
class WindowData:
    sensors: List[Sensor]
    readings: List[Reading]


def _read_window(engine: Engine, since: datetime) -> WindowData:
    with engine.connect() as conn:
        sensors = list_active_sensors(conn)
        rows = conn.execute(
            text(
                """
                SELECT r.id, r.sensor_id, r.value, r.created_at
                FROM sensor_readings r
                JOIN sensors s ON s.id = r.sensor_id
                WHERE r.created_at >= :since
                ORDER BY r.created_at ASC, r.id ASC
                """
            ),
            {"since": to_db(since)},
        ).fetchall()

    readings = [
        Reading(
            id=int(r[0]),
            sensor_id=int(r[1]),
            value=float(r[2]),
            created_at=from_db(r[3]),
        )
        for r in rows
    ]
    return WindowData(sensors=sensors, readings=readings)


def load_window(engine: Engine, since: datetime, timeout_s: float = 10.0) -> WindowData:
    """Sensores activos y lecturas con ``created_at >= since``.

    Raises:
        InsightsTimeout: si la lectura no termina en ``timeout_s``
        sqlalchemy.exc.SQLAlchemyError: si la BD no es accesible
    """
    future = _executor.submit(_read_window, engine, since)
    try:
        return future.result(timeout=timeout_s)
    except FutureTimeout:
        future.cancel()
        logger.error("[INSIGHTS] Window read exceeded %.1fs (since=%s)", timeout_s, since.isoformat())
        raise InsightsTimeout(f"window read exceeded {timeout_s}s") from None

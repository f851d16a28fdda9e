"""Resolución de sensores a partir del topic MQTT.

Mantiene un caché en memoria con TTL para el hot path del receptor.

El caché es global al proceso (compartido entre engines) y sólo conoce los
cambios hechos con ``set_sensor_active``: si ``is_active`` se cambia por
fuera, el topic sigue resolviéndose hasta que vence su TTL
(``SENSOR_MAP_TTL_SECONDS``, 60 por defecto; 0 lo desactiva).
"""

from __future__ import annotations

import os
import logging
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import text

from ...common.timeutils import utc_now
from ..core.domain import Sensor

logger = logging.getLogger(__name__)

# Caché LRU con límite de tamaño
MAX_CACHE_SIZE = 10000
_SENSOR_BY_TOPIC: "OrderedDict[str, Tuple[Sensor, datetime]]" = OrderedDict()

_SENSOR_COLUMNS = "id, node_id, sensor_type, name, unit, mqtt_topic, is_active"


def _cache_ttl_seconds() -> int:
    """TTL del caché en segundos (0 desactiva el caché)."""
    return int(os.getenv("SENSOR_MAP_TTL_SECONDS", "60"))


def resolve_active_sensor(conn, topic: str) -> Optional[Sensor]:
    """Resuelve un topic a su sensor activo (match exacto de ``mqtt_topic``).

    Returns:
        Sensor si existe y está activo, None si no.
    """
    ttl = _cache_ttl_seconds()
    now = utc_now()

    cached = _SENSOR_BY_TOPIC.get(topic)
    if cached is not None:
        sensor, expires_at = cached
        if expires_at > now:
            _SENSOR_BY_TOPIC.move_to_end(topic)
            return sensor
        _SENSOR_BY_TOPIC.pop(topic, None)

    row = conn.execute(
        text(
            f"SELECT {_SENSOR_COLUMNS} FROM sensors "
            "WHERE mqtt_topic = :topic AND is_active = :active"
        ),
        {"topic": topic, "active": True},
    ).fetchone()

    if not row:
        return None

    sensor = Sensor.from_row(row)
    if ttl > 0:
        while len(_SENSOR_BY_TOPIC) >= MAX_CACHE_SIZE:
            _SENSOR_BY_TOPIC.popitem(last=False)
        _SENSOR_BY_TOPIC[topic] = (sensor, now + timedelta(seconds=ttl))
    return sensor


def get_sensor(conn, sensor_id: int) -> Optional[Sensor]:
    row = conn.execute(
        text(f"SELECT {_SENSOR_COLUMNS} FROM sensors WHERE id = :sensor_id"),
        {"sensor_id": sensor_id},
    ).fetchone()
    return Sensor.from_row(row) if row else None


def list_active_sensors(conn) -> List[Sensor]:
    """Sensores activos; ``is_active`` NULL se tolera como activo."""
    rows = conn.execute(
        text(
            f"SELECT {_SENSOR_COLUMNS} FROM sensors "
            "WHERE is_active = :active OR is_active IS NULL ORDER BY id"
        ),
        {"active": True},
    ).fetchall()
    return [Sensor.from_row(r) for r in rows]


def invalidate_topic(topic: str) -> None:
    _SENSOR_BY_TOPIC.pop(topic, None)


def set_sensor_active(conn, sensor_id: int, active: bool) -> Optional[Sensor]:
    """Activa o desactiva un sensor y saca su topic del caché.

    Returns:
        El sensor actualizado, o None si no existe.
    """
    conn.execute(
        text("UPDATE sensors SET is_active = :active WHERE id = :sensor_id"),
        {"active": active, "sensor_id": sensor_id},
    )
    sensor = get_sensor(conn, sensor_id)
    if sensor is None:
        return None
    invalidate_topic(sensor.mqtt_topic)
    logger.info(
        "[ROUTER] Sensor %d %s (topic=%s)",
        sensor_id,
        "activated" if active else "deactivated",
        sensor.mqtt_topic,
    )
    return sensor


def clear_cache() -> None:
    """Limpia el caché de resolución (útil para testing)."""
    _SENSOR_BY_TOPIC.clear()


def get_cache_stats() -> dict:
    return {
        "size": len(_SENSOR_BY_TOPIC),
        "max_size": MAX_CACHE_SIZE,
        "ttl_seconds": _cache_ttl_seconds(),
    }

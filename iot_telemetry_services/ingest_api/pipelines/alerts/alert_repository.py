"""Repositorio de alertas - operaciones de persistencia."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Sequence

import orjson
from sqlalchemy import text

from ....common.schema import alerts
from ....common.timeutils import from_db, to_db, utc_now
from ...core.domain import Alert, AlertStatus, Direction, Reading, Sensor, Threshold

logger = logging.getLogger(__name__)

_ALLOWED_TRANSITIONS = {
    AlertStatus.NEW: {AlertStatus.CONFIRMED, AlertStatus.RESOLVED},
    AlertStatus.CONFIRMED: {AlertStatus.RESOLVED},
    AlertStatus.RESOLVED: set(),
}


class InvalidAlertTransition(ValueError):
    """Transición de estado no permitida."""


def insert_alert(
    conn,
    sensor: Sensor,
    reading: Reading,
    threshold: Threshold,
    created_at: datetime,
) -> Alert:
    """Crea la alerta con snapshot del umbral y del valor real."""
    result = conn.execute(
        alerts.insert().values(
            sensor_id=sensor.id,
            sensor_reading_id=reading.id,
            sensor_type=sensor.sensor_type,
            direction=threshold.direction.value,
            threshold_value=threshold.value,
            actual_value=reading.value,
            status=AlertStatus.NEW.value,
            notified_channels=orjson.dumps([]).decode("utf-8"),
            created_at=to_db(created_at),
        )
    )
    return Alert(
        id=int(result.inserted_primary_key[0]),
        sensor_id=sensor.id,
        sensor_reading_id=reading.id,
        sensor_type=sensor.sensor_type,
        direction=threshold.direction,
        threshold_value=threshold.value,
        actual_value=reading.value,
        created_at=created_at,
    )


def set_notified_channels(conn, alert_id: int, channels: Sequence[str]) -> None:
    """Escribe la lista completa de canales en un único UPDATE."""
    conn.execute(
        text("UPDATE alerts SET notified_channels = :channels WHERE id = :alert_id"),
        {"alert_id": alert_id, "channels": orjson.dumps(list(channels)).decode("utf-8")},
    )


def _row_to_alert(row) -> Alert:
    m = row._mapping
    return Alert(
        id=int(m["id"]),
        sensor_id=int(m["sensor_id"]),
        sensor_reading_id=int(m["sensor_reading_id"]) if m["sensor_reading_id"] is not None else None,
        sensor_type=m["sensor_type"],
        direction=Direction(m["direction"]),
        threshold_value=float(m["threshold_value"]),
        actual_value=float(m["actual_value"]),
        created_at=from_db(m["created_at"]),
        status=AlertStatus(m["status"]),
        notified_channels=orjson.loads(m["notified_channels"]) if m["notified_channels"] else [],
        resolved_at=from_db(m["resolved_at"]),
    )


_ALERT_COLUMNS = (
    "id, sensor_id, sensor_reading_id, sensor_type, direction, threshold_value, "
    "actual_value, status, notified_channels, resolved_at, created_at"
)


def get_alert(conn, alert_id: int) -> Alert | None:
    row = conn.execute(
        text(f"SELECT {_ALERT_COLUMNS} FROM alerts WHERE id = :alert_id"),
        {"alert_id": alert_id},
    ).fetchone()
    return _row_to_alert(row) if row else None


def list_alerts_for_reading(conn, reading_id: int) -> List[Alert]:
    rows = conn.execute(
        text(
            f"SELECT {_ALERT_COLUMNS} FROM alerts "
            "WHERE sensor_reading_id = :reading_id ORDER BY id ASC"
        ),
        {"reading_id": reading_id},
    ).fetchall()
    return [_row_to_alert(r) for r in rows]


def update_alert_status(conn, alert_id: int, status: AlertStatus) -> Alert:
    """Avanza el estado ``new → confirmed → resolved``.

    Raises:
        LookupError: si la alerta no existe
        InvalidAlertTransition: si la transición no está permitida
    """
    current = get_alert(conn, alert_id)
    if current is None:
        raise LookupError(f"alert not found: {alert_id}")
    if status not in _ALLOWED_TRANSITIONS[current.status]:
        raise InvalidAlertTransition(f"{current.status.value} -> {status.value}")

    resolved_at = utc_now() if status is AlertStatus.RESOLVED else None
    conn.execute(
        text(
            "UPDATE alerts SET status = :status, resolved_at = :resolved_at "
            "WHERE id = :alert_id"
        ),
        {
            "alert_id": alert_id,
            "status": status.value,
            "resolved_at": to_db(resolved_at) if resolved_at else None,
        },
    )
    logger.info("[ALERTS] alert_id=%d %s -> %s", alert_id, current.status.value, status.value)
    current.status = status
    current.resolved_at = resolved_at
    return current

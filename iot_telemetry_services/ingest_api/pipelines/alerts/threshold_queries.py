"""Consultas de umbrales para la evaluación de alertas."""

from __future__ import annotations

from typing import List

from sqlalchemy import text

from ...core.domain import Direction, Sensor, Threshold


def _row_to_threshold(row) -> Threshold:
    m = row._mapping
    return Threshold(
        id=int(m["id"]),
        sensor_id=int(m["sensor_id"]) if m["sensor_id"] is not None else None,
        sensor_type=m["sensor_type"],
        direction=Direction(m["direction"]),
        value=float(m["value"]),
        notify_email=bool(m["notify_email"]),
        notify_chat=bool(m["notify_chat"]),
        enabled=bool(m["enabled"]),
    )


def get_matching_thresholds(conn, sensor: Sensor) -> List[Threshold]:
    """Umbrales habilitados aplicables al sensor.

    Incluye los del propio sensor y los genéricos por tipo (``sensor_id``
    NULL). Ambos se evalúan por separado; no se excluyen entre sí.
    """
    rows = conn.execute(
        text(
            """
            SELECT id, sensor_id, sensor_type, direction, value,
                   notify_email, notify_chat, enabled
            FROM sensor_thresholds
            WHERE enabled = :enabled
              AND (
                    sensor_id = :sensor_id
                 OR (sensor_id IS NULL AND sensor_type = :sensor_type)
              )
            ORDER BY id ASC
            """
        ),
        {"enabled": True, "sensor_id": sensor.id, "sensor_type": sensor.sensor_type},
    ).fetchall()
    return [_row_to_threshold(r) for r in rows]

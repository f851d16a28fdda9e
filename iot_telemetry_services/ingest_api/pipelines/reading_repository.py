"""Persistencia de lecturas. Sin lógica de negocio."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from ...common.schema import sensor_readings
from ...common.timeutils import to_db
from ..core.domain import Reading


def insert_reading(
    conn,
    sensor_id: int,
    value: float,
    created_at: datetime,
    raw_payload: Optional[str] = None,
) -> Reading:
    """Inserta una lectura y devuelve el objeto de dominio con su id."""
    result = conn.execute(
        sensor_readings.insert().values(
            sensor_id=sensor_id,
            value=float(value),
            raw_payload=raw_payload,
            created_at=to_db(created_at),
        )
    )
    reading_id = int(result.inserted_primary_key[0])
    return Reading(
        id=reading_id,
        sensor_id=sensor_id,
        value=float(value),
        created_at=created_at,
        raw_payload=raw_payload,
    )

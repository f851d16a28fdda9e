"""Ventaneo a minuto: media por (sensor, minuto) y última lectura por sensor."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, Optional
from zoneinfo import ZoneInfo

from ..ingest_api.core.domain import Reading

MINUTE_KEY_FORMAT = "%Y-%m-%d %H:%M"

# sensor_id -> {"YYYY-MM-DD HH:MM": mean}
MinuteSeries = Dict[str, float]


def minute_key(ts: datetime, tz: ZoneInfo) -> str:
    return ts.astimezone(tz).strftime(MINUTE_KEY_FORMAT)


@dataclass
class WindowSeries:
    series_by_sensor: Dict[int, MinuteSeries]
    latest_by_sensor: Dict[int, Reading]
    bucket_count: int

    def series(self, sensor_id: Optional[int]) -> MinuteSeries:
        if sensor_id is None:
            return {}
        return self.series_by_sensor.get(sensor_id, {})

    def latest(self, sensor_id: Optional[int]) -> Optional[Reading]:
        if sensor_id is None:
            return None
        return self.latest_by_sensor.get(sensor_id)


def build_window_series(readings: Iterable[Reading], tz: ZoneInfo) -> WindowSeries:
    """Agrupa por minuto calendario en ``tz`` y guarda la lectura más reciente.

    La más reciente se decide por timestamp (empate: mayor id), no por el
    orden de llegada de la lista.
    """
    sums: Dict[int, Dict[str, list]] = {}
    latest: Dict[int, Reading] = {}

    for reading in readings:
        key = minute_key(reading.created_at, tz)
        acc = sums.setdefault(reading.sensor_id, {}).setdefault(key, [0.0, 0])
        acc[0] += float(reading.value)
        acc[1] += 1

        current = latest.get(reading.sensor_id)
        if current is None or (reading.created_at, reading.id) > (current.created_at, current.id):
            latest[reading.sensor_id] = reading

    series_by_sensor: Dict[int, MinuteSeries] = {}
    bucket_count = 0
    for sensor_id, buckets in sums.items():
        series_by_sensor[sensor_id] = {
            key: total / count for key, (total, count) in sorted(buckets.items())
        }
        bucket_count += len(buckets)

    return WindowSeries(
        series_by_sensor=series_by_sensor,
        latest_by_sensor=latest,
        bucket_count=bucket_count,
    )

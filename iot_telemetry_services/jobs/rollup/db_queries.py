"""SQL helper functions for the rollup runner.

All database queries are centralized here. No business logic.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Tuple

from sqlalchemy import text

from ...common.timeutils import from_db, to_db, utc_now
from ...ingest_api.core.domain import Period
from .buckets import BucketStats


def list_sensor_ids(conn) -> List[int]:
    rows = conn.execute(text("SELECT id FROM sensors ORDER BY id")).fetchall()
    return [int(r[0]) for r in rows]


def load_readings_since(conn, sensor_id: int, cutoff: datetime) -> List[Tuple[datetime, float]]:
    """``(created_at, value)`` del sensor con ``created_at >= cutoff``, ASC."""
    rows = conn.execute(
        text(
            """
            SELECT created_at, value
            FROM sensor_readings
            WHERE sensor_id = :sensor_id AND created_at >= :cutoff
            ORDER BY created_at ASC
            """
        ),
        {"sensor_id": sensor_id, "cutoff": to_db(cutoff)},
    ).fetchall()
    return [(from_db(r[0]), float(r[1])) for r in rows]


def upsert_aggregate(conn, sensor_id: int, period: Period, stats: BucketStats) -> None:
    """Sobrescribe o inserta la fila (sensor, periodo, bucket_start)."""
    params = {
        "sensor_id": sensor_id,
        "period": period.value,
        "bucket_start": to_db(stats.bucket_start),
        "avg_value": stats.avg_value,
        "min_value": stats.min_value,
        "max_value": stats.max_value,
        "count": stats.count,
        "updated_at": to_db(utc_now()),
    }
    updated = conn.execute(
        text(
            """
            UPDATE aggregated_readings
            SET avg_value = :avg_value, min_value = :min_value, max_value = :max_value,
                count = :count, updated_at = :updated_at
            WHERE sensor_id = :sensor_id AND period = :period AND bucket_start = :bucket_start
            """
        ),
        params,
    )
    if updated.rowcount == 0:
        conn.execute(
            text(
                """
                INSERT INTO aggregated_readings
                    (sensor_id, period, bucket_start, avg_value, min_value, max_value, count, updated_at)
                VALUES
                    (:sensor_id, :period, :bucket_start, :avg_value, :min_value, :max_value, :count, :updated_at)
                """
            ),
            params,
        )


def load_aggregates(conn, sensor_id: int, period: Period) -> List[BucketStats]:
    rows = conn.execute(
        text(
            """
            SELECT bucket_start, avg_value, min_value, max_value, count
            FROM aggregated_readings
            WHERE sensor_id = :sensor_id AND period = :period
            ORDER BY bucket_start ASC
            """
        ),
        {"sensor_id": sensor_id, "period": period.value},
    ).fetchall()
    return [
        BucketStats(
            bucket_start=from_db(r[0]),
            avg_value=float(r[1]),
            min_value=float(r[2]),
            max_value=float(r[3]),
            count=int(r[4]),
        )
        for r in rows
    ]

"""Rollup runner orchestrator: agregación paralela por sensor."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.engine import Engine

from ...common.timeutils import utc_now
from .buckets import compute_buckets
from .config import RollupConfig
from .db_queries import list_sensor_ids, load_readings_since, upsert_aggregate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RollupResult:
    sensors: int
    ok: int
    failed: int
    buckets: int


def _process_sensor(engine: Engine, cfg: RollupConfig, sensor_id: int, cutoff: datetime) -> int:
    """Agrega UN sensor en su propia transacción. Devuelve nº de buckets escritos."""
    with engine.begin() as conn:
        readings = load_readings_since(conn, sensor_id, cutoff)
        buckets = compute_buckets(readings, cfg.period, cfg.timezone)
        for stats in buckets:
            upsert_aggregate(conn, sensor_id, cfg.period, stats)
    return len(buckets)


def run_once(engine: Engine, cfg: RollupConfig, now: Optional[datetime] = None) -> RollupResult:
    """Ciclo de agregación sobre todos los sensores.

    Un fallo en un sensor se loguea y no aborta el resto. Reejecutar sobre
    la misma ventana no cambia el estado final.
    """
    now = now or utc_now()
    cutoff = now - timedelta(hours=cfg.hours)

    with engine.connect() as conn:
        sensor_ids = list_sensor_ids(conn)

    t0 = time.monotonic()
    ok, failed, bucket_count = 0, 0, 0

    with ThreadPoolExecutor(max_workers=max(1, cfg.workers)) as pool:
        futures = {
            pool.submit(_process_sensor, engine, cfg, sid, cutoff): sid
            for sid in sensor_ids
        }
        for fut in as_completed(futures):
            sid = futures[fut]
            try:
                bucket_count += fut.result()
                ok += 1
            except Exception as exc:
                failed += 1
                logger.error("[ROLLUP] sensor_failed sensor=%d err=%s", sid, exc)

    logger.info(
        "[ROLLUP] cycle period=%s hours=%d ms=%.1f sensors=%d ok=%d fail=%d buckets=%d",
        cfg.period.value,
        cfg.hours,
        (time.monotonic() - t0) * 1000,
        len(sensor_ids),
        ok,
        failed,
        bucket_count,
    )
    return RollupResult(sensors=len(sensor_ids), ok=ok, failed=failed, buckets=bucket_count)

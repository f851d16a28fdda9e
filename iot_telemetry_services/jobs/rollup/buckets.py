"""Bucketing temporal y estadísticos por bucket.

La pertenencia a un bucket la decide el ``created_at`` de la lectura
truncado al periodo en la zona de referencia. Sin interpolación: un
bucket sin lecturas no produce fila.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Tuple
from zoneinfo import ZoneInfo

from ...ingest_api.core.domain import Period


@dataclass(frozen=True)
class BucketStats:
    bucket_start: datetime
    avg_value: float
    min_value: float
    max_value: float
    count: int


def bucket_start(ts: datetime, period: Period, tz: str = "UTC") -> datetime:
    """Inicio del bucket que contiene ``ts``, devuelto en UTC aware.

    - hour: inicio de la hora
    - day: medianoche
    - week: lunes 00:00 de la semana ISO
    """
    local = ts.astimezone(ZoneInfo(tz))
    if period is Period.HOUR:
        start = local.replace(minute=0, second=0, microsecond=0)
    else:
        day = local.date()
        if period is Period.WEEK:
            day = day - timedelta(days=day.weekday())
        start = datetime(day.year, day.month, day.day, tzinfo=local.tzinfo)
    return start.astimezone(timezone.utc)


def compute_buckets(
    readings: Iterable[Tuple[datetime, float]],
    period: Period,
    tz: str = "UTC",
) -> List[BucketStats]:
    """Agrupa ``(created_at, value)`` por bucket y calcula avg/min/max/count."""
    groups: Dict[datetime, List[float]] = {}
    for created_at, value in readings:
        groups.setdefault(bucket_start(created_at, period, tz), []).append(float(value))

    return [
        BucketStats(
            bucket_start=start,
            avg_value=sum(values) / len(values),
            min_value=min(values),
            max_value=max(values),
            count=len(values),
        )
        for start, values in sorted(groups.items())
    ]

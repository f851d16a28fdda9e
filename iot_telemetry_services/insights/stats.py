from __future__ import annotations

from dataclasses import dataclass
from math import sqrt
from typing import Iterable, List, Mapping, Optional, Sequence

SEVERITY_OK = "ok"
SEVERITY_WARN = "warn"
SEVERITY_CRITICAL = "critical"


@dataclass(frozen=True)
class SeriesStats:
    """Estadísticos de una serie, redondeados a 4 decimales para reporte.

    ``std`` es la desviación estándar poblacional (divide por n).
    """
    count: int
    mean: Optional[float]
    std: Optional[float]
    min: Optional[float]
    max: Optional[float]


EMPTY_STATS = SeriesStats(count=0, mean=None, std=None, min=None, max=None)


def describe(values: Iterable[Optional[float]]) -> SeriesStats:
    seq = [float(v) for v in values if v is not None]
    n = len(seq)
    if n == 0:
        return EMPTY_STATS

    mean = sum(seq) / n
    var = sum((v - mean) * (v - mean) for v in seq)
    std = sqrt(var / n)

    return SeriesStats(
        count=n,
        mean=round(mean, 4),
        std=round(std, 4),
        min=round(min(seq), 4),
        max=round(max(seq), 4),
    )


def zscore(latest: Optional[float], stats: SeriesStats) -> Optional[float]:
    """z del último valor. None si no hay último valor o std no es > 0."""
    if latest is None or stats.mean is None or stats.std is None or stats.std <= 0:
        return None
    return round((float(latest) - stats.mean) / stats.std, 2)


def classify(z: Optional[float], z_warn: float, z_critical: float) -> Optional[str]:
    if z is None:
        return None
    az = abs(z)
    if az >= z_critical:
        return SEVERITY_CRITICAL
    if az >= z_warn:
        return SEVERITY_WARN
    return SEVERITY_OK


def availability(minutes_with_data: int, window_minutes: int) -> float:
    if window_minutes <= 0:
        return 0.0
    return round(min(1.0, minutes_with_data / window_minutes), 3)


def missing_minutes(minutes_with_data: int, window_minutes: int) -> int:
    if window_minutes <= 0:
        return 0
    return max(0, window_minutes - minutes_with_data)


def common_keys(series_list: Sequence[Mapping[str, float]]) -> List[str]:
    """Claves de minuto presentes en todas las series, ordenadas."""
    if not series_list:
        return []
    keys = set(series_list[0])
    for series in series_list[1:]:
        keys &= set(series)
    return sorted(keys)


def pearson(xs: Sequence[float], ys: Sequence[float]) -> Optional[float]:
    """Coeficiente de Pearson (4 decimales). None si algún denominador es 0."""
    n = min(len(xs), len(ys))
    if n < 2:
        return None

    xs = [float(x) for x in xs[:n]]
    ys = [float(y) for y in ys[:n]]
    mean_x = sum(xs) / n
    mean_y = sum(ys) / n

    num = den_x = den_y = 0.0
    for x, y in zip(xs, ys):
        dx = x - mean_x
        dy = y - mean_y
        num += dx * dy
        den_x += dx * dx
        den_y += dy * dy

    den = sqrt(den_x * den_y)
    if den <= 0.0:
        return None
    return round(num / den, 4)

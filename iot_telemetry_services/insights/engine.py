"""Motor de insights distribuidos sobre la ventana reciente de lecturas.

Flujo:
    1. Acota parámetros (``InsightsParams.clamped``)
    2. Lee sensores activos + lecturas de la ventana (con timeout)
    3. Agrupa por minuto en la zona de referencia
    4. Resume cada nodo (stats, z-score, severidad, disponibilidad)
    5. Añade señales derivadas, correlaciones entre nodos y salud global

Es sólo lectura: nunca escribe en la BD.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.engine import Engine

from ..common.app_settings import AppSettingsStore, DEFAULTS
from ..common.timeutils import format_local, utc_now
from ..ingest_api.core.domain import Reading, Sensor
from .config import (
    CorrelationPair,
    DerivedSignalSpec,
    InsightsParams,
    MetricSpec,
    NodeRegistry,
    NodeSpec,
    SignalRef,
    default_registry,
)
from .report import (
    NEVER,
    CorrelationRow,
    DistributedHealth,
    InsightsReport,
    MetricSummary,
    NodeOffset,
    NodeSummary,
)
from .repository import load_window
from .series import MinuteSeries, WindowSeries, build_window_series
from .stats import (
    SEVERITY_CRITICAL,
    SEVERITY_WARN,
    availability,
    classify,
    common_keys,
    describe,
    missing_minutes,
    pearson,
    zscore,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = DEFAULTS["app"]["timezone"]
MIN_CORRELATION_POINTS = 5

NOTE_LOW_ALIGNMENT = "Low alignment across nodes (missing minute-level overlaps)"
NOTE_SKEW = "Clock skew / ingestion lag between nodes is noticeable"
NOTE_CRITICAL = "One or more signals are in critical anomaly range (z-score)"
NOTE_WARN = "Some signals are in warning anomaly range (z-score)"

SensorIndex = Dict[str, Dict[str, Sensor]]


def index_sensors(sensors: Iterable[Sensor], registry: NodeRegistry) -> SensorIndex:
    """node_key -> sensor_type -> Sensor. Sensores sin nodo reconocible se omiten."""
    index: SensorIndex = {}
    for sensor in sorted(sensors, key=lambda s: s.id):
        node_key = registry.normalize(sensor.node_id, sensor.mqtt_topic)
        if node_key is None or not sensor.sensor_type:
            continue
        index.setdefault(node_key, {})[sensor.sensor_type] = sensor
    return index


class _Signals:
    """Series y últimos valores por referencia (node_key, tipo), incluidas derivadas."""

    def __init__(self, window: WindowSeries, index: SensorIndex, registry: NodeRegistry):
        self._window = window
        self._index = index
        self._derived_series: Dict[SignalRef, MinuteSeries] = {}
        self._derived_latest: Dict[SignalRef, Optional[float]] = {}
        for spec in registry.derived:
            self._add_derived(spec)

    def _add_derived(self, spec: DerivedSignalSpec) -> None:
        ref = (spec.node_key, spec.key)
        node_sensors = self._index.get(spec.node_key, {})
        base = node_sensors.get(spec.base_type)
        weighted = node_sensors.get(spec.weighted_type)
        if base is None or weighted is None:
            self._derived_series[ref] = {}
            self._derived_latest[ref] = None
            return

        base_series = self._window.series(base.id)
        weighted_series = self._window.series(weighted.id)
        self._derived_series[ref] = {
            key: base_series[key] + spec.weight * weighted_series[key]
            for key in common_keys([base_series, weighted_series])
        }

        base_latest = self._window.latest(base.id)
        weighted_latest = self._window.latest(weighted.id)
        if base_latest is not None and weighted_latest is not None:
            self._derived_latest[ref] = base_latest.value + spec.weight * weighted_latest.value
        else:
            self._derived_latest[ref] = None

    def sensor(self, ref: SignalRef) -> Optional[Sensor]:
        node_key, sensor_type = ref
        return self._index.get(node_key, {}).get(sensor_type)

    def series(self, ref: SignalRef) -> MinuteSeries:
        if ref in self._derived_series:
            return self._derived_series[ref]
        sensor = self.sensor(ref)
        return self._window.series(sensor.id if sensor else None)

    def latest_value(self, ref: SignalRef) -> Optional[float]:
        if ref in self._derived_latest:
            return self._derived_latest[ref]
        sensor = self.sensor(ref)
        latest = self._window.latest(sensor.id if sensor else None)
        return latest.value if latest else None


class _AnomalyCounter:
    def __init__(self) -> None:
        self.warn = 0
        self.critical = 0

    def record(self, severity: Optional[str]) -> None:
        if severity == SEVERITY_CRITICAL:
            self.critical += 1
        elif severity == SEVERITY_WARN:
            self.warn += 1


def _metric_summary(
    sensor_type: str,
    name: str,
    unit: Optional[str],
    series: MinuteSeries,
    latest: Optional[float],
    params: InsightsParams,
    counter: _AnomalyCounter,
) -> MetricSummary:
    stats = describe(series.values())
    z = zscore(latest, stats)
    severity = classify(z, params.z_warn, params.z_critical)
    counter.record(severity)
    return MetricSummary(
        sensor_type=sensor_type,
        sensor_name=name,
        unit=unit,
        latest=float(latest) if latest is not None else None,
        mean=stats.mean,
        std=stats.std,
        min=stats.min,
        max=stats.max,
        z=z,
        severity=severity,
        count=stats.count,
        availability=availability(len(series), params.window_minutes),
        missing_minutes=missing_minutes(len(series), params.window_minutes),
    )


def _missing_metric(meta: MetricSpec, params: InsightsParams) -> MetricSummary:
    return MetricSummary(
        sensor_type=meta.sensor_type,
        sensor_name=meta.label,
        unit=meta.unit,
        latest=None,
        mean=None,
        std=None,
        min=None,
        max=None,
        z=None,
        severity=None,
        count=0,
        availability=0.0,
        missing_minutes=params.window_minutes,
    )


def _staleness(now: datetime, latest_at: Optional[datetime]) -> Optional[int]:
    if latest_at is None:
        return None
    return max(0, int((now - latest_at).total_seconds()))


def _summarize_node(
    node: NodeSpec,
    registry: NodeRegistry,
    index: SensorIndex,
    window: WindowSeries,
    signals: _Signals,
    readings_per_sensor: Dict[int, int],
    params: InsightsParams,
    tz: ZoneInfo,
    now: datetime,
    counter: _AnomalyCounter,
) -> Tuple[NodeSummary, Optional[datetime]]:
    node_sensors = index.get(node.key, {})
    latest_at: Optional[datetime] = None
    node_readings = 0
    metrics: List[MetricSummary] = []

    for meta in node.metrics:
        sensor = node_sensors.get(meta.sensor_type)
        if sensor is None:
            metrics.append(_missing_metric(meta, params))
            continue

        latest = window.latest(sensor.id)
        if latest is not None and (latest_at is None or latest.created_at > latest_at):
            latest_at = latest.created_at

        metrics.append(
            _metric_summary(
                meta.sensor_type,
                sensor.name or meta.label,
                sensor.unit or meta.unit,
                window.series(sensor.id),
                latest.value if latest else None,
                params,
                counter,
            )
        )
        node_readings += readings_per_sensor.get(sensor.id, 0)

    for spec in registry.derived_for(node.key):
        ref = (node.key, spec.key)
        metrics.append(
            _metric_summary(
                spec.key,
                spec.label,
                spec.unit,
                signals.series(ref),
                signals.latest_value(ref),
                params,
                counter,
            )
        )

    # disponibilidad del nodo: unión de minutos de todos sus sensores
    minute_keys = set()
    for sensor in node_sensors.values():
        minute_keys.update(window.series(sensor.id).keys())

    summary = NodeSummary(
        node_id=node.key,
        label=node.label,
        last_update=format_local(latest_at, tz) if latest_at else NEVER,
        staleness_seconds=_staleness(now, latest_at),
        throughput_rpm=round(node_readings / max(1, params.window_minutes), 2),
        availability=availability(len(minute_keys), params.window_minutes),
        missing_minutes=missing_minutes(len(minute_keys), params.window_minutes),
        metrics=metrics,
    )
    return summary, latest_at


def _correlation(pair: CorrelationPair, signals: _Signals) -> Optional[CorrelationRow]:
    a = signals.series(pair.a)
    b = signals.series(pair.b)
    keys = common_keys([a, b])
    if len(keys) < MIN_CORRELATION_POINTS:
        return None
    r = pearson([a[k] for k in keys], [b[k] for k in keys])
    if r is None:
        return None
    return CorrelationRow(a=pair.a_label, b=pair.b_label, r=r, n=len(keys))


def _health_score(
    completeness: float,
    skew_seconds: int,
    summaries: List[NodeSummary],
    params: InsightsParams,
    counter: _AnomalyCounter,
) -> int:
    # redondeo half-up, estable entre plataformas
    score = int(math.floor(100 * completeness + 0.5))
    score -= min(30, skew_seconds // 10)
    for node in summaries:
        if node.staleness_seconds is None or node.staleness_seconds > params.staleness_threshold_s:
            score -= 10
    score -= min(20, 2 * counter.warn + 5 * counter.critical)
    return max(0, min(100, score))


def _health_notes(completeness: float, skew_seconds: int, counter: _AnomalyCounter) -> List[str]:
    notes = []
    if completeness < 0.5:
        notes.append(NOTE_LOW_ALIGNMENT)
    if skew_seconds > 60:
        notes.append(NOTE_SKEW)
    if counter.critical > 0:
        notes.append(NOTE_CRITICAL)
    elif counter.warn > 0:
        notes.append(NOTE_WARN)
    return notes


def build_report(
    sensors: Iterable[Sensor],
    readings: Iterable[Reading],
    params: InsightsParams,
    timezone: str,
    now: datetime,
    registry: Optional[NodeRegistry] = None,
) -> InsightsReport:
    """Cálculo puro del reporte a partir de sensores y lecturas ya cargados.

    Sólo se consideran lecturas en ``[now - window, now]``.
    """
    registry = registry or default_registry()
    tz = ZoneInfo(timezone)
    since = now - timedelta(minutes=params.window_minutes)

    in_window = [r for r in readings if since <= r.created_at <= now]
    readings_per_sensor: Dict[int, int] = {}
    for r in in_window:
        readings_per_sensor[r.sensor_id] = readings_per_sensor.get(r.sensor_id, 0) + 1

    index = index_sensors(sensors, registry)
    window = build_window_series(in_window, tz)
    signals = _Signals(window, index, registry)
    counter = _AnomalyCounter()

    summaries: List[NodeSummary] = []
    freshest_at: Optional[datetime] = None
    for node in registry.nodes:
        summary, latest_at = _summarize_node(
            node, registry, index, window, signals, readings_per_sensor, params, tz, now, counter
        )
        summaries.append(summary)
        if latest_at is not None and (freshest_at is None or latest_at > freshest_at):
            freshest_at = latest_at

    correlations = [
        row for row in (_correlation(pair, signals) for pair in registry.correlations)
        if row is not None
    ]

    completeness_series = [signals.series(ref) for ref in registry.completeness_signals]
    aligned = len(common_keys(completeness_series)) if completeness_series else 0
    completeness = max(0.0, min(1.0, aligned / params.window_minutes))

    # últimos instantes reconstruidos como now - staleness (segundos enteros)
    now_s = int(now.timestamp())
    latest_times = {
        s.node_id: now_s - s.staleness_seconds
        for s in summaries
        if s.staleness_seconds is not None
    }
    skew_seconds = max(latest_times.values()) - min(latest_times.values()) if len(latest_times) >= 2 else 0
    freshest_s = max(latest_times.values()) if latest_times else None

    offsets = [
        NodeOffset(
            node_id=s.node_id,
            label=s.label,
            offset_from_freshest_seconds=(
                max(0, freshest_s - latest_times[s.node_id])
                if freshest_s is not None and s.node_id in latest_times
                else None
            ),
            staleness_seconds=s.staleness_seconds,
            availability=s.availability,
            missing_minutes=s.missing_minutes,
        )
        for s in summaries
    ]

    health = DistributedHealth(
        score=_health_score(completeness, skew_seconds, summaries, params, counter),
        completeness=completeness,
        skew_seconds=skew_seconds,
        notes=_health_notes(completeness, skew_seconds, counter),
    )

    return InsightsReport(
        computed_at=format_local(now, tz),
        timezone=timezone,
        window_minutes=params.window_minutes,
        z_warn=params.z_warn,
        z_critical=params.z_critical,
        staleness_threshold_s=params.staleness_threshold_s,
        warn_count=counter.warn,
        critical_count=counter.critical,
        raw_readings_count=len(in_window),
        bucket_count=window.bucket_count,
        node_summaries=summaries,
        freshest_node_timestamp=format_local(freshest_at, tz) if freshest_at else None,
        node_offsets=offsets,
        correlations=correlations,
        health=health,
    )


class DistributedInsightsService:
    """Servicio de insights sobre la BD de telemetría.

    Args:
        engine: engine SQLAlchemy (sólo se usa para leer)
        registry: mapeo de nodos; por defecto la flota ESP32 de referencia
        read_timeout_s: límite de la fase de lectura
        clock: reloj inyectable (UTC aware)
    """

    def __init__(
        self,
        engine: Engine,
        registry: Optional[NodeRegistry] = None,
        read_timeout_s: float = 10.0,
        clock=utc_now,
    ):
        self._engine = engine
        self._registry = registry or default_registry()
        self._read_timeout_s = read_timeout_s
        self._clock = clock

    @property
    def registry(self) -> NodeRegistry:
        return self._registry

    def compute(
        self,
        window_minutes: Optional[int] = None,
        timezone: str = DEFAULT_TIMEZONE,
        z_warn: Optional[float] = None,
        z_critical: Optional[float] = None,
        staleness_threshold_s: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> InsightsReport:
        """Calcula el reporte para la ventana que termina en ``now``.

        Raises:
            InsightsTimeout: si la lectura excede ``read_timeout_s``
            sqlalchemy.exc.SQLAlchemyError: si la BD no es accesible
        """
        params = InsightsParams.clamped(window_minutes, z_warn, z_critical, staleness_threshold_s)
        now = now or self._clock()
        since = now - timedelta(minutes=params.window_minutes)

        data = load_window(self._engine, since, timeout_s=self._read_timeout_s)
        report = build_report(data.sensors, data.readings, params, timezone, now, self._registry)

        logger.info(
            "[INSIGHTS] window=%dm readings=%d buckets=%d score=%d warn=%d critical=%d",
            params.window_minutes,
            report.raw_readings_count,
            report.bucket_count,
            report.health.score,
            report.warn_count,
            report.critical_count,
        )
        return report


def _settings_timezone(store: AppSettingsStore) -> str:
    name = store.get_string("app.timezone", DEFAULT_TIMEZONE)
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(
            "[SETTINGS] Unknown timezone %r, falling back to %s", name, DEFAULT_TIMEZONE
        )
        return DEFAULT_TIMEZONE
    return name


def compute_from_settings(
    service: DistributedInsightsService,
    store: AppSettingsStore,
    now: Optional[datetime] = None,
) -> InsightsReport:
    """Ejecuta ``compute`` con los parámetros guardados en ``app_settings``."""
    defaults = DEFAULTS["distributed"]
    return service.compute(
        window_minutes=store.get_int("distributed.window_minutes", defaults["window_minutes"]),
        timezone=_settings_timezone(store),
        z_warn=store.get_float("distributed.z_warn", defaults["z_warn"]),
        z_critical=store.get_float("distributed.z_critical", defaults["z_critical"]),
        staleness_threshold_s=store.get_int(
            "distributed.staleness_threshold_s", defaults["staleness_threshold_s"]
        ),
        now=now,
    )

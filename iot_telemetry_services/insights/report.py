"""Estructuras del reporte de insights y su serialización JSON-ready."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import orjson

NEVER = "Never"


@dataclass(frozen=True)
class MetricSummary:
    sensor_type: str
    sensor_name: str
    unit: Optional[str]
    latest: Optional[float]
    mean: Optional[float]
    std: Optional[float]
    min: Optional[float]
    max: Optional[float]
    z: Optional[float]
    severity: Optional[str]
    count: int
    availability: float
    missing_minutes: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sensor_type": self.sensor_type,
            "sensor_name": self.sensor_name,
            "unit": self.unit,
            "latest": self.latest,
            "mean": self.mean,
            "std": self.std,
            "min": self.min,
            "max": self.max,
            "z": self.z,
            "severity": self.severity,
            "count": self.count,
            "availability": self.availability,
            "missing_minutes": self.missing_minutes,
        }


@dataclass(frozen=True)
class NodeSummary:
    node_id: str
    label: str
    last_update: str
    staleness_seconds: Optional[int]
    throughput_rpm: float
    availability: float
    missing_minutes: int
    metrics: List[MetricSummary] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "node_id": self.node_id,
            "label": self.label,
            "last_update": self.last_update,
            "staleness_seconds": self.staleness_seconds,
            "throughput_rpm": self.throughput_rpm,
            "availability": self.availability,
            "missing_minutes": self.missing_minutes,
            "metrics": [m.to_dict() for m in self.metrics],
        }


@dataclass(frozen=True)
class NodeOffset:
    node_id: str
    label: str
    offset_from_freshest_seconds: Optional[int]
    staleness_seconds: Optional[int]
    availability: float
    missing_minutes: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "node_id": self.node_id,
            "label": self.label,
            "offset_from_freshest_seconds": self.offset_from_freshest_seconds,
            "staleness_seconds": self.staleness_seconds,
            "availability": self.availability,
            "missing_minutes": self.missing_minutes,
        }


@dataclass(frozen=True)
class CorrelationRow:
    a: str
    b: str
    r: float
    n: int

    def to_dict(self) -> Dict[str, Any]:
        return {"a": self.a, "b": self.b, "r": self.r, "n": self.n}


@dataclass(frozen=True)
class DistributedHealth:
    score: int
    completeness: float
    skew_seconds: Optional[int]
    notes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "completeness": round(self.completeness, 3),
            "skew_seconds": self.skew_seconds,
            "notes": list(self.notes),
        }


@dataclass(frozen=True)
class InsightsReport:
    """Resultado completo de una ejecución del motor.

    Misma entrada (lecturas, parámetros, ``now``) ⇒ mismo ``to_dict()``.
    """
    computed_at: str
    timezone: str
    window_minutes: int
    z_warn: float
    z_critical: float
    staleness_threshold_s: int
    warn_count: int
    critical_count: int
    raw_readings_count: int
    bucket_count: int
    node_summaries: List[NodeSummary]
    freshest_node_timestamp: Optional[str]
    node_offsets: List[NodeOffset]
    correlations: List[CorrelationRow]
    health: DistributedHealth

    def node(self, node_id: str) -> Optional[NodeSummary]:
        for summary in self.node_summaries:
            if summary.node_id == node_id:
                return summary
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "computed_at": self.computed_at,
            "timezone": self.timezone,
            "window_minutes": self.window_minutes,
            "thresholds": {
                "z_warn": self.z_warn,
                "z_critical": self.z_critical,
                "staleness_threshold_s": self.staleness_threshold_s,
            },
            "anomalies": {
                "warn_count": self.warn_count,
                "critical_count": self.critical_count,
            },
            "raw_readings_count": self.raw_readings_count,
            "bucket_count": self.bucket_count,
            "node_summaries": [n.to_dict() for n in self.node_summaries],
            "node_diagnostics": {
                "freshest_node_timestamp": self.freshest_node_timestamp,
                "node_offsets": [o.to_dict() for o in self.node_offsets],
            },
            "correlations": [c.to_dict() for c in self.correlations],
            "distributed_health": self.health.to_dict(),
        }

    def to_json(self) -> bytes:
        return orjson.dumps(self.to_dict())

"""Parámetros y registro de nodos del motor de insights distribuidos."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def _number_or(value: Optional[float], default: float) -> float:
    """``None`` y NaN toman el default; los infinitos quedan para el recorte."""
    if value is None:
        return default
    value = float(value)
    return default if math.isnan(value) else value


WINDOW_MINUTES_BOUNDS = (10, 360)
Z_BOUNDS = (0.5, 10.0)
STALENESS_BOUNDS = (10, 3600)

DEFAULT_WINDOW_MINUTES = 60
DEFAULT_Z_WARN = 2.0
DEFAULT_Z_CRITICAL = 3.0
DEFAULT_STALENESS_THRESHOLD_S = 180


@dataclass(frozen=True)
class InsightsParams:
    """Parámetros ya acotados a su rango seguro.

    Los valores fuera de rango se recortan en silencio (también los infinitos);
    ``None`` y NaN toman el default documentado.
    """
    window_minutes: int = DEFAULT_WINDOW_MINUTES
    z_warn: float = DEFAULT_Z_WARN
    z_critical: float = DEFAULT_Z_CRITICAL
    staleness_threshold_s: int = DEFAULT_STALENESS_THRESHOLD_S

    @classmethod
    def clamped(
        cls,
        window_minutes: Optional[float] = None,
        z_warn: Optional[float] = None,
        z_critical: Optional[float] = None,
        staleness_threshold_s: Optional[float] = None,
    ) -> "InsightsParams":
        window = _number_or(window_minutes, DEFAULT_WINDOW_MINUTES)
        window = int(_clamp(window, *WINDOW_MINUTES_BOUNDS))

        warn = _number_or(z_warn, DEFAULT_Z_WARN)
        critical = _number_or(z_critical, DEFAULT_Z_CRITICAL)
        warn = _clamp(warn, *Z_BOUNDS)
        critical = max(_clamp(critical, *Z_BOUNDS), warn)

        staleness = _number_or(staleness_threshold_s, DEFAULT_STALENESS_THRESHOLD_S)
        staleness = int(_clamp(staleness, *STALENESS_BOUNDS))

        return cls(
            window_minutes=window,
            z_warn=warn,
            z_critical=critical,
            staleness_threshold_s=staleness,
        )


@dataclass(frozen=True)
class MetricSpec:
    sensor_type: str
    label: str
    unit: str


@dataclass(frozen=True)
class NodeSpec:
    """Nodo lógico: clave canónica, cómo reconocerlo y qué métricas reporta."""
    key: str
    label: str
    metrics: Tuple[MetricSpec, ...]
    topic_patterns: Tuple[str, ...] = ()
    node_id_aliases: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DerivedSignalSpec:
    """Señal derivada ``a + weight × b`` sobre dos sensores de un nodo."""
    key: str
    label: str
    unit: str
    node_key: str
    base_type: str
    weighted_type: str
    weight: float


# Referencia a una serie: (node_key, sensor_type). Las derivadas usan su key.
SignalRef = Tuple[str, str]


@dataclass(frozen=True)
class CorrelationPair:
    a_label: str
    a: SignalRef
    b_label: str
    b: SignalRef


@dataclass(frozen=True)
class NodeRegistry:
    """Mapeo inyectable topic/node_id → nodo canónico."""
    nodes: Tuple[NodeSpec, ...]
    derived: Tuple[DerivedSignalSpec, ...] = ()
    correlations: Tuple[CorrelationPair, ...] = ()
    completeness_signals: Tuple[SignalRef, ...] = ()
    _by_key: Dict[str, NodeSpec] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_by_key", {n.key: n for n in self.nodes})

    def node(self, key: str) -> Optional[NodeSpec]:
        return self._by_key.get(key)

    def normalize(self, node_id: Optional[str], topic: Optional[str]) -> Optional[str]:
        """Clave canónica del nodo o None si no encaja en ninguna convención.

        El topic tiene prioridad (substring); después el node_id (match exacto
        con la clave o sus alias).
        """
        if topic:
            for node in self.nodes:
                if any(pattern in topic for pattern in node.topic_patterns):
                    return node.key

        if not node_id:
            return None
        for node in self.nodes:
            if node_id == node.key or node_id in node.node_id_aliases:
                return node.key
        return None

    def derived_for(self, node_key: str) -> List[DerivedSignalSpec]:
        return [d for d in self.derived if d.node_key == node_key]


def default_registry() -> NodeRegistry:
    """Flota ESP32 de referencia (DHT11, humedad de suelo, ACS712)."""
    node1 = NodeSpec(
        key="esp32_node1",
        label="ESP32 Node 1 (DHT11)",
        metrics=(
            MetricSpec("temperatura", "Temperatura", "°C"),
            MetricSpec("umiditate", "Umiditate", "%"),
        ),
        topic_patterns=("esp32_node1",),
        node_id_aliases=("node-1",),
    )
    node2 = NodeSpec(
        key="esp32_node2",
        label="ESP32 Node 2 (Soil)",
        metrics=(MetricSpec("umiditate_sol", "Umiditate Sol", "ADC"),),
        topic_patterns=("esp32_node2",),
        node_id_aliases=("node-2",),
    )
    node3 = NodeSpec(
        key="esp32_node3",
        label="ESP32 Node 3 (ACS712)",
        metrics=(MetricSpec("curent", "Curent", "A"),),
        topic_patterns=("esp32_node3",),
        node_id_aliases=("node-3",),
    )

    microclimate: SignalRef = ("esp32_node1", "microclimate")
    soil: SignalRef = ("esp32_node2", "umiditate_sol")
    current: SignalRef = ("esp32_node3", "curent")

    return NodeRegistry(
        nodes=(node1, node2, node3),
        derived=(
            DerivedSignalSpec(
                key="microclimate",
                label="Microclimate Index (Temp + 0.1×Hum)",
                unit="index",
                node_key="esp32_node1",
                base_type="temperatura",
                weighted_type="umiditate",
                weight=0.1,
            ),
        ),
        correlations=(
            CorrelationPair("Microclimate", microclimate, "Soil Moisture", soil),
            CorrelationPair("Current", current, "Soil Moisture", soil),
            CorrelationPair("Microclimate", microclimate, "Current", current),
        ),
        completeness_signals=(microclimate, soil, current),
    )


def registry_from_mapping(data: Dict) -> NodeRegistry:
    """Construye un registro desde configuración (p.ej. un setting JSON).

    Formato::

        {"nodes": [{"key": ..., "label": ..., "topic_patterns": [...],
                    "node_id_aliases": [...],
                    "metrics": [{"sensor_type": ..., "label": ..., "unit": ...}]}],
         "derived": [{...DerivedSignalSpec fields...}],
         "correlations": [{"a_label": ..., "a": [node, type], "b_label": ..., "b": [...]}],
         "completeness_signals": [[node, type], ...]}
    """
    nodes = tuple(
        NodeSpec(
            key=n["key"],
            label=n.get("label", n["key"]),
            metrics=tuple(MetricSpec(**m) for m in n.get("metrics", [])),
            topic_patterns=tuple(n.get("topic_patterns", [])),
            node_id_aliases=tuple(n.get("node_id_aliases", [])),
        )
        for n in data.get("nodes", [])
    )
    derived = tuple(DerivedSignalSpec(**d) for d in data.get("derived", []))
    correlations = tuple(
        CorrelationPair(c["a_label"], _ref(c["a"]), c["b_label"], _ref(c["b"]))
        for c in data.get("correlations", [])
    )
    completeness = tuple(_ref(r) for r in data.get("completeness_signals", []))
    return NodeRegistry(
        nodes=nodes,
        derived=derived,
        correlations=correlations,
        completeness_signals=completeness,
    )


def _ref(value: Sequence[str]) -> SignalRef:
    node_key, sensor_type = value
    return (str(node_key), str(sensor_type))

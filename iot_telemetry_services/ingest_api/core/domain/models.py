"""Modelos de dominio del pipeline de telemetría."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class Direction(str, Enum):
    ABOVE = "above"
    BELOW = "below"


class AlertStatus(str, Enum):
    NEW = "new"
    CONFIRMED = "confirmed"
    RESOLVED = "resolved"


class Period(str, Enum):
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"


@dataclass(frozen=True)
class Sensor:
    """Fuente lógica de una magnitud, enrutable por ``mqtt_topic``."""
    id: int
    node_id: str
    sensor_type: str
    name: str
    unit: Optional[str]
    mqtt_topic: str
    is_active: Optional[bool] = True

    @classmethod
    def from_row(cls, row) -> "Sensor":
        m = row._mapping
        is_active = m["is_active"]
        return cls(
            id=int(m["id"]),
            node_id=m["node_id"],
            sensor_type=m["sensor_type"],
            name=m["name"],
            unit=m["unit"],
            mqtt_topic=m["mqtt_topic"],
            is_active=None if is_active is None else bool(is_active),
        )


@dataclass(frozen=True)
class Reading:
    """Lectura inmutable de un sensor.

    ``raw_payload`` es el cuerpo original del mensaje, opaco para el core.
    """
    id: int
    sensor_id: int
    value: float
    created_at: datetime
    raw_payload: Optional[str] = None


@dataclass(frozen=True)
class Threshold:
    id: int
    sensor_id: Optional[int]
    sensor_type: Optional[str]
    direction: Direction
    value: float
    notify_email: bool = True
    notify_chat: bool = False
    enabled: bool = True

    def is_triggered_by(self, value: float) -> bool:
        if self.direction is Direction.ABOVE:
            return value > self.value
        return value < self.value


@dataclass
class Alert:
    id: int
    sensor_id: int
    sensor_reading_id: Optional[int]
    sensor_type: str
    direction: Direction
    threshold_value: float
    actual_value: float
    created_at: datetime
    status: AlertStatus = AlertStatus.NEW
    notified_channels: List[str] = field(default_factory=list)
    resolved_at: Optional[datetime] = None


@dataclass(frozen=True)
class ReadingCreated:
    """Evento de dominio publicado tras persistir una lectura."""
    reading: Reading
    sensor: Sensor

    def to_realtime_payload(self) -> dict:
        """Formato del evento ``sensor.data`` para dashboards en vivo."""
        return {
            "sensor": {
                "id": self.sensor.id,
                "node_id": self.sensor.node_id,
                "name": self.sensor.name,
                "type": self.sensor.sensor_type,
                "unit": self.sensor.unit,
            },
            "value": self.reading.value,
            "timestamp": self.reading.created_at.isoformat(),
        }

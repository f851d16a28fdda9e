"""Domain layer - modelos y eventos del pipeline."""

from .models import (
    Alert,
    AlertStatus,
    Direction,
    Period,
    Reading,
    ReadingCreated,
    Sensor,
    Threshold,
)
from .events import EventBus

__all__ = [
    "Alert",
    "AlertStatus",
    "Direction",
    "EventBus",
    "Period",
    "Reading",
    "ReadingCreated",
    "Sensor",
    "Threshold",
]

"""Resultados del router de ingesta."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..core.domain import Reading, Sensor


class RouteOutcome(Enum):
    """Resultado de enrutar un mensaje."""
    STORED = "stored"
    UNKNOWN_TOPIC = "unknown_topic"


@dataclass(frozen=True)
class RouteResult:
    outcome: RouteOutcome
    reading: Optional[Reading] = None
    sensor: Optional[Sensor] = None

    @property
    def ok(self) -> bool:
        return self.outcome is RouteOutcome.STORED

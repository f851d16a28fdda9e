"""Rollup runner configuration."""

from __future__ import annotations

from dataclasses import dataclass

from ...ingest_api.core.domain import Period


@dataclass(frozen=True)
class RollupConfig:
    """Configuración del job de agregación."""
    period: Period = Period.HOUR
    hours: int = 48
    timezone: str = "UTC"
    workers: int = 1
    sleep_seconds: float = 3600.0
    once: bool = True

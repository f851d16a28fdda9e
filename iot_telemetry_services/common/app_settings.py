"""Ajustes de aplicación en BD (clave → valor JSON) con defaults seguros.

El store nunca es obligatorio: si la tabla no existe o la BD falla se
devuelve el default del llamador.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, Mapping, Optional

import orjson
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


DEFAULTS: Dict[str, Dict[str, Any]] = {
    "distributed": {
        "window_minutes": 60,
        "z_warn": 2.0,
        "z_critical": 3.0,
        "staleness_threshold_s": 180,
    },
    "app": {
        "timezone": "Europe/Bucharest",
    },
}


def _is_number(v: Any) -> bool:
    """Número finito (o string numérica finita); bool no cuenta."""
    if isinstance(v, bool) or not isinstance(v, (int, float, str)):
        return False
    try:
        return math.isfinite(float(v))
    except (ValueError, OverflowError):
        return False


class AppSettingsStore:
    """Acceso tipado a la tabla ``app_settings``.

    Los escalares se guardan envueltos como ``{"v": <scalar>}``; los
    valores estructurados (dict/list) se guardan tal cual.
    """

    def __init__(self, engine: Optional[Engine]):
        self._engine = engine

    @staticmethod
    def defaults() -> Dict[str, Dict[str, Any]]:
        return {section: dict(values) for section, values in DEFAULTS.items()}

    def get(self, key: str, default: Any = None) -> Any:
        if self._engine is None:
            return default
        try:
            with self._engine.connect() as conn:
                row = conn.execute(
                    text("SELECT value FROM app_settings WHERE key = :key"),
                    {"key": key},
                ).fetchone()
        except SQLAlchemyError as e:
            logger.debug("[SETTINGS] Store unavailable, using default for %s: %s", key, e)
            return default

        if not row or row[0] is None:
            return default

        try:
            value = orjson.loads(row[0])
        except orjson.JSONDecodeError:
            logger.warning("[SETTINGS] Corrupt value for key=%s, using default", key)
            return default

        if isinstance(value, dict) and "v" in value:
            return value["v"]
        return value

    def get_float(self, key: str, default: float) -> float:
        v = self.get(key, default)
        return float(v) if _is_number(v) else default

    def get_int(self, key: str, default: int) -> int:
        v = self.get(key, default)
        return int(float(v)) if _is_number(v) else default

    def get_string(self, key: str, default: str) -> str:
        v = self.get(key, default)
        return v if isinstance(v, str) else default

    def set(self, key: str, value: Any) -> None:
        payload = value if isinstance(value, (dict, list)) else {"v": value}
        encoded = orjson.dumps(payload).decode("utf-8")
        with self._engine.begin() as conn:
            updated = conn.execute(
                text("UPDATE app_settings SET value = :value WHERE key = :key"),
                {"key": key, "value": encoded},
            )
            if updated.rowcount == 0:
                conn.execute(
                    text("INSERT INTO app_settings (key, value) VALUES (:key, :value)"),
                    {"key": key, "value": encoded},
                )

    def set_many(self, values: Mapping[str, Any]) -> None:
        for key, value in values.items():
            self.set(key, value)

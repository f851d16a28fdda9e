"""Helpers de fechas: la BD guarda UTC naive, el dominio usa UTC aware."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Union
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_db(dt: datetime) -> datetime:
    """Convierte a UTC naive para persistir."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def from_db(value: Union[datetime, str, None]) -> datetime | None:
    """Normaliza un timestamp leído de la BD a UTC aware.

    SQLite devuelve strings en consultas ``text()``; otros drivers, datetime.
    """
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_local(dt: datetime, tz: str | ZoneInfo) -> str:
    """Formato de dashboard ``dd.mm.YYYY HH:MM:SS`` en la zona de referencia."""
    zone = tz if isinstance(tz, ZoneInfo) else ZoneInfo(tz)
    return dt.astimezone(zone).strftime("%d.%m.%Y %H:%M:%S")

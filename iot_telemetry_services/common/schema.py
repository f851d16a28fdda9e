"""Tablas del dominio (SQLAlchemy Core).

Las consultas del servicio van en SQL plano con ``text()``; estas
definiciones sirven para crear el esquema en el arranque y para los
INSERT que necesitan la PK generada de forma portable.
"""

from __future__ import annotations

import logging

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    Index,
)
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

metadata = MetaData()

sensors = Table(
    "sensors",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("node_id", String(64), nullable=False),
    Column("sensor_type", String(64), nullable=False),
    Column("name", String(128), nullable=False),
    Column("description", Text, nullable=True),
    Column("unit", String(32), nullable=True),
    Column("mqtt_topic", String(255), nullable=False, unique=True),
    Column("is_active", Boolean, nullable=True, default=True),
    Column("created_at", DateTime, nullable=True),
    UniqueConstraint("node_id", "sensor_type", name="uq_sensors_node_type"),
)

sensor_readings = Table(
    "sensor_readings",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column(
        "sensor_id",
        Integer,
        ForeignKey("sensors.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("value", Float(precision=53), nullable=False),
    Column("raw_payload", Text, nullable=True),
    Column("created_at", DateTime, nullable=False),
    Index("ix_sensor_readings_sensor_created", "sensor_id", "created_at"),
    Index("ix_sensor_readings_created", "created_at"),
)

sensor_thresholds = Table(
    "sensor_thresholds",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column(
        "sensor_id",
        Integer,
        ForeignKey("sensors.id", ondelete="CASCADE"),
        nullable=True,
    ),
    Column("sensor_type", String(64), nullable=True),
    Column("direction", String(8), nullable=False),
    Column("value", Float, nullable=False),
    Column("notify_email", Boolean, nullable=False, default=True),
    Column("notify_chat", Boolean, nullable=False, default=False),
    Column("enabled", Boolean, nullable=False, default=True),
)

alerts = Table(
    "alerts",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column(
        "sensor_id",
        Integer,
        ForeignKey("sensors.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column(
        "sensor_reading_id",
        Integer,
        ForeignKey("sensor_readings.id", ondelete="SET NULL"),
        nullable=True,
    ),
    Column("sensor_type", String(64), nullable=False),
    Column("direction", String(8), nullable=False),
    Column("threshold_value", Float, nullable=False),
    Column("actual_value", Float, nullable=False),
    Column("status", String(16), nullable=False, default="new"),
    Column("notified_channels", Text, nullable=True),
    Column("resolved_at", DateTime, nullable=True),
    Column("created_at", DateTime, nullable=False),
    Index("ix_alerts_sensor_created", "sensor_id", "created_at"),
    Index("ix_alerts_status", "status"),
)

aggregated_readings = Table(
    "aggregated_readings",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column(
        "sensor_id",
        Integer,
        ForeignKey("sensors.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("period", String(8), nullable=False),
    Column("bucket_start", DateTime, nullable=False),
    Column("avg_value", Float, nullable=True),
    Column("min_value", Float, nullable=True),
    Column("max_value", Float, nullable=True),
    Column("count", Integer, nullable=False, default=0),
    Column("updated_at", DateTime, nullable=True),
    UniqueConstraint("sensor_id", "period", "bucket_start", name="uq_aggregated_bucket"),
)

app_settings = Table(
    "app_settings",
    metadata,
    Column("key", String(128), primary_key=True),
    Column("value", Text, nullable=True),
)


def create_schema(engine: Engine) -> None:
    """Crea las tablas si no existen. Seguro de llamar varias veces."""
    logger.info("[DB] Ensuring schema exists")
    metadata.create_all(engine)

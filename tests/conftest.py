"""Fixtures compartidas: BD SQLite en memoria con el esquema y la flota por defecto."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.pool import StaticPool

from iot_telemetry_services.common.config import Settings
from iot_telemetry_services.common.schema import create_schema, sensor_readings
from iot_telemetry_services.common.timeutils import to_db
from iot_telemetry_services.ingest_api.core.provisioning import seed_sensors
from iot_telemetry_services.ingest_api.pipelines import sensor_resolver


# =============================================================================
# DATABASE
# =============================================================================

@pytest.fixture
def engine():
    """Engine SQLite en memoria compartido entre hilos."""
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_schema(eng)
    seed_sensors(eng)
    sensor_resolver.clear_cache()
    yield eng
    sensor_resolver.clear_cache()
    eng.dispose()


@pytest.fixture
def sensor_ids(engine):
    """mqtt_topic -> id de la flota sembrada."""
    with engine.connect() as conn:
        rows = conn.execute(text("SELECT id, mqtt_topic FROM sensors")).fetchall()
    return {r[1]: int(r[0]) for r in rows}


@pytest.fixture
def fixed_now():
    return datetime(2024, 5, 10, 12, 0, 30, tzinfo=timezone.utc)


@pytest.fixture
def insert_readings(engine):
    """Inserta lecturas ``(sensor_id, value, created_at)`` directamente."""

    def _insert(rows):
        with engine.begin() as conn:
            for sensor_id, value, created_at in rows:
                conn.execute(
                    sensor_readings.insert().values(
                        sensor_id=sensor_id,
                        value=value,
                        created_at=to_db(created_at),
                    )
                )

    return _insert


@pytest.fixture
def settings() -> Settings:
    """Settings sin canales de notificación configurados."""
    return Settings(
        database_url="sqlite://",
        mqtt_host="localhost",
        mqtt_port=1883,
        mqtt_username=None,
        mqtt_password=None,
        mqtt_topic="iot/#",
        redis_url="redis://localhost:6379/0",
        realtime_channel="sensors",
        alert_email_to=None,
        smtp_host=None,
        smtp_port=25,
        smtp_user=None,
        smtp_password=None,
        smtp_from="alerts@localhost",
        telegram_bot_token=None,
        telegram_chat_id=None,
        timezone="Europe/Bucharest",
        rollup_period="hour",
        rollup_hours=48,
    )

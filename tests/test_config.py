"""Tests de configuración, ajustes en BD y helpers de fechas."""

from datetime import datetime, timezone

import pytest
from sqlalchemy import text

from iot_telemetry_services.common.app_settings import AppSettingsStore
from iot_telemetry_services.common.config import get_settings
from iot_telemetry_services.common.timeutils import format_local, from_db, to_db


@pytest.fixture
def clean_settings(monkeypatch, tmp_path):
    monkeypatch.setenv("IOT_ENV_FILE", str(tmp_path / "missing.env"))
    get_settings.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()


# =============================================================================
# SETTINGS
# =============================================================================

class TestSettings:

    def test_env_overrides(self, clean_settings):
        clean_settings.setenv("MQTT_BROKER_PORT", "8883")
        clean_settings.setenv("APP_TIMEZONE", "UTC")
        clean_settings.setenv("TELEGRAM_BOT_TOKEN", "t")
        clean_settings.setenv("TELEGRAM_CHAT_ID", "c")

        settings = get_settings()

        assert settings.mqtt_port == 8883
        assert settings.timezone == "UTC"
        assert settings.chat_configured is True

    def test_env_file_loaded(self, clean_settings, tmp_path):
        env_file = tmp_path / "app.env"
        env_file.write_text("ALERT_EMAIL_TO=ops@example.com\nSMTP_HOST=mail.example.com\n")
        clean_settings.setenv("IOT_ENV_FILE", str(env_file))
        for key in ("ALERT_EMAIL_TO", "SMTP_HOST"):
            # registra el estado previo para que el undo limpie lo que cargue dotenv
            clean_settings.setenv(key, "")
            clean_settings.delenv(key)

        settings = get_settings()

        assert settings.email_configured is True
        assert settings.alert_email_to == "ops@example.com"


# =============================================================================
# APP SETTINGS STORE
# =============================================================================

class TestAppSettingsStore:

    def test_roundtrip_and_overwrite(self, engine):
        store = AppSettingsStore(engine)

        store.set("distributed.z_warn", 2.5)
        store.set("distributed.z_warn", 1.8)

        assert store.get_float("distributed.z_warn", 2.0) == 1.8
        with engine.connect() as conn:
            count = conn.execute(text("SELECT COUNT(*) FROM app_settings")).scalar()
        assert count == 1

    def test_wrong_type_falls_back(self, engine):
        store = AppSettingsStore(engine)
        store.set("distributed.window_minutes", "many")

        assert store.get_int("distributed.window_minutes", 60) == 60

    @pytest.mark.parametrize("stored", ["nan", "inf", "-inf", "1e400", float("inf")])
    def test_non_finite_number_falls_back(self, engine, stored):
        store = AppSettingsStore(engine)
        store.set("distributed.staleness_threshold_s", stored)

        assert store.get_int("distributed.staleness_threshold_s", 180) == 180
        assert store.get_float("distributed.staleness_threshold_s", 180.0) == 180.0

    def test_numeric_string_accepted(self, engine):
        store = AppSettingsStore(engine)
        store.set("distributed.window_minutes", "90")

        assert store.get_int("distributed.window_minutes", 60) == 90

    def test_corrupt_json_falls_back(self, engine):
        with engine.begin() as conn:
            conn.execute(
                text("INSERT INTO app_settings (key, value) VALUES ('app.timezone', '{oops')")
            )

        assert AppSettingsStore(engine).get_string("app.timezone", "UTC") == "UTC"

    def test_no_engine(self):
        assert AppSettingsStore(None).get("anything", 7) == 7

    def test_defaults_are_copies(self):
        defaults = AppSettingsStore.defaults()
        defaults["distributed"]["window_minutes"] = 1

        assert AppSettingsStore.defaults()["distributed"]["window_minutes"] == 60


# =============================================================================
# FECHAS
# =============================================================================

class TestTimeUtils:

    def test_db_roundtrip_is_utc(self):
        aware = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)

        assert to_db(aware).tzinfo is None
        assert from_db(to_db(aware)) == aware

    def test_from_db_parses_sqlite_strings(self):
        parsed = from_db("2024-05-10 12:00:00.000000")

        assert parsed == datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)

    def test_format_local(self):
        ts = datetime(2024, 1, 15, 10, 0, 5, tzinfo=timezone.utc)

        assert format_local(ts, "Europe/Bucharest") == "15.01.2024 12:00:05"

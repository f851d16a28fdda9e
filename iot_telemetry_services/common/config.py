from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def _default_env_file() -> str:
    # .env junto al repo; las variables reales del entorno siempre ganan.
    repo_root = Path(__file__).resolve().parents[2]
    return str(repo_root / ".env")


@dataclass(frozen=True)
class Settings:
    database_url: str

    mqtt_host: str
    mqtt_port: int
    mqtt_username: Optional[str]
    mqtt_password: Optional[str]
    mqtt_topic: str

    redis_url: str
    realtime_channel: str

    alert_email_to: Optional[str]
    smtp_host: Optional[str]
    smtp_port: int
    smtp_user: Optional[str]
    smtp_password: Optional[str]
    smtp_from: str

    telegram_bot_token: Optional[str]
    telegram_chat_id: Optional[str]

    timezone: str
    rollup_period: str
    rollup_hours: int

    @property
    def email_configured(self) -> bool:
        return bool(self.alert_email_to and self.smtp_host)

    @property
    def chat_configured(self) -> bool:
        return bool(self.telegram_bot_token and self.telegram_chat_id)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Carga la configuración del proceso una sola vez.

    ``get_settings.cache_clear()`` fuerza una recarga (tests, SIGHUP).
    """
    env_file = os.getenv("IOT_ENV_FILE", _default_env_file())
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./iot_telemetry.db"),
        mqtt_host=os.getenv("MQTT_BROKER_HOST", "localhost"),
        mqtt_port=int(os.getenv("MQTT_BROKER_PORT", "1883")),
        mqtt_username=os.getenv("MQTT_USERNAME") or None,
        mqtt_password=os.getenv("MQTT_PASSWORD") or None,
        mqtt_topic=os.getenv("MQTT_TOPIC", "iot/#"),
        redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
        realtime_channel=os.getenv("REALTIME_CHANNEL", "sensors"),
        alert_email_to=os.getenv("ALERT_EMAIL_TO") or None,
        smtp_host=os.getenv("SMTP_HOST") or None,
        smtp_port=int(os.getenv("SMTP_PORT", "25")),
        smtp_user=os.getenv("SMTP_USER") or None,
        smtp_password=os.getenv("SMTP_PASSWORD") or None,
        smtp_from=os.getenv("SMTP_FROM", "alerts@localhost"),
        telegram_bot_token=os.getenv("TELEGRAM_BOT_TOKEN") or None,
        telegram_chat_id=os.getenv("TELEGRAM_CHAT_ID") or None,
        timezone=os.getenv("APP_TIMEZONE", "Europe/Bucharest"),
        rollup_period=os.getenv("ROLLUP_PERIOD", "hour"),
        rollup_hours=int(os.getenv("ROLLUP_HOURS", "48")),
    )

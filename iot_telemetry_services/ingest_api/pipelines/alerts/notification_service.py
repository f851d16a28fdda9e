"""Servicio de notificaciones para alertas.

Cada canal es independiente: un fallo se loguea y no bloquea al resto ni
a la creación de la alerta. La lista de canales que tuvieron éxito se
persiste una sola vez, al terminar todos los intentos.
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import Dict, List, Optional

import requests
from sqlalchemy.engine import Engine

from ....common.config import Settings
from ...core.domain import Alert, Sensor, Threshold
from . import alert_repository as repo

logger = logging.getLogger(__name__)

CHANNEL_EMAIL = "email"
CHANNEL_CHAT = "chat"


def _describe(alert: Alert, sensor: Sensor) -> str:
    unit = sensor.unit or ""
    return (
        f"{sensor.name} {sensor.sensor_type} threshold {alert.direction.value} "
        f"{alert.threshold_value} (actual: {alert.actual_value} {unit})"
    ).rstrip()


class EmailNotifier:
    """Envía la alerta por SMTP."""

    channel = CHANNEL_EMAIL

    def __init__(
        self,
        to_address: str,
        host: str,
        port: int = 25,
        username: Optional[str] = None,
        password: Optional[str] = None,
        sender: str = "alerts@localhost",
        timeout: float = 10.0,
    ):
        self._to = to_address
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._sender = sender
        self._timeout = timeout

    def build_message(self, alert: Alert, sensor: Sensor) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = f"[ALERT] {_describe(alert, sensor)}"
        msg["From"] = self._sender
        msg["To"] = self._to
        msg.set_content(
            f"Sensor: {sensor.name} ({sensor.sensor_type})\n"
            f"Direction: {alert.direction.value}\n"
            f"Threshold: {alert.threshold_value}\n"
            f"Actual: {alert.actual_value} {sensor.unit or ''}\n"
            f"When: {alert.created_at.isoformat()}\n"
        )
        return msg

    def send(self, alert: Alert, sensor: Sensor) -> None:
        msg = self.build_message(alert, sensor)
        with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as smtp:
            if self._username and self._password:
                smtp.starttls()
                smtp.login(self._username, self._password)
            smtp.send_message(msg)


class TelegramNotifier:
    """Envía la alerta como mensaje de chat vía Bot API."""

    channel = CHANNEL_CHAT

    def __init__(self, bot_token: str, chat_id: str, timeout: float = 5.0):
        self._url = f"https://api.telegram.org/bot{bot_token}/sendMessage"
        self._chat_id = chat_id
        self._timeout = timeout

    def build_text(self, alert: Alert, sensor: Sensor) -> str:
        return f"⚠️ ALERT {_describe(alert, sensor)} at {alert.created_at.isoformat()}"

    def send(self, alert: Alert, sensor: Sensor) -> None:
        response = requests.post(
            self._url,
            json={"chat_id": self._chat_id, "text": self.build_text(alert, sensor)},
            timeout=self._timeout,
        )
        response.raise_for_status()


class NotificationDispatcher:
    """Decide y ejecuta las notificaciones de una alerta."""

    def __init__(self, engine: Engine, notifiers: Optional[Dict[str, object]] = None):
        self._engine = engine
        self._notifiers: Dict[str, object] = dict(notifiers or {})

    @classmethod
    def from_settings(cls, engine: Engine, settings: Settings) -> "NotificationDispatcher":
        notifiers: Dict[str, object] = {}
        if settings.email_configured:
            notifiers[CHANNEL_EMAIL] = EmailNotifier(
                to_address=settings.alert_email_to,
                host=settings.smtp_host,
                port=settings.smtp_port,
                username=settings.smtp_user,
                password=settings.smtp_password,
                sender=settings.smtp_from,
            )
        if settings.chat_configured:
            notifiers[CHANNEL_CHAT] = TelegramNotifier(
                settings.telegram_bot_token, settings.telegram_chat_id
            )
        logger.info("[NOTIFY] Channels configured: %s", sorted(notifiers) or "none")
        return cls(engine, notifiers)

    def requested_channels(self, threshold: Threshold) -> List[str]:
        channels = []
        if threshold.notify_email:
            channels.append(CHANNEL_EMAIL)
        if threshold.notify_chat:
            channels.append(CHANNEL_CHAT)
        return channels

    def dispatch(self, alert: Alert, sensor: Sensor, threshold: Threshold) -> List[str]:
        """Intenta cada canal habilitado; devuelve los que tuvieron éxito."""
        delivered: List[str] = []
        for channel in self.requested_channels(threshold):
            notifier = self._notifiers.get(channel)
            if notifier is None:
                logger.debug("[NOTIFY] Channel %s not configured, skipping alert_id=%d", channel, alert.id)
                continue
            try:
                notifier.send(alert, sensor)
                delivered.append(channel)
                logger.info("[NOTIFY] alert_id=%d sent via %s", alert.id, channel)
            except Exception as e:
                logger.error("[NOTIFY] alert_id=%d channel=%s failed: %s", alert.id, channel, e)

        with self._engine.begin() as conn:
            repo.set_notified_channels(conn, alert.id, delivered)
        alert.notified_channels = delivered
        return delivered

"""Receptor MQTT principal.

Usa paho-mqtt para recibir lecturas. Los mensajes se procesan en el hilo
de red de paho de forma secuencial: uno termina (decodificar, persistir,
evaluar alertas, notificar) antes de leer el siguiente.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

import paho.mqtt.client as mqtt

from ...common.config import Settings
from ..pipelines.router import IngestionRouter
from ..pipelines.sensor_resolver import get_cache_stats
from .message_handler import MessageCounters, handle_message

logger = logging.getLogger(__name__)


class MQTTReceiver:
    """Receptor MQTT que entrega cada mensaje al router de ingesta."""

    def __init__(
        self,
        router: IngestionRouter,
        broker_host: str = "localhost",
        broker_port: int = 1883,
        username: Optional[str] = None,
        password: Optional[str] = None,
        topic: str = "iot/#",
        client_id: str = "iot-telemetry-receiver",
    ):
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.username = username
        self.password = password
        self.topic = topic
        self.client_id = f"{client_id}-{int(time.time())}"

        self._router = router
        self._client: Optional[mqtt.Client] = None
        self._running = False
        self._connected = False
        self._reconnect_count = 0
        self._ever_connected = False

        self._counters = MessageCounters()

    @classmethod
    def from_settings(cls, router: IngestionRouter, settings: Settings) -> "MQTTReceiver":
        return cls(
            router,
            broker_host=settings.mqtt_host,
            broker_port=settings.mqtt_port,
            username=settings.mqtt_username,
            password=settings.mqtt_password,
            topic=settings.mqtt_topic,
        )

    def start(self) -> bool:
        """Inicia el receptor MQTT (loop en hilo de paho)."""
        try:
            self._client = mqtt.Client(
                client_id=self.client_id,
                protocol=mqtt.MQTTv311,
                callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            )

            self._client.on_connect = self._on_connect
            self._client.on_disconnect = self._on_disconnect
            self._client.on_message = self._on_message
            self._client.reconnect_delay_set(min_delay=1, max_delay=30)

            if self.username and self.password:
                self._client.username_pw_set(self.username, self.password)

            logger.info("[MQTT] Connecting to %s:%d", self.broker_host, self.broker_port)

            self._client.connect(self.broker_host, self.broker_port, keepalive=60)
            self._client.loop_start()
            self._running = True

            # Esperar conexión
            for _ in range(50):
                if self._connected:
                    break
                time.sleep(0.1)

            if self._connected:
                logger.info("[MQTT] Started successfully")
                return True
            logger.error("[MQTT] Connection timeout")
            return False

        except Exception as e:
            logger.exception("[MQTT] Start failed: %s", e)
            return False

    def stop(self):
        """Detiene el receptor."""
        self._running = False

        if self._client:
            try:
                self._client.loop_stop()
                self._client.disconnect()
            except Exception as e:
                logger.warning("[MQTT] Error stopping: %s", e)

        logger.info("[MQTT] Stopped. counters=%s", self._counters.to_dict())

    def _on_connect(self, client, userdata, flags, rc, properties=None):
        """Callback de conexión. Re-suscribe en cada reconexión."""
        if rc == 0:
            if self._ever_connected:
                self._reconnect_count += 1
            self._ever_connected = True
            self._connected = True
            logger.info("[MQTT] Connected to broker")
            client.subscribe(self.topic, qos=0)
            logger.info("[MQTT] Subscribed to %s", self.topic)
        else:
            self._connected = False
            logger.error("[MQTT] Connection failed: rc=%s", rc)

    def _on_disconnect(self, client, userdata, flags, rc, properties=None):
        """Callback de desconexión. paho reintenta solo mientras el loop viva."""
        self._connected = False
        logger.warning("[MQTT] Disconnected (rc=%s)", rc)

    def _on_message(self, client, userdata, msg):
        """Callback de mensaje recibido."""
        handle_message(msg.topic, msg.payload, self._router, self._counters)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def stats(self) -> dict:
        return {
            "running": self._running,
            "connected": self._connected,
            "broker": f"{self.broker_host}:{self.broker_port}",
            "topic": self.topic,
            "reconnect_count": self._reconnect_count,
            **self._counters.to_dict(),
            "router": self._router.stats,
            "sensor_cache": get_cache_stats(),
        }

    def health_check(self) -> dict:
        return {
            "healthy": self._running and self._connected,
            "running": self._running,
            "connected": self._connected,
            "messages_processed": self._counters.processed,
            "messages_failed": self._counters.failed,
        }

"""Conexión a Redis para el push en vivo.

La ingesta nunca depende de Redis: si no conecta, o se cae a mitad de
camino, la conexión queda marcada como caída y el publicador descarta.
"""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlsplit

import redis

from ....common.config import Settings

logger = logging.getLogger(__name__)


class RedisConnection:
    """Cliente Redis con estado de conexión explícito."""

    def __init__(self, url: str = "redis://localhost:6379/0", socket_timeout: float = 5.0):
        self._url = url
        self._socket_timeout = socket_timeout
        self._client: Optional[redis.Redis] = None
        self._connected = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "RedisConnection":
        return cls(settings.redis_url)

    @property
    def endpoint(self) -> str:
        """host:port/db sin credenciales, para logs."""
        parts = urlsplit(self._url)
        return f"{parts.hostname}:{parts.port or 6379}{parts.path or '/0'}"

    @property
    def is_connected(self) -> bool:
        return self._connected

    def connect(self) -> bool:
        try:
            self._client = redis.Redis.from_url(
                self._url,
                socket_timeout=self._socket_timeout,
                socket_connect_timeout=self._socket_timeout,
            )
            self._client.ping()
        except redis.RedisError as e:
            self._connected = False
            logger.warning("[REDIS] Connection to %s failed: %s", self.endpoint, e)
            return False

        self._connected = True
        logger.info("[REDIS] Connected: %s", self.endpoint)
        return True

    def publish(self, channel: str, message: bytes) -> int:
        """Publica en ``channel``; devuelve el número de suscriptores.

        Raises:
            redis.ConnectionError: si no hay conexión activa
            redis.RedisError: si Redis rechaza el publish (queda desconectado)
        """
        if not self._connected or self._client is None:
            raise redis.ConnectionError(f"not connected to {self.endpoint}")
        try:
            return self._client.publish(channel, message)
        except redis.RedisError:
            self._connected = False
            raise

    def ping(self) -> bool:
        if self._client is None:
            return False
        try:
            self._connected = bool(self._client.ping())
        except redis.RedisError as e:
            logger.debug("[REDIS] Ping failed: %s", e)
            self._connected = False
        return self._connected

    def disconnect(self) -> None:
        if self._client is not None:
            try:
                self._client.close()
            except redis.RedisError as e:
                logger.debug("[REDIS] Error closing connection: %s", e)
        self._client = None
        self._connected = False

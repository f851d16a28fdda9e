"""Message handling logic for MQTT receiver.

Punto de entrada del contrato de ingesta: "mensaje recibido". Ningún
error de un mensaje individual sale de aquí; se loguea, se cuenta y el
mensaje se descarta.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from typing import Any, Optional

import orjson

from ..pipelines.router import IngestionRouter
from ..pipelines.router_models import RouteResult
from .validators import validate_reading_payload

logger = logging.getLogger(__name__)


@dataclass
class MessageCounters:
    """Contadores por resultado de ``handle_message``."""
    received: int = 0
    processed: int = 0
    failed: int = 0
    unknown_topic: int = 0
    last_message_at: float = 0.0

    def mark_received(self) -> None:
        self.received += 1
        self.last_message_at = time.time()

    def count(self, result: Optional[RouteResult]) -> None:
        if result is None:
            self.failed += 1
        elif not result.ok:
            self.unknown_topic += 1
        else:
            self.processed += 1

    def to_dict(self) -> dict:
        return asdict(self)


def parse_json(payload: bytes, topic: str) -> Optional[Any]:
    """Parsea el payload JSON con orjson. None si no es JSON válido."""
    try:
        return orjson.loads(payload)
    except orjson.JSONDecodeError as e:
        logger.warning("[MQTT] Invalid JSON: %s (topic=%s)", e, topic)
        return None


def _process(topic: str, payload: bytes, router: IngestionRouter) -> Optional[RouteResult]:
    data = parse_json(payload, topic)
    if data is None:
        return None

    validation = validate_reading_payload(data)
    if not validation.valid:
        logger.warning("[MQTT] Validation failed: %s (topic=%s)", validation.error, topic)
        return None

    return router.route(
        topic,
        validation.payload.value,
        raw_payload=payload.decode("utf-8"),
    )


def handle_message(
    topic: str,
    payload: bytes,
    router: IngestionRouter,
    counters: MessageCounters,
) -> Optional[RouteResult]:
    """Procesa un mensaje MQTT recibido hasta el final.

    Decodifica, valida, enruta y persiste; los handlers de ``ReadingCreated``
    corren dentro de ``router.route`` antes de volver.
    """
    counters.mark_received()
    try:
        result = _process(topic, payload, router)
    except Exception as e:
        logger.exception("[MQTT] Processing error: %s (topic=%s)", e, topic)
        result = None

    counters.count(result)
    if result is not None and result.ok and counters.processed % 100 == 0:
        logger.info("[MQTT] counters=%s", counters.to_dict())
    return result

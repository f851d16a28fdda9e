"""Arranque del servicio de ingesta MQTT.

Cablea router, evaluador de alertas y push en vivo, y deja el receptor
corriendo hasta SIGINT/SIGTERM.
"""

from __future__ import annotations

import logging
import signal
import threading
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.engine import Engine

from ..common.config import Settings, get_settings
from ..common.db import dispose_engine, get_engine
from ..common.schema import create_schema
from .core.domain import EventBus
from .core.provisioning import seed_sensors
from .core.redis import RealtimePublisher, RedisConnection
from .mqtt.receiver import MQTTReceiver
from .pipelines.alerts import AlertEvaluator, NotificationDispatcher
from .pipelines.router import IngestionRouter

logger = logging.getLogger(__name__)


@dataclass
class IngestionPipeline:
    router: IngestionRouter
    evaluator: AlertEvaluator
    realtime: Optional[RealtimePublisher]


def build_pipeline(
    engine: Engine,
    settings: Settings,
    redis_conn: Optional[RedisConnection] = None,
) -> IngestionPipeline:
    """Ensambla el pipeline. El orden de suscripción define el orden de handlers."""
    bus = EventBus()

    evaluator = AlertEvaluator(engine, NotificationDispatcher.from_settings(engine, settings))
    bus.subscribe(evaluator)

    realtime = None
    if redis_conn is not None:
        realtime = RealtimePublisher(redis_conn, channel=settings.realtime_channel)
        bus.subscribe(realtime)

    return IngestionPipeline(
        router=IngestionRouter(engine, bus),
        evaluator=evaluator,
        realtime=realtime,
    )


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )

    settings = get_settings()
    engine = get_engine(settings)
    create_schema(engine)
    seed_sensors(engine)

    redis_conn = RedisConnection.from_settings(settings)
    if not redis_conn.connect():
        logger.warning("[MAIN] Realtime push disabled (Redis unavailable)")

    pipeline = build_pipeline(engine, settings, redis_conn)
    receiver = MQTTReceiver.from_settings(pipeline.router, settings)

    stop = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: stop.set())
    signal.signal(signal.SIGTERM, lambda *_: stop.set())

    if not receiver.start():
        logger.error("[MAIN] MQTT receiver failed to start")
        raise SystemExit(1)

    try:
        while not stop.wait(60):
            logger.info("[MAIN] %s", receiver.stats)
    finally:
        receiver.stop()
        redis_conn.disconnect()
        dispose_engine()


if __name__ == "__main__":
    main()

"""Alta de la flota por defecto (3 nodos ESP32, 4 sensores).

Idempotente: actualiza por ``mqtt_topic`` en lugar de duplicar.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Mapping

from sqlalchemy import text
from sqlalchemy.engine import Engine

from ...common.schema import sensors
from ...common.timeutils import to_db, utc_now

logger = logging.getLogger(__name__)


DEFAULT_SENSORS: List[dict] = [
    {
        "node_id": "esp32_node1",
        "sensor_type": "temperatura",
        "name": "DHT11 - Temperatura",
        "description": "Senzor de temperatură DHT11 pe ESP32 Node 1",
        "unit": "°C",
        "mqtt_topic": "iot/esp32_node1/temperatura",
        "is_active": True,
    },
    {
        "node_id": "esp32_node1",
        "sensor_type": "umiditate",
        "name": "DHT11 - Umiditate",
        "description": "Senzor de umiditate DHT11 pe ESP32 Node 1",
        "unit": "%",
        "mqtt_topic": "iot/esp32_node1/umiditate",
        "is_active": True,
    },
    {
        "node_id": "esp32_node2",
        "sensor_type": "umiditate_sol",
        "name": "Senzor Umiditate Sol",
        "description": "Senzor de umiditate a solului pe ESP32 Node 2",
        "unit": "ADC",
        "mqtt_topic": "iot/esp32_node2/umiditate_sol",
        "is_active": True,
    },
    {
        "node_id": "esp32_node3",
        "sensor_type": "curent",
        "name": "ACS712 - Senzor Curent",
        "description": "Senzor de curent ACS712 pe ESP32 Node 3",
        "unit": "A",
        "mqtt_topic": "iot/esp32_node3/curent",
        "is_active": True,
    },
]


def seed_sensors(engine: Engine, definitions: Iterable[Mapping] = DEFAULT_SENSORS) -> int:
    """Crea o actualiza sensores por ``mqtt_topic``. Devuelve cuántos se crearon."""
    created = 0
    with engine.begin() as conn:
        for spec in definitions:
            updated = conn.execute(
                text(
                    """
                    UPDATE sensors
                    SET node_id = :node_id, sensor_type = :sensor_type, name = :name,
                        description = :description, unit = :unit, is_active = :is_active
                    WHERE mqtt_topic = :mqtt_topic
                    """
                ),
                dict(spec),
            )
            if updated.rowcount == 0:
                conn.execute(sensors.insert().values(**spec, created_at=to_db(utc_now())))
                created += 1

    logger.info("[SEED] Sensors provisioned (created=%d)", created)
    return created

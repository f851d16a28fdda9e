"""IoT telemetry services: ingesta MQTT, alertas, rollups e insights distribuidos."""

__version__ = "0.4.0"

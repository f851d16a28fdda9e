"""MQTT Receiver para Ingesta.

Estructura modular:
- validators.py: Validación de payloads
- message_handler.py: Decodificación, enrutado y contadores por mensaje
- receiver.py: Receptor MQTT (paho)
"""

from .message_handler import MessageCounters, handle_message
from .receiver import MQTTReceiver
from .validators import ReadingPayload, ValidationResult, validate_reading_payload

__all__ = [
    "MQTTReceiver",
    "MessageCounters",
    "ReadingPayload",
    "ValidationResult",
    "handle_message",
    "validate_reading_payload",
]

"""Pipeline de ALERTAS.

- threshold_queries.py: Umbrales aplicables a un sensor
- alert_repository.py: Operaciones de BD
- notification_service.py: Canales (email, chat) y decisión de notificar
- alert_evaluator.py: Handler de ReadingCreated
"""

from .alert_evaluator import AlertEvaluator
from .notification_service import (
    CHANNEL_CHAT,
    CHANNEL_EMAIL,
    EmailNotifier,
    NotificationDispatcher,
    TelegramNotifier,
)

__all__ = [
    "AlertEvaluator",
    "CHANNEL_CHAT",
    "CHANNEL_EMAIL",
    "EmailNotifier",
    "NotificationDispatcher",
    "TelegramNotifier",
]

"""Bus de eventos en proceso (post-commit).

Sustituye al observer implícito sobre la inserción: el router publica
``ReadingCreated`` después de confirmar la transacción y los handlers se
ejecutan de forma síncrona, en orden de suscripción, una vez por lectura.
"""

from __future__ import annotations

import logging
from typing import Callable, List

from .models import ReadingCreated

logger = logging.getLogger(__name__)

ReadingHandler = Callable[[ReadingCreated], None]


class EventBus:
    """Despacho síncrono de ``ReadingCreated``.

    Un handler que falla se loguea y no impide a los siguientes ejecutarse;
    el bucle de ingesta nunca ve la excepción.
    """

    def __init__(self) -> None:
        self._handlers: List[ReadingHandler] = []

    def subscribe(self, handler: ReadingHandler) -> None:
        self._handlers.append(handler)

    def publish(self, event: ReadingCreated) -> int:
        """Entrega el evento a todos los handlers. Devuelve cuántos fallaron."""
        failures = 0
        for handler in self._handlers:
            try:
                handler(event)
            except Exception:
                failures += 1
                logger.exception(
                    "[EVENTS] Handler %s failed for reading_id=%d",
                    getattr(handler, "__qualname__", repr(handler)),
                    event.reading.id,
                )
        return failures

    @property
    def handler_count(self) -> int:
        return len(self._handlers)

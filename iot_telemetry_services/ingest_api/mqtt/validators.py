"""Validadores de payloads MQTT para ingesta.

El payload debe ser un objeto JSON con un campo numérico ``value``. El
resto de campos se acepta sin validar; el cuerpo original se conserva
tal cual como ``raw_payload`` de la lectura.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

logger = logging.getLogger(__name__)


class ReadingPayload(BaseModel):
    """Schema de validación para lecturas MQTT.

    Formato mínimo::

        {"value": 23.456}

    Campos adicionales (``rssi``, ``uptime``, ...) se admiten y no se tocan.
    """

    model_config = ConfigDict(extra="allow")

    value: float

    @field_validator("value", mode="before")
    @classmethod
    def reject_booleans(cls, v):
        if isinstance(v, bool):
            raise ValueError("Value must be numeric, got boolean")
        return v

    @field_validator("value")
    @classmethod
    def validate_value(cls, v: float) -> float:
        if math.isnan(v):
            raise ValueError("Value is NaN")
        if math.isinf(v):
            raise ValueError("Value is infinite")
        return v


@dataclass
class ValidationResult:
    """Resultado de validación."""

    valid: bool
    payload: Optional[ReadingPayload] = None
    error: Optional[str] = None
    warnings: List[str] = field(default_factory=list)


def validate_reading_payload(data: Any) -> ValidationResult:
    """Valida el payload decodificado de una lectura.

    Args:
        data: Estructura resultante de decodificar el JSON del mensaje

    Returns:
        ValidationResult con payload validado o error
    """
    if not isinstance(data, dict):
        return ValidationResult(
            valid=False,
            error=f"Payload must be a JSON object, got {type(data).__name__}",
        )

    if data.get("value") is None:
        return ValidationResult(valid=False, error="Missing 'value' field")

    try:
        payload = ReadingPayload.model_validate(data)
    except ValidationError as e:
        logger.debug("[MQTT_VALIDATOR] Validation failed: %s", e)
        first = e.errors()[0] if e.errors() else {}
        return ValidationResult(valid=False, error=str(first.get("msg", e)))

    warnings = []
    if isinstance(data.get("value"), str):
        warnings.append("Numeric string coerced for 'value'")

    return ValidationResult(valid=True, payload=payload, warnings=warnings)

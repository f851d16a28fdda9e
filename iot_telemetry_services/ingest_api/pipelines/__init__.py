"""Pipelines de ingesta: router de lecturas y evaluación de alertas."""

from .router import IngestionRouter
from .router_models import RouteOutcome, RouteResult

__all__ = ["IngestionRouter", "RouteOutcome", "RouteResult"]

"""Distributed insights: estadística por nodo, correlaciones y salud de la flota."""

from .config import InsightsParams, NodeRegistry, default_registry, registry_from_mapping
from .engine import DistributedInsightsService, build_report, compute_from_settings
from .report import InsightsReport
from .repository import InsightsTimeout, load_window

__all__ = [
    "DistributedInsightsService",
    "InsightsParams",
    "InsightsReport",
    "InsightsTimeout",
    "NodeRegistry",
    "build_report",
    "compute_from_settings",
    "default_registry",
    "load_window",
    "registry_from_mapping",
]

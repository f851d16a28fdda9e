"""Rollup runner package: agregados horarios/diarios/semanales.

Modules:
- config: RollupConfig dataclass
- buckets: Truncado a periodo y estadísticos por bucket
- db_queries: All SQL helper functions
- runner: Orchestrator (run_once)
- cli: CLI entry point (main)
"""

from .config import RollupConfig
from .runner import RollupResult, run_once

__all__ = ["RollupConfig", "RollupResult", "run_once"]

"""CLI entry point for the rollup runner."""

from __future__ import annotations

import argparse
import logging
import time

from ...common.config import get_settings
from ...common.db import dispose_engine, get_engine
from ...ingest_api.core.domain import Period
from .config import RollupConfig
from .runner import run_once

logger = logging.getLogger(__name__)


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )

    settings = get_settings()

    p = argparse.ArgumentParser(description="Rollup de lecturas (avg/min/max/count por periodo)")
    p.add_argument("--period", choices=[x.value for x in Period], default=settings.rollup_period)
    p.add_argument("--hours", type=int, default=settings.rollup_hours)
    p.add_argument("--workers", type=int, default=1)
    p.add_argument("--sleep-seconds", type=float, default=3600.0)
    p.add_argument("--loop", action="store_true", help="repeat every --sleep-seconds instead of exiting")
    args = p.parse_args()

    cfg = RollupConfig(
        period=Period(args.period),
        hours=args.hours,
        timezone=settings.timezone,
        workers=args.workers,
        sleep_seconds=args.sleep_seconds,
        once=not args.loop,
    )

    engine = get_engine(settings)
    logger.info("Rollup runner started")
    logger.info("Config: period=%s hours=%d tz=%s", cfg.period.value, cfg.hours, cfg.timezone)

    try:
        while True:
            try:
                run_once(engine, cfg)
                if cfg.once:
                    return
                logger.info("Iteración completada, esperando %.1fs...", cfg.sleep_seconds)
                time.sleep(cfg.sleep_seconds)
            except Exception as e:
                logger.error("Error en iteración: %s", e)
                if cfg.once:
                    raise
                logger.info("Continuando con siguiente iteración...")
                time.sleep(cfg.sleep_seconds)
    finally:
        dispose_engine()


if __name__ == "__main__":
    main()

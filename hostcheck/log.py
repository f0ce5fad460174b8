"""Logging helpers for the API and worker processes."""

from __future__ import annotations

import logging

from hostcheck.config import settings


def setup_logging(level: str | None = None) -> None:
    effective_level = (level or settings.LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, effective_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

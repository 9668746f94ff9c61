"""Rotating file logger shared by the sync engine components."""
from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

from core.settings import LOG_DIR, LOGGING


ROOT_LOGGER = "outbox"
SYNC_LOG_PATH = LOG_DIR / LOGGING.filename


def _ensure_root() -> logging.Logger:
    logger = logging.getLogger(ROOT_LOGGER)
    if not logger.handlers:
        SYNC_LOG_PATH.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            SYNC_LOG_PATH,
            maxBytes=LOGGING.max_bytes,
            backupCount=LOGGING.backup_count,
            encoding="utf-8",
        )
        formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(getattr(logging, LOGGING.level, logging.INFO))
    return logger


def get_logger(component: str) -> logging.Logger:
    _ensure_root()
    return logging.getLogger(f"{ROOT_LOGGER}.{component}")


__all__ = ["get_logger", "SYNC_LOG_PATH"]

"""Structured logging helpers for the sync pipeline."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict

LOGGER_NAME = "livesync"


def configure_logger(level: int = logging.INFO) -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
    logger.setLevel(level)
    return logger


def log_event(event: str, level: int = logging.INFO, **payload: Any) -> None:
    """Emit one JSON line on the ``livesync`` logger."""
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.isEnabledFor(level):
        return
    data: Dict[str, Any] = {"event": event, **payload}
    logger.log(level, json.dumps(data, ensure_ascii=False, default=str))

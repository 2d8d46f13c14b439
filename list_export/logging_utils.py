from __future__ import annotations

import json
import logging
from typing import Any


def level_from_name(name: str | None, default: int = logging.INFO) -> int:
    level = logging.getLevelName((name or "").upper())
    return level if isinstance(level, int) else default


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level_from_name(level), format="%(message)s")


def get_logger(name: str = "list_export") -> logging.Logger:
    return logging.getLogger(name)


def log_json(logger: logging.Logger, level: int, event: str, **fields: Any) -> None:
    payload = {"event": event, **fields}
    logger.log(level, json.dumps(payload, default=str, ensure_ascii=False))

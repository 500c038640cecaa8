from __future__ import annotations

import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Dict

from .paths import get_logs_dir


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        payload: Dict[str, Any] = {
            "ts": time.time(),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        for key, value in getattr(record, "__dict__", {}).items():
            if key.startswith("_"):
                continue
            if key in payload or key in _RESERVED:
                continue
            try:
                json.dumps(value)
            except TypeError:
                continue
            payload[key] = value
        return json.dumps(payload, ensure_ascii=False)


# Attributes every LogRecord carries; only caller supplied ``extra`` is copied.
_RESERVED = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


def configure_json_logging(base_path: Path, name: str = "lrm", level: str = "INFO") -> logging.Logger:
    logs_dir = get_logs_dir(Path(base_path))
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_path = logs_dir / "lrm.log.jsonl"
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    target = os.path.abspath(log_path)
    for handler in list(logger.handlers):
        if not isinstance(handler, logging.FileHandler) or not isinstance(handler.formatter, JsonLogFormatter):
            continue
        if handler.baseFilename == target:
            break
        # One project log per process; drop handlers left from another base path.
        logger.removeHandler(handler)
        handler.close()
    else:
        handler = logging.FileHandler(log_path, encoding="utf-8")
        handler.setFormatter(JsonLogFormatter())
        logger.addHandler(handler)
    logger.propagate = False
    return logger


__all__ = ["JsonLogFormatter", "configure_json_logging"]

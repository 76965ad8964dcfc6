from __future__ import annotations

import json
import logging
import os
import sys
import time
from typing import Any, Dict, Optional

_CONFIGURED_FLAG = "_quadloc_configured"


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line:
      { "t": 1712345678901, "lvl": "INFO", "name": "anchor", "msg": "text", "extra": {...} }
    """

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "t": int(time.time() * 1000),
            "lvl": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload["extra"] = extra
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def _resolve_level(level: Optional[str]) -> int:
    name = (level or os.environ.get("QUADLOC_LOG_LEVEL") or os.environ.get("LOG_LEVEL") or "INFO").upper()
    lvl = logging.getLevelName(name)
    return lvl if isinstance(lvl, int) else logging.INFO


def setup_logging(level: Optional[str] = None, *, force: bool = False) -> None:
    """
    Configure the root logger once with JSON output on stdout.

    Level precedence: explicit `level`, env QUADLOC_LOG_LEVEL, env LOG_LEVEL, INFO.
    A later call with `force=True` (e.g. from a CLI after reading its config)
    replaces the handler and level.
    """
    root = logging.getLogger()
    if getattr(root, _CONFIGURED_FLAG, False) and not force:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(_resolve_level(level))
    setattr(root, _CONFIGURED_FLAG, True)


def get_logger(name: str) -> logging.Logger:
    """Module logger; makes sure the root is configured."""
    setup_logging()
    return logging.getLogger(name)

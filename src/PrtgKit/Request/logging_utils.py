"""Structured logging helpers shared by the request engine."""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Optional

__all__ = ["JSONFormatter", "mask_url", "mask_sensitive_data", "setup_logging"]

_MASK = "***"
_SENSITIVE_KEYS = {"passhash", "password", "authorization", "token", "secret"}
_SENSITIVE_QUERY = re.compile(r"(?i)([?&](?:passhash|password)=)[^&#\s]*")


def mask_url(url: str) -> str:
    """Return ``url`` with credential query values replaced by ``***``."""

    return _SENSITIVE_QUERY.sub(lambda match: match.group(1) + _MASK, url)


def mask_sensitive_data(payload: Dict[str, object]) -> Dict[str, object]:
    """Return a copy of ``payload`` with secret fields and URL credentials masked."""

    def _mask_value(value: object, key_hint: Optional[str] = None) -> object:
        if key_hint in _SENSITIVE_KEYS:
            return _MASK
        if isinstance(value, dict):
            return {key: _mask_value(item, str(key).lower()) for key, item in value.items()}
        if isinstance(value, (list, tuple)):
            return type(value)(_mask_value(item, key_hint) for item in value)
        if isinstance(value, str):
            return mask_url(value)
        return value

    return {key: _mask_value(value, key.lower()) for key, value in payload.items()}


class JSONFormatter(logging.Formatter):
    """Formatter emitting masked JSON log entries for engine activity."""

    def format(self, record: logging.LogRecord) -> str:
        """Render ``record`` as a JSON string with request-engine fields."""

        now = datetime.now(timezone.utc)
        payload: Dict[str, object] = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "url": getattr(record, "url", None),
            "retries_remaining": getattr(record, "retries_remaining", None),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(payload), default=str)


def setup_logging(
    *,
    level: str = "INFO",
    log_file: Optional[Path] = None,
    max_log_size_mb: int = 100,
    propagate: bool = False,
) -> logging.Logger:
    """Configure the ``PrtgKit`` logger with a console handler and optional JSONL file."""

    logger = logging.getLogger("PrtgKit")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_prtgkit_managed", False):
            logger.removeHandler(handler)
            if isinstance(handler, logging.StreamHandler):
                stream = getattr(handler, "stream", None)
                if stream in (sys.stdout, sys.stderr):
                    continue
            handler.close()

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    stream_handler._prtgkit_managed = True  # type: ignore[attr-defined]
    logger.addHandler(stream_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=int(max_log_size_mb * 1024 * 1024),
            backupCount=5,
        )
        file_handler.setFormatter(JSONFormatter())
        file_handler._prtgkit_managed = True  # type: ignore[attr-defined]
        logger.addHandler(file_handler)

    logger.propagate = propagate
    return logger

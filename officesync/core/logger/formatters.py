"""
Formatters: JSON lines for files/aggregators, plain text for a terminal.
"""
from __future__ import annotations

import json
import logging
import traceback
from datetime import datetime, timezone
from typing import Any, Optional

# Attributes every LogRecord carries; anything else came in through ``extra=``.
_RESERVED = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line.

    Structured context can be passed either as ``extra={"extra": {...}}`` or
    as flat keys (``extra={"appointment_id": "123"}``); both end up under
    the "extra" key.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = "".join(traceback.format_exception(*record.exc_info)).strip()
        extra = _collect_extra(record)
        if extra:
            payload["extra"] = extra
        return json.dumps(payload, default=str, ensure_ascii=False)


def _collect_extra(record: logging.LogRecord) -> dict[str, Any]:
    out: dict[str, Any] = {}
    nested = getattr(record, "extra", None)
    if isinstance(nested, dict):
        out.update(nested)
    for key, value in vars(record).items():
        if key not in _RESERVED and key != "extra":
            out[key] = value
    return out


class PlainConsoleFormatter(logging.Formatter):
    """Human-readable format for console; appends extra context as key=value."""

    def __init__(self, fmt: Optional[str] = None, datefmt: Optional[str] = None) -> None:
        super().__init__(
            fmt=fmt or "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt=datefmt or "%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extra = _collect_extra(record)
        if extra:
            line += " | " + " ".join(f"{k}={v}" for k, v in sorted(extra.items()))
        return line

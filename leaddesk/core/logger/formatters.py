"""
Formatters: JSON for file, plain for console.
"""
from __future__ import annotations

import json
import logging
import traceback
from datetime import datetime, timezone
from typing import Any, Optional

# Attributes callers attach with ``extra=`` that belong in the file records.
CONTEXT_KEYS = ("workspace_id", "lead_id", "negotiation_id", "appointment_id", "mode")


class JsonFormatter(logging.Formatter):
    """
    Format log records as one JSON object per line (JSON Lines).
    """

    def format(self, record: logging.LogRecord) -> str:
        log_dict: dict[str, Any] = {
            "timestamp": _utc_iso(record.created),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = {k: getattr(record, k) for k in CONTEXT_KEYS if hasattr(record, k)}
        if context:
            log_dict["context"] = context
        if record.exc_info:
            log_dict["exception"] = "".join(
                traceback.format_exception(*record.exc_info)
            ).strip()
        if record.pathname:
            log_dict["pathname"] = record.pathname
        if record.lineno:
            log_dict["lineno"] = record.lineno
        return json.dumps(log_dict, default=str, ensure_ascii=False)


def _utc_iso(created: float) -> str:
    return datetime.fromtimestamp(created, tz=timezone.utc).isoformat()


class PlainConsoleFormatter(logging.Formatter):
    """Human-readable format for console."""

    def __init__(
        self,
        fmt: Optional[str] = None,
        datefmt: Optional[str] = None,
    ) -> None:
        if fmt is None:
            fmt = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
        if datefmt is None:
            datefmt = "%Y-%m-%d %H:%M:%S"
        super().__init__(fmt=fmt, datefmt=datefmt)

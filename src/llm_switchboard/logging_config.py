"""Structured logging for the CLI and the HTTP service.

Records are rendered as one JSON object per line. Routing context passed via
``extra`` (``backend``, ``operation``, ``strategy``) is lifted to the top level
so log pipelines can filter on it directly; any other extras are nested under
``context``. When a span is active, its trace and span ids are attached so a
log line can be joined with the OpenTelemetry trace of the same request.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import IO, Any, Final

from opentelemetry import trace

_DEFAULT_SERVICE_NAME: Final[str] = "llm-switchboard"
_ROUTING_FIELDS: Final[tuple[str, ...]] = ("backend", "operation", "strategy")
_RECORD_ATTRS: Final[frozenset[str]] = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}
_TEXT_FORMAT: Final[str] = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class JsonFormatter(logging.Formatter):
    def __init__(self, service_name: str | None = None) -> None:
        super().__init__()
        self.service_name = service_name or os.getenv("OTEL_SERVICE_NAME", _DEFAULT_SERVICE_NAME)

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "service": self.service_name,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context: dict[str, Any] = {}
        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or key.startswith("_"):
                continue
            if key in _ROUTING_FIELDS:
                entry[key] = value
            else:
                context[key] = value
        if context:
            entry["context"] = context

        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            entry["trace_id"] = format(span_context.trace_id, "032x")
            entry["span_id"] = format(span_context.span_id, "016x")

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, _ = record.exc_info
            entry["error"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": self.formatException(record.exc_info),
            }

        return json.dumps(entry, default=str)


def _resolve_level(level: str | None) -> int:
    name = (level or os.environ.get("LOG_LEVEL") or "INFO").strip().upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(level: str | None = None, *, stream: IO[str] | None = None) -> None:
    """Route every logger through a single handler on the root logger.

    ``LOG_FORMAT=text`` switches to a plain human-readable line for local use.
    Unknown level names fall back to ``INFO``.
    """

    log_level = _resolve_level(level)
    handler = logging.StreamHandler(stream or sys.stderr)
    if os.environ.get("LOG_FORMAT", "json").strip().lower() == "text":
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))
    else:
        handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    logging.getLogger("uvicorn").setLevel(os.environ.get("UVICORN_LOG_LEVEL", "").upper() or log_level)
    # httpx logs every request at INFO; the adapter already logs its own calls.
    logging.getLogger("httpx").setLevel(logging.WARNING)


__all__ = ["JsonFormatter", "configure_logging"]

from __future__ import annotations

import inspect
import json
import logging
import sys
from typing import Any, Dict

from loguru import logger
from opentelemetry import trace


_STDLIB_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({})).keys()) | {"message", "asctime"}
_QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite")


class InterceptHandler(logging.Handler):
    """Route stdlib records (uvicorn, sqlalchemy, alembic) into Loguru."""

    def emit(self, record: logging.LogRecord) -> None:  # pragma: no cover - bridging glue
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = inspect.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        extra = {key: value for key, value in vars(record).items() if key not in _STDLIB_RECORD_ATTRS}
        logger.bind(**extra).opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _attach_trace_context(record: Dict[str, Any]) -> None:
    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        record["extra"]["trace_id"] = f"{span_context.trace_id:032x}"
        record["extra"]["span_id"] = f"{span_context.span_id:016x}"


def _json_sink(message: "logger.Message") -> None:
    record = message.record
    extra = dict(record["extra"])
    payload: Dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name.lower(),
        "message": record["message"],
        "logger": record["name"],
        "service": extra.pop("service", "unknown"),
        "environment": extra.pop("environment", "unknown"),
        "version": extra.pop("version", "unknown"),
    }
    if record["level"].no >= logger.level("CRITICAL").no:
        payload["alert"] = True
    payload.update(extra)
    if record["exception"] is not None:
        payload["exception"] = repr(record["exception"].value)

    sys.stdout.write(json.dumps(payload, default=str) + "\n")


def configure_logging(*, service_name: str, environment: str, version: str, level: str = "INFO") -> None:
    """Install the JSON Loguru sink and bridge stdlib logging into it.

    Every line carries the service identity plus the active OpenTelemetry
    trace and span ids. Critical records are flagged with ``alert`` so
    invariant violations can page.
    """

    logger.configure(
        handlers=[{"sink": _json_sink, "level": level.upper(), "backtrace": False, "diagnose": False}],
        extra={"service": service_name, "environment": environment, "version": version},
        patcher=_attach_trace_context,
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

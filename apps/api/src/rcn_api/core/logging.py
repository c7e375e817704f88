"""JSON-line logging for the redemption service.

Every record carries the service metadata and the active trace ids. Fields that
identify who or what a record is about (wallets, shops, ledger references) are
grouped under ``subject`` so log queries can filter on them without knowing
which call site emitted the record; everything else bound on the record lands
in ``extra``.
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Dict, Mapping

from loguru import logger
from opentelemetry import trace

SUBJECT_FIELDS = (
    "address",
    "wallet",
    "sender",
    "recipient",
    "shop_id",
    "home_shop_id",
    "tx_ref",
)

# Chatty stdlib loggers are held at WARNING.
QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpx", "httpcore")


class InterceptHandler(logging.Handler):
    """Forward stdlib records (uvicorn, sqlalchemy, httpx) to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk out of the logging module so Loguru reports the real caller.
        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def build_log_payload(record: Mapping[str, Any], metadata: Mapping[str, str]) -> Dict[str, Any]:
    """Flatten a Loguru record into the JSON document written for it."""

    payload: Dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name.lower(),
        "message": record["message"],
        "logger": record["name"],
        **metadata,
    }

    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        payload["trace_id"] = f"{span_context.trace_id:032x}"
        payload["span_id"] = f"{span_context.span_id:016x}"

    subject: Dict[str, Any] = {}
    extra: Dict[str, Any] = {}
    for key, value in record["extra"].items():
        if key in SUBJECT_FIELDS:
            subject[key] = value
        else:
            extra[key] = value
    if subject:
        payload["subject"] = subject
    if extra:
        payload["extra"] = extra

    exception = record.get("exception")
    if exception is not None and exception.type is not None:
        payload["error"] = {"type": exception.type.__name__, "detail": str(exception.value)}

    return payload


def configure_logging(*, service_name: str, environment: str, version: str, level: str = "INFO") -> None:
    """Replace every Loguru sink with a single JSON-lines sink on stdout."""

    metadata = {"service": service_name, "environment": environment, "version": version}

    def sink(message: "logger.Message") -> None:
        # Decimal amounts and datetimes serialize as their string form.
        sys.stdout.write(json.dumps(build_log_payload(message.record, metadata), default=str) + "\n")

    logger.remove()
    logger.add(sink, level=level, backtrace=False, diagnose=False)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

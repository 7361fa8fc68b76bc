"""
Structured Logging
==================

JSON log lines for the watchdog service. Every line carries the
environment; lines emitted during a watchdog run or an HTTP request also
carry that run's or request's correlation id.
"""

import logging
import sys
import time
from datetime import datetime, timezone
from typing import Any
from contextlib import contextmanager

from pythonjsonlogger import jsonlogger


SENSITIVE_KEY_PARTS = ("password", "api_key", "token", "secret")

QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "uvicorn.error": logging.ERROR,
    "sqlalchemy.engine": logging.WARNING,
    "apscheduler.executors.default": logging.WARNING,
    "watchdog.observers": logging.WARNING,
}


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter adding timestamp, correlation id and environment."""

    def __init__(self, *args: Any, environment: str = "unknown", **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._environment = environment

    def add_fields(
        self,
        log_data: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_data, record, message_dict)

        if not log_data.get("timestamp"):
            log_data["timestamp"] = datetime.now(timezone.utc).isoformat()

        correlation_id = getattr(record, "correlation_id", None) or message_dict.get("correlation_id")
        if correlation_id:
            log_data["correlation_id"] = correlation_id

        log_data["environment"] = getattr(record, "environment", self._environment)

        # Grafana credentials and DB URLs must never reach log output
        for key, value in list(log_data.items()):
            if isinstance(value, str) and any(part in key.lower() for part in SENSITIVE_KEY_PARTS):
                log_data[key] = "***REDACTED***"


def setup_logging(level: str = "INFO", environment: str = "development") -> None:
    """Route the root logger to stdout as JSON at `level`."""
    numeric_level = getattr(logging, level.upper())

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(CustomJsonFormatter(
        fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        environment=environment,
    ))

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class ContextLoggerAdapter(logging.LoggerAdapter):
    """LoggerAdapter that merges its context into per-call `extra`."""

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_context_logger(name: str, correlation_id: str | None = None) -> logging.Logger:
    """
    Logger stamping `correlation_id` on every line.

    The watchdog passes its run id so all stage lines of one run group
    together in the aggregator.
    """
    logger = get_logger(name)
    if correlation_id:
        logger = ContextLoggerAdapter(logger, {"correlation_id": correlation_id})
    return logger


@contextmanager
def log_latency(logger: logging.Logger, operation: str, **extra_context: Any):
    """
    Time a watchdog stage and log `<operation> completed` with latency_ms.

    A stage that raises is logged with `failed: true` before the error
    propagates.
    """
    start = time.perf_counter()
    failed = False
    try:
        yield
    except Exception:
        failed = True
        raise
    finally:
        logger.info(
            f"{operation} completed",
            extra={
                "operation": operation,
                "latency_ms": round((time.perf_counter() - start) * 1000, 2),
                "failed": failed,
                **extra_context,
            },
        )

"""Logging configuration with workflow trace ids and rate limiting.

Supports two formats:
- json: Structured logging (default, machine readable)
- text: Human-readable for local development
"""

import logging
import sys
import time
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from pythonjsonlogger import json as jsonlogger

from polis.app.config import LoggingConfig

# One trace id per workflow run (start, reconcile, doctor, repair...)
trace_id_ctx: ContextVar[str | None] = ContextVar("trace_id", default=None)


def get_trace_id() -> str | None:
    """Get current trace_id from context."""
    return trace_id_ctx.get()


def set_trace_id(trace_id: str | None = None) -> str:
    """Set trace_id in context, generating a short one if not provided."""
    tid = trace_id or str(uuid4())[:8]
    trace_id_ctx.set(tid)
    return tid


def clear_trace_context() -> None:
    """Clear trace context (call at end of a workflow)."""
    trace_id_ctx.set(None)


class RateLimitFilter(logging.Filter):
    """Suppress identical messages repeated within a time window.

    ERROR and above always pass through. Polling loops (health wait) would
    otherwise repeat the same line every interval.
    """

    def __init__(
        self,
        rate_limit_seconds: float = 5.0,
        max_cache_size: int = 1000,
        name: str = "",
    ) -> None:
        super().__init__(name)
        self._rate_limit = rate_limit_seconds
        self._max_cache = max_cache_size
        self._last_log: dict[str, float] = {}

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno >= logging.ERROR:
            return True

        key = f"{record.name}:{record.lineno}:{record.getMessage()}"
        now = time.monotonic()
        last_time = self._last_log.get(key)

        if last_time is not None and now - last_time < self._rate_limit:
            return False

        self._last_log[key] = now

        if len(self._last_log) > self._max_cache:
            oldest_keys = sorted(self._last_log, key=self._last_log.__getitem__)[:100]
            for old_key in oldest_keys:
                del self._last_log[old_key]

        return True


class PolisJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter with schema version and trace context.

    Adds:
    - timestamp: ISO 8601 format with timezone
    - level, logger, pid, filename, lineno
    - schema_version, service
    - trace_id: workflow trace id (if set in context)
    """

    def __init__(self, config: LoggingConfig, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._service = config.service_name
        self._schema_version = config.schema_version

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = datetime.fromtimestamp(
            record.created, tz=timezone.utc
        ).isoformat()
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["pid"] = record.process
        log_record["filename"] = record.filename
        log_record["lineno"] = record.lineno

        log_record["schema_version"] = self._schema_version
        log_record["service"] = self._service

        if trace_id := get_trace_id():
            log_record["trace_id"] = trace_id

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)


def setup_logging(config: LoggingConfig) -> None:
    """Configure logging for the process.

    Args:
        config: Logging configuration settings.
    """
    level = getattr(logging, config.level.upper(), logging.INFO)

    if config.format == "json":
        formatter: logging.Formatter = PolisJsonFormatter(config)
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(RateLimitFilter(rate_limit_seconds=config.rate_limit_seconds))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # asyncio logs every subprocess transport at DEBUG
    logging.getLogger("asyncio").setLevel(logging.WARNING)

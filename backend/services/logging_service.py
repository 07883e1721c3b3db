"""
Structured Logging for Backlog Pilot

Provides:
- JSON log lines carrying the request id and the resolved user id
- Request correlation middleware (X-Request-ID in and out)
- Timing for persistence operations
- One record per LLM generation (purpose, model, outcome)
"""
import os
import sys
import json
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Optional, Callable
from functools import wraps
from contextvars import ContextVar

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

request_id_var: ContextVar[str] = ContextVar("request_id", default="")
user_id_var: ContextVar[str] = ContextVar("user_id", default="")

# Attributes every LogRecord has; anything else came in through `extra`
_RECORD_ATTRS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}

QUIET_PATHS = {"/api/health", "/api/"}


class StructuredJSONFormatter(logging.Formatter):
    """One JSON object per line, with correlation ids and `extra` fields inlined"""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        request_id = request_id_var.get()
        if request_id:
            entry["request_id"] = request_id
        user_id = user_id_var.get()
        if user_id:
            entry["user_id"] = user_id

        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or key in entry:
                continue
            try:
                json.dumps(value)
            except (TypeError, ValueError):
                value = repr(value)
            entry[key] = value

        if record.exc_info and record.exc_info[0]:
            entry["error_type"] = record.exc_info[0].__name__
            entry["traceback"] = self.formatException(record.exc_info)

        return json.dumps(entry)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Tags every log line of a request with a correlation id and logs one
    line per finished request. Health checks are not logged.
    """

    def __init__(self, app, logger: logging.Logger = None):
        super().__init__(app)
        self.logger = logger or logging.getLogger("backlog_pilot.requests")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
        request_id_var.set(request_id)
        user_id_var.set("")
        started = time.time()

        try:
            response = await call_next(request)
        except Exception:
            self.logger.exception(
                f"{request.method} {request.url.path} raised",
                extra={"method": request.method, "path": request.url.path,
                       "duration_ms": _since(started)}
            )
            raise

        # The authorization gate stores the caller on request.state
        user_id_var.set(getattr(request.state, "user_id", None) or "")

        if request.url.path not in QUIET_PATHS:
            self.logger.info(
                f"{request.method} {request.url.path} -> {response.status_code}",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": _since(started),
                }
            )

        response.headers["X-Request-ID"] = request_id
        return response


def log_operation(
    operation_name: str,
    logger: logging.Logger = None
) -> Callable:
    """
    Decorator timing an async persistence operation.

    Logs the row count when the operation returns a list, and the failure
    type (re-raising) when it does not complete.

    Usage:
        @log_operation("save_tasks")
        async def append_tasks(self, user_id, story_id, tasks):
            ...
    """
    def decorator(func: Callable) -> Callable:
        op_logger = logger or logging.getLogger(f"backlog_pilot.persistence.{operation_name}")

        @wraps(func)
        async def wrapper(*args, **kwargs):
            started = time.time()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                op_logger.error(
                    f"{operation_name} failed: {type(e).__name__}",
                    extra={"operation": operation_name, "duration_ms": _since(started),
                           "error": str(e)}
                )
                raise

            fields = {"operation": operation_name, "duration_ms": _since(started)}
            if isinstance(result, list):
                fields["rows"] = len(result)
            elif result is None or result is False:
                fields["matched"] = False
            op_logger.info(f"{operation_name} completed", extra=fields)
            return result

        return wrapper
    return decorator


def log_ai_generation(
    user_id: Optional[str],
    purpose: str,
    model: str,
    duration_ms: Optional[float] = None,
    success: bool = True,
    error: Optional[str] = None,
    logger: logging.Logger = None
):
    """One record per completion-service call"""
    ai_logger = logger or logging.getLogger("backlog_pilot.generation")

    ai_logger.log(
        logging.INFO if success else logging.WARNING,
        f"{purpose} generation {'completed' if success else 'failed'}",
        extra={
            "purpose": purpose,
            "model": model,
            "caller": user_id or "anonymous",
            "duration_ms": duration_ms,
            "success": success,
            "error": error,
        }
    )


def setup_logging(level: Optional[str] = None, log_format: Optional[str] = None):
    """
    Configure the root logger from LOG_LEVEL and LOG_FORMAT ("json" or "text")
    unless given explicitly.
    """
    level = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    log_format = log_format or os.environ.get("LOG_FORMAT", "json")

    handler = logging.StreamHandler(sys.stdout)
    if log_format == "json":
        handler.setFormatter(StructuredJSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        ))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level, logging.INFO))

    for noisy in ("httpx", "httpcore", "asyncio", "aiosqlite"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return root_logger


def _since(started: float) -> float:
    return round((time.time() - started) * 1000, 2)

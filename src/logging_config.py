"""
Structured Logging
==================

JSON logging for Cloud Run with severity mapping, request
correlation and per-call keyword context.
"""

from __future__ import annotations

import json
import logging
import sys
import time
import traceback
from contextvars import ContextVar
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Callable, Optional, TypeVar
from uuid import uuid4

request_id_var: ContextVar[str] = ContextVar("request_id", default="")
user_id_var: ContextVar[str] = ContextVar("user_id", default="")

F = TypeVar("F", bound=Callable[..., Any])


class CloudRunFormatter(logging.Formatter):
    """
    JSON formatter understood by Cloud Logging.

    Every record becomes one JSON line carrying severity, source
    location, correlation ids and any structured extra fields.
    """

    SEVERITY_MAP = {
        logging.DEBUG: "DEBUG",
        logging.INFO: "INFO",
        logging.WARNING: "WARNING",
        logging.ERROR: "ERROR",
        logging.CRITICAL: "CRITICAL",
    }

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "severity": self.SEVERITY_MAP.get(record.levelno, "DEFAULT"),
            "message": record.getMessage(),
            "logger": record.name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "logging.googleapis.com/sourceLocation": {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            },
        }

        request_id = request_id_var.get()
        if request_id:
            log_entry["logging.googleapis.com/trace"] = request_id
            log_entry["request_id"] = request_id

        user_id = user_id_var.get()
        if user_id:
            log_entry["user_id"] = user_id

        if hasattr(record, "extra_fields"):
            log_entry.update(record.extra_fields)

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            log_entry["exception"] = {
                "type": exc_type.__name__ if exc_type else "Unknown",
                "message": str(exc_value) if exc_value else "",
                "traceback": traceback.format_exception(*record.exc_info),
            }

        return json.dumps(log_entry, default=str, ensure_ascii=False)


class StructuredLogger:
    """
    Logger that accepts structured context as keyword arguments.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("Credits charged", user_id="uid_1", amount=2)
    """

    def __init__(self, name: str, level: int = logging.INFO) -> None:
        self._logger = logging.getLogger(name)
        self._logger.setLevel(level)

        if not self._logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(CloudRunFormatter())
            self._logger.addHandler(handler)
            self._logger.propagate = False

    def _log(
        self,
        level: int,
        message: str,
        exc_info: bool = False,
        **kwargs: Any
    ) -> None:
        extra = {"extra_fields": kwargs} if kwargs else {}
        self._logger.log(level, message, exc_info=exc_info, extra=extra)

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        self._log(logging.ERROR, message, exc_info=exc_info, **kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log an error together with the active traceback."""
        self._log(logging.ERROR, message, exc_info=True, **kwargs)


def get_logger(name: str) -> StructuredLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        StructuredLogger instance
    """
    return StructuredLogger(name)


def set_request_id(request_id: Optional[str] = None) -> str:
    """
    Set the correlation id for the current context.

    Args:
        request_id: Incoming id. A new one is generated when absent.

    Returns:
        The request ID that was set.
    """
    rid = request_id or str(uuid4())
    request_id_var.set(rid)
    return rid


def set_user_id(user_id: Optional[str]) -> None:
    """Attach the authenticated user id to subsequent log lines."""
    user_id_var.set(user_id or "")


def get_request_id() -> str:
    return request_id_var.get()


def log_execution_time(logger: Optional[StructuredLogger] = None) -> Callable[[F], F]:
    """
    Decorator that logs how long the wrapped call took and whether it raised.

    Args:
        logger: Logger instance. Defaults to one named after the function's module.
    """
    def decorator(func: F) -> F:
        nonlocal logger
        if logger is None:
            logger = get_logger(func.__module__)

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            started = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.info(
                    f"Function {func.__name__} raised",
                    function=func.__name__,
                    duration_seconds=round(time.perf_counter() - started, 4),
                    status="error",
                    error_type=type(e).__name__
                )
                raise
            logger.info(
                f"Function {func.__name__} completed",
                function=func.__name__,
                duration_seconds=round(time.perf_counter() - started, 4),
                status="success"
            )
            return result

        return wrapper  # type: ignore

    return decorator

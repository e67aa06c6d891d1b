"""
Structured logging for the workflow engine.

Every record is one JSON object so rule executions can be followed by
operation name, rule id and execution id in a log shipper. The level of all
package loggers comes from WORKFLOW_LOG_LEVEL (DEBUG when unset).
"""

import inspect
import json
import logging
import os
import time
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Dict, Optional

LOG_LEVEL_ENV = "WORKFLOW_LOG_LEVEL"

# Arguments of decorated calls worth surfacing in the operation context
_TRACKED_ARGUMENTS = ("rule_id", "issue_id", "execution_id")


def mask_secret(secret: Optional[str], visible: int = 4) -> str:
    """
    Mask a token or webhook URL to keep it out of logs.

    Example:
        >>> mask_secret("perm:abcdef123456")
        '****3456'
        >>> mask_secret("")
        'unknown'
    """
    if not secret:
        return "unknown"

    if len(secret) <= visible * 2:
        return "****"

    return f"****{secret[-visible:]}"


def _configured_level() -> int:
    level = logging.getLevelName(os.getenv(LOG_LEVEL_ENV, "DEBUG").strip().upper())
    return level if isinstance(level, int) else logging.DEBUG


class StructuredLogger:
    """
    JSON logger with operation, context, duration and error fields.

    Args:
        name: Logger name (typically __name__ of the calling module)
    """

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(_configured_level())

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter("%(message)s"))
            self.logger.addHandler(handler)

    def _format_log(
        self,
        level: str,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        duration_ms: Optional[float] = None,
        error: Optional[str] = None,
    ) -> str:
        """Serialize one entry; empty optional fields are left out."""
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": level,
            "message": message,
        }
        if operation:
            log_entry["operation"] = operation
        if context:
            log_entry["context"] = context
        if duration_ms is not None:
            log_entry["duration_ms"] = round(duration_ms, 2)
        if error:
            log_entry["error"] = error

        return json.dumps(log_entry, ensure_ascii=False, default=str)

    def _emit(self, level: int, message: str, **fields: Any) -> None:
        if self.logger.isEnabledFor(level):
            self.logger.log(level, self._format_log(logging.getLevelName(level), message, **fields))

    def debug(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self._emit(logging.DEBUG, message, operation=operation, context=context)

    def info(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        duration_ms: Optional[float] = None,
    ):
        self._emit(
            logging.INFO, message, operation=operation, context=context, duration_ms=duration_ms
        )

    def warning(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ):
        self._emit(logging.WARNING, message, operation=operation, context=context, error=error)

    def error(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
        duration_ms: Optional[float] = None,
    ):
        self._emit(
            logging.ERROR,
            message,
            operation=operation,
            context=context,
            error=error,
            duration_ms=duration_ms,
        )


def log_operation(operation_name: str):
    """
    Decorator timing a collaborator call and logging its outcome.

    Rule, issue and execution ids among the call's arguments (positional or
    keyword) are copied into the log context.

    Usage:
        @log_operation("youtrack_add_comment")
        def add_comment(self, issue_id, text):
            ...
    """

    def decorator(func):
        signature = inspect.signature(func)
        logger = StructuredLogger(func.__module__)

        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                arguments = signature.bind_partial(*args, **kwargs).arguments
            except TypeError:
                arguments = kwargs
            context = {"function": func.__name__}
            context.update(
                {name: arguments[name] for name in _TRACKED_ARGUMENTS if name in arguments}
            )

            logger.debug(f"Starting {operation_name}", operation=operation_name, context=context)
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    f"Failed {operation_name}",
                    operation=operation_name,
                    context=context,
                    error=str(e),
                    duration_ms=(time.perf_counter() - start) * 1000,
                )
                raise

            logger.info(
                f"Completed {operation_name}",
                operation=operation_name,
                context=context,
                duration_ms=(time.perf_counter() - start) * 1000,
            )
            return result

        return wrapper

    return decorator


def get_logger(name: str) -> StructuredLogger:
    return StructuredLogger(name)

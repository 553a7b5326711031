"""
Structured logging with correlation IDs for price reconstruction runs.
"""

import functools
import inspect
import json
import logging
import logging.handlers
import sys
import uuid
from contextvars import ContextVar
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

# Context variable for correlation ID
correlation_id: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)

_RESERVED_RECORD_FIELDS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
    'filename', 'module', 'lineno', 'funcName', 'created',
    'msecs', 'relativeCreated', 'thread', 'threadName',
    'processName', 'process', 'getMessage', 'exc_info',
    'exc_text', 'stack_info', 'correlation_id', 'taskName', 'message'
}


@dataclass
class LogContext:
    """Context information attached to every record of a contextual logger."""
    operation: Optional[str] = None
    pair_address: Optional[str] = None
    time_range: Optional[str] = None
    additional_fields: Optional[Dict[str, Any]] = None


class CorrelationIdFilter(logging.Filter):
    """Logging filter that adds correlation ID to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id.get() or "unknown"
        return True


class StructuredFormatter(logging.Formatter):
    """
    Formatter that renders each record as a single JSON object.

    Extra fields passed through ``extra=`` (or a ContextualLogger's context)
    are collected under an ``extra`` key.
    """

    def __init__(
        self,
        include_extra_fields: bool = True,
        timestamp_format: str = "%Y-%m-%dT%H:%M:%S.%fZ"
    ):
        super().__init__()
        self.include_extra_fields = include_extra_fields
        self.timestamp_format = timestamp_format

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).strftime(self.timestamp_format),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "correlation_id": getattr(record, 'correlation_id', 'unknown')
        }

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info)
            }

        if self.include_extra_fields:
            extra_fields = {}
            for key, value in record.__dict__.items():
                if key in _RESERVED_RECORD_FIELDS:
                    continue
                try:
                    json.dumps(value)
                    extra_fields[key] = value
                except (TypeError, ValueError):
                    extra_fields[key] = str(value)

            if extra_fields:
                log_entry["extra"] = extra_fields

        return json.dumps(log_entry, default=str, ensure_ascii=False)


class ContextualLogger:
    """
    Logger wrapper that adds its LogContext to every record as extra fields.
    """

    def __init__(self, name: str, context: Optional[LogContext] = None):
        self.logger = logging.getLogger(name)
        self.context = context or LogContext()

    def _log_with_context(
        self,
        level: int,
        message: str,
        *args,
        exc_info: Optional[Any] = None,
        extra_context: Optional[Dict[str, Any]] = None,
        **kwargs
    ) -> None:
        extra = {}

        if self.context.operation:
            extra["operation"] = self.context.operation
        if self.context.pair_address:
            extra["pair_address"] = self.context.pair_address
        if self.context.time_range:
            extra["time_range"] = self.context.time_range
        if self.context.additional_fields:
            extra.update(self.context.additional_fields)
        if extra_context:
            extra.update(extra_context)
        extra.update(kwargs)

        self.logger.log(level, message, *args, exc_info=exc_info, extra=extra)

    def debug(self, message: str, *args, **kwargs) -> None:
        self._log_with_context(logging.DEBUG, message, *args, **kwargs)

    def info(self, message: str, *args, **kwargs) -> None:
        self._log_with_context(logging.INFO, message, *args, **kwargs)

    def warning(self, message: str, *args, **kwargs) -> None:
        self._log_with_context(logging.WARNING, message, *args, **kwargs)

    def error(self, message: str, *args, **kwargs) -> None:
        self._log_with_context(logging.ERROR, message, *args, **kwargs)

    def exception(self, message: str, *args, **kwargs) -> None:
        kwargs['exc_info'] = True
        self._log_with_context(logging.ERROR, message, *args, **kwargs)

    def with_context(self, **context_updates) -> 'ContextualLogger':
        """Create new logger with updated context."""
        additional = {
            **(self.context.additional_fields or {}),
            **context_updates.pop('additional_fields', {})
        }
        new_context = replace(self.context, additional_fields=additional or None, **context_updates)
        return ContextualLogger(self.logger.name, new_context)


class LoggingManager:
    """
    Centralized logging configuration.

    Sets up console and rotating file handlers with either the structured
    JSON formatter or a plain text format, and manages correlation IDs.
    """

    def __init__(self):
        self._configured = False
        self._log_handlers: Dict[str, logging.Handler] = {}

    @property
    def configured(self) -> bool:
        return self._configured

    def setup_logging(
        self,
        log_level: str = "INFO",
        log_file: Optional[str] = None,
        max_file_size: int = 10 * 1024 * 1024,  # 10MB
        backup_count: int = 5,
        console_output: bool = True,
        structured_format: bool = True,
        include_extra_fields: bool = True
    ) -> None:
        """
        Set up logging for the process.

        Args:
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_file: Path to log file (optional)
            max_file_size: Maximum size of log file before rotation
            backup_count: Number of backup files to keep
            console_output: Whether to output logs to stderr
            structured_format: Whether to use structured JSON format
            include_extra_fields: Whether to include extra fields in structured logs
        """
        if self._configured:
            return

        root_logger = logging.getLogger()
        root_logger.setLevel(getattr(logging, log_level.upper()))
        root_logger.handlers.clear()

        if structured_format:
            formatter = StructuredFormatter(include_extra_fields=include_extra_fields)
        else:
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(correlation_id)s - %(message)s'
            )

        # stdout is reserved for command output
        if console_output:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setFormatter(formatter)
            console_handler.addFilter(CorrelationIdFilter())
            root_logger.addHandler(console_handler)
            self._log_handlers['console'] = console_handler

        if log_file:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=max_file_size,
                backupCount=backup_count,
                encoding='utf-8'
            )
            file_handler.setFormatter(formatter)
            file_handler.addFilter(CorrelationIdFilter())
            root_logger.addHandler(file_handler)
            self._log_handlers['file'] = file_handler

        # Reduce noise from third-party libraries
        logging.getLogger('aiohttp').setLevel(logging.WARNING)
        logging.getLogger('asyncio').setLevel(logging.WARNING)
        logging.getLogger('watchdog').setLevel(logging.WARNING)

        self._configured = True

        logging.getLogger(__name__).debug(
            "Logging configuration completed",
            extra={
                "log_level": log_level,
                "log_file": log_file,
                "structured_format": structured_format
            }
        )

    def reset(self) -> None:
        """Remove handlers installed by setup_logging."""
        root_logger = logging.getLogger()
        for handler in self._log_handlers.values():
            root_logger.removeHandler(handler)
            handler.close()
        self._log_handlers.clear()
        self._configured = False

    def create_correlation_id(self) -> str:
        return str(uuid.uuid4())

    def set_correlation_id(self, corr_id: Optional[str] = None) -> str:
        """Set correlation ID for current context, generating one if needed."""
        if corr_id is None:
            corr_id = self.create_correlation_id()
        correlation_id.set(corr_id)
        return corr_id

    def get_correlation_id(self) -> Optional[str]:
        return correlation_id.get()


# Global logging manager instance
logging_manager = LoggingManager()


def get_logger(name: str, context: Optional[LogContext] = None) -> ContextualLogger:
    """Get a contextual logger instance."""
    return ContextualLogger(name, context)


def with_correlation_id(corr_id: Optional[str] = None):
    """
    Decorator to run a function under its own correlation ID.

    Args:
        corr_id: Correlation ID to use, or None to generate a new one per call
    """
    def decorator(func):
        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                token = correlation_id.set(corr_id or logging_manager.create_correlation_id())
                try:
                    return await func(*args, **kwargs)
                finally:
                    correlation_id.reset(token)
            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            token = correlation_id.set(corr_id or logging_manager.create_correlation_id())
            try:
                return func(*args, **kwargs)
            finally:
                correlation_id.reset(token)
        return sync_wrapper
    return decorator

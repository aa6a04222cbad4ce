import logging
from logging import Formatter, LogRecord
import sys
import json
import traceback
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from pathlib import Path
from contextvars import ContextVar
from logging.handlers import RotatingFileHandler
import uuid

from .config import settings


# Context variables for request tracking
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

_RESERVED_RECORD_KEYS = {
    "name", "msg", "args", "created", "filename", "funcName", "levelname",
    "levelno", "lineno", "module", "msecs", "pathname", "process",
    "processName", "relativeCreated", "thread", "threadName", "exc_info",
    "exc_text", "stack_info", "extra_fields", "taskName",
}


class StructuredFormatter(Formatter):
    """Outputs one JSON object per log record"""

    def format(self, record: LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        request_id = request_id_var.get()
        if request_id:
            log_entry["request_id"] = request_id
        correlation_id = correlation_id_var.get()
        if correlation_id:
            log_entry["correlation_id"] = correlation_id

        if hasattr(record, "extra_fields"):
            log_entry.update({k: v for k, v in record.extra_fields.items() if v is not None})

        if record.exc_info and record.exc_info[0]:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info)
            }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_KEYS:
                log_entry[key] = value

        # Decimal amounts and datetimes are rendered as strings
        return json.dumps(log_entry, default=str)


class TextFormatter(Formatter):
    """Human-readable formatter for development"""

    def format(self, record: LogRecord) -> str:
        request_id = request_id_var.get()
        context_str = f"[req_id={request_id[:8]}] " if request_id else ""

        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        level = f"{record.levelname:8}"
        location = f"{record.name}:{record.funcName}:{record.lineno}"

        fields = ""
        extra = getattr(record, "extra_fields", None)
        if extra:
            pairs = [f"{k}={v}" for k, v in extra.items() if v is not None]
            if pairs:
                fields = " | " + " ".join(pairs)

        message = f"{timestamp} | {level} | {location} | {context_str}{record.getMessage()}{fields}"

        if record.exc_info:
            message += f"\n{''.join(traceback.format_exception(*record.exc_info))}"

        return message


class AppLogger:
    """
    Thin wrapper around the stdlib logger that takes structured keyword
    fields, injects request context and renders JSON in production or text
    in development.
    """

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)
        self._setup_logger()

    def _setup_logger(self):
        """Setup logger with handlers and formatters"""
        config = settings.logging_config
        self.logger.handlers = []
        self.logger.setLevel(getattr(logging, config.level))

        if config.format == "json":
            formatter: Formatter = StructuredFormatter()
        else:
            formatter = TextFormatter()

        if "console" in config.handlers:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setFormatter(formatter)
            self.logger.addHandler(console_handler)

        if "file" in config.handlers:
            log_dir = Path(config.file_path).parent
            log_dir.mkdir(parents=True, exist_ok=True)

            file_handler = RotatingFileHandler(
                config.file_path,
                maxBytes=config.max_file_size,
                backupCount=config.backup_count
            )
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

        # Keep propagation on so pytest's caplog sees records in tests
        self.logger.propagate = settings.is_testing

    def _add_context(self, extra: Dict[str, Any]) -> Dict[str, Any]:
        """Add context variables to extra fields"""
        if settings.logging_config.include_context:
            extra["request_id"] = request_id_var.get()
            extra["correlation_id"] = correlation_id_var.get()
        return extra

    def debug(self, message: str, **kwargs):
        extra = self._add_context(kwargs)
        self.logger.debug(message, extra={"extra_fields": extra})

    def info(self, message: str, **kwargs):
        extra = self._add_context(kwargs)
        self.logger.info(message, extra={"extra_fields": extra})

    def warning(self, message: str, **kwargs):
        extra = self._add_context(kwargs)
        self.logger.warning(message, extra={"extra_fields": extra})

    def error(self, message: str, error: Optional[Exception] = None, **kwargs):
        """Log error message, attaching the traceback when an exception is given"""
        extra = self._add_context(kwargs)
        if error:
            extra["error_type"] = type(error).__name__
            extra["error_message"] = str(error)
            self.logger.error(message, exc_info=error, extra={"extra_fields": extra})
        else:
            self.logger.error(message, extra={"extra_fields": extra})

    def critical(self, message: str, **kwargs):
        extra = self._add_context(kwargs)
        self.logger.critical(message, extra={"extra_fields": extra})

    def log_api_request(
        self,
        endpoint: str,
        method: str,
        client_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
        **kwargs
    ):
        """Log API requests with metadata"""
        self.info(
            f"API Request: {method} {endpoint}",
            endpoint=endpoint,
            method=method,
            client_ip=client_ip,
            user_agent=user_agent,
            **kwargs
        )

    def log_api_response(
        self,
        status_code: int,
        response_time: float,
        endpoint: Optional[str] = None,
        **kwargs
    ):
        """Log API responses with performance metrics"""
        level = "info" if 200 <= status_code < 400 else "warning"
        getattr(self, level)(
            f"API Response: {status_code}",
            status_code=status_code,
            response_time_ms=round(response_time * 1000, 2),
            endpoint=endpoint,
            **kwargs
        )

    def log_external_api_call(
        self,
        service: str,
        endpoint: str,
        method: str = "GET",
        **kwargs
    ):
        """Log external API interactions"""
        self.info(
            f"External API Call: {service}",
            service=service,
            endpoint=endpoint,
            method=method,
            **kwargs
        )

    def log_external_api_response(
        self,
        service: str,
        status_code: int,
        response_time: float,
        **kwargs
    ):
        """Log external API response"""
        level = "info" if 200 <= status_code < 400 else "warning"
        getattr(self, level)(
            f"External API Response: {service} - {status_code}",
            service=service,
            status_code=status_code,
            response_time_ms=round(response_time * 1000, 2),
            **kwargs
        )

    def log_cache_hit(self, key: str, **kwargs):
        self.debug("Cache hit", cache_key=key, cache_event="hit", **kwargs)

    def log_cache_miss(self, key: str, **kwargs):
        self.debug("Cache miss", cache_key=key, cache_event="miss", **kwargs)

    def log_business_event(self, event_type: str, data: Dict[str, Any]):
        """Log ledger events such as claim merges and trade closes"""
        self.info(
            f"Business Event: {event_type}",
            event_type=event_type,
            event_data=data
        )

    def log_performance_metric(
        self,
        operation: str,
        duration: float,
        success: bool = True,
        **kwargs
    ):
        """Log performance metrics"""
        self.info(
            f"Performance: {operation}",
            operation=operation,
            duration_ms=round(duration * 1000, 2),
            success=success,
            **kwargs
        )


def get_logger(name: str) -> AppLogger:
    """Get a logger instance for the given name"""
    return AppLogger(name)


def set_request_id(request_id: str):
    request_id_var.set(request_id)


def set_correlation_id(correlation_id: str):
    correlation_id_var.set(correlation_id)


def generate_request_id() -> str:
    return str(uuid.uuid4())


def clear_context():
    """Clear all context variables"""
    request_id_var.set(None)
    correlation_id_var.set(None)

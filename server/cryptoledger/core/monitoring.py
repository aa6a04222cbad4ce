import logging
import time
import asyncio
from functools import wraps
from typing import Dict, Any, Optional, List

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sentry_sdk.integrations.redis import RedisIntegration
from sentry_sdk.integrations.httpx import HttpxIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from .config import settings
from .logging import get_logger, request_id_var


logger = get_logger(__name__)

_SENSITIVE_HEADERS = ("authorization", "x-api-key", "x-cg-pro-api-key", "cookie", "session", "token", "secret")
_SENSITIVE_KEYS = ("password", "token", "secret", "api_key", "private_key")


class ErrorMonitoring:
    """Centralized error monitoring with Sentry"""

    @staticmethod
    def init_sentry(app_settings: Optional[Any] = None):
        """Initialize Sentry SDK with custom configuration"""
        config = app_settings or settings

        if not config.sentry_dsn:
            logger.warning("Sentry DSN not configured, error monitoring disabled")
            return

        if not config.logging_config.sentry_enabled:
            logger.info("Sentry disabled for environment", environment=config.environment)
            return

        try:
            sentry_sdk.init(
                dsn=config.sentry_dsn,
                environment=config.sentry_environment or config.environment,
                integrations=[
                    FastApiIntegration(transaction_style="endpoint"),
                    SqlalchemyIntegration(),
                    RedisIntegration(),
                    HttpxIntegration(),
                    LoggingIntegration(
                        level=logging.INFO,
                        event_level=logging.ERROR
                    ),
                ],
                traces_sample_rate=config.sentry_traces_sample_rate,
                profiles_sample_rate=config.sentry_profiles_sample_rate,
                attach_stacktrace=config.logging.sentry_attach_stacktrace,
                send_default_pii=config.logging.sentry_send_default_pii,
                before_send=ErrorMonitoring._before_send,
                before_send_transaction=ErrorMonitoring._before_send_transaction,
                release=config.api.version,
                server_name=config.api.title,
                max_breadcrumbs=50,
                debug=config.debug,
            )

            logger.info(
                "Sentry initialized",
                environment=config.environment,
                traces_sample_rate=config.sentry_traces_sample_rate
            )

        except Exception as e:
            logger.error("Failed to initialize Sentry", error=e)

    @staticmethod
    def _before_send(event: Dict[str, Any], hint: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Filter sensitive data before sending to Sentry"""
        if "exc_info" in hint:
            exc_type = hint["exc_info"][0]
            if exc_type.__name__ in ("KeyboardInterrupt", "SystemExit"):
                return None

        request = event.get("request") or {}
        headers = request.get("headers")
        if headers:
            for header in list(headers.keys()):
                if header.lower() in _SENSITIVE_HEADERS:
                    headers[header] = "[REDACTED]"

        extra = event.get("extra")
        if extra:
            for key in list(extra.keys()):
                if any(sensitive in key.lower() for sensitive in _SENSITIVE_KEYS):
                    extra[key] = "[REDACTED]"

        request_id = request_id_var.get()
        if request_id:
            event.setdefault("tags", {})["request_id"] = request_id

        return event

    @staticmethod
    def _before_send_transaction(event: Dict[str, Any], hint: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Skip health check transactions"""
        if event.get("transaction") in ("/health", f"{settings.api.prefix}/health"):
            return None

        request_id = request_id_var.get()
        if request_id:
            event.setdefault("tags", {})["request_id"] = request_id

        return event

    @staticmethod
    def capture_exception(
        error: Exception,
        context: Optional[Dict[str, Any]] = None,
        level: str = "error",
        fingerprint: Optional[List[str]] = None
    ):
        """Capture exception with additional context"""
        with sentry_sdk.new_scope() as scope:
            scope.level = level

            if context:
                for key, value in context.items():
                    scope.set_extra(key, value)

            request_id = request_id_var.get()
            if request_id:
                scope.set_tag("request_id", request_id)

            if fingerprint:
                scope.fingerprint = fingerprint

            sentry_sdk.capture_exception(error)

    @staticmethod
    def add_breadcrumb(
        message: str,
        category: str = "custom",
        level: str = "info",
        data: Optional[Dict[str, Any]] = None
    ):
        """Add breadcrumb for context"""
        sentry_sdk.add_breadcrumb(
            category=category,
            message=message,
            level=level,
            data=data or {}
        )


def monitor_performance(operation_name: str):
    """
    Decorator to time a coroutine inside a Sentry span

    Example:
        @monitor_performance("trades.close")
        async def close_trade(...):
            ...
    """
    def decorator(func):
        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            with sentry_sdk.start_span(op=operation_name, name=func.__name__) as span:
                start_time = time.time()
                success = False
                try:
                    result = await func(*args, **kwargs)
                    span.set_tag("success", True)
                    success = True
                    return result
                except Exception as e:
                    span.set_tag("success", False)
                    span.set_tag("error", type(e).__name__)
                    raise
                finally:
                    duration = time.time() - start_time
                    span.set_data("duration_ms", round(duration * 1000, 2))
                    logger.log_performance_metric(operation_name, duration, success=success)

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            with sentry_sdk.start_span(op=operation_name, name=func.__name__) as span:
                start_time = time.time()
                success = False
                try:
                    result = func(*args, **kwargs)
                    span.set_tag("success", True)
                    success = True
                    return result
                except Exception as e:
                    span.set_tag("success", False)
                    span.set_tag("error", type(e).__name__)
                    raise
                finally:
                    duration = time.time() - start_time
                    span.set_data("duration_ms", round(duration * 1000, 2))
                    logger.log_performance_metric(operation_name, duration, success=success)

        return async_wrapper if asyncio.iscoroutinefunction(func) else sync_wrapper
    return decorator

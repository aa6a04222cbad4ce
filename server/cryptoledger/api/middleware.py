import time
from collections import defaultdict, deque
from typing import Deque, Dict, Optional
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from cryptoledger.core.logging import (
    get_logger,
    generate_request_id,
    set_request_id,
    set_correlation_id,
    clear_context,
)
from cryptoledger.core.responses import rate_limit_error
from cryptoledger.core.monitoring import ErrorMonitoring
from cryptoledger.core.config import settings


logger = get_logger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Tags each request with an id, logs it and its response, and reports timing
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or generate_request_id()
        set_request_id(request_id)

        correlation_id = request.headers.get("X-Correlation-ID")
        if correlation_id:
            set_correlation_id(correlation_id)

        logger.log_api_request(
            endpoint=request.url.path,
            method=request.method,
            client_ip=request.client.host if request.client else None,
            user_agent=request.headers.get("User-Agent", ""),
            query_params=dict(request.query_params)
        )

        ErrorMonitoring.add_breadcrumb(
            message=f"{request.method} {request.url.path}",
            category="request",
            data={"method": request.method, "path": request.url.path}
        )

        start_time = time.monotonic()
        try:
            response = await call_next(request)
            process_time = time.monotonic() - start_time

            logger.log_api_response(
                status_code=response.status_code,
                response_time=process_time,
                endpoint=request.url.path
            )

            response.headers["X-Request-ID"] = request_id
            response.headers["X-Process-Time"] = str(round(process_time * 1000, 2))
            return response

        except Exception as e:
            logger.error(
                "Request processing error",
                error=e,
                endpoint=request.url.path,
                method=request.method,
                process_time=round(time.monotonic() - start_time, 4)
            )
            raise

        finally:
            clear_context()


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Sliding-window request limit per client IP, kept in process memory
    """

    EXEMPT_PATHS = ("/", "/health", f"{settings.api.prefix}/health")

    def __init__(self, app, max_requests: Optional[int] = None, period_seconds: Optional[int] = None):
        super().__init__(app)
        self.max_requests = max_requests or settings.api.rate_limit_requests
        self.period = period_seconds or settings.api.rate_limit_period
        self.requests: Dict[str, Deque[float]] = defaultdict(deque)
        self.last_cleanup = time.monotonic()

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.EXEMPT_PATHS:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now = time.monotonic()

        if now - self.last_cleanup > self.period:
            self._cleanup(now)
            self.last_cleanup = now

        window = self._window(client_ip, now)
        if len(window) >= self.max_requests:
            retry_after = max(1, int(window[0] + self.period - now))
            logger.warning(
                "Rate limit exceeded",
                client_ip=client_ip,
                path=request.url.path,
                retry_after=retry_after
            )
            return rate_limit_error(
                message=f"Rate limit exceeded. Please retry after {retry_after} seconds",
                retry_after=retry_after
            )

        window.append(now)
        response = await call_next(request)

        response.headers["X-RateLimit-Limit"] = str(self.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(max(0, self.max_requests - len(window)))
        return response

    def _window(self, client_ip: str, now: float) -> Deque[float]:
        """Request times for this client inside the current window, oldest first"""
        window = self.requests[client_ip]
        while window and window[0] <= now - self.period:
            window.popleft()
        return window

    def _cleanup(self, now: float):
        for ip in list(self.requests):
            if not self._window(ip, now):
                del self.requests[ip]

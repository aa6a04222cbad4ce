import httpx
import asyncio
import time
from typing import Dict, Any, Optional, Union
from abc import ABC, abstractmethod

from cryptoledger.core.logging import get_logger
from cryptoledger.core.cache import cache_manager
from cryptoledger.core.monitoring import monitor_performance, ErrorMonitoring
from cryptoledger.core.config import settings, RetryPolicy


logger = get_logger(__name__)


class ExternalAPIError(Exception):
    """Raised once a third-party call has failed for good"""

    def __init__(
        self,
        message: str,
        service: str,
        status_code: Optional[int] = None,
        response_data: Optional[Any] = None
    ):
        super().__init__(message)
        self.service = service
        self.status_code = status_code
        self.response_data = response_data


class ExternalAPIService(ABC):
    """
    Base class for third-party price and metadata APIs with:
    - Bounded retries driven by a RetryPolicy
    - Response caching in Redis when it is available
    - Metrics and request/response logging
    """

    def __init__(
        self,
        service_name: str,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: int = 10,
        retry_policy: Optional[RetryPolicy] = None,
        cache_ttl: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.service_name = service_name
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.timeout = timeout
        self.retry_policy = retry_policy or settings.external_api_retry
        self.cache_ttl = cache_ttl

        self.headers = headers or {}
        self._setup_headers()

        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout),
            headers=self.headers,
            limits=httpx.Limits(max_keepalive_connections=10, max_connections=50),
            follow_redirects=True,
            transport=transport
        )

        self.metrics: Dict[str, Any] = {
            "total_requests": 0,
            "successful_requests": 0,
            "failed_requests": 0,
            "cache_hits": 0,
            "retries": 0,
            "total_response_time": 0.0,
            "errors_by_type": {}
        }

        self.logger = get_logger(f"external.{service_name}")

    def _setup_headers(self):
        self.headers.update({
            "Accept": "application/json",
            "User-Agent": f"{settings.api.title}/{settings.api.version}"
        })

    @abstractmethod
    def _get_cache_key(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> str:
        """Generate cache key for the request - must be implemented by subclass"""

    def _parse_error_response(self, response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text or "Unknown error"
        if isinstance(data, dict):
            return str(data.get("error") or data.get("message") or data.get("status") or "Unknown error")
        return str(data)

    @property
    def _cache_namespace(self) -> str:
        return f"external_api:{self.service_name}"

    def _cache_available(self) -> bool:
        return bool(self.cache_ttl) and settings.enable_caching and cache_manager.connected

    def _should_retry(self, exception: Exception, attempt: int) -> bool:
        """Whether another attempt is allowed after ``attempt`` (1-based) failed"""
        if attempt >= self.retry_policy.max_attempts:
            return False

        if isinstance(exception, (httpx.TimeoutException, httpx.NetworkError)):
            return True

        if isinstance(exception, httpx.HTTPStatusError):
            return exception.response.status_code in self.retry_policy.retry_statuses

        return False

    def _get_retry_delay(self, attempt: int, response: Optional[httpx.Response] = None) -> float:
        """Delay before the next attempt; a Retry-After header wins when present"""
        if response is not None and "Retry-After" in response.headers:
            try:
                return min(float(response.headers["Retry-After"]), self.retry_policy.max_backoff_seconds)
            except ValueError:
                pass
        return self.retry_policy.delay_for(attempt)

    def _record_error(self, error_type: str):
        self.metrics["errors_by_type"][error_type] = self.metrics["errors_by_type"].get(error_type, 0) + 1

    @monitor_performance("external_api_request")
    async def _make_request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        use_cache: bool = True,
        cache_ttl: Optional[int] = None,
        raw: bool = False
    ) -> Union[Dict[str, Any], bytes]:
        """
        Make an HTTP request with caching and bounded retries

        Args:
            method: HTTP method
            endpoint: Path relative to base_url, or an absolute URL
            params: Query parameters
            use_cache: Whether to use caching for GET requests
            cache_ttl: Override default cache TTL
            raw: Return the response body as bytes instead of parsed JSON

        Returns:
            Parsed JSON response, or bytes when ``raw`` is set

        Raises:
            ExternalAPIError: After the last allowed attempt fails
        """
        cache_key = None
        if method == "GET" and use_cache and not raw and self._cache_available():
            cache_key = self._get_cache_key(endpoint, params)
            cached_response = cache_manager.cache.get(cache_key, namespace=self._cache_namespace)
            if cached_response is not None:
                self.metrics["cache_hits"] += 1
                self.logger.log_cache_hit(cache_key, service=self.service_name)
                return cached_response
            self.logger.log_cache_miss(cache_key, service=self.service_name)

        self.logger.log_external_api_call(
            service=self.service_name,
            endpoint=endpoint,
            method=method,
            params=params
        )

        last_exception: Optional[Exception] = None
        attempt = 0
        while True:
            attempt += 1
            start_time = time.monotonic()
            try:
                response = await self.client.request(method=method, url=endpoint, params=params)
                response_time = time.monotonic() - start_time
                self.metrics["total_response_time"] += response_time

                response.raise_for_status()
                data = response.content if raw else response.json()

                self.logger.log_external_api_response(
                    service=self.service_name,
                    status_code=response.status_code,
                    response_time=response_time
                )
                self.metrics["total_requests"] += 1
                self.metrics["successful_requests"] += 1

                if cache_key:
                    cache_manager.cache.set(
                        cache_key,
                        data,
                        ttl=cache_ttl or self.cache_ttl,
                        namespace=self._cache_namespace
                    )

                ErrorMonitoring.add_breadcrumb(
                    message=f"External API call to {self.service_name}",
                    category="external_api",
                    data={
                        "endpoint": endpoint,
                        "status_code": response.status_code,
                        "response_time_ms": round(response_time * 1000, 2),
                        "attempt": attempt
                    }
                )
                return data

            except httpx.HTTPStatusError as e:
                last_exception = e
                self.logger.warning(
                    f"HTTP error from {self.service_name}",
                    status_code=e.response.status_code,
                    error_message=self._parse_error_response(e.response),
                    attempt=attempt
                )
                self._record_error(f"http_{e.response.status_code}")
                if not self._should_retry(e, attempt):
                    break
                retry_delay = self._get_retry_delay(attempt - 1, e.response)

            except (httpx.TimeoutException, httpx.NetworkError) as e:
                last_exception = e
                self.logger.warning(
                    f"Network error calling {self.service_name}",
                    error_type=type(e).__name__,
                    attempt=attempt
                )
                self._record_error(type(e).__name__)
                if not self._should_retry(e, attempt):
                    break
                retry_delay = self._get_retry_delay(attempt - 1)

            except ValueError as e:
                # Body was not valid JSON
                last_exception = e
                self.logger.error(f"Malformed response from {self.service_name}", error=e)
                self._record_error("invalid_response")
                break

            self.metrics["retries"] += 1
            self.logger.info(
                f"Retrying request to {self.service_name}",
                attempt=attempt,
                retry_delay=retry_delay
            )
            await asyncio.sleep(retry_delay)

        self.metrics["total_requests"] += 1
        self.metrics["failed_requests"] += 1

        ErrorMonitoring.capture_exception(
            last_exception,
            context={
                "service": self.service_name,
                "endpoint": endpoint,
                "method": method,
                "attempts": attempt
            },
            level="warning"
        )

        if isinstance(last_exception, httpx.HTTPStatusError):
            raise ExternalAPIError(
                message=f"API call to {self.service_name} failed: {self._parse_error_response(last_exception.response)}",
                service=self.service_name,
                status_code=last_exception.response.status_code,
                response_data=last_exception.response.text
            )
        raise ExternalAPIError(
            message=f"API call to {self.service_name} failed: {last_exception}",
            service=self.service_name
        )

    async def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> Dict[str, Any]:
        """Make GET request"""
        return await self._make_request("GET", endpoint, params=params, **kwargs)

    async def get_bytes(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> bytes:
        return await self._make_request("GET", endpoint, params=params, use_cache=False, raw=True)

    async def close(self):
        """Close HTTP client"""
        await self.client.aclose()

    def get_metrics(self) -> Dict[str, Any]:
        """Get service metrics"""
        total_requests = self.metrics["total_requests"]
        if total_requests > 0:
            success_rate = self.metrics["successful_requests"] / total_requests
            avg_response_time = self.metrics["total_response_time"] / total_requests
        else:
            success_rate = 0.0
            avg_response_time = 0.0

        return {
            "service": self.service_name,
            "total_requests": total_requests,
            "successful_requests": self.metrics["successful_requests"],
            "failed_requests": self.metrics["failed_requests"],
            "retries": self.metrics["retries"],
            "success_rate": round(success_rate, 4),
            "avg_response_time_ms": round(avg_response_time * 1000, 2),
            "cache_hits": self.metrics["cache_hits"],
            "errors_by_type": self.metrics["errors_by_type"]
        }

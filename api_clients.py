"""Base classes for external API clients."""

import asyncio
import aiohttp
import logging
from abc import ABC, abstractmethod
from typing import Dict, Any, Optional, List, TypeVar, Generic
from datetime import datetime, timedelta, timezone
from dataclasses import dataclass

from config import APP_VERSION
from utils import log_error, async_retry


T = TypeVar('T')


@dataclass
class RateLimitInfo:
    """Information about API rate limits."""
    requests_per_second: float
    requests_per_minute: int
    requests_per_hour: int
    burst_limit: int = 5


class APIResponse(Generic[T]):
    """Wrapper for API responses with metadata."""

    def __init__(self, data: T, status_code: int, headers: Dict[str, str] = None,
                 cached: bool = False):
        self.data = data
        self.status_code = status_code
        self.headers = headers or {}
        self.cached = cached
        self.timestamp = datetime.now(timezone.utc)

    @property
    def success(self) -> bool:
        """Check if the response was successful."""
        return 200 <= self.status_code < 300


class RetryableResponseError(Exception):
    """Raised for responses worth retrying (rate limits and server errors)."""

    def __init__(self, status: int, message: str):
        super().__init__(f"{status}: {message}")
        self.status = status


class BaseAPIClient(ABC):
    """Abstract base class for external API clients."""

    def __init__(self, base_url: str, api_key: Optional[str] = None,
                 rate_limit: RateLimitInfo = None, timeout: int = 30,
                 max_concurrency: int = 5):
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.rate_limit = rate_limit or RateLimitInfo(1.0, 60, 3600)
        self.timeout = timeout
        self.logger = logging.getLogger(self.__class__.__name__)

        # Session and caching
        self._session: Optional[aiohttp.ClientSession] = None
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._cache: Dict[str, Any] = {}
        self._cache_ttl: Dict[str, datetime] = {}
        self._request_times: List[datetime] = []

    async def __aenter__(self):
        """Async context manager entry."""
        await self._ensure_session()
        return self

    async def __aexit__(self, _exc_type, _exc_val, _exc_tb):
        """Async context manager exit."""
        await self.close()

    async def _ensure_session(self) -> None:
        """Ensure aiohttp session is created."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=100,
                limit_per_host=30,
                keepalive_timeout=30
            )

            timeout = aiohttp.ClientTimeout(total=self.timeout)

            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=timeout,
                headers=self._get_default_headers()
            )

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    def _get_default_headers(self) -> Dict[str, str]:
        """Get default headers for requests."""
        headers = {
            'User-Agent': f'EloBoard/{APP_VERSION}',
            'Accept': 'application/json',
        }

        if self.api_key:
            headers.update(self._get_auth_headers())

        return headers

    @abstractmethod
    def _get_auth_headers(self) -> Dict[str, str]:
        """Get authentication headers (implement in subclass)."""
        pass

    def _get_cache_key(self, endpoint: str, params: Dict[str, Any] = None) -> str:
        """Generate cache key for request."""
        param_str = ''
        if params:
            sorted_params = sorted(params.items())
            param_str = '&'.join(f"{k}={v}" for k, v in sorted_params)

        return f"{endpoint}?{param_str}" if param_str else endpoint

    def _is_cache_valid(self, cache_key: str, ttl_seconds: int = 300) -> bool:
        """Check if cached data is still valid."""
        if cache_key not in self._cache_ttl:
            return False

        expiry = self._cache_ttl[cache_key] + timedelta(seconds=ttl_seconds)
        return datetime.now(timezone.utc) < expiry

    def _set_cache(self, cache_key: str, data: Any) -> None:
        """Set data in cache."""
        self._cache[cache_key] = data
        self._cache_ttl[cache_key] = datetime.now(timezone.utc)

    def _get_cache(self, cache_key: str) -> Optional[Any]:
        """Get data from cache."""
        return self._cache.get(cache_key)

    async def _check_rate_limit(self) -> None:
        """Check and enforce rate limits."""
        now = datetime.now(timezone.utc)

        # Clean old request times
        cutoff = now - timedelta(seconds=60)
        self._request_times = [t for t in self._request_times if t > cutoff]

        # Check rate limit
        if len(self._request_times) >= self.rate_limit.requests_per_minute:
            oldest_request = min(self._request_times)
            wait_time = 60 - (now - oldest_request).total_seconds()

            if wait_time > 0:
                self.logger.warning(f"Rate limit reached, waiting {wait_time:.1f}s")
                await asyncio.sleep(wait_time)
                now = datetime.now(timezone.utc)

        # Space out bursts beyond the per-second budget
        recent = [t for t in self._request_times if (now - t).total_seconds() < 1.0]
        if self._request_times and len(recent) >= max(self.rate_limit.burst_limit, 1):
            spacing = 1.0 / self.rate_limit.requests_per_second
            elapsed = (now - self._request_times[-1]).total_seconds()
            if elapsed < spacing:
                await asyncio.sleep(spacing - elapsed)
                now = datetime.now(timezone.utc)

        # Record this request
        self._request_times.append(now)

    @async_retry(max_retries=3, delay=1.0, backoff=2.0)
    async def _make_request(self, method: str, endpoint: str,
                            params: Dict[str, Any] = None,
                            data: Dict[str, Any] = None,
                            headers: Dict[str, str] = None,
                            use_cache: bool = True,
                            cache_ttl: int = 300) -> APIResponse[Any]:
        """
        Make HTTP request with rate limiting and caching.

        Client errors (404, 401, ...) are returned as unsuccessful responses;
        rate limits and server errors raise so the request is retried.
        """
        await self._ensure_session()

        # Check cache first
        cache_key = self._get_cache_key(endpoint, params)
        if use_cache and self._is_cache_valid(cache_key, cache_ttl):
            cached_data = self._get_cache(cache_key)
            if cached_data is not None:
                return APIResponse(
                    data=cached_data,
                    status_code=200,
                    cached=True
                )

        url = f"{self.base_url}/{endpoint.lstrip('/')}"

        async with self._semaphore:
            await self._check_rate_limit()

            try:
                async with self._session.request(
                    method=method,
                    url=url,
                    params=params,
                    json=data,
                    headers=headers
                ) as response:

                    response_headers = dict(response.headers)
                    status_code = response.status

                    # Handle different content types
                    if 'application/json' in response.headers.get('content-type', ''):
                        response_data = await response.json()
                    else:
                        response_data = {'text': await response.text()}

                    # Handle rate limiting
                    if status_code == 429:
                        retry_after = int(response_headers.get('Retry-After', 5))
                        self.logger.warning(f"Rate limited, retry after {retry_after}s")
                        await asyncio.sleep(retry_after)
                        raise RetryableResponseError(status_code, "Rate limited")

                    # Handle server errors
                    if status_code >= 500:
                        raise RetryableResponseError(status_code, f"Server error: {status_code}")

                    if 400 <= status_code < 500:
                        self.logger.debug(f"{method} {endpoint} returned {status_code}")

                    # Cache successful responses
                    if use_cache and 200 <= status_code < 300:
                        self._set_cache(cache_key, response_data)

                    return APIResponse(
                        data=response_data,
                        status_code=status_code,
                        headers=response_headers
                    )

            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                log_error(f"making {method} request to {endpoint}", e, level=logging.WARNING)
                raise

    async def get(self, endpoint: str, params: Dict[str, Any] = None,
                  headers: Dict[str, str] = None,
                  use_cache: bool = True, cache_ttl: int = 300) -> APIResponse[Any]:
        """Make GET request."""
        return await self._make_request('GET', endpoint, params=params, headers=headers,
                                        use_cache=use_cache, cache_ttl=cache_ttl)

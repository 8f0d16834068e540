"""
Bounded retry handler for catalog API calls

- 429 (Too Many Requests): wait Retry-After seconds (default 1s) and retry
- 5xx and transport errors: exponential backoff, base delay doubling
- Anything else is handed back to the caller untouched
- At most ``max_attempts`` requests in total; no wait after the final attempt
"""

import asyncio
import time
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
import structlog

from .exceptions import TransientFetchError
from .metrics import catalog_retries_total

logger = structlog.get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_AFTER = 1.0


async def fetch_with_backoff(
    request_func: Callable[[], Awaitable[httpx.Response]],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    default_retry_after: float = DEFAULT_RETRY_AFTER,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    logger_context: Optional[Dict[str, Any]] = None
) -> httpx.Response:
    """
    Execute a catalog request, retrying rate limits and server failures.

    Args:
        request_func: Async callable issuing one request and returning the response
        max_attempts: Total number of requests allowed (default: 3)
        initial_delay: Base delay for exponential backoff in seconds
        max_delay: Cap applied to every wait
        default_retry_after: Wait used when a 429 carries no Retry-After header
        sleep: Awaitable used for waiting (injectable for tests)
        logger_context: Additional context for structured logging

    Returns:
        The first response that is neither a 429 nor a 5xx. 401 and other
        4xx responses are returned so the caller can decide what to do.

    Raises:
        TransientFetchError: When every attempt was rate limited, failed with
            a 5xx, or failed at the transport level
    """
    context = logger_context or {}
    attempts = 0

    while True:
        attempts += 1
        try:
            response = await request_func()
        except httpx.TransportError as e:
            if attempts >= max_attempts:
                raise TransientFetchError(attempts, e)

            wait_time = _calculate_backoff(attempts, initial_delay, max_delay)
            catalog_retries_total.labels(reason="transport").inc()
            logger.warning(
                "Network/timeout error - retrying with exponential backoff",
                error_type=type(e).__name__,
                attempt=attempts,
                max_attempts=max_attempts,
                wait_time=wait_time,
                **context
            )
            await sleep(wait_time)
            continue

        if response.status_code == 429:
            if attempts >= max_attempts:
                raise TransientFetchError(attempts, _status_error(response))

            retry_after = _extract_retry_after(response.headers, default_retry_after)
            wait_time = min(retry_after, max_delay)
            catalog_retries_total.labels(reason="rate_limited").inc()
            logger.warning(
                "Rate limit hit (429), respecting Retry-After header",
                retry_after=retry_after,
                attempt=attempts,
                max_attempts=max_attempts,
                **context
            )
            await sleep(wait_time)
            continue

        if response.status_code >= 500:
            if attempts >= max_attempts:
                raise TransientFetchError(attempts, _status_error(response))

            wait_time = _calculate_backoff(attempts, initial_delay, max_delay)
            catalog_retries_total.labels(reason="server_error").inc()
            logger.warning(
                "Server error - retrying with exponential backoff",
                status=response.status_code,
                attempt=attempts,
                max_attempts=max_attempts,
                wait_time=wait_time,
                **context
            )
            await sleep(wait_time)
            continue

        if attempts > 1:
            logger.info("Catalog call succeeded after retries", retries=attempts - 1, **context)
        return response


def _calculate_backoff(attempt: int, initial_delay: float = 1.0, max_delay: float = 60.0) -> float:
    """initial_delay * 2^(attempt - 1), capped: 1s, 2s, 4s, ..."""
    return min(initial_delay * (2 ** (attempt - 1)), max_delay)


def _extract_retry_after(headers: httpx.Headers, default: float = DEFAULT_RETRY_AFTER) -> float:
    """
    Read Retry-After as seconds or as an HTTP date.

    Falls back to ``default`` when absent or unparseable.
    """
    retry_after_header = headers.get("Retry-After")
    if not retry_after_header:
        return default

    try:
        return max(float(retry_after_header), 0.0)
    except ValueError:
        pass

    try:
        retry_date = parsedate_to_datetime(retry_after_header)
    except (TypeError, ValueError):
        logger.warning("Failed to parse Retry-After header", header_value=retry_after_header)
        return default
    return max(retry_date.timestamp() - time.time(), 0.0)


def _status_error(response: httpx.Response) -> httpx.HTTPStatusError:
    return httpx.HTTPStatusError(
        f"Catalog responded with {response.status_code}",
        request=response.request,
        response=response,
    )

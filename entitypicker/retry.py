"""
Retry with exponential backoff for catalog requests.

Timeouts, dropped connections and retryable HTTP statuses (429, 5xx) are
retried; everything else surfaces on the first failure.
"""

import time
import functools
from typing import Callable, Type, Tuple, Optional

from .logger import get_logger

logger = get_logger()

RETRYABLE_STATUS_CODES = frozenset({
    408,  # Request Timeout
    429,  # Too Many Requests
    500,  # Internal Server Error
    502,  # Bad Gateway
    503,  # Service Unavailable
    504,  # Gateway Timeout
})


class RetryError(Exception):
    """Raised when all retry attempts are exhausted."""
    pass


class RetryableStatus(Exception):
    """An HTTP response whose status code is worth retrying."""

    def __init__(self, status_code: int, url: str = ""):
        super().__init__(f"HTTP {status_code} from {url}")
        self.status_code = status_code
        self.url = url


def should_retry_http_status(status_code: int) -> bool:
    return status_code in RETRYABLE_STATUS_CODES


def _log_retry(attempt: int, exc: Exception, delay: float):
    logger.warning(
        "Catalog request failed, retrying",
        attempt=attempt, error=str(exc), delay=round(delay, 2),
    )


def exponential_backoff(
    max_retries: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 10.0,
    exponential_base: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable] = _log_retry,
):
    """
    Decorator for retrying functions with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts (0 = no retries)
        base_delay: Initial delay in seconds
        max_delay: Maximum delay between retries in seconds
        exponential_base: Multiplier applied to the delay after each attempt
        exceptions: Tuple of exceptions to catch and retry
        on_retry: Optional callback function(attempt, exception, delay)

    Example:
        @exponential_backoff(max_retries=2, exceptions=(requests.Timeout,))
        def fetch_entities(session, url):
            return session.get(url, timeout=10)
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            delay = base_delay

            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_retries:
                        raise RetryError(
                            f"Failed after {max_retries + 1} attempts: {e}"
                        ) from e

                    current_delay = min(delay, max_delay)
                    if on_retry:
                        on_retry(attempt + 1, e, current_delay)
                    time.sleep(current_delay)
                    delay *= exponential_base

        return wrapper
    return decorator

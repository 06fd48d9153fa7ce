"""
Retry utility with exponential backoff for Google Drive API calls.
Handles transient errors (429, 5xx, 403 rate limits, connection drops) with retry,
and fails immediately on permanent errors (other 4xx).
"""

import json
import random
import time
import logging
from typing import Callable, TypeVar, Optional, Type, Tuple
from functools import wraps

from googleapiclient.errors import HttpError

logger = logging.getLogger("brify_sync.retry")

T = TypeVar('T')

RATE_LIMIT_REASONS = ("rateLimitExceeded", "userRateLimitExceeded")


class RetryExhausted(Exception):
    """Raised when all retry attempts have been exhausted."""
    pass


def extract_status_code(error: Exception) -> Optional[int]:
    """
    Returns the HTTP status of a Google API error.
    Works for HttpError instances and for errors whose message follows
    the "HttpError 503 when requesting..." format.
    """
    if isinstance(error, HttpError):
        try:
            return int(error.resp.status)
        except (AttributeError, TypeError, ValueError):
            return None

    error_str = str(error)
    if "HttpError" in error_str:
        parts = error_str.split()
        for i, part in enumerate(parts):
            if part == "HttpError" and i + 1 < len(parts):
                try:
                    return int(parts[i + 1])
                except ValueError:
                    return None
    return None


def is_rate_limit_error(error: Exception) -> bool:
    """Drive reports quota exhaustion as 403 with a rate-limit reason."""
    if isinstance(error, HttpError):
        try:
            payload = json.loads(error.content.decode("utf-8"))
            reasons = [e.get("reason") for e in payload.get("error", {}).get("errors", [])]
            return any(reason in RATE_LIMIT_REASONS for reason in reasons)
        except (ValueError, AttributeError):
            return False
    return any(reason in str(error) for reason in RATE_LIMIT_REASONS)


def exponential_backoff_retry(
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 32.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    transient_error_codes: Tuple[int, ...] = (429, 500, 502, 503, 504),
    retriable_exceptions: Tuple[Type[Exception], ...] = (ConnectionError, TimeoutError),
):
    """
    Decorator for retrying functions with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts (default: 3)
        initial_delay: Initial delay in seconds (default: 1.0)
        max_delay: Maximum delay in seconds (default: 32.0)
        exponential_base: Base for exponential calculation (default: 2.0)
        jitter: Add up to one second of random jitter to each delay
        transient_error_codes: HTTP status codes to retry (default: 429, 5xx)
        retriable_exceptions: Exception types to retry (default: ConnectionError, TimeoutError)

    Returns:
        Decorated function that will retry on transient errors

    Raises:
        RetryExhausted: When all retry attempts are exhausted
        Original exception: For permanent errors (4xx except 429 and 403 rate limits)

    Example:
        @exponential_backoff_retry(max_retries=3, initial_delay=1.0)
        def list_children():
            return service.files().list(...).execute()
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            delay = initial_delay
            func_name = getattr(func, '__name__', '<function>')

            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)

                except retriable_exceptions as e:
                    if attempt < max_retries:
                        sleep_time = delay + (random.randint(0, 1000) / 1000 if jitter else 0)
                        logger.warning(
                            f"Retriable exception in {func_name} (attempt {attempt + 1}/{max_retries + 1}): {e}. "
                            f"Retrying in {sleep_time:.2f}s..."
                        )
                        time.sleep(sleep_time)
                        delay = min(delay * exponential_base, max_delay)
                        continue
                    logger.error(
                        f"Max retries exhausted for {func_name} after {max_retries + 1} attempts. "
                        f"Last error: {e}"
                    )
                    raise RetryExhausted(
                        f"Failed after {max_retries + 1} attempts. Last error: {e}"
                    ) from e

                except Exception as e:
                    status_code = extract_status_code(e)
                    transient = status_code in transient_error_codes or (
                        status_code == 403 and is_rate_limit_error(e)
                    )

                    if not transient:
                        if status_code and 400 <= status_code < 500:
                            logger.error(
                                f"Permanent client error {status_code} in {func_name}. "
                                f"Not retrying: {e}"
                            )
                        else:
                            logger.error(f"Unexpected error in {func_name}: {e}")
                        raise

                    if attempt < max_retries:
                        sleep_time = delay + (random.randint(0, 1000) / 1000 if jitter else 0)
                        logger.warning(
                            f"Transient error {status_code} in {func_name} "
                            f"(attempt {attempt + 1}/{max_retries + 1}): {e}. "
                            f"Retrying in {sleep_time:.2f}s..."
                        )
                        time.sleep(sleep_time)
                        delay = min(delay * exponential_base, max_delay)
                        continue

                    logger.error(
                        f"Max retries exhausted for {func_name} after {max_retries + 1} attempts. "
                        f"Last error: {e}"
                    )
                    raise RetryExhausted(
                        f"Failed after {max_retries + 1} attempts. Last error: {e}"
                    ) from e

            raise RetryExhausted(f"Failed after {max_retries + 1} attempts.")

        return wrapper
    return decorator


def retry_on_transient_errors(
    func: Callable[..., T],
    *args,
    max_retries: int = 3,
    initial_delay: float = 1.0,
    **kwargs
) -> T:
    """
    Function-based retry wrapper (alternative to decorator).

    Example:
        result = retry_on_transient_errors(
            lambda: service.files().get(fileId=file_id).execute(),
            max_retries=5,
        )
    """
    decorated_func = exponential_backoff_retry(
        max_retries=max_retries,
        initial_delay=initial_delay
    )(func)
    return decorated_func(*args, **kwargs)

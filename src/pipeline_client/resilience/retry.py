"""
Retry utilities with exception-aware handling for non-streaming requests.

Uses the exception hierarchy to make retry decisions:
- Transient errors: retry with exponential backoff
- Auth errors: refresh credentials, then retry
- Permanent errors: fail immediately (no retry)
- Throttled responses: wait for the server's Retry-After hint

The envelope stream does not use this module; it has its own reconnect loop.
"""

import asyncio
import inspect
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from functools import wraps

from pipeline_client.errors.exceptions import (
    PipelineError,
    classify_exception,
    wrap_exception,
)
from pipeline_client.types import ErrorCategory

logger = logging.getLogger(__name__)


def _extract_error_category(wrapped: Exception) -> str:
    """Return a string error category from a wrapped exception."""
    if isinstance(wrapped, PipelineError):
        return wrapped.category.value
    return classify_exception(wrapped).value


def _server_retry_after(error: Exception | None) -> float | None:
    return getattr(error, "retry_after", None)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0

    # If True, don't retry permanent errors even if max_attempts > 0
    respect_permanent: bool = True

    # If True, use retry_after from throttled responses when available
    respect_retry_after: bool = True

    # Optional set of exception types to never retry (overrides classification)
    never_retry: set[type[Exception]] = field(default_factory=set)

    def __post_init__(self):
        """Ensure proper types from YAML/env vars."""
        self.max_attempts = int(self.max_attempts)
        self.base_delay = float(self.base_delay)
        self.max_delay = float(self.max_delay)
        self.exponential_base = float(self.exponential_base)
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

    def get_delay(self, attempt: int, error: Exception | None = None) -> float:
        """
        Calculate delay with equal jitter to prevent thundering herd.

        Args:
            attempt: 0-indexed attempt number
            error: Optional exception to check for retry_after

        Returns:
            Delay in seconds
        """
        retry_after = _server_retry_after(error)
        if self.respect_retry_after and retry_after:
            return min(retry_after, self.max_delay)

        base_delay = self.base_delay * (self.exponential_base**attempt)

        # Equal jitter: half fixed, half random
        jitter = random.uniform(0, base_delay / 2)
        delay = (base_delay / 2) + jitter

        return min(delay, self.max_delay)

    def should_retry(self, error: Exception, attempt: int) -> bool:
        """
        Determine if error should be retried.

        Args:
            error: The exception that occurred
            attempt: 0-indexed current attempt

        Returns:
            True if should retry
        """
        if attempt >= self.max_attempts - 1:
            return False

        if self.never_retry and isinstance(error, tuple(self.never_retry)):
            return False

        if isinstance(error, PipelineError):
            if self.respect_permanent and not error.is_retryable:
                return False
            return error.is_retryable

        category = classify_exception(error)
        if self.respect_permanent and category == ErrorCategory.PERMANENT:
            return False

        return category in (
            ErrorCategory.TRANSIENT,
            ErrorCategory.AUTH,
            ErrorCategory.UNKNOWN,
        )


DEFAULT_RETRY = RetryConfig(max_attempts=3, base_delay=1.0)

# Ten retries after the first attempt, as a retrying HTTP transport would do
SYNC_RETRY = RetryConfig(max_attempts=11, base_delay=1.0, max_delay=30.0)


def with_retry_async(
    config: RetryConfig | None = None,
    on_auth_error: Callable[[], None] | Callable[[], Awaitable[None]] | None = None,
    wrap_errors: bool = True,
):
    """
    Decorator for retrying async functions with backoff.

    Args:
        config: Retry configuration (defaults to DEFAULT_RETRY)
        on_auth_error: Callback when auth error detected (e.g., refresh a token);
            may be sync or async
        wrap_errors: If True, wrap unknown exceptions in PipelineError

    Usage:
        @with_retry_async(config=SYNC_RETRY)
        async def acknowledge(marker):
            ...
    """
    if config is None:
        config = DEFAULT_RETRY

    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            for attempt in range(config.max_attempts):
                try:
                    result = await func(*args, **kwargs)

                    if attempt > 0:
                        logger.info(
                            "Retry succeeded for %s after %d attempts",
                            func.__name__,
                            attempt + 1,
                            extra={
                                "operation": func.__name__,
                                "attempt": attempt + 1,
                                "max_attempts": config.max_attempts,
                            },
                        )

                    return result

                except Exception as e:
                    wrapped = (
                        wrap_exception(e)
                        if wrap_errors and not isinstance(e, PipelineError)
                        else e
                    )
                    error_category = _extract_error_category(wrapped)

                    # Refresh before the retry decision so the next attempt sees it
                    if (
                        isinstance(wrapped, PipelineError)
                        and wrapped.should_refresh_auth
                        and on_auth_error
                    ):
                        logger.info(
                            "Auth error detected for %s, refreshing credentials",
                            func.__name__,
                            extra={
                                "operation": func.__name__,
                                "error_category": error_category,
                            },
                        )
                        outcome = on_auth_error()
                        if inspect.isawaitable(outcome):
                            await outcome

                    if not config.should_retry(wrapped, attempt):
                        if isinstance(wrapped, PipelineError) and not wrapped.is_retryable:
                            logger.warning(
                                "Permanent error for %s, not retrying: %s",
                                func.__name__,
                                str(e)[:200],
                                extra={
                                    "operation": func.__name__,
                                    "error_category": error_category,
                                    "error_message": str(e)[:200],
                                },
                            )
                        else:
                            logger.error(
                                "Max retries exhausted for %s: %s",
                                func.__name__,
                                str(e)[:200],
                                extra={
                                    "operation": func.__name__,
                                    "error_category": error_category,
                                    "max_attempts": config.max_attempts,
                                    "error_message": str(e)[:200],
                                },
                            )
                        if wrapped is not e:
                            raise wrapped from e
                        raise

                    delay = config.get_delay(attempt, wrapped)
                    logger.warning(
                        "Retryable error for %s, will retry",
                        func.__name__,
                        extra={
                            "operation": func.__name__,
                            "attempt": attempt + 1,
                            "max_attempts": config.max_attempts,
                            "error_category": error_category,
                            "delay_seconds": round(delay, 2),
                            "delay_source": (
                                "server"
                                if config.respect_retry_after
                                and _server_retry_after(wrapped)
                                else "exponential_backoff"
                            ),
                            "error_message": str(e)[:200],
                        },
                    )

                    await asyncio.sleep(delay)

        return wrapper

    return decorator


__all__ = [
    "RetryConfig",
    "with_retry_async",
    "DEFAULT_RETRY",
    "SYNC_RETRY",
]

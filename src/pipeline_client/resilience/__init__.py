"""
Resilience patterns module.

Components:
    - RetryConfig: Exponential backoff configuration
    - @with_retry_async decorator: Retry with jitter and auth refresh
    - Standard configs: DEFAULT_RETRY, SYNC_RETRY
"""

from .retry import DEFAULT_RETRY, SYNC_RETRY, RetryConfig, with_retry_async

__all__ = [
    "RetryConfig",
    "with_retry_async",
    "DEFAULT_RETRY",
    "SYNC_RETRY",
]

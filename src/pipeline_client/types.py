"""
Core types and protocols used across modules.

This module provides base types, enums, and protocol definitions that are
shared across the client library to ensure consistency and type safety.
"""

from enum import Enum
from typing import AsyncIterator, Protocol


class ErrorCategory(Enum):
    """
    Classification of error types for handling decisions.

    Categories:
        TRANSIENT: Temporary failures that should retry with backoff
                   (e.g., network timeouts, 429/503 errors, dropped streams)
        AUTH: Authentication failures requiring credential refresh
              (e.g., 401 errors, token provider failures)
        PERMANENT: Non-retriable failures that won't succeed on retry
                   (e.g., 404, invalid configuration)
        UNKNOWN: Unclassified errors, may retry conservatively
    """

    TRANSIENT = "transient"
    AUTH = "auth"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


class TokenProvider(Protocol):
    """
    Protocol for bearer token providers.

    The client never acquires credentials itself; callers plug in whatever
    identity system issues tokens for the pipeline API.
    """

    async def get_token(self) -> str:
        """
        Get an access token for the pipeline API.

        Returns:
            Access token string (without the "Bearer " prefix)

        Raises:
            Exception: Any failure; the client wraps it in an AuthError
        """
        ...


class ByteStream(Protocol):
    """
    Protocol for the raw body of one streaming HTTP response.

    Iterating yields chunks of bytes in arrival order; ``aclose()`` releases
    the underlying connection and unblocks a pending read.
    """

    def __aiter__(self) -> AsyncIterator[bytes]: ...

    async def aclose(self) -> None: ...


__all__ = [
    "ErrorCategory",
    "TokenProvider",
    "ByteStream",
]

"""
Token providers for the pipeline API.

The client only needs something with ``async get_token() -> str``; these
cover the common cases of a fixed token and a token obtained from a callback.
A provider may also implement ``refresh_token()``, which the client calls
after an auth error before retrying a request.
"""

import inspect
import logging
from collections.abc import Awaitable, Callable

from pipeline_client.errors.exceptions import AuthError

logger = logging.getLogger(__name__)


class StaticTokenProvider:
    """Provider returning the same token on every call."""

    def __init__(self, token: str):
        if not token:
            raise AuthError("empty token")
        self._token = token

    async def get_token(self) -> str:
        return self._token

    def __repr__(self) -> str:
        return "StaticTokenProvider(token=[REDACTED])"


class CallableTokenProvider:
    """
    Provider delegating to a sync or async callable.

    The callable's result is cached until ``refresh_token()`` is called.

    Usage:
        provider = CallableTokenProvider(identity_client.fetch_access_token)
    """

    def __init__(self, fetch: Callable[[], str] | Callable[[], Awaitable[str]]):
        self._fetch = fetch
        self._token: str | None = None

    async def get_token(self) -> str:
        if self._token is None:
            token = self._fetch()
            if inspect.isawaitable(token):
                token = await token
            if not token:
                raise AuthError("token callback returned an empty token")
            self._token = token
        return self._token

    async def refresh_token(self) -> None:
        """Drop the cached token; the next get_token() fetches a new one."""
        logger.debug("Clearing cached pipeline token")
        self._token = None


__all__ = ["StaticTokenProvider", "CallableTokenProvider"]

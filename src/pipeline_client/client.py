"""
Pipeline API client.

Opens receive streams for topics and acknowledges sync markers. The receive
side returns a ReconnectingStream that keeps reading across connection
failures; ``sync`` is a single request retried with backoff.

Example:
    config = ClientConfig(
        pipeline_url="https://pipeline.example.com",
        group="my-consumer-group",
        token_provider=StaticTokenProvider(token),
    )
    async with PipelineClient(config) as client:
        async with client.receive("events", ReceiveRequest()) as stream:
            async for item in stream:
                if item.is_error:
                    logger.warning("stream error: %s", item.error)
                    continue
                envelope = item.envelope
                if envelope.envelope_type == EnvelopeType.SYNC:
                    await client.sync(envelope.sync_marker)
"""

import logging
from dataclasses import dataclass, field

import aiohttp
from yarl import URL

from pipeline_client.errors.exceptions import (
    AuthError,
    ConfigurationError,
    PipelineError,
    TransientError,
    error_from_response,
)
from pipeline_client.resilience.retry import SYNC_RETRY, RetryConfig, with_retry_async
from pipeline_client.schemas.requests import ReceiveRequest
from pipeline_client.streaming.reconnect import ReconnectingStream
from pipeline_client.streaming.stream import EnvelopeStream
from pipeline_client.types import ByteStream, TokenProvider

logger = logging.getLogger(__name__)

# Connect timeout for sessions created by the client; reads are unbounded
# because receive responses stay open indefinitely
DEFAULT_CONNECT_TIMEOUT = 30.0


@dataclass
class ClientConfig:
    """
    Configuration for PipelineClient.

    Attributes:
        pipeline_url: Base URL of the pipeline API (scheme and host)
        group: Consumer group used for receive and sync
        token_provider: Source of bearer tokens
        session: Optional aiohttp session; the client creates and owns one if absent
        retry: Retry policy for sync requests
    """

    pipeline_url: str
    group: str
    token_provider: TokenProvider | None
    session: aiohttp.ClientSession | None = None
    retry: RetryConfig = field(default_factory=lambda: SYNC_RETRY)

    def __post_init__(self):
        try:
            url = URL(self.pipeline_url)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"malformed URL: {e}") from e
        if not url.is_absolute() or not url.host:
            raise ConfigurationError(f"malformed URL: {self.pipeline_url!r} is not absolute")
        if not self.group:
            raise ConfigurationError("missing group")
        if self.token_provider is None:
            raise ConfigurationError("missing token provider")

    @property
    def base_url(self) -> URL:
        return URL(self.pipeline_url)


class ResponseBody:
    """
    ByteStream over a streaming aiohttp response.

    Closing drops the connection instead of returning it to the pool, since the
    body is normally abandoned mid-stream.
    """

    def __init__(self, response: aiohttp.ClientResponse):
        self._response = response

    @property
    def status(self) -> int:
        return self._response.status

    def __aiter__(self) -> "ResponseBody":
        return self

    async def __anext__(self) -> bytes:
        chunk = await self._response.content.readany()
        if not chunk:
            raise StopAsyncIteration
        return chunk

    async def aclose(self) -> None:
        self._response.close()


class PipelineClient:
    """
    Client for the pipeline receive and sync endpoints.

    Use as an async context manager, or call ``close()`` when done, so an
    internally created session is released.
    """

    def __init__(self, config: ClientConfig):
        self.config = config
        self._session = config.session
        self._owns_session = config.session is None

    async def __aenter__(self) -> "PipelineClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(
                    total=None, sock_connect=DEFAULT_CONNECT_TIMEOUT
                )
            )
        return self._session

    # =========================================================================
    # URLs and headers
    # =========================================================================

    def receive_url(self, topic: str, request: ReceiveRequest) -> URL:
        """Build the receive URL for a topic."""
        base = self.config.base_url
        url = base.with_path(f"/pipeline/topics/{topic}/messages").update_query(
            base.query
        )

        params: dict[str, str] = {"group": self.config.group}
        if request.sync_interval_ms is not None:
            params["syncInterval"] = str(request.sync_interval_ms)
        if request.organizations:
            params["org"] = ",".join(request.organizations)
        if request.sources:
            params["source"] = ",".join(request.sources)
        if request.reset is not None:
            params["reset"] = request.reset.value

        return url.update_query(params)

    def sync_url(self) -> URL:
        """Build the sync URL for the configured group."""
        return self.config.base_url.with_path(
            f"/pipeline/consumers/{self.config.group}/sync"
        )

    async def _authorization(self) -> str:
        try:
            token = await self.config.token_provider.get_token()
        except AuthError:
            raise
        except Exception as e:
            raise AuthError("get token", cause=e) from e
        return f"Bearer {token}"

    async def _refresh_token(self) -> None:
        refresh = getattr(self.config.token_provider, "refresh_token", None)
        if refresh is not None:
            await refresh()

    # =========================================================================
    # Receive
    # =========================================================================

    async def open_body(self, topic: str, request: ReceiveRequest) -> ByteStream:
        """
        Perform one receive request and return its streaming body.

        Raises:
            AuthError: The token provider failed
            TransientError: The request could not be performed
            APIError: The server answered with a non-200 status
            ResponseDecodeError: The error response could not be decoded
        """
        url = self.receive_url(topic, request)
        headers = {
            "Accept": "application/json",
            "Authorization": await self._authorization(),
        }

        logger.debug(
            "Opening receive stream",
            extra={"http_method": "GET", "http_url": str(url)},
        )
        try:
            response = await self._get_session().get(url, headers=headers)
        except aiohttp.ClientError as e:
            raise TransientError("perform request", cause=e) from e

        if response.status != 200:
            try:
                body = await response.read()
            except aiohttp.ClientError as e:
                raise TransientError("read error response", cause=e) from e
            finally:
                response.release()
            raise error_from_response(
                response.status, body, response.headers.get("Retry-After")
            )

        logger.info(
            "Receive stream opened",
            extra={"http_status": response.status, "http_url": str(url)},
        )
        return ResponseBody(response)

    async def open_stream(self, topic: str, request: ReceiveRequest) -> EnvelopeStream:
        """Open one connection and wrap it in an EnvelopeStream."""
        body = await self.open_body(topic, request)
        return EnvelopeStream(body, ping_timeout=request.ping_timeout, topic=topic)

    def receive(
        self, topic: str, request: ReceiveRequest | None = None
    ) -> ReconnectingStream:
        """
        Read a topic continuously, reconnecting whenever a connection ends.

        The returned stream starts on first use and runs until it is closed.
        """
        request = request or ReceiveRequest()

        async def factory() -> EnvelopeStream:
            try:
                return await self.open_stream(topic, request)
            except PipelineError as e:
                # The next attempt after the reconnection delay gets a fresh token
                if e.should_refresh_auth:
                    await self._refresh_token()
                raise

        return ReconnectingStream(
            factory,
            reconnection_delay=request.reconnection_delay,
            topic=topic,
        )

    # =========================================================================
    # Sync
    # =========================================================================

    async def _sync_once(self, marker: str) -> None:
        headers = {"Authorization": await self._authorization()}
        try:
            async with self._get_session().post(
                self.sync_url(), data=marker.encode("utf-8"), headers=headers
            ) as response:
                if response.status == 204:
                    return
                body = await response.read()
                raise error_from_response(
                    response.status, body, response.headers.get("Retry-After")
                )
        except aiohttp.ClientError as e:
            raise TransientError("perform request", cause=e) from e

    async def sync(self, marker: str) -> None:
        """
        Acknowledge a sync marker received in a SYNC envelope.

        Retried per ``config.retry``; auth errors refresh the token first.

        Raises:
            PipelineError: The marker could not be acknowledged
        """
        retrying = with_retry_async(
            config=self.config.retry,
            on_auth_error=self._refresh_token,
        )(self._sync_once)
        await retrying(marker)
        logger.debug("Sync marker acknowledged", extra={"operation": "sync"})


__all__ = [
    "ClientConfig",
    "PipelineClient",
    "ResponseBody",
]

"""
Unified exception hierarchy for pipeline_client.

Provides typed exceptions with retry classification so the streaming layer
and the request helpers can make the same decisions about what to retry.
"""

from email.utils import parsedate_to_datetime
from datetime import UTC, datetime

from pydantic import ValidationError

from pipeline_client.schemas.errors import ErrorBody, Report

# Import ErrorCategory from canonical source to avoid duplicate enum issues
from pipeline_client.types import ErrorCategory


class PipelineError(Exception):
    """
    Base exception for all client errors.

    Attributes:
        message: Human-readable error description
        category: Error classification for retry decisions
        cause: Original exception if wrapping
        context: Additional context dict for debugging
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        self.message = message
        self.cause = cause
        self.context = context or {}
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        return self.category in (
            ErrorCategory.TRANSIENT,
            ErrorCategory.AUTH,
            ErrorCategory.UNKNOWN,
        )

    @property
    def should_refresh_auth(self) -> bool:
        return self.category == ErrorCategory.AUTH

    def __str__(self) -> str:
        parts = [self.message]
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


# =============================================================================
# Authentication Errors
# =============================================================================


class AuthError(PipelineError):
    """Base class for authentication errors."""

    category = ErrorCategory.AUTH


# =============================================================================
# Network/Connection Errors (Transient)
# =============================================================================


class TransientError(PipelineError):
    """Base class for transient/retriable errors."""

    category = ErrorCategory.TRANSIENT


class ThrottlingError(TransientError):
    """Rate limited (429) - should back off."""

    def __init__(
        self,
        message: str,
        retry_after: float | None = None,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        super().__init__(message, cause, context)
        self.retry_after = retry_after  # Seconds to wait if provided


# =============================================================================
# Permanent Errors (Don't Retry)
# =============================================================================


class PermanentError(PipelineError):
    """Base class for permanent/non-retriable errors."""

    category = ErrorCategory.PERMANENT


class ConfigurationError(PermanentError):
    """Client configuration is missing or invalid."""

    pass


# =============================================================================
# Streaming Errors
# =============================================================================


class DecodeError(TransientError):
    """
    The envelope stream carried bytes that are not a valid envelope.

    Ends the current connection; the reconnecting stream opens a new one.
    """

    def __str__(self) -> str:
        if self.cause:
            return f"decode envelope: {self.cause}"
        return f"decode envelope: {self.message}"


class BodyReadError(DecodeError):
    """Reading the response body failed part way through."""


class StreamOpenError(PipelineError):
    """
    A connection attempt failed before any envelope was read.

    The category follows the wrapped cause, so an auth failure stays an
    auth failure.
    """

    def __init__(self, cause: Exception, context: dict | None = None):
        super().__init__(f"get stream: {cause}", cause=cause, context=context)
        self.category = classify_exception(cause)

    def __str__(self) -> str:
        return self.message


class StreamReadError(TransientError):
    """An envelope source raised while it was being iterated."""

    def __init__(self, cause: Exception, context: dict | None = None):
        super().__init__(f"read stream: {cause}", cause=cause, context=context)

    def __str__(self) -> str:
        return self.message


# =============================================================================
# HTTP Error Responses
# =============================================================================


class APIError(PipelineError):
    """
    Error whose information is gathered from a pipeline API error response.

    Attributes:
        status_code: HTTP status code of the response
        status: Status reported in the response body
        title: Human-readable message for the error
        report: Detailed report of individual errors
        retry_after: Seconds from a Retry-After header, if any
    """

    def __init__(
        self,
        status_code: int,
        status: int = 0,
        title: str = "",
        report: Report | None = None,
        retry_after: float | None = None,
    ):
        super().__init__(title, context={"status_code": status_code})
        self.status_code = status_code
        self.status = status
        self.title = title
        self.report = report or Report()
        self.retry_after = retry_after
        self.category = classify_http_status(status_code)

    def __str__(self) -> str:
        return self.title


class ResponseDecodeError(PipelineError):
    """An error response arrived whose body could not be decoded."""

    def __init__(
        self,
        status_code: int,
        cause: Exception,
        retry_after: float | None = None,
    ):
        super().__init__(
            f"decode response: {cause}",
            cause=cause,
            context={"status_code": status_code},
        )
        self.status_code = status_code
        self.retry_after = retry_after
        self.category = classify_http_status(status_code)

    def __str__(self) -> str:
        return self.message


def parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header given either as seconds or as an HTTP date."""
    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return float(value)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    return max(0.0, (when - datetime.now(UTC)).total_seconds())


def error_from_response(
    status_code: int,
    body: bytes,
    retry_after: str | None = None,
) -> PipelineError:
    """
    Translate a non-success response into an exception.

    Args:
        status_code: HTTP status code of the response
        body: Raw response body
        retry_after: Value of the Retry-After header, if present

    Returns:
        APIError built from the body, or ResponseDecodeError if the body is
        not a valid error document
    """
    delay = parse_retry_after(retry_after)
    try:
        parsed = ErrorBody.model_validate_json(body)
    except ValidationError as e:
        return ResponseDecodeError(status_code, cause=e, retry_after=delay)

    return APIError(
        status_code=status_code,
        status=parsed.status,
        title=parsed.title,
        report=parsed.report,
        retry_after=delay,
    )


# =============================================================================
# Error Classification Utilities
# =============================================================================

# Markers for string-based detection (fallback for non-PipelineError exceptions)
AUTH_ERROR_MARKERS = frozenset(
    {
        "401",
        "unauthorized",
        "authentication",
        "token expired",
        "invalid token",
        "access token",
    }
)

TRANSIENT_ERROR_MARKERS = frozenset(
    {
        "429",
        "503",
        "502",
        "504",
        "timeout",
        "connection",
        "throttl",
        "rate limit",
        "temporarily unavailable",
        "service unavailable",
        "gateway",
    }
)


def is_auth_error(exc: Exception) -> bool:
    """
    Check if exception is authentication-related.

    Returns True if this is an auth error that should trigger token refresh.
    """
    if isinstance(exc, PipelineError):
        return exc.category == ErrorCategory.AUTH

    error_str = str(exc).lower()
    return any(marker in error_str for marker in AUTH_ERROR_MARKERS)


def is_transient_error(exc: Exception) -> bool:
    """
    Check if exception is transient (retriable).

    Returns True if this is a transient error that may succeed on retry.
    """
    if isinstance(exc, PipelineError):
        return exc.category == ErrorCategory.TRANSIENT

    error_str = str(exc).lower()
    return any(marker in error_str for marker in TRANSIENT_ERROR_MARKERS)


def is_retryable_error(exc: Exception) -> bool:
    """
    Check if exception should be retried.

    Retryable errors include:
    - Transient errors (connection, timeout, 5xx, 429)
    - Auth errors (after token refresh)
    - Unknown errors (conservative retry)

    Non-retryable:
    - Permanent errors (404, 403, invalid configuration)
    """
    if isinstance(exc, PipelineError):
        return exc.is_retryable

    category = classify_exception(exc)
    return category in (
        ErrorCategory.TRANSIENT,
        ErrorCategory.AUTH,
        ErrorCategory.UNKNOWN,
    )


def classify_http_status(status_code: int) -> ErrorCategory:
    """Classify HTTP status code into error category."""
    if 200 <= status_code < 300:
        return ErrorCategory.UNKNOWN  # Not an error

    # Auth redirects (302 = redirect to login page)
    if status_code in (302, 401):
        return ErrorCategory.AUTH

    if status_code == 429:
        return ErrorCategory.TRANSIENT  # Rate limited

    if 400 <= status_code < 500:
        return ErrorCategory.PERMANENT  # Client errors, won't fix with retry

    if status_code >= 500:
        return ErrorCategory.TRANSIENT  # Server errors, may recover

    return ErrorCategory.UNKNOWN


def classify_exception(exc: Exception) -> ErrorCategory:
    """Classify an exception into error category."""
    # Already classified
    if isinstance(exc, PipelineError):
        return exc.category

    if isinstance(exc, (TimeoutError, ConnectionError)):
        return ErrorCategory.TRANSIENT

    exc_type = type(exc).__name__.lower()
    exc_str = str(exc).lower()

    # Connection errors (aiohttp.ClientConnectorError, ServerDisconnectedError, ...)
    connection_markers = (
        "connectionerror",
        "connectorerror",
        "disconnected",
        "connection refused",
        "connection reset",
        "connection aborted",
        "no route to host",
        "network unreachable",
        "name resolution",
        "dns",
        "socket",
        "broken pipe",
        "payloaderror",
    )
    if any(m in exc_type or m in exc_str for m in connection_markers):
        return ErrorCategory.TRANSIENT

    if "timeout" in exc_type or "timeout" in exc_str:
        return ErrorCategory.TRANSIENT

    auth_markers = (
        "302",
        "401",
        "unauthorized",
        "authentication",
        "token expired",
        "invalid token",
    )
    if any(m in exc_str for m in auth_markers):
        return ErrorCategory.AUTH

    if "429" in exc_str or "throttl" in exc_str or "rate limit" in exc_str:
        return ErrorCategory.TRANSIENT

    if "503" in exc_str or "502" in exc_str or "504" in exc_str:
        return ErrorCategory.TRANSIENT

    if "403" in exc_str or "forbidden" in exc_str or "access denied" in exc_str:
        return ErrorCategory.PERMANENT

    if "404" in exc_str or "not found" in exc_str:
        return ErrorCategory.PERMANENT

    return ErrorCategory.UNKNOWN


def wrap_exception(
    exc: Exception,
    default_class: type = PipelineError,
    context: dict | None = None,
) -> PipelineError:
    """Wrap a generic exception in appropriate PipelineError subclass."""
    if isinstance(exc, PipelineError):
        if context:
            exc.context.update(context)
        return exc

    category = classify_exception(exc)
    exc_str = str(exc).lower()
    context = context or {}

    if "timeout" in exc_str or isinstance(exc, TimeoutError):
        context["error_type"] = "timeout"
    elif "429" in exc_str or "throttl" in exc_str:
        context["error_type"] = "throttling"
    elif "503" in exc_str:
        context["error_type"] = "service_unavailable"
    elif "404" in exc_str or "not found" in exc_str:
        context["error_type"] = "not_found"
    elif "403" in exc_str or "forbidden" in exc_str:
        context["error_type"] = "forbidden"
    elif "expired" in exc_str:
        context["error_type"] = "token_expired"

    if category == ErrorCategory.AUTH:
        return AuthError(str(exc), cause=exc, context=context)

    if category == ErrorCategory.TRANSIENT:
        if "429" in exc_str or "throttl" in exc_str:
            return ThrottlingError(str(exc), cause=exc, context=context)
        return TransientError(str(exc), cause=exc, context=context)

    if category == ErrorCategory.PERMANENT:
        return PermanentError(str(exc), cause=exc, context=context)

    return default_class(str(exc), cause=exc, context=context)

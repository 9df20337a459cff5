"""
Error classification and exception hierarchy.

Provides:
- ErrorCategory enum for classifying errors
- PipelineError hierarchy for typed exceptions
- Translation of pipeline API error responses
- Classification utilities for error handling
"""

from pipeline_client.errors.exceptions import (
    # HTTP error responses
    APIError,
    AuthError,
    ConfigurationError,
    # Streaming errors
    BodyReadError,
    DecodeError,
    PermanentError,
    # Base classes
    PipelineError,
    ResponseDecodeError,
    StreamOpenError,
    StreamReadError,
    # Transient errors
    ThrottlingError,
    TransientError,
    classify_exception,
    classify_http_status,
    error_from_response,
    # Classification utilities
    is_auth_error,
    is_retryable_error,
    is_transient_error,
    parse_retry_after,
    wrap_exception,
)
from pipeline_client.types import ErrorCategory

__all__ = [
    # Enums
    "ErrorCategory",
    # Base classes
    "PipelineError",
    "AuthError",
    "TransientError",
    "PermanentError",
    "ConfigurationError",
    # Transient errors
    "ThrottlingError",
    # Streaming errors
    "DecodeError",
    "BodyReadError",
    "StreamOpenError",
    "StreamReadError",
    # HTTP error responses
    "APIError",
    "ResponseDecodeError",
    "error_from_response",
    "parse_retry_after",
    # Classification utilities
    "is_auth_error",
    "is_transient_error",
    "is_retryable_error",
    "classify_http_status",
    "classify_exception",
    "wrap_exception",
]

"""Pydantic schemas for the pipeline wire formats."""

from pipeline_client.schemas.envelope import (
    Envelope,
    EnvelopeOrError,
    EnvelopeType,
    Message,
)
from pipeline_client.schemas.errors import ErrorBody, Report, ReportError
from pipeline_client.schemas.requests import ReceiveRequest, Reset

__all__ = [
    "Envelope",
    "EnvelopeOrError",
    "EnvelopeType",
    "Message",
    "ErrorBody",
    "Report",
    "ReportError",
    "ReceiveRequest",
    "Reset",
]

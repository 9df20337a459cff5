"""
Error response bodies returned by the pipeline API.

Non-2xx responses carry a JSON document describing the failure:

    {
        "status": 500,
        "title": "error from the server",
        "report": {"errors": [{"id": "...", "code": "...", "message": "..."}]}
    }

All fields are optional on the wire; absent ones take empty values.
"""

from pydantic import BaseModel, ConfigDict, Field


class ReportError(BaseModel):
    """A single detailed error inside an error report."""

    model_config = ConfigDict(frozen=True)

    id: str = ""
    code: str = ""
    message: str = ""


class Report(BaseModel):
    """A collection of detailed errors."""

    model_config = ConfigDict(frozen=True)

    errors: tuple[ReportError, ...] = Field(default_factory=tuple)


class ErrorBody(BaseModel):
    """Schema of a pipeline API error response body."""

    model_config = ConfigDict(frozen=True)

    status: int = 0
    title: str = ""
    report: Report = Field(default_factory=Report)


__all__ = ["ReportError", "Report", "ErrorBody"]

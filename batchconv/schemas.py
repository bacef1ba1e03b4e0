"""Batch MP3 Converter - Pydantic models for API validation.

Pydantic models for request/response validation corresponding to the JSON
schemas in /specs. Wire names are camelCase (aliases); Python attributes stay
snake_case.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from batchconv.models import STATUS_ERROR, STATUS_SUCCESS, BatchReport

# --- Request Models ---


class VerifyCodeRequest(BaseModel):
    """Request payload for access code verification."""

    model_config = ConfigDict(extra="forbid")

    code: str | None = Field(default=None, description="Access code to check")


# --- Response Models ---


class VerifyCodeResponse(BaseModel):
    """Result of an access code check."""

    model_config = ConfigDict(extra="forbid")

    valid: bool = Field(..., description="True if the code grants access")
    message: str = Field(..., description="Human-readable outcome")


class ConvertedFile(BaseModel):
    """One successfully converted file."""

    model_config = ConfigDict(extra="forbid")

    original: str = Field(..., description="Filename as uploaded")
    converted: str = Field(..., description="Filename inside the archive")
    status: str = Field(default=STATUS_SUCCESS, description="Always 'success'")


class FailedFile(BaseModel):
    """One file that could not be converted."""

    model_config = ConfigDict(extra="forbid")

    original: str = Field(..., description="Filename as uploaded")
    error: str = Field(..., description="Human-readable failure reason")
    status: str = Field(default=STATUS_ERROR, description="Always 'error'")


class ConversionResponse(BaseModel):
    """Response for a conversion request."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    session_id: str = Field(..., alias="sessionId", description="Session identifier")
    successful: int = Field(..., ge=0, description="Number of converted files")
    failed: int = Field(..., ge=0, description="Number of failed files")
    results: list[ConvertedFile] = Field(default_factory=list)
    errors: list[FailedFile] = Field(default_factory=list)
    download_locator: str | None = Field(
        default=None,
        alias="downloadLocator",
        description="Key for archive retrieval; null when nothing converted",
    )

    @classmethod
    def from_report(cls, report: BatchReport) -> "ConversionResponse":
        """Build the wire response from a BatchReport."""
        return cls(
            session_id=report.session_id,
            successful=report.successful,
            failed=report.failed,
            results=[
                ConvertedFile(original=s.original_name, converted=s.converted_name)
                for s in report.successes
            ],
            errors=[
                FailedFile(original=f.original_name, error=f.error_message)
                for f in report.failures
            ],
            download_locator=report.session_id if report.has_archive else None,
        )


class CapabilitiesResponse(BaseModel):
    """Static capability description of the service."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    status: str = Field(default="online", description="Service status")
    message: str = Field(..., description="Human-readable status")
    timestamp: datetime = Field(..., description="Server time of the response")
    max_files: int = Field(..., alias="maxFiles", ge=1)
    max_file_size: str = Field(..., alias="maxFileSize")
    supported_formats: list[str] = Field(..., alias="supportedFormats")


class ErrorResponse(BaseModel):
    """Response for failed operations."""

    model_config = ConfigDict(extra="forbid")

    status: str = Field(default="error", description="Operation status")
    error_code: str = Field(..., description="Error taxonomy code")
    error_message: str = Field(..., description="Human-readable error description")


__all__ = [
    "VerifyCodeRequest",
    "VerifyCodeResponse",
    "ConvertedFile",
    "FailedFile",
    "ConversionResponse",
    "CapabilitiesResponse",
    "ErrorResponse",
]

"""Batch MP3 Converter - Error taxonomy.

Every fault carries a stable error code and a human-readable message that is
safe to show to callers (no filesystem paths, no stack detail).

- ValidationFault: rejected before any conversion starts
- AccessDeniedFault: bad or missing access code
- TranscodeFault: one file failed; recorded as data, never escapes a batch
- StorageFault: directory, archive or disk I/O failure
- NotFoundFault: no archive for the requested session
"""

from __future__ import annotations

from enum import StrEnum


class ConversionErrorCode(StrEnum):
    """Error codes surfaced at the boundary."""

    NO_FILES = "NO_FILES"
    TOO_MANY_FILES = "TOO_MANY_FILES"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    UNSUPPORTED_FORMAT = "UNSUPPORTED_FORMAT"
    INVALID_SESSION_ID = "INVALID_SESSION_ID"
    INVALID_FILENAME = "INVALID_FILENAME"
    ACCESS_DENIED = "ACCESS_DENIED"
    STORAGE_FAILED = "STORAGE_FAILED"
    ARCHIVE_NOT_FOUND = "ARCHIVE_NOT_FOUND"
    CONVERSION_FAILED = "CONVERSION_FAILED"


class ConversionError(Exception):
    """Base exception for conversion errors."""

    def __init__(self, error_code: str, message: str):
        self.error_code = error_code
        self.message = message
        super().__init__(f"{error_code}: {message}")


class ValidationFault(ConversionError):
    """Request rejected before the batch starts."""


class AccessDeniedFault(ValidationFault):
    """Access code missing or wrong."""

    def __init__(self, message: str = "Invalid access code"):
        super().__init__(ConversionErrorCode.ACCESS_DENIED, message)


class TranscodeFault(ConversionError):
    """A single file could not be transcoded."""


class StorageFault(ConversionError):
    """Filesystem failure (directory creation, archive write, disk I/O)."""

    def __init__(self, reason: str):
        super().__init__(ConversionErrorCode.STORAGE_FAILED, f"Storage failure: {reason}")


class NotFoundFault(ConversionError):
    """No archive exists for the session."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(
            ConversionErrorCode.ARCHIVE_NOT_FOUND,
            f"No archive available for session {session_id}",
        )


__all__ = [
    "ConversionErrorCode",
    "ConversionError",
    "ValidationFault",
    "AccessDeniedFault",
    "TranscodeFault",
    "StorageFault",
    "NotFoundFault",
]

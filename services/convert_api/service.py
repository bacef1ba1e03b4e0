"""Batch MP3 Converter - Convert API service logic.

Boundary checks that run before a batch starts:
- Access code gate (header, form field or query parameter)
- Session ID resolution (caller-supplied or generated)
- Upload validation: count, type allow-list, size
- Writing uploads into the session's inbound directory

NO transcoding here; that is SessionCoordinator's job.
"""

from __future__ import annotations

import hmac
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from batchconv import config
from batchconv.errors import AccessDeniedFault, ConversionErrorCode, ValidationFault
from batchconv.models import InputFile
from batchconv.storage import StorageKind
from batchconv.utils.audio_meta import guess_format_from_extension, is_supported_upload
from batchconv.utils.paths import (
    generate_session_id,
    sanitize_filename,
    unique_name,
    validate_session_id,
)

if TYPE_CHECKING:
    from typing import BinaryIO

    from batchconv.storage import StorageArea

logger = logging.getLogger(__name__)


# --- Upload Types ---


@dataclass
class UploadedFile:
    """One file from a multipart request, before it is stored."""

    filename: str
    content_type: str | None
    stream: BinaryIO


# --- Access Gate ---


def is_valid_access_code(supplied: str | None, expected: str | None = None) -> bool:
    """Compare a supplied access code with the configured one.

    Args:
        supplied: Code from the request (any channel).
        expected: Override for the configured code.

    Returns:
        True if the codes match.
    """
    expected = config.ACCESS_CODE if expected is None else expected
    if not supplied or not expected:
        return False
    return hmac.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8"))


def first_supplied_code(*candidates: str | None) -> str | None:
    """Pick the first non-empty code out of header/body/query values."""
    for candidate in candidates:
        if candidate:
            return candidate
    return None


def require_access_code(*candidates: str | None) -> None:
    """Raise unless one of the supplied channels carries the right code.

    The first non-empty value wins, in the order given (header, body, query).

    Raises:
        AccessDeniedFault: If the code is missing or wrong.
    """
    if not is_valid_access_code(first_supplied_code(*candidates)):
        raise AccessDeniedFault()


# --- Session + Upload Validation ---


def resolve_session_id(raw: str | None) -> str:
    """Use the caller's session ID, or generate one when absent.

    Raises:
        ValidationFault: If a supplied ID is not a safe path segment.
    """
    if raw is None or not raw.strip():
        return generate_session_id()
    return validate_session_id(raw.strip())


def validate_uploads(uploads: Sequence[UploadedFile]) -> None:
    """Check count and type of a batch before anything is written.

    Size is enforced while streaming (see ingest_uploads).

    Raises:
        ValidationFault: NO_FILES, TOO_MANY_FILES or UNSUPPORTED_FORMAT.
    """
    if not uploads:
        raise ValidationFault(ConversionErrorCode.NO_FILES, "No files were uploaded")

    if len(uploads) > config.MAX_FILES_PER_BATCH:
        raise ValidationFault(
            ConversionErrorCode.TOO_MANY_FILES,
            f"Too many files: maximum is {config.MAX_FILES_PER_BATCH} per batch",
        )

    for upload in uploads:
        if not is_supported_upload(upload.filename, upload.content_type):
            raise ValidationFault(
                ConversionErrorCode.UNSUPPORTED_FORMAT,
                f"Unsupported file format: {sanitize_filename(upload.filename)}. "
                f"Use {', '.join(ext.upper() for ext in config.ALLOWED_EXTENSIONS)}.",
            )


def ingest_uploads(
    storage: StorageArea,
    session_id: str,
    uploads: Sequence[UploadedFile],
    max_file_size: int | None = None,
) -> list[InputFile]:
    """Validate a batch and write it into the session's inbound directory.

    Stored names are sanitised and made unique within the session, so two
    uploads called "a.wav" do not overwrite each other. The original names
    are kept on the InputFile for reporting.

    On any failure the partially written inbound directory is removed.

    Args:
        storage: Storage area.
        session_id: Validated session ID.
        uploads: Files from the request.
        max_file_size: Per-file byte limit (defaults to config).

    Returns:
        InputFiles in upload order.

    Raises:
        ValidationFault: If the batch is invalid or a file is too large.
        StorageFault: If writing fails.
    """
    validate_uploads(uploads)
    max_file_size = config.MAX_FILE_SIZE_BYTES if max_file_size is None else max_file_size

    stored_names: list[str] = []
    input_files: list[InputFile] = []
    try:
        for upload in uploads:
            original_name = upload.filename or "unknown"
            stored_name = unique_name(sanitize_filename(original_name), stored_names)
            path, size = storage.write_stream(
                session_id,
                StorageKind.INBOUND,
                stored_name,
                upload.stream,
                max_bytes=max_file_size,
            )
            stored_names.append(stored_name)
            input_files.append(
                InputFile(
                    original_name=original_name,
                    stored_name=stored_name,
                    path=path,
                    size_bytes=size,
                    format_guess=guess_format_from_extension(original_name),
                )
            )
    except Exception:
        _discard_inbound_safe(storage, session_id)
        raise

    logger.info("Stored %d uploads for session_id=%s", len(input_files), session_id)
    return input_files


def _discard_inbound_safe(storage: StorageArea, session_id: str) -> None:
    """Remove a rejected batch's inbound directory, best-effort."""
    try:
        storage.remove_session(session_id, StorageKind.INBOUND)
    except Exception:
        logger.warning(
            "Failed to discard inbound dir for session_id=%s (non-fatal)",
            session_id,
            exc_info=True,
        )

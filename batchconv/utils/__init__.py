"""Batch MP3 Converter - Utility modules."""

from batchconv.utils.atomic_io import (
    atomic_stream_to_file,
    atomic_write_bytes,
    cleanup_orphan_temp_files,
    publish_temp_file,
)
from batchconv.utils.audio_meta import guess_format_from_extension, is_supported_upload
from batchconv.utils.paths import (
    archive_filename,
    derive_output_name,
    generate_session_id,
    sanitize_filename,
    unique_name,
    validate_session_id,
)

__all__ = [
    # atomic_io
    "atomic_write_bytes",
    "atomic_stream_to_file",
    "publish_temp_file",
    "cleanup_orphan_temp_files",
    # audio_meta
    "guess_format_from_extension",
    "is_supported_upload",
    # paths
    "archive_filename",
    "derive_output_name",
    "generate_session_id",
    "sanitize_filename",
    "unique_name",
    "validate_session_id",
]

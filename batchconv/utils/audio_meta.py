"""Batch MP3 Converter - Upload format classification.

Extension and MIME based only. No decoding happens here; ffmpeg is the
judge of whether content is actually usable.
"""

from pathlib import Path

from batchconv.config import ALLOWED_EXTENSIONS, ALLOWED_MIME_TYPES


def guess_format_from_extension(filename: str) -> str | None:
    """Guess audio format from filename extension.

    Args:
        filename: Filename or path string.

    Returns:
        Lowercase extension without dot, or None if no extension.
    """
    path = Path(filename)
    ext = path.suffix.lower().lstrip(".")
    return ext if ext else None


def normalize_mime_type(content_type: str | None) -> str | None:
    """Strip parameters and case from a Content-Type value."""
    if not content_type:
        return None
    mime = content_type.split(";", 1)[0].strip().lower()
    return mime or None


def is_supported_upload(filename: str, content_type: str | None = None) -> bool:
    """Check an upload against the allow-lists.

    Accepted when either the extension or the declared MIME type is allowed,
    since browsers are inconsistent about audio MIME types.

    Args:
        filename: Upload filename.
        content_type: Declared Content-Type, if any.

    Returns:
        True if the upload may be converted.
    """
    if guess_format_from_extension(filename) in ALLOWED_EXTENSIONS:
        return True
    return normalize_mime_type(content_type) in ALLOWED_MIME_TYPES


def supported_formats_label() -> list[str]:
    """Uppercase format names for the capability response."""
    return [ext.upper() for ext in ALLOWED_EXTENSIONS]


__all__ = [
    "guess_format_from_extension",
    "normalize_mime_type",
    "is_supported_upload",
    "supported_formats_label",
]

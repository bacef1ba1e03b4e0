"""Batch MP3 Converter - Path and filename utilities.

Pure helpers: nothing here touches the filesystem. Directory creation is
the responsibility of StorageArea.
"""

import re
import unicodedata
import uuid
from collections.abc import Iterable
from pathlib import Path, PurePosixPath, PureWindowsPath

from batchconv.config import ARCHIVE_EXTENSION, ARCHIVE_PREFIX
from batchconv.errors import ConversionErrorCode, ValidationFault

SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")

# Fallback stem when sanitising leaves nothing usable
DEFAULT_STEM = "audio"

# NAME_MAX on common filesystems, in bytes
MAX_FILENAME_BYTES = 255

# Room for suffixes added after sanitising: "_<n>" collision suffixes plus
# ".mp3.part" on outputs or ".tmp" on uploads
FILENAME_SUFFIX_RESERVE = 24

# Longer extensions are treated as part of the stem
MAX_EXTENSION_BYTES = 16


def generate_session_id() -> str:
    """Generate a session ID (uuid4 hex, 32 chars)."""
    return uuid.uuid4().hex


def validate_session_id(session_id: str) -> str:
    """Check that session_id is safe as a single path segment.

    Args:
        session_id: Caller- or system-supplied identifier.

    Returns:
        The session_id unchanged.

    Raises:
        ValidationFault: If the identifier contains anything but
            letters, digits, "-" and "_", or is empty or too long.
    """
    if not isinstance(session_id, str) or not SESSION_ID_PATTERN.match(session_id):
        raise ValidationFault(
            ConversionErrorCode.INVALID_SESSION_ID,
            "Session ID must be 1-64 characters of letters, digits, '-' or '_'",
        )
    return session_id


def is_bare_filename(filename: str) -> bool:
    """Return True if filename is a single, non-special path component."""
    if not filename or filename in (".", ".."):
        return False
    if "/" in filename or "\\" in filename or "\x00" in filename:
        return False
    return True


def sanitize_filename(filename: str | None) -> str:
    """Reduce an untrusted upload filename to a safe bare name.

    Drops any directory part (POSIX or Windows style), control characters and
    leading dots, then shortens over-long names (see truncate_filename).
    Returns DEFAULT_STEM when nothing is left.

    Args:
        filename: Filename as supplied by the client.

    Returns:
        A filename that passes is_bare_filename().
    """
    if not filename:
        return DEFAULT_STEM

    name = PureWindowsPath(PurePosixPath(filename).name).name
    name = "".join(ch for ch in name if unicodedata.category(ch)[0] != "C")
    name = truncate_filename(name.strip().lstrip("."))

    if not is_bare_filename(name):
        return DEFAULT_STEM
    return name


def truncate_filename(
    filename: str,
    max_bytes: int = MAX_FILENAME_BYTES - FILENAME_SUFFIX_RESERVE,
) -> str:
    """Shorten filename to at most max_bytes of UTF-8, keeping its extension.

    The stem is cut on a character boundary. Names already within the limit
    are returned unchanged.
    """
    if len(filename.encode("utf-8")) <= max_bytes:
        return filename

    path = Path(filename)
    stem, suffix = path.stem, path.suffix
    if len(suffix.encode("utf-8")) > MAX_EXTENSION_BYTES:
        stem, suffix = filename, ""

    budget = max_bytes - len(suffix.encode("utf-8"))
    stem = stem.encode("utf-8")[:budget].decode("utf-8", "ignore").rstrip()
    return f"{stem or DEFAULT_STEM}{suffix}"


def derive_output_name(filename: str, extension: str = ".mp3") -> str:
    """Get the converted filename: input base name with its extension swapped.

    Args:
        filename: Input filename (e.g., "track1.wav").
        extension: Output extension including the dot.

    Returns:
        e.g., "track1.mp3". Dotfiles and empty stems fall back to DEFAULT_STEM.
    """
    stem = Path(filename).stem or DEFAULT_STEM
    return f"{stem}{extension}"


def unique_name(candidate: str, taken: Iterable[str]) -> str:
    """Return candidate, or candidate with a "_<n>" suffix if already taken.

    Comparison is case-insensitive so results are stable on case-folding
    filesystems. n starts at 2.

    Args:
        candidate: Desired filename.
        taken: Filenames already in use.

    Returns:
        A filename not present in taken.
    """
    used = {name.casefold() for name in taken}
    if candidate.casefold() not in used:
        return candidate

    path = Path(candidate)
    stem, suffix = path.stem, path.suffix
    sequence = 2
    while True:
        alternative = f"{stem}_{sequence}{suffix}"
        if alternative.casefold() not in used:
            return alternative
        sequence += 1


def archive_filename(session_id: str) -> str:
    """Get the archive filename for a session.

    Returns:
        converted_{session_id}.zip
    """
    return f"{ARCHIVE_PREFIX}{session_id}.{ARCHIVE_EXTENSION}"


__all__ = [
    "SESSION_ID_PATTERN",
    "DEFAULT_STEM",
    "MAX_FILENAME_BYTES",
    "FILENAME_SUFFIX_RESERVE",
    "generate_session_id",
    "validate_session_id",
    "is_bare_filename",
    "sanitize_filename",
    "truncate_filename",
    "derive_output_name",
    "unique_name",
    "archive_filename",
]

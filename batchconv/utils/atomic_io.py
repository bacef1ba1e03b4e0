"""Batch MP3 Converter - Atomic I/O utilities.

Publish rule used for uploads, converted files and archives:
1. Write to a temp path in the same directory
2. Flush + best-effort fsync
3. Rename temp -> final (the publish boundary)

Readers (the archiver, the download route) therefore only ever see complete
files. Interrupted writes leave *.tmp / *.part files that
cleanup_orphan_temp_files() removes at startup.
"""

import os
from pathlib import Path

TEMP_SUFFIX = ".tmp"


class StreamLimitExceeded(OSError):
    """Raised when a stream is longer than the allowed byte count."""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"Stream exceeds {limit} bytes")


def temp_path_for(final_path: str | Path, temp_suffix: str = TEMP_SUFFIX) -> Path:
    """Get the sibling temp path used while writing final_path."""
    final_path = Path(final_path)
    return final_path.with_name(final_path.name + temp_suffix)


def _write_all(fd: int, data: bytes) -> None:
    """Write all bytes to a file descriptor, handling short writes and EINTR.

    Raises:
        OSError: If write fails or returns 0 bytes unexpectedly.
    """
    total_written = 0
    data_len = len(data)

    while total_written < data_len:
        try:
            written = os.write(fd, data[total_written:])
            if written == 0:
                raise OSError("os.write() returned 0 bytes unexpectedly")
            total_written += written
        except InterruptedError:
            continue


def _remove_quietly(path: Path) -> None:
    try:
        os.remove(path)
    except OSError:
        pass  # Best-effort cleanup


def _fsync_directory(dir_path: Path) -> None:
    """Best-effort fsync on a directory so renames survive a crash."""
    try:
        fd = os.open(dir_path, os.O_RDONLY | os.O_DIRECTORY)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)
    except (OSError, AttributeError):
        # O_DIRECTORY is not available everywhere
        pass


def publish_temp_file(temp_path: str | Path, final_path: str | Path) -> None:
    """Atomically move a fully written temp file to its final path.

    Args:
        temp_path: Completed temp file (same directory as final_path).
        final_path: Target path.

    Raises:
        OSError: If the temp file is missing or the rename fails.
    """
    temp_path = Path(temp_path)
    final_path = Path(final_path)

    fd = os.open(temp_path, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)

    os.replace(temp_path, final_path)
    _fsync_directory(final_path.parent)


def atomic_write_bytes(
    final_path: str | Path,
    data: bytes,
    temp_suffix: str = TEMP_SUFFIX,
) -> None:
    """Atomically write bytes to a file.

    Never corrupts final path: either the old content or the new content is
    visible, never a mix.

    Args:
        final_path: The target path for the final file.
        data: Bytes to write.
        temp_suffix: Suffix for the temporary file.

    Raises:
        OSError: If directory creation, write, or rename fails.
    """
    final_path = Path(final_path)
    temp_path = temp_path_for(final_path, temp_suffix)

    final_path.parent.mkdir(parents=True, exist_ok=True)

    fd = os.open(temp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o644)
    try:
        _write_all(fd, data)
        os.fsync(fd)
    except OSError:
        os.close(fd)
        _remove_quietly(temp_path)
        raise
    else:
        os.close(fd)

    os.replace(temp_path, final_path)
    _fsync_directory(final_path.parent)


def atomic_stream_to_file(
    stream,
    final_path: str | Path,
    temp_suffix: str = TEMP_SUFFIX,
    chunk_size: int = 65536,
    max_bytes: int | None = None,
) -> int:
    """Atomically write a stream to a file.

    Used for upload ingestion where data comes from a file-like object.

    Args:
        stream: File-like object with read() method.
        final_path: Target path for the output file.
        temp_suffix: Suffix for the temporary file.
        chunk_size: Buffer size for reading (default: 64KB).
        max_bytes: Optional size limit. Exceeding it discards the temp file
            and raises StreamLimitExceeded; final_path is left untouched.

    Returns:
        Total bytes written.

    Raises:
        StreamLimitExceeded: If the stream is longer than max_bytes.
        OSError: If write or rename fails.
    """
    final_path = Path(final_path)
    temp_path = temp_path_for(final_path, temp_suffix)

    final_path.parent.mkdir(parents=True, exist_ok=True)

    total_bytes = 0
    fd = os.open(temp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o644)
    try:
        while True:
            chunk = stream.read(chunk_size)
            if not chunk:
                break
            if isinstance(chunk, str):
                chunk = chunk.encode("utf-8")
            total_bytes += len(chunk)
            if max_bytes is not None and total_bytes > max_bytes:
                raise StreamLimitExceeded(max_bytes)
            _write_all(fd, chunk)

        os.fsync(fd)
    except OSError:
        os.close(fd)
        _remove_quietly(temp_path)
        raise
    else:
        os.close(fd)

    os.replace(temp_path, final_path)
    _fsync_directory(final_path.parent)

    return total_bytes


def cleanup_orphan_temp_files(
    directory: str | Path,
    temp_suffixes: tuple[str, ...] = (TEMP_SUFFIX, ".part"),
    recursive: bool = False,
) -> int:
    """Remove temp files left behind by interrupted writes.

    Args:
        directory: Directory to scan.
        temp_suffixes: Filename suffixes that mark temp files.
        recursive: Also scan subdirectories.

    Returns:
        Number of files removed.
    """
    directory = Path(directory)
    removed = 0

    if not directory.exists():
        return 0

    candidates = directory.rglob("*") if recursive else directory.glob("*")
    for candidate in candidates:
        if not candidate.name.endswith(temp_suffixes):
            continue
        try:
            if candidate.is_file():
                candidate.unlink()
                removed += 1
        except OSError:
            pass  # Best-effort cleanup

    return removed


__all__ = [
    "TEMP_SUFFIX",
    "StreamLimitExceeded",
    "temp_path_for",
    "publish_temp_file",
    "atomic_write_bytes",
    "atomic_stream_to_file",
    "cleanup_orphan_temp_files",
]

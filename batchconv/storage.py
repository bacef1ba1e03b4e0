"""Batch MP3 Converter - Session-partitioned ephemeral storage.

Two roots, one per StorageKind:
    <inbound_root>/<session_id>/<uploaded files>
    <outbound_root>/<session_id>/<converted files, converted_<session_id>.zip>

Sessions never share a directory, so no locking is needed between them.
Removal is idempotent because the retention sweep and deferred cleanups can
race on the same directory.
"""

from __future__ import annotations

import logging
import shutil
import time
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING

from batchconv.config import OUTPUT_DIR, UPLOADS_DIR
from batchconv.errors import ConversionErrorCode, StorageFault, ValidationFault
from batchconv.utils.atomic_io import (
    StreamLimitExceeded,
    atomic_stream_to_file,
    atomic_write_bytes,
    cleanup_orphan_temp_files,
)
from batchconv.utils.paths import is_bare_filename, validate_session_id

if TYPE_CHECKING:
    from typing import BinaryIO

logger = logging.getLogger(__name__)


class StorageKind(StrEnum):
    """Which half of the storage area an operation targets."""

    INBOUND = "inbound"
    OUTBOUND = "outbound"


class StorageArea:
    """Filesystem-backed ephemeral namespace partitioned by session ID."""

    def __init__(self, inbound_root: str | Path, outbound_root: str | Path):
        self._roots = {
            StorageKind.INBOUND: Path(inbound_root),
            StorageKind.OUTBOUND: Path(outbound_root),
        }

    @classmethod
    def from_config(cls) -> StorageArea:
        """Build a StorageArea on the configured upload/output directories."""
        return cls(UPLOADS_DIR, OUTPUT_DIR)

    def root(self, kind: StorageKind | str) -> Path:
        return self._roots[StorageKind(kind)]

    def ensure_roots(self) -> None:
        """Create both roots if missing.

        Raises:
            StorageFault: If a root cannot be created.
        """
        for kind, root in self._roots.items():
            try:
                root.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageFault(f"cannot create {kind} root: {e}") from e

    def session_dir(self, session_id: str, kind: StorageKind | str) -> Path:
        """Get the directory for a session. Does NOT create it.

        Raises:
            ValidationFault: If session_id is not a safe path segment.
        """
        validate_session_id(session_id)
        return self.root(kind) / session_id

    def prepare_session_dir(self, session_id: str, kind: StorageKind | str) -> Path:
        """Create the session directory if absent (idempotent).

        Returns:
            The session directory path.

        Raises:
            ValidationFault: If session_id is unsafe.
            StorageFault: If the directory cannot be created.
        """
        path = self.session_dir(session_id, kind)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageFault(f"cannot create {StorageKind(kind)} directory: {e}") from e
        return path

    def _file_path(self, session_id: str, kind: StorageKind | str, filename: str) -> Path:
        if not is_bare_filename(filename):
            raise ValidationFault(
                ConversionErrorCode.INVALID_FILENAME,
                "Filename must be a plain name without directory components",
            )
        return self.prepare_session_dir(session_id, kind) / filename

    def write(
        self,
        session_id: str,
        kind: StorageKind | str,
        filename: str,
        data: bytes,
    ) -> Path:
        """Write content under the session directory, filename verbatim.

        The caller is responsible for sanitising filename; anything that is
        not a bare name is rejected here as a last line of defence.

        Returns:
            Path of the written file.

        Raises:
            ValidationFault: If session_id or filename is unsafe.
            StorageFault: If the write fails.
        """
        path = self._file_path(session_id, kind, filename)
        try:
            atomic_write_bytes(path, data)
        except OSError as e:
            raise StorageFault(f"write failed: {e}") from e
        return path

    def write_stream(
        self,
        session_id: str,
        kind: StorageKind | str,
        filename: str,
        stream: BinaryIO,
        max_bytes: int | None = None,
    ) -> tuple[Path, int]:
        """Stream content into the session directory.

        Args:
            session_id: Session identifier.
            kind: Storage half.
            filename: Bare filename (already sanitised).
            stream: File-like object with read().
            max_bytes: Optional size limit.

        Returns:
            Tuple of (path, bytes_written).

        Raises:
            ValidationFault: If names are unsafe or the stream exceeds max_bytes.
            StorageFault: If the write fails.
        """
        path = self._file_path(session_id, kind, filename)
        try:
            size = atomic_stream_to_file(stream, path, max_bytes=max_bytes)
        except StreamLimitExceeded as e:
            raise ValidationFault(
                ConversionErrorCode.FILE_TOO_LARGE,
                f"File exceeds the maximum size of {e.limit} bytes",
            ) from e
        except OSError as e:
            raise StorageFault(f"write failed: {e}") from e
        return path, size

    def list_session(self, session_id: str, kind: StorageKind | str) -> list[Path]:
        """List files in a session directory (empty if it does not exist)."""
        path = self.session_dir(session_id, kind)
        if not path.is_dir():
            return []
        return sorted(p for p in path.iterdir() if p.is_file())

    def remove_session(self, session_id: str, kind: StorageKind | str) -> bool:
        """Delete a session's subtree.

        Idempotent: a missing directory is not an error.

        Returns:
            True if something was removed, False if it was already gone.

        Raises:
            StorageFault: If the directory exists but cannot be removed.
        """
        path = self.session_dir(session_id, kind)
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            logger.debug("Session dir already gone: %s/%s", StorageKind(kind), session_id)
            return False
        except OSError as e:
            raise StorageFault(f"cannot remove {StorageKind(kind)} session directory: {e}") from e
        logger.info("Removed %s session dir for session_id=%s", StorageKind(kind), session_id)
        return True

    @staticmethod
    def entry_age_seconds(path: Path, now: float) -> float:
        """Age of an entry by last-modified time, clamped at zero."""
        return max(0.0, now - path.stat().st_mtime)

    def sweep_older_than(
        self,
        kind: StorageKind | str,
        max_age_seconds: float,
        now: float | None = None,
    ) -> int:
        """Remove top-level entries of a root that reached max_age_seconds.

        Per-entry I/O errors are logged and skipped, never fatal to the sweep.
        Entries exactly at the threshold are eligible, so max_age_seconds=0
        empties the root.

        Args:
            kind: Which root to sweep.
            max_age_seconds: Retention threshold.
            now: Reference time (epoch seconds); defaults to time.time().

        Returns:
            Number of entries removed.
        """
        root = self.root(kind)
        if now is None:
            now = time.time()

        try:
            entries = list(root.iterdir())
        except FileNotFoundError:
            return 0

        removed = 0
        for entry in entries:
            try:
                if self.entry_age_seconds(entry, now) < max_age_seconds:
                    continue
                if entry.is_dir() and not entry.is_symlink():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
                removed += 1
                logger.debug("Swept %s entry %s", StorageKind(kind), entry.name)
            except FileNotFoundError:
                # Removed concurrently by a deferred cleanup
                continue
            except OSError as e:
                logger.warning("Failed to sweep %s: %s", entry, e)

        if removed:
            logger.info("Swept %d expired %s entries", removed, StorageKind(kind))
        return removed

    def cleanup_orphan_temp_files(self) -> int:
        """Remove leftovers of interrupted atomic writes in both roots."""
        total = 0
        for root in self._roots.values():
            total += cleanup_orphan_temp_files(root, recursive=True)
        return total


__all__ = ["StorageKind", "StorageArea"]

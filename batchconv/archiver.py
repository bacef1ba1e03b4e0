"""Batch MP3 Converter - Archive packaging.

Packs a session's converted files into outbound/<sid>/converted_<sid>.zip.
The archive is written to a temp path and renamed into place, so a reader
never sees a half-written ZIP.
"""

from __future__ import annotations

import logging
import zipfile
from collections.abc import Sequence
from pathlib import Path

from batchconv.config import ARCHIVE_COMPRESSLEVEL
from batchconv.errors import StorageFault
from batchconv.models import TranscodeSuccess
from batchconv.utils.atomic_io import publish_temp_file, temp_path_for
from batchconv.utils.paths import archive_filename

logger = logging.getLogger(__name__)


class Archiver:
    """Builds one compressed archive per session."""

    def __init__(self, compresslevel: int = ARCHIVE_COMPRESSLEVEL):
        self.compresslevel = compresslevel

    def archive_path(self, session_id: str, outbound_dir: str | Path) -> Path:
        return Path(outbound_dir) / archive_filename(session_id)

    def build_archive(
        self,
        session_id: str,
        successes: Sequence[TranscodeSuccess],
        outbound_dir: str | Path,
    ) -> Path:
        """Package converted files into the session archive.

        Each success becomes one entry named by its converted filename.
        Files missing at archive time are skipped with a warning.

        Args:
            session_id: Session identifier (names the archive).
            successes: Successful outcomes; must not be empty.
            outbound_dir: Directory holding the converted files.

        Returns:
            Path to the finished archive.

        Raises:
            ValueError: If successes is empty.
            StorageFault: If the archive cannot be written.
        """
        if not successes:
            raise ValueError("build_archive requires at least one successful outcome")

        outbound_dir = Path(outbound_dir)
        final_path = self.archive_path(session_id, outbound_dir)
        temp_path = temp_path_for(final_path)

        added = 0
        try:
            with zipfile.ZipFile(
                temp_path,
                "w",
                compression=zipfile.ZIP_DEFLATED,
                compresslevel=self.compresslevel,
            ) as bundle:
                for outcome in successes:
                    source = outbound_dir / outcome.converted_name
                    if not source.is_file():
                        self._log_missing(outcome.converted_name)
                        continue
                    try:
                        bundle.write(source, arcname=outcome.converted_name)
                    except FileNotFoundError:
                        # Removed between the check and the write
                        self._log_missing(outcome.converted_name)
                        continue
                    added += 1
            publish_temp_file(temp_path, final_path)
        except OSError as e:
            try:
                temp_path.unlink()
            except OSError:
                pass
            raise StorageFault(f"archive write failed: {e}") from e

        logger.info(
            "Archive ready for session_id=%s: %d entries (%s)",
            session_id,
            added,
            final_path.name,
        )
        return final_path

    @staticmethod
    def _log_missing(converted_name: str) -> None:
        logger.warning("Converted file missing at archive time, skipping: %s", converted_name)


__all__ = ["Archiver"]

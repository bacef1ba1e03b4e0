"""Batch MP3 Converter - Session coordination.

Ties storage, batch conversion and archiving together for one session, and
schedules the deferred directory removals:
- inbound dir: INPUT_CLEANUP_DELAY_SECONDS after every convert call
- outbound dir: OUTPUT_CLEANUP_DELAY_SECONDS after the archive was delivered

Scheduling is delegated to an injectable CleanupScheduler. Scheduling
failures are logged and never fail the request; the retention sweep
reclaims anything a lost cleanup leaves behind.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from batchconv.archiver import Archiver
from batchconv.config import INPUT_CLEANUP_DELAY_SECONDS, OUTPUT_CLEANUP_DELAY_SECONDS
from batchconv.errors import NotFoundFault
from batchconv.models import BatchReport, InputFile
from batchconv.storage import StorageKind
from batchconv.utils.paths import validate_session_id

if TYPE_CHECKING:
    from batchconv.batch import BatchConverter
    from batchconv.storage import StorageArea

logger = logging.getLogger(__name__)


class CleanupScheduler(Protocol):
    """Schedules removal of a session directory after a delay."""

    def schedule_removal(
        self,
        session_id: str,
        kind: StorageKind,
        delay_seconds: float,
    ) -> Any:
        """Schedule the removal.

        Returns:
            A handle for the scheduled work (may support revoke()/cancel()),
            or None if nothing was scheduled.
        """
        ...


class SessionCoordinator:
    """Runs a session's conversion end to end."""

    def __init__(
        self,
        storage: StorageArea,
        converter: BatchConverter,
        scheduler: CleanupScheduler,
        archiver: Archiver | None = None,
        input_cleanup_delay: float = INPUT_CLEANUP_DELAY_SECONDS,
        output_cleanup_delay: float = OUTPUT_CLEANUP_DELAY_SECONDS,
    ):
        self.storage = storage
        self.converter = converter
        self.scheduler = scheduler
        self.archiver = archiver or Archiver()
        self.input_cleanup_delay = input_cleanup_delay
        self.output_cleanup_delay = output_cleanup_delay

    def convert(self, session_id: str, input_files: Sequence[InputFile]) -> BatchReport:
        """Convert a session's inputs and package the results.

        Steps:
        1. Ensure the outbound session directory exists
        2. Run every transcode job to completion
        3. Build the archive if at least one file converted
        4. Schedule removal of the inbound directory (always, even on error)

        Args:
            session_id: Session identifier.
            input_files: Files already written to the inbound directory.

        Returns:
            BatchReport; archive_path is set iff successful > 0.

        Raises:
            ValidationFault: If session_id is unsafe.
            StorageFault: If the outbound directory or archive cannot be
                written. Partial results are discarded in that case.
        """
        validate_session_id(session_id)
        try:
            outbound_dir = self.storage.prepare_session_dir(session_id, StorageKind.OUTBOUND)
            report = self.converter.convert_all(session_id, input_files)

            if report.successful:
                archive_path = self.archiver.build_archive(
                    session_id, report.successes, outbound_dir
                )
                report = replace(report, archive_path=archive_path)
            else:
                logger.info("No successful conversions for session_id=%s; no archive", session_id)
        finally:
            self._schedule_removal_safe(session_id, StorageKind.INBOUND, self.input_cleanup_delay)

        return report

    def retrieve_archive(self, session_id: str) -> Path:
        """Look up the session archive.

        Raises:
            ValidationFault: If session_id is unsafe.
            NotFoundFault: If no archive exists (never converted, already
                cleaned up, or every file failed).
        """
        outbound_dir = self.storage.session_dir(session_id, StorageKind.OUTBOUND)
        path = self.archiver.archive_path(session_id, outbound_dir)
        if not path.is_file():
            raise NotFoundFault(session_id)
        return path

    def archive_delivered(self, session_id: str) -> Any:
        """Schedule outbound cleanup once the archive has been sent.

        The delay leaves room for an in-progress transfer to finish.
        """
        return self._schedule_removal_safe(
            session_id, StorageKind.OUTBOUND, self.output_cleanup_delay
        )

    def _schedule_removal_safe(
        self,
        session_id: str,
        kind: StorageKind,
        delay_seconds: float,
    ) -> Any:
        """Schedule a removal, silently handling errors."""
        try:
            handle = self.scheduler.schedule_removal(session_id, kind, delay_seconds)
            logger.debug(
                "Scheduled %s cleanup for session_id=%s in %ss",
                kind.value,
                session_id,
                delay_seconds,
            )
            return handle
        except Exception:
            logger.warning(
                "Failed to schedule %s cleanup for session_id=%s (non-fatal)",
                kind.value,
                session_id,
                exc_info=True,
            )
            return None


__all__ = ["CleanupScheduler", "SessionCoordinator"]

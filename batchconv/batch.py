"""Batch MP3 Converter - Batch conversion.

Runs one transcode job per input file for a session:
- every job is submitted up front to a bounded thread pool; each job spends
  its time waiting on an ffmpeg process, so threads are enough
- the converter only blocks at the join, after all jobs are submitted
- a failing (or raising) job becomes a TranscodeFailure and never cancels
  or blocks its siblings
- outcomes land in a vector indexed by input position, so both report lists
  keep submission order regardless of completion order

There is no cancellation: once convert_all starts, every job runs to a
terminal state.

MAX_CONCURRENT_JOBS bounds transcodes across the whole process, not per
batch: every converter built with the default job_slots shares one
semaphore, so concurrent requests queue behind each other instead of each
starting its own set of ffmpeg processes.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import TYPE_CHECKING, Any

from batchconv.config import FFMPEG_TIMEOUT_SECONDS, MAX_CONCURRENT_JOBS
from batchconv.errors import ConversionErrorCode, TranscodeFault
from batchconv.models import (
    DEFAULT_PROFILE,
    BatchReport,
    InputFile,
    TranscodeFailure,
    TranscodeOutcome,
    TranscodeProfile,
    TranscodeSuccess,
)
from batchconv.storage import StorageKind
from batchconv.utils.paths import derive_output_name, unique_name

if TYPE_CHECKING:
    from batchconv.storage import StorageArea

logger = logging.getLogger(__name__)

# Message used when a transcoder raises something unexpected
UNEXPECTED_FAILURE_MESSAGE = "Conversion engine failed"

# transcode_file(input_path, output_path, profile, *, on_progress, timeout_seconds, label)
Transcoder = Callable[..., Any]

# Process-wide ffmpeg slots, shared by every converter using the default
_job_slots = threading.BoundedSemaphore(MAX_CONCURRENT_JOBS)


def _default_transcoder() -> Transcoder:
    # Imported lazily: the worker module lives in services/
    from services.worker_transcode.run import transcode_file

    return transcode_file


def plan_output_names(
    input_files: Sequence[InputFile],
    profile: TranscodeProfile = DEFAULT_PROFILE,
) -> list[str]:
    """Derive one distinct output filename per input, in input order.

    "mix.wav" and "mix.flac" become "mix.mp3" and "mix_2.mp3" rather than
    overwriting each other on disk. Names derive from the sanitised stored
    name, never from the raw upload name.
    """
    names: list[str] = []
    for input_file in input_files:
        candidate = derive_output_name(input_file.stored_name, profile.extension)
        names.append(unique_name(candidate, names))
    return names


class BatchConverter:
    """Converts all files of one session concurrently."""

    def __init__(
        self,
        storage: StorageArea,
        transcoder: Transcoder | None = None,
        max_workers: int = MAX_CONCURRENT_JOBS,
        timeout_seconds: float = FFMPEG_TIMEOUT_SECONDS,
        job_slots: threading.Semaphore | None = None,
    ):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.storage = storage
        self.transcoder = transcoder or _default_transcoder()
        self.max_workers = max_workers
        self.timeout_seconds = timeout_seconds
        self.job_slots = job_slots if job_slots is not None else _job_slots

    def convert_all(
        self,
        session_id: str,
        input_files: Sequence[InputFile],
        profile: TranscodeProfile | None = None,
    ) -> BatchReport:
        """Transcode every input and classify the outcomes.

        Args:
            session_id: Session owning the inputs.
            input_files: Files already written to the inbound directory.
            profile: Encoding profile (defaults to the fixed MP3 profile).

        Returns:
            BatchReport without archive_path (archiving is the caller's job).
            successful + failed always equals len(input_files).

        Raises:
            StorageFault: If the outbound directory cannot be created.
        """
        profile = profile or DEFAULT_PROFILE
        if not input_files:
            logger.info("Empty batch for session_id=%s", session_id)
            return BatchReport(session_id=session_id)

        output_dir = self.storage.prepare_session_dir(session_id, StorageKind.OUTBOUND)
        output_names = plan_output_names(input_files, profile)

        outcomes: list[TranscodeOutcome | None] = [None] * len(input_files)
        workers = min(self.max_workers, len(input_files))

        logger.info(
            "Starting batch for session_id=%s: %d files, %d workers",
            session_id,
            len(input_files),
            workers,
        )

        with ThreadPoolExecutor(
            max_workers=workers,
            thread_name_prefix=f"transcode-{session_id[:8]}",
        ) as pool:
            futures = [
                pool.submit(
                    self._run_one,
                    input_file,
                    output_dir / output_name,
                    profile,
                )
                for input_file, output_name in zip(input_files, output_names, strict=True)
            ]
            for index, future in enumerate(futures):
                outcomes[index] = future.result()

        successes = tuple(o for o in outcomes if isinstance(o, TranscodeSuccess))
        failures = tuple(o for o in outcomes if isinstance(o, TranscodeFailure))

        logger.info(
            "Batch complete for session_id=%s: %d succeeded, %d failed",
            session_id,
            len(successes),
            len(failures),
        )
        return BatchReport(session_id=session_id, successes=successes, failures=failures)

    def _run_one(
        self,
        input_file: InputFile,
        output_path: Path,
        profile: TranscodeProfile,
    ) -> TranscodeOutcome:
        """Run one job and turn whatever happens into an outcome. Never raises."""
        name = input_file.original_name

        def on_progress(percent: float | None, position_sec: float) -> None:
            if percent is None:
                logger.debug("%s: %.1fs", name, position_sec)
            else:
                logger.debug("%s: %d%%", name, round(percent))

        try:
            with self.job_slots:
                result = self.transcoder(
                    input_file.path,
                    output_path,
                    profile,
                    on_progress=on_progress,
                    timeout_seconds=self.timeout_seconds,
                    label=name,
                )

            if result.ok:
                logger.info("Converted %s -> %s", name, output_path.name)
                return TranscodeSuccess(name, output_path.name)

            return TranscodeFailure(
                name,
                result.message or UNEXPECTED_FAILURE_MESSAGE,
                result.error_code,
            )
        except TranscodeFault as e:
            logger.error("Failed to convert %s: %s", name, e)
            return TranscodeFailure(name, e.message, e.error_code)
        except Exception:
            logger.exception("Unexpected error converting %s", name)
            return TranscodeFailure(
                name,
                UNEXPECTED_FAILURE_MESSAGE,
                ConversionErrorCode.CONVERSION_FAILED,
            )


__all__ = ["BatchConverter", "Transcoder", "plan_output_names"]

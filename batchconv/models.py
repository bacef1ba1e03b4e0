"""Batch MP3 Converter - Domain types.

Plain dataclasses shared by the converter, archiver and coordinator.
Nothing here is persisted; sessions live on disk only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from batchconv.config import (
    OUTPUT_BITRATE_KBPS,
    OUTPUT_CHANNELS,
    OUTPUT_FORMAT,
    OUTPUT_SAMPLE_RATE,
)

STATUS_SUCCESS = "success"
STATUS_ERROR = "error"


@dataclass(frozen=True)
class TranscodeProfile:
    """Target encoding parameters applied to every job."""

    format: str = OUTPUT_FORMAT
    bitrate_kbps: int = OUTPUT_BITRATE_KBPS
    channels: int = OUTPUT_CHANNELS
    sample_rate: int = OUTPUT_SAMPLE_RATE

    @property
    def extension(self) -> str:
        return f".{self.format}"

    def ffmpeg_args(self) -> list[str]:
        """Render the profile as ffmpeg output options."""
        return [
            "-f",
            self.format,
            "-b:a",
            f"{self.bitrate_kbps}k",
            "-ac",
            str(self.channels),
            "-ar",
            str(self.sample_rate),
        ]


DEFAULT_PROFILE = TranscodeProfile()


@dataclass(frozen=True)
class InputFile:
    """An uploaded file resident in a session's inbound directory.

    original_name is whatever the caller sent (untrusted, echoed back in
    reports). stored_name is the sanitised name actually used on disk.
    """

    original_name: str
    stored_name: str
    path: Path
    size_bytes: int
    format_guess: str | None = None


@dataclass(frozen=True)
class TranscodeSuccess:
    """One file converted."""

    original_name: str
    converted_name: str

    ok = True


@dataclass(frozen=True)
class TranscodeFailure:
    """One file failed; error_message is safe to show to callers."""

    original_name: str
    error_message: str
    error_code: str | None = None

    ok = False


TranscodeOutcome = TranscodeSuccess | TranscodeFailure


@dataclass(frozen=True)
class BatchReport:
    """Aggregate result of one convert call.

    successes and failures keep original input order. archive_path is set
    only when at least one file converted.
    """

    session_id: str
    successes: tuple[TranscodeSuccess, ...] = field(default_factory=tuple)
    failures: tuple[TranscodeFailure, ...] = field(default_factory=tuple)
    archive_path: Path | None = None

    @property
    def successful(self) -> int:
        return len(self.successes)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def total(self) -> int:
        return self.successful + self.failed

    @property
    def has_archive(self) -> bool:
        return self.archive_path is not None


__all__ = [
    "STATUS_SUCCESS",
    "STATUS_ERROR",
    "TranscodeProfile",
    "DEFAULT_PROFILE",
    "InputFile",
    "TranscodeSuccess",
    "TranscodeFailure",
    "TranscodeOutcome",
    "BatchReport",
]

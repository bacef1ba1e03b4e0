"""Batch MP3 Converter - Transcode Worker.

Converts one uploaded audio file to the fixed MP3 output profile.

Input: any file ffmpeg can decode
Output: <output_path> (MP3, 320 kbps, stereo, 44.1 kHz)

Lifecycle:
- start: logged when ffmpeg is spawned
- progress: parsed from ffmpeg's -progress stream, passed to an optional
  observer; informational only
- terminal: the returned TranscodeResult

ffmpeg writes to <output_path>.part; the final name only appears once the
conversion succeeded. One attempt per file, no retries.

Dependencies:
- Requires ffmpeg installed and in PATH (ffprobe optional, for percentages)

Error codes:
- INPUT_NOT_FOUND: source file does not exist
- CODEC_UNSUPPORTED: ffmpeg cannot decode the format
- FILE_CORRUPT: source file is corrupt or unreadable
- OUTPUT_UNWRITABLE: output path cannot be written
- TIMEOUT: ffmpeg exceeded the per-job time limit
- WORKER_ERROR: ffmpeg missing, crashed, or could not be started
"""

from __future__ import annotations

import logging
import subprocess
import tempfile
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from batchconv.config import FFMPEG_BIN, FFMPEG_TIMEOUT_SECONDS, FFPROBE_BIN
from batchconv.models import DEFAULT_PROFILE, TranscodeProfile
from batchconv.utils.atomic_io import publish_temp_file, temp_path_for

logger = logging.getLogger(__name__)

# --- Constants ---

PART_SUFFIX = ".part"

# ffprobe is only used for progress percentages; keep it short
FFPROBE_TIMEOUT_SECONDS = 30

# Bytes of ffmpeg stderr kept in logs on failure
STDERR_LOG_LIMIT = 2000

ProgressObserver = Callable[[float | None, float], None]


# --- Error Codes ---


class TranscodeErrorCode:
    """Error codes for a single transcode job."""

    INPUT_NOT_FOUND = "INPUT_NOT_FOUND"
    CODEC_UNSUPPORTED = "CODEC_UNSUPPORTED"
    FILE_CORRUPT = "FILE_CORRUPT"
    OUTPUT_UNWRITABLE = "OUTPUT_UNWRITABLE"
    TIMEOUT = "TIMEOUT"
    WORKER_ERROR = "WORKER_ERROR"


# Caller-facing messages. Never include paths or raw ffmpeg output.
ERROR_MESSAGES = {
    TranscodeErrorCode.INPUT_NOT_FOUND: "Uploaded file is no longer available",
    TranscodeErrorCode.CODEC_UNSUPPORTED: "Unsupported audio format or codec",
    TranscodeErrorCode.FILE_CORRUPT: "File is corrupt or contains no decodable audio",
    TranscodeErrorCode.OUTPUT_UNWRITABLE: "Converted file could not be written",
    TranscodeErrorCode.TIMEOUT: "Conversion timed out",
    TranscodeErrorCode.WORKER_ERROR: "Conversion engine failed",
}


# --- Result Types ---


@dataclass
class TranscodeMetrics:
    """Metrics collected during one transcode."""

    input_duration_sec: float | None = None
    transcode_time_ms: int = 0
    output_size_bytes: int = 0


@dataclass
class TranscodeResult:
    """Terminal result of one transcode job."""

    ok: bool
    error_code: str | None = None
    message: str | None = None
    metrics: TranscodeMetrics = field(default_factory=TranscodeMetrics)
    artifact_path: str | None = None


def _failure(code: str, metrics: TranscodeMetrics | None = None) -> TranscodeResult:
    return TranscodeResult(
        ok=False,
        error_code=code,
        message=ERROR_MESSAGES[code],
        metrics=metrics or TranscodeMetrics(),
    )


# --- ffmpeg helpers ---


def build_ffmpeg_command(
    input_path: Path,
    output_path: Path,
    profile: TranscodeProfile = DEFAULT_PROFILE,
    ffmpeg_bin: str = FFMPEG_BIN,
) -> list[str]:
    """Build the ffmpeg argv for one conversion.

    -vn drops video and cover-art streams so mp4/webm inputs encode as
    plain audio. Progress goes to stdout as key=value lines.
    """
    return [
        ffmpeg_bin,
        "-hide_banner",
        "-nostdin",
        "-v",
        "error",
        "-y",
        "-i",
        str(input_path),
        "-vn",
        *profile.ffmpeg_args(),
        "-progress",
        "pipe:1",
        "-nostats",
        str(output_path),
    ]


def probe_duration(input_path: Path, ffprobe_bin: str = FFPROBE_BIN) -> float | None:
    """Get the input duration in seconds via ffprobe.

    Best-effort: returns None on any failure. Never raises.
    """
    cmd = [
        ffprobe_bin,
        "-v",
        "error",
        "-show_entries",
        "format=duration",
        "-of",
        "default=noprint_wrappers=1:nokey=1",
        str(input_path),
    ]
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            check=False,
            timeout=FFPROBE_TIMEOUT_SECONDS,
        )
    except (OSError, subprocess.TimeoutExpired):
        return None

    if result.returncode != 0:
        return None
    try:
        duration = float(result.stdout.decode("utf-8", errors="replace").strip())
    except ValueError:
        return None
    return duration if duration > 0 else None


def parse_progress_seconds(line: str) -> float | None:
    """Extract the output position (seconds) from one -progress line.

    ffmpeg reports out_time_us and, for historical reasons, out_time_ms
    (which is also in microseconds). Returns None for any other key.
    """
    key, sep, value = line.strip().partition("=")
    if not sep or key not in ("out_time_us", "out_time_ms"):
        return None
    try:
        micros = int(value)
    except ValueError:
        return None
    if micros < 0:
        return None
    return micros / 1_000_000.0


def classify_ffmpeg_error(stderr: str) -> str:
    """Map ffmpeg stderr to an error code."""
    text = stderr.lower()

    if any(
        x in text
        for x in [
            "permission denied",
            "read-only file system",
            "no space left",
            "error opening output",
            "could not open file",
        ]
    ):
        return TranscodeErrorCode.OUTPUT_UNWRITABLE

    if any(
        x in text
        for x in [
            "decoder",
            "codec",
            "unsupported",
            "unknown format",
            "could not find codec parameters",
        ]
    ):
        return TranscodeErrorCode.CODEC_UNSUPPORTED

    return TranscodeErrorCode.FILE_CORRUPT


def _notify(
    on_progress: ProgressObserver | None,
    position_sec: float,
    duration_sec: float | None,
) -> None:
    if on_progress is None:
        return
    percent = None
    if duration_sec:
        percent = max(0.0, min(100.0, position_sec / duration_sec * 100.0))
    try:
        on_progress(percent, position_sec)
    except Exception:
        # Observers carry no correctness obligation
        logger.warning("Progress observer raised; ignoring", exc_info=True)


def _remove_partial(part_path: Path) -> None:
    try:
        part_path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Failed to remove partial output %s: %s", part_path, e)


# --- Main Transcode Logic ---


def transcode_file(
    input_path: str | Path,
    output_path: str | Path,
    profile: TranscodeProfile = DEFAULT_PROFILE,
    *,
    on_progress: ProgressObserver | None = None,
    timeout_seconds: float = FFMPEG_TIMEOUT_SECONDS,
    label: str | None = None,
) -> TranscodeResult:
    """Convert input_path to output_path using the given profile.

    Blocks until ffmpeg exits (or is killed by the timeout watchdog).
    Never raises for per-file problems; they come back as a failed result.

    Args:
        input_path: Source audio file.
        output_path: Destination; its parent directory must exist.
        profile: Target encoding parameters.
        on_progress: Optional observer called with (percent_or_None, seconds).
        timeout_seconds: Kill ffmpeg after this many seconds.
        label: Name used in log lines (defaults to the input filename).

    Returns:
        TranscodeResult with ok/error_code/message and metrics.
    """
    input_path = Path(input_path)
    output_path = Path(output_path)
    label = label or input_path.name
    metrics = TranscodeMetrics()

    if not input_path.is_file():
        logger.error("Source file not found for %s", label)
        return _failure(TranscodeErrorCode.INPUT_NOT_FOUND, metrics)

    metrics.input_duration_sec = probe_duration(input_path)

    part_path = temp_path_for(output_path, PART_SUFFIX)
    cmd = build_ffmpeg_command(input_path, part_path, profile)
    start_time = time.monotonic()
    timed_out = threading.Event()

    with tempfile.TemporaryFile() as stderr_file:
        try:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=stderr_file,
                text=True,
            )
        except FileNotFoundError:
            logger.error("ffmpeg not found in PATH")
            return _failure(TranscodeErrorCode.WORKER_ERROR, metrics)
        except OSError as e:
            logger.error("ffmpeg execution failed: %s", e)
            return _failure(TranscodeErrorCode.WORKER_ERROR, metrics)

        logger.info("Converting %s...", label)

        def _kill() -> None:
            timed_out.set()
            proc.kill()

        watchdog = threading.Timer(timeout_seconds, _kill)
        watchdog.daemon = True
        watchdog.start()
        try:
            for line in proc.stdout:
                position = parse_progress_seconds(line)
                if position is not None:
                    _notify(on_progress, position, metrics.input_duration_sec)
            returncode = proc.wait()
        finally:
            watchdog.cancel()
            proc.stdout.close()

        metrics.transcode_time_ms = int((time.monotonic() - start_time) * 1000)

        if timed_out.is_set():
            logger.error("ffmpeg timed out after %s seconds for %s", timeout_seconds, label)
            _remove_partial(part_path)
            return _failure(TranscodeErrorCode.TIMEOUT, metrics)

        if returncode != 0:
            stderr_file.seek(0)
            stderr = stderr_file.read().decode("utf-8", errors="replace")
            code = classify_ffmpeg_error(stderr)
            logger.error(
                "Failed to convert %s (exit %d, %s): %s",
                label,
                returncode,
                code,
                stderr[-STDERR_LOG_LIMIT:].strip(),
            )
            _remove_partial(part_path)
            return _failure(code, metrics)

    try:
        publish_temp_file(part_path, output_path)
        metrics.output_size_bytes = output_path.stat().st_size
    except OSError as e:
        logger.error("Failed to publish output for %s: %s", label, e)
        _remove_partial(part_path)
        return _failure(TranscodeErrorCode.OUTPUT_UNWRITABLE, metrics)

    logger.info(
        "Converted %s in %dms (%d bytes)",
        label,
        metrics.transcode_time_ms,
        metrics.output_size_bytes,
    )
    return TranscodeResult(
        ok=True,
        message="Transcode completed successfully",
        metrics=metrics,
        artifact_path=str(output_path),
    )


# --- Standalone Execution ---


if __name__ == "__main__":
    import sys

    logging.basicConfig(level=logging.INFO)

    if len(sys.argv) != 3:
        print(f"Usage: {sys.argv[0]} <input> <output.mp3>")
        sys.exit(1)

    result = transcode_file(
        sys.argv[1],
        sys.argv[2],
        on_progress=lambda pct, pos: print(f"{pct or 0:.0f}% ({pos:.1f}s)"),
    )
    if result.ok:
        print(f"Success: {result.artifact_path}")
        sys.exit(0)
    else:
        print(f"Error: {result.error_code} - {result.message}")
        sys.exit(1)

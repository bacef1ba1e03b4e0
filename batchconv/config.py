"""Batch MP3 Converter - Configuration constants.

No external config libraries. Every value has a default; a handful can be
overridden with BATCHCONV_* environment variables (read once at import).
"""

import os
from pathlib import Path

# Repository root (parent of batchconv/)
REPO_ROOT = Path(__file__).parent.parent.resolve()


def _get_path(name: str, default: Path) -> Path:
    """Get a path from environment or use default."""
    env_val = os.environ.get(name)
    if env_val:
        return Path(env_val).expanduser().resolve()
    return default


def _get_positive_int(name: str, default: int) -> int:
    """Get a positive integer from environment or use default.

    Invalid or non-positive values fall back to the default.
    """
    env_val = os.environ.get(name)
    if env_val:
        try:
            value = int(env_val)
            if value > 0:
                return value
        except ValueError:
            pass
    return default


# Data directories
DATA_DIR = _get_path("BATCHCONV_DATA_DIR", REPO_ROOT / "data")
TMP_DIR = DATA_DIR / "tmp"
UPLOADS_DIR = TMP_DIR / "uploads"
OUTPUT_DIR = TMP_DIR / "output"

# Queue directory and Huey database path
QUEUE_DIR = DATA_DIR / "queue"
HUEY_DB_PATH = QUEUE_DIR / "huey.db"

# Shared access code for the HTTP boundary (placeholder gate, not real auth)
ACCESS_CODE = os.environ.get("BATCHCONV_ACCESS_CODE", "MP3-BATCH-ACCESS")

# Upload limits
MAX_FILES_PER_BATCH = 50
MAX_FILE_SIZE_BYTES = 100 * 1024 * 1024
MAX_FILE_SIZE_LABEL = "100MB"

ALLOWED_EXTENSIONS = ("wav", "mp3", "flac", "aac", "ogg", "m4a", "mp4", "webm")

ALLOWED_MIME_TYPES = frozenset(
    {
        "audio/wav",
        "audio/wave",
        "audio/x-wav",
        "audio/mpeg",
        "audio/mp3",
        "audio/flac",
        "audio/x-flac",
        "audio/aac",
        "audio/x-aac",
        "audio/ogg",
        "audio/vorbis",
        "audio/webm",
        "audio/x-m4a",
        "audio/mp4",
        "audio/x-mp4",
    }
)

# Output profile (fixed; callers cannot change it)
OUTPUT_FORMAT = "mp3"
OUTPUT_BITRATE_KBPS = 320
OUTPUT_CHANNELS = 2
OUTPUT_SAMPLE_RATE = 44100

# External codec engine
FFMPEG_BIN = os.environ.get("BATCHCONV_FFMPEG_BIN", "ffmpeg")
FFPROBE_BIN = os.environ.get("BATCHCONV_FFPROBE_BIN", "ffprobe")

# Per-job wall clock limit. A hung ffmpeg is killed after this many seconds.
FFMPEG_TIMEOUT_SECONDS = _get_positive_int("BATCHCONV_FFMPEG_TIMEOUT_SEC", 600)

# Upper bound on concurrent ffmpeg processes across all batches in the process
MAX_CONCURRENT_JOBS = _get_positive_int("BATCHCONV_MAX_CONCURRENT_JOBS", 4)

# Archive naming and compression
ARCHIVE_PREFIX = "converted_"
ARCHIVE_EXTENSION = "zip"
ARCHIVE_COMPRESSLEVEL = 9

# Deferred cleanup delays
INPUT_CLEANUP_DELAY_SECONDS = 5
OUTPUT_CLEANUP_DELAY_SECONDS = 60

# Retention sweep: hourly, evicting anything older than 24 hours
RETENTION_MAX_AGE_SECONDS = 24 * 60 * 60
RETENTION_SWEEP_CRON_MINUTE = "0"

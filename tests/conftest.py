"""Shared pytest fixtures for Batch MP3 Converter tests.

No test needs ffmpeg: conversions go through fake transcoders that write
placeholder MP3 bytes, and worker tests mock subprocess.
"""

import os
import tempfile

# Keep the huey queue DB and default data dirs out of the repository
os.environ.setdefault("BATCHCONV_DATA_DIR", tempfile.mkdtemp(prefix="batchconv-test-"))

from pathlib import Path  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from batchconv import config  # noqa: E402
from batchconv.batch import BatchConverter  # noqa: E402
from batchconv.coordinator import SessionCoordinator  # noqa: E402
from batchconv.errors import TranscodeFault  # noqa: E402
from batchconv.models import InputFile  # noqa: E402
from batchconv.storage import StorageArea, StorageKind  # noqa: E402
from services.convert_api.main import app, override_coordinator  # noqa: E402
from services.worker_transcode.run import (  # noqa: E402
    ERROR_MESSAGES,
    TranscodeErrorCode,
    TranscodeResult,
)

FAKE_MP3_BYTES = b"ID3\x04\x00\x00\x00\x00\x00\x00" + b"\xff\xfb" * 64


def fake_transcoder(input_path, output_path, profile, *, on_progress=None, **kwargs):
    """Transcoder stand-in.

    Inputs whose name contains "corrupt" fail like ffmpeg would on bad data,
    names containing "explode" raise TranscodeFault, everything else
    succeeds and writes a small MP3 placeholder.
    """
    name = Path(input_path).name
    if "explode" in name:
        raise TranscodeFault("ENGINE_CRASHED", "Conversion engine crashed")
    if "corrupt" in name:
        return TranscodeResult(
            ok=False,
            error_code=TranscodeErrorCode.FILE_CORRUPT,
            message=ERROR_MESSAGES[TranscodeErrorCode.FILE_CORRUPT],
        )
    if on_progress is not None:
        on_progress(50.0, 1.0)
        on_progress(100.0, 2.0)
    Path(output_path).write_bytes(FAKE_MP3_BYTES)
    return TranscodeResult(ok=True, artifact_path=str(output_path))


class RecordingScheduler:
    """CleanupScheduler that records requests instead of scheduling them."""

    def __init__(self):
        self.calls = []

    def schedule_removal(self, session_id, kind, delay_seconds):
        self.calls.append((session_id, StorageKind(kind), delay_seconds))
        return len(self.calls)


@pytest.fixture
def storage(tmp_path):
    """StorageArea rooted in a temporary directory."""
    area = StorageArea(tmp_path / "uploads", tmp_path / "output")
    area.ensure_roots()
    return area


@pytest.fixture
def scheduler():
    return RecordingScheduler()


@pytest.fixture
def converter(storage):
    return BatchConverter(storage, transcoder=fake_transcoder, max_workers=4)


@pytest.fixture
def coordinator(storage, converter, scheduler):
    return SessionCoordinator(storage=storage, converter=converter, scheduler=scheduler)


@pytest.fixture
def make_inputs(storage):
    """Factory writing named inputs into a session's inbound directory.

    Returns:
        Callable (session_id, names) -> list[InputFile]
    """

    def _make(session_id, names):
        files = []
        for name in names:
            path = storage.write(session_id, StorageKind.INBOUND, name, b"RIFF fake audio")
            files.append(
                InputFile(
                    original_name=name,
                    stored_name=name,
                    path=path,
                    size_bytes=path.stat().st_size,
                    format_guess=Path(name).suffix.lstrip(".") or None,
                )
            )
        return files

    return _make


@pytest.fixture
def client(coordinator):
    """FastAPI test client wired to the temporary coordinator.

    Yields:
        tuple: (test_client, coordinator)
    """
    override_coordinator(coordinator)
    with TestClient(app) as test_client:
        yield test_client, coordinator
    override_coordinator(None)


@pytest.fixture
def auth_headers():
    return {"X-Access-Code": config.ACCESS_CODE}

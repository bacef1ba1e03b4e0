"""Tests for batchconv.storage module."""

import io
import os
import time

import pytest

from batchconv.errors import ConversionErrorCode, StorageFault, ValidationFault
from batchconv.storage import StorageArea, StorageKind


def _age(path, seconds):
    """Backdate path's mtime by seconds."""
    past = time.time() - seconds
    os.utime(path, (past, past))


class TestSessionDirectories:
    """Tests for session directory layout."""

    def test_roots_are_separate(self, storage, tmp_path):
        assert storage.root(StorageKind.INBOUND) == tmp_path / "uploads"
        assert storage.root("outbound") == tmp_path / "output"

    def test_session_dir_not_created(self, storage):
        path = storage.session_dir("abc123", StorageKind.INBOUND)
        assert path.name == "abc123"
        assert not path.exists()

    def test_prepare_is_idempotent(self, storage):
        """Preparing twice returns the same existing directory."""
        first = storage.prepare_session_dir("abc123", StorageKind.OUTBOUND)
        second = storage.prepare_session_dir("abc123", StorageKind.OUTBOUND)
        assert first == second
        assert first.is_dir()

    def test_unsafe_session_id_rejected(self, storage):
        with pytest.raises(ValidationFault) as exc_info:
            storage.prepare_session_dir("../escape", StorageKind.INBOUND)
        assert exc_info.value.error_code == ConversionErrorCode.INVALID_SESSION_ID

    def test_unwritable_root_raises_storage_fault(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_bytes(b"not a directory")
        area = StorageArea(blocker / "uploads", tmp_path / "output")

        with pytest.raises(StorageFault):
            area.ensure_roots()


class TestWrite:
    """Tests for StorageArea.write and write_stream."""

    def test_write_keeps_filename(self, storage):
        path = storage.write("abc123", StorageKind.INBOUND, "My Track (1).wav", b"data")
        assert path.name == "My Track (1).wav"
        assert path.parent == storage.session_dir("abc123", StorageKind.INBOUND)
        assert path.read_bytes() == b"data"

    @pytest.mark.parametrize("filename", ["../evil.wav", "a/b.wav", "a\\b.wav", "..", ""])
    def test_traversal_rejected(self, storage, filename):
        with pytest.raises(ValidationFault) as exc_info:
            storage.write("abc123", StorageKind.INBOUND, filename, b"data")
        assert exc_info.value.error_code == ConversionErrorCode.INVALID_FILENAME

    def test_write_stream_returns_size(self, storage):
        path, size = storage.write_stream(
            "abc123", StorageKind.INBOUND, "track.wav", io.BytesIO(b"x" * 1000)
        )
        assert size == 1000
        assert path.stat().st_size == 1000

    def test_write_stream_over_limit(self, storage):
        """Oversized uploads surface as FILE_TOO_LARGE and leave no file."""
        with pytest.raises(ValidationFault) as exc_info:
            storage.write_stream(
                "abc123",
                StorageKind.INBOUND,
                "big.wav",
                io.BytesIO(b"x" * 1000),
                max_bytes=100,
            )
        assert exc_info.value.error_code == ConversionErrorCode.FILE_TOO_LARGE
        assert storage.list_session("abc123", StorageKind.INBOUND) == []

    def test_list_session(self, storage):
        storage.write("abc123", StorageKind.INBOUND, "b.wav", b"b")
        storage.write("abc123", StorageKind.INBOUND, "a.wav", b"a")
        names = [p.name for p in storage.list_session("abc123", StorageKind.INBOUND)]
        assert names == ["a.wav", "b.wav"]

    def test_list_missing_session(self, storage):
        assert storage.list_session("nothing", StorageKind.OUTBOUND) == []


class TestRemoveSession:
    """Tests for StorageArea.remove_session."""

    def test_removes_subtree(self, storage):
        storage.write("abc123", StorageKind.INBOUND, "track.wav", b"data")
        assert storage.remove_session("abc123", StorageKind.INBOUND) is True
        assert not storage.session_dir("abc123", StorageKind.INBOUND).exists()

    def test_remove_twice_is_not_an_error(self, storage):
        storage.write("abc123", StorageKind.INBOUND, "track.wav", b"data")
        storage.remove_session("abc123", StorageKind.INBOUND)
        assert storage.remove_session("abc123", StorageKind.INBOUND) is False

    def test_remove_only_touches_one_kind(self, storage):
        storage.write("abc123", StorageKind.INBOUND, "track.wav", b"data")
        storage.write("abc123", StorageKind.OUTBOUND, "track.mp3", b"data")

        storage.remove_session("abc123", StorageKind.INBOUND)

        assert storage.list_session("abc123", StorageKind.OUTBOUND)


class TestSweepOlderThan:
    """Tests for StorageArea.sweep_older_than."""

    def test_zero_age_empties_root(self, storage):
        """max_age 0 makes every entry eligible."""
        storage.write("s1", StorageKind.INBOUND, "a.wav", b"a")
        storage.write("s2", StorageKind.INBOUND, "b.wav", b"b")
        (storage.root(StorageKind.INBOUND) / "stray.txt").write_bytes(b"x")

        removed = storage.sweep_older_than(StorageKind.INBOUND, 0)

        assert removed == 3
        assert list(storage.root(StorageKind.INBOUND).iterdir()) == []

    def test_young_entries_kept(self, storage):
        old = storage.prepare_session_dir("old", StorageKind.OUTBOUND)
        storage.prepare_session_dir("young", StorageKind.OUTBOUND)
        _age(old, 7200)

        removed = storage.sweep_older_than(StorageKind.OUTBOUND, 3600)

        assert removed == 1
        remaining = [p.name for p in storage.root(StorageKind.OUTBOUND).iterdir()]
        assert remaining == ["young"]

    def test_explicit_now(self, storage):
        storage.prepare_session_dir("s1", StorageKind.INBOUND)
        assert storage.sweep_older_than(StorageKind.INBOUND, 3600, now=time.time()) == 0
        assert storage.sweep_older_than(StorageKind.INBOUND, 3600, now=time.time() + 7200) == 1

    def test_future_mtime_clamped(self, storage):
        """Entries with mtime in the future count as age zero."""
        path = storage.prepare_session_dir("s1", StorageKind.INBOUND)
        future = time.time() + 3600
        os.utime(path, (future, future))

        assert storage.sweep_older_than(StorageKind.INBOUND, 60) == 0
        assert storage.sweep_older_than(StorageKind.INBOUND, 0) == 1

    def test_missing_root(self, tmp_path):
        area = StorageArea(tmp_path / "none-in", tmp_path / "none-out")
        assert area.sweep_older_than(StorageKind.INBOUND, 0) == 0

    def test_per_entry_errors_skipped(self, storage, monkeypatch):
        """A single undeletable entry does not stop the sweep."""
        storage.prepare_session_dir("stuck", StorageKind.INBOUND)
        storage.prepare_session_dir("free", StorageKind.INBOUND)

        import batchconv.storage as storage_module

        real_rmtree = storage_module.shutil.rmtree

        def flaky_rmtree(path, *args, **kwargs):
            if os.path.basename(path) == "stuck":
                raise PermissionError("denied")
            return real_rmtree(path, *args, **kwargs)

        monkeypatch.setattr(storage_module.shutil, "rmtree", flaky_rmtree)

        removed = storage.sweep_older_than(StorageKind.INBOUND, 0)

        assert removed == 1
        remaining = [p.name for p in storage.root(StorageKind.INBOUND).iterdir()]
        assert remaining == ["stuck"]


class TestOrphanCleanup:
    def test_cleans_both_roots(self, storage):
        inbound = storage.prepare_session_dir("s1", StorageKind.INBOUND)
        outbound = storage.prepare_session_dir("s1", StorageKind.OUTBOUND)
        (inbound / "upload.wav.tmp").write_bytes(b"partial")
        (outbound / "track.mp3.part").write_bytes(b"partial")
        (outbound / "track.mp3").write_bytes(b"complete")

        assert storage.cleanup_orphan_temp_files() == 2
        assert (outbound / "track.mp3").exists()

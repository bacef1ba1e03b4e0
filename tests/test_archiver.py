"""Tests for batchconv.archiver module."""

import zipfile
from unittest import mock

import pytest

from batchconv.archiver import Archiver
from batchconv.errors import StorageFault
from batchconv.models import TranscodeSuccess
from batchconv.utils.atomic_io import temp_path_for


@pytest.fixture
def outbound_dir(tmp_path):
    path = tmp_path / "output" / "abc123"
    path.mkdir(parents=True)
    (path / "track1.mp3").write_bytes(b"ID3 one" * 100)
    (path / "track2.mp3").write_bytes(b"ID3 two" * 100)
    return path


SUCCESSES = (
    TranscodeSuccess("track1.wav", "track1.mp3"),
    TranscodeSuccess("track2.flac", "track2.mp3"),
)


class TestBuildArchive:
    """Tests for Archiver.build_archive."""

    def test_archive_contains_exactly_successes(self, outbound_dir):
        path = Archiver().build_archive("abc123", SUCCESSES, outbound_dir)

        assert path == outbound_dir / "converted_abc123.zip"
        with zipfile.ZipFile(path) as bundle:
            assert sorted(bundle.namelist()) == ["track1.mp3", "track2.mp3"]
            assert bundle.read("track1.mp3") == b"ID3 one" * 100

    def test_entries_are_deflated(self, outbound_dir):
        path = Archiver().build_archive("abc123", SUCCESSES, outbound_dir)

        with zipfile.ZipFile(path) as bundle:
            assert all(info.compress_type == zipfile.ZIP_DEFLATED for info in bundle.infolist())

    def test_no_temp_file_left(self, outbound_dir):
        path = Archiver().build_archive("abc123", SUCCESSES, outbound_dir)
        assert not temp_path_for(path).exists()

    def test_missing_file_skipped(self, outbound_dir):
        """Files that vanished before archiving are left out, not fatal."""
        (outbound_dir / "track2.mp3").unlink()

        path = Archiver().build_archive("abc123", SUCCESSES, outbound_dir)

        with zipfile.ZipFile(path) as bundle:
            assert bundle.namelist() == ["track1.mp3"]

    def test_file_removed_during_write_skipped(self, outbound_dir):
        """A file deleted after the existence check is skipped too."""
        real_write = zipfile.ZipFile.write

        def write_after_removal(bundle, filename, *args, **kwargs):
            if filename.name == "track1.mp3":
                filename.unlink()
            return real_write(bundle, filename, *args, **kwargs)

        with mock.patch.object(zipfile.ZipFile, "write", write_after_removal):
            path = Archiver().build_archive("abc123", SUCCESSES, outbound_dir)

        with zipfile.ZipFile(path) as bundle:
            assert bundle.namelist() == ["track2.mp3"]
            assert bundle.read("track2.mp3") == b"ID3 two" * 100

    def test_empty_successes_rejected(self, outbound_dir):
        with pytest.raises(ValueError):
            Archiver().build_archive("abc123", (), outbound_dir)
        assert not (outbound_dir / "converted_abc123.zip").exists()

    def test_write_failure_raises_storage_fault(self, outbound_dir):
        with mock.patch(
            "batchconv.archiver.publish_temp_file",
            side_effect=OSError("No space left on device"),
        ):
            with pytest.raises(StorageFault):
                Archiver().build_archive("abc123", SUCCESSES, outbound_dir)

        assert not (outbound_dir / "converted_abc123.zip").exists()
        assert not temp_path_for(outbound_dir / "converted_abc123.zip").exists()

    def test_missing_directory_raises_storage_fault(self, tmp_path):
        with pytest.raises(StorageFault):
            Archiver().build_archive("abc123", SUCCESSES, tmp_path / "nowhere")


class TestArchivePath:
    def test_named_by_session(self, tmp_path):
        assert Archiver().archive_path("s1", tmp_path) == tmp_path / "converted_s1.zip"

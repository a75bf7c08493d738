"""Unit tests for the review gate."""

import os
from unittest.mock import Mock

import pytest

from introcam.models.capture import Capture
from introcam.services.review import ReviewGate
from introcam.storage.file_manager import FileManager


@pytest.fixture
def file_manager(temp_data_dir):
    return FileManager(temp_data_dir)


@pytest.mark.unit
class TestReviewGate:

    def test_accept_keeps_capture_until_release(self, file_manager, sample_video_bytes):
        capture = Capture(sample_video_bytes)
        gate = ReviewGate(capture, file_manager)

        assert gate.accept() is capture
        assert gate.has_capture
        assert capture.data == sample_video_bytes

        gate.release()
        assert not gate.has_capture
        assert capture.released
        assert capture.size == 0

    def test_retry_releases_capture(self, file_manager):
        capture = Capture(b"take one")
        gate = ReviewGate(capture, file_manager)

        gate.retry()

        assert capture.released
        with pytest.raises(RuntimeError):
            gate.accept()

    def test_export_does_not_consume(self, file_manager, temp_data_dir, sample_video_bytes):
        gate = ReviewGate(Capture(sample_video_bytes), file_manager)

        path = gate.export(os.path.join(temp_data_dir, "exports"))

        assert os.path.basename(path).startswith("recording-")
        assert os.path.getsize(path) == len(sample_video_bytes)
        assert gate.has_capture

    def test_export_error_propagates(self, sample_video_bytes):
        file_manager = Mock()
        file_manager.save_capture.side_effect = PermissionError("read-only")
        gate = ReviewGate(Capture(sample_video_bytes), file_manager)

        with pytest.raises(OSError):
            gate.export("/read-only")

    def test_playback_file_written_once_and_removed(self, file_manager, sample_video_bytes):
        gate = ReviewGate(Capture(sample_video_bytes), file_manager)

        path = gate.playback_path()
        assert gate.playback_path() == path
        assert os.path.exists(path)

        gate.release()
        assert not os.path.exists(path)

    def test_release_twice_is_safe(self, file_manager):
        gate = ReviewGate(Capture(b"x"), file_manager)
        gate.release()
        gate.release()
        assert not gate.has_capture

"""Review gate between recording and upload."""

import logging
from typing import Optional

from ..models.capture import Capture
from ..storage.file_manager import FileManager

logger = logging.getLogger(__name__)


class ReviewGate:
    """Holds a finished Capture until it is accepted or discarded.

    Purely local: replay and export touch the filesystem, never the network.
    """

    def __init__(self, capture: Capture, file_manager: FileManager):
        self._capture: Optional[Capture] = capture
        self.file_manager = file_manager
        self._playback_path: Optional[str] = None
        logger.info(f"Review started for {capture.size} byte recording")

    @property
    def has_capture(self) -> bool:
        return self._capture is not None

    @property
    def capture(self) -> Capture:
        if self._capture is None:
            raise RuntimeError("Review gate holds no capture")
        return self._capture

    def accept(self) -> Capture:
        """Hand the capture to the uploader.

        The gate keeps it until ``release`` so a failed upload can be retried.
        """
        logger.info("Recording accepted for upload")
        return self.capture

    def retry(self) -> None:
        """Discard the capture so a fresh recording can be made."""
        logger.info("Recording discarded for retry")
        self.release()

    def export(self, directory: Optional[str] = None) -> str:
        """Save the capture as a local file. Does not consume it."""
        return self.file_manager.save_capture(self.capture, directory)

    def playback_path(self) -> str:
        """Path of a local copy for replay, written on first use."""
        if self._playback_path is None:
            self._playback_path = self.file_manager.write_playback_file(self.capture)
        return self._playback_path

    def release(self) -> None:
        if self._playback_path is not None:
            try:
                self.file_manager.remove_file(self._playback_path)
            except OSError as e:
                logger.warning(f"Could not remove playback file {self._playback_path}: {e}")
            self._playback_path = None
        if self._capture is not None:
            self._capture.release()
            self._capture = None

"""Local file storage for exported and replayed recordings."""

import logging
import shutil
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..models.capture import Capture

logger = logging.getLogger(__name__)


class FileManager:
    """Manages local copies of recordings: user downloads and replay files."""

    def __init__(self, data_dir: str = "./data"):
        """Initialize file manager with data directory.

        Args:
            data_dir: Base directory for all local files
        """
        self.data_dir = Path(data_dir)
        self.downloads_dir = self.data_dir / "downloads"
        self.playback_dir = self.data_dir / "playback"

        self._ensure_directories()

        logger.info(f"FileManager initialized with data_dir: {self.data_dir}")

    def _ensure_directories(self) -> None:
        for directory in [self.data_dir, self.downloads_dir, self.playback_dir]:
            directory.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Ensured directory exists: {directory}")

    def save_capture(self, capture: Capture, directory: Optional[str] = None, filename: Optional[str] = None) -> str:
        """Write a capture as a downloadable file.

        Args:
            capture: Capture to export
            directory: Target directory (defaults to the downloads directory)
            filename: Optional custom filename

        Returns:
            Full path to the written file
        """
        if filename is None:
            timestamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S-%f")
            filename = f"recording-{timestamp}{capture.extension}"

        target_dir = Path(directory) if directory else self.downloads_dir
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / filename

        try:
            with open(path, 'wb') as f:
                f.write(capture.data)
            logger.info(f"Recording saved: {path} ({capture.size} bytes)")
            return str(path)
        except Exception as e:
            logger.error(f"Error saving recording: {e}")
            raise

    def write_playback_file(self, capture: Capture) -> str:
        """Materialise a capture for replay and return its path."""
        timestamp = datetime.now().strftime("%H%M%S_%f")
        return self.save_capture(capture, str(self.playback_dir), f"review_{timestamp}{capture.extension}")

    def remove_file(self, path: str) -> bool:
        """Delete a local file. Returns False if it did not exist."""
        file_path = Path(path)
        if not file_path.exists():
            return False
        file_path.unlink()
        logger.debug(f"Removed local file: {file_path}")
        return True

    def clear_playback(self) -> int:
        """Remove leftover replay files from earlier sessions."""
        count = 0
        for path in self.playback_dir.iterdir():
            if path.is_file():
                path.unlink()
                count += 1
            elif path.is_dir():
                shutil.rmtree(path)
                count += 1
        if count:
            logger.info(f"Cleared {count} leftover playback file(s)")
        return count

"""Uploads an accepted recording and links it to the applicant's record."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Set

from ..errors import SignedUrlError, UploadError, UploadFailed
from ..models.capture import Capture
from ..models.events import ProgressEvent
from ..storage.object_store import ObjectStorage
from ..storage.records import RecordStore

logger = logging.getLogger(__name__)


@dataclass
class UploadResult:
    """Terminal outcome of one upload: either a public URL or an error."""
    success: bool
    public_url: Optional[str] = None
    object_name: Optional[str] = None
    error: Optional[UploadError] = None


class Uploader:
    """Streams a Capture to object storage and attaches it to a record."""

    def __init__(
        self,
        storage: ObjectStorage,
        records: RecordStore,
        field_name: str = "Video Instruction",
        cleanup_delay: float = 1.0,
        on_progress: Optional[Callable[[ProgressEvent], None]] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize uploader.

        Args:
            storage: object storage collaborator
            records: system-of-record collaborator
            field_name: attachment field updated with the public URL
            cleanup_delay: seconds to wait before deleting the temporary object
            on_progress: receives every progress change
            clock: epoch seconds, used for object names
        """
        self.storage = storage
        self.records = records
        self.field_name = field_name
        self.cleanup_delay = cleanup_delay
        self.on_progress = on_progress
        self.clock = clock
        self.progress = 0
        self._cleanup_tasks: Set[asyncio.Task] = set()

    def make_object_name(self, record_id: str, extension: str = ".webm") -> str:
        return f"video-{record_id}-{int(self.clock() * 1000)}{extension}"

    def _report(self, object_name: str, sent: int, total: int, confirmed: bool = False) -> None:
        if confirmed:
            percent = 100
        else:
            percent = min(round(sent / total * 100), 99) if total else 0
        if percent < self.progress:
            return
        changed = percent != self.progress
        self.progress = percent
        if changed or confirmed:
            logger.debug(f"Upload progress {object_name}: {percent}% ({sent}/{total})")
            if self.on_progress:
                self.on_progress(ProgressEvent(object_name, percent, sent, total))

    async def upload(self, capture: Capture, record_id: str) -> UploadResult:
        """Upload ``capture`` and attach its public URL to ``record_id``.

        Never raises for upload failures; the Capture is left untouched so
        the caller may retry.
        """
        object_name = self.make_object_name(record_id, capture.extension)
        total = capture.size
        self.progress = 0
        logger.info(f"Starting upload of {object_name} ({total} bytes)")

        try:
            try:
                signed = await self.storage.create_signed_upload_url(object_name)
            except Exception as e:
                raise SignedUrlError(f"Could not get signed upload URL: {e}", cause=e)

            try:
                await self.storage.upload_to_signed_url(
                    signed,
                    capture.data,
                    capture.mime_type,
                    on_progress=lambda sent, size: self._report(object_name, sent, size),
                )
            except Exception as e:
                raise UploadFailed(f"Transfer of {object_name} failed: {e}", cause=e)
            self._report(object_name, total, total, confirmed=True)

            public_url = self.storage.get_public_url(object_name)
            try:
                await self.records.update_record(record_id, {self.field_name: [{"url": public_url}]})
            except Exception as e:
                self._schedule_cleanup(object_name)
                raise UploadFailed(f"Could not attach video to record {record_id}: {e}", cause=e)
        except UploadError as e:
            logger.error(f"Upload failed ({e.kind}): {e}")
            self.progress = 0
            return UploadResult(success=False, object_name=object_name, error=e)

        logger.info(f"Upload complete: {public_url}")
        self._schedule_cleanup(object_name)
        return UploadResult(success=True, public_url=public_url, object_name=object_name)

    def _schedule_cleanup(self, object_name: str) -> None:
        task = asyncio.get_running_loop().create_task(self._remove_later(object_name))
        self._cleanup_tasks.add(task)
        task.add_done_callback(self._cleanup_tasks.discard)

    async def _remove_later(self, object_name: str) -> None:
        await asyncio.sleep(self.cleanup_delay)
        try:
            await self.storage.remove([object_name])
            logger.info(f"Removed temporary object {object_name}")
        except Exception as e:
            logger.warning(f"Failed to remove temporary object {object_name}: {e}")

    @property
    def pending_cleanups(self) -> int:
        return len(self._cleanup_tasks)

    async def drain(self) -> None:
        """Wait for scheduled cleanups to finish."""
        if self._cleanup_tasks:
            await asyncio.gather(*list(self._cleanup_tasks), return_exceptions=True)

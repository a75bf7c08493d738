"""Capture workflow: instructions -> preview -> recording -> review -> upload."""

import asyncio
import logging
from typing import Callable, Optional

from ..errors import (
    AcquisitionError,
    CaptureError,
    ExportFailed,
    InvalidTransition,
    NoCameraStream,
    PlaybackError,
)
from ..media.devices import DeviceAcquisition
from ..media.preview import PreviewBinder, PreviewSurface
from ..media.recorder import Recorder, RecorderHandle
from ..media.stream import MediaStream
from ..media.timer import RecordingTimer
from ..models.capture import ALLOWED_TRANSITIONS, Capture, CaptureSession, Phase, QualityPreset
from ..models.events import ErrorEvent, PhaseEvent, TimerEvent
from ..storage.file_manager import FileManager
from .publisher import WorkflowPublisher
from .review import ReviewGate
from .uploader import Uploader

logger = logging.getLogger(__name__)


class CaptureWorkflow:
    """Single-session state machine over the capture phases.

    Every public operation converts ``CaptureError`` into the session error
    at its boundary and returns False; nothing user-facing propagates. After
    ``close`` every continuation discards its result.
    """

    def __init__(
        self,
        record_id: str,
        acquisition: DeviceAcquisition,
        surface: PreviewSurface,
        recorder: Recorder,
        uploader: Uploader,
        file_manager: FileManager,
        publisher: Optional[WorkflowPublisher] = None,
        quality: QualityPreset = QualityPreset.STANDARD,
        timer: Optional[RecordingTimer] = None,
        retry_interval: float = 0.1,
    ):
        if not record_id:
            raise ValueError("Missing record_id")

        self.session = CaptureSession(record_id=record_id, quality=quality)
        self.acquisition = acquisition
        self.surface = surface
        self.binder = PreviewBinder(surface, self._on_playback_error, retry_interval=retry_interval)
        self.recorder = recorder
        self.uploader = uploader
        self.file_manager = file_manager
        self.publisher = publisher

        self.timer = timer or RecordingTimer()
        self.timer.on_tick = self._on_timer_tick
        self.timer.on_warning = self._on_timer_warning
        self.timer.on_cap = self._on_timer_cap

        self.review: Optional[ReviewGate] = None
        self._stream: Optional[MediaStream] = None
        self._unbind: Optional[Callable[[], None]] = None
        self._handle: Optional[RecorderHandle] = None
        self._cap_task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()
        self._mounted = True

    # State

    @property
    def phase(self) -> Phase:
        return self.session.phase

    @property
    def error(self) -> Optional[CaptureError]:
        return self.session.error

    @property
    def error_message(self) -> Optional[str]:
        return self.session.error_message

    @property
    def upload_progress(self) -> int:
        return self.uploader.progress

    @property
    def stream(self) -> Optional[MediaStream]:
        return self._stream

    @property
    def capture(self) -> Optional[Capture]:
        if self.review is not None and self.review.has_capture:
            return self.review.capture
        return None

    @property
    def mounted(self) -> bool:
        return self._mounted

    def _transition(self, target: Phase) -> None:
        current = self.session.phase
        if target not in ALLOWED_TRANSITIONS[current]:
            raise InvalidTransition(f"Cannot move from {current.value} to {target.value}")
        self.session.phase = target
        if target is Phase.RECORDING:
            self.session.elapsed_seconds = 0
        logger.info(f"Phase: {current.value} -> {target.value}")
        if self.publisher:
            self.publisher.publish_phase(PhaseEvent(self.session.record_id, current, target))

    def _set_error(self, error: CaptureError) -> None:
        self.session.error = error
        logger.warning(f"{error.kind}: {error}")
        if self.publisher:
            self.publisher.publish_error(ErrorEvent(
                record_id=self.session.record_id,
                kind=error.kind,
                message=error.user_message,
                phase=self.session.phase,
            ))

    def _clear_error(self) -> None:
        self.session.error = None

    # Camera

    async def start_camera(self) -> bool:
        """Acquire the camera and enter the preview phase."""
        async with self._lock:
            if self.phase not in (Phase.INSTRUCTIONS, Phase.CAMERA_PREVIEW):
                logger.warning(f"Cannot start camera during {self.phase.value}")
                return False
            return await self._start_camera()

    async def _start_camera(self) -> bool:
        self._clear_error()
        self._release_stream()
        try:
            stream = await self.acquisition.acquire(self.session.quality)
        except AcquisitionError as e:
            if self._mounted:
                self._set_error(e)
            return False

        if not self._mounted:
            stream.stop()
            return False

        self._stream = stream
        self.session.has_camera_access = True
        self._transition(Phase.CAMERA_PREVIEW)
        self._unbind = self.binder.bind(stream, recording=False)
        return True

    async def change_quality(self, quality: QualityPreset) -> bool:
        """Switch quality; re-acquires the camera when access was already granted."""
        async with self._lock:
            if self.phase in (Phase.RECORDING, Phase.UPLOADING):
                logger.warning(f"Quality cannot change during {self.phase.value}")
                return False
            if quality is self.session.quality:
                return True
            logger.info(f"Quality changed: {self.session.quality.value} -> {quality.value}")
            self.session.quality = quality
            if self.session.has_camera_access and self.phase is Phase.CAMERA_PREVIEW:
                return await self._start_camera()
            return True

    def _release_stream(self) -> None:
        if self._unbind is not None:
            self._unbind()
            self._unbind = None
        if self._stream is not None:
            self._stream.stop()
            self._stream = None

    def _on_playback_error(self, error: PlaybackError) -> None:
        if self._mounted:
            self._set_error(error)

    # Recording

    async def start_recording(self) -> bool:
        async with self._lock:
            if self._stream is None:
                self._set_error(NoCameraStream("Recording requested before camera access"))
                return False
            if self.phase is not Phase.CAMERA_PREVIEW:
                logger.warning(f"Cannot start recording during {self.phase.value}")
                return False

            self._clear_error()
            try:
                handle = await self.recorder.start(self._stream, self.session.quality)
            except CaptureError as e:
                if self._mounted:
                    self._set_error(e)
                return False

            if not self._mounted:
                await self.recorder.stop(handle)
                return False

            self._handle = handle
            self._transition(Phase.RECORDING)
            if self._unbind is not None:
                self._unbind()
            self._unbind = self.binder.bind(self._stream, recording=True)
            self.timer.start()
            return True

    async def stop_recording(self) -> bool:
        async with self._lock:
            if self.phase is not Phase.RECORDING or self._handle is None:
                logger.warning(f"No recording to stop during {self.phase.value}")
                return False

            self.timer.stop()
            handle, self._handle = self._handle, None
            capture = await self.recorder.stop(handle)
            self._release_stream()

            if not self._mounted:
                capture.release()
                return False

            self.review = ReviewGate(capture, self.file_manager)
            self._transition(Phase.REVIEW)
            return True

    def _on_timer_tick(self, elapsed: int) -> None:
        self.session.elapsed_seconds = elapsed
        if self.publisher:
            self.publisher.publish_timer(TimerEvent(elapsed, warning=self.timer.warning))

    def _on_timer_warning(self, elapsed: int) -> None:
        logger.info(f"Recording time warning at {elapsed}s")

    def _on_timer_cap(self, elapsed: int) -> None:
        logger.info(f"Recording limit reached at {elapsed}s, stopping")
        if self.publisher:
            self.publisher.publish_timer(TimerEvent(elapsed, warning=True, capped=True))
        self._cap_task = asyncio.get_running_loop().create_task(self.stop_recording())

    # Review

    async def accept(self) -> bool:
        """Upload the reviewed capture and attach it to the record."""
        async with self._lock:
            if self.phase is not Phase.REVIEW or self.review is None:
                logger.warning(f"Nothing to accept during {self.phase.value}")
                return False

            capture = self.review.accept()
            self._clear_error()
            self._transition(Phase.UPLOADING)
            result = await self.uploader.upload(capture, self.session.record_id)

            if not self._mounted:
                return False

            if result.success:
                self.session.public_url = result.public_url
                self.review.release()
                self.review = None
                self._transition(Phase.SUCCESS)
                return True

            self._set_error(result.error)
            self._transition(Phase.REVIEW)
            return False

    async def retry(self) -> bool:
        """Discard the capture and go back to a fresh camera preview."""
        async with self._lock:
            if self.phase is not Phase.REVIEW:
                logger.warning(f"Nothing to retry during {self.phase.value}")
                return False
            if self.review is not None:
                self.review.retry()
                self.review = None
            self._transition(Phase.CAMERA_PREVIEW)
            return await self._start_camera()

    def export_capture(self, directory: Optional[str] = None) -> Optional[str]:
        """Save the reviewed capture locally without uploading it."""
        if self.phase is not Phase.REVIEW or self.review is None:
            logger.warning(f"Nothing to export during {self.phase.value}")
            return None
        try:
            return self.review.export(directory)
        except OSError as e:
            self._set_error(ExportFailed(str(e), cause=e))
            return None

    async def record_another(self) -> bool:
        async with self._lock:
            if self.phase is not Phase.SUCCESS:
                return False
            self._clear_error()
            self.session.public_url = None
            self._transition(Phase.INSTRUCTIONS)
            return True

    # Teardown

    def close(self) -> None:
        """Stop every track and periodic task immediately."""
        if not self._mounted:
            return
        self._mounted = False
        self.timer.stop()
        if self._cap_task is not None and not self._cap_task.done():
            self._cap_task.cancel()
        self._release_stream()
        self.recorder.cancel()
        self._handle = None
        logger.info(f"Workflow for record {self.session.record_id} closed")

    async def aclose(self) -> None:
        """Close, then flush the recorder, local files and pending cleanups."""
        self.close()
        await self.recorder.abort()
        if self.review is not None:
            self.review.release()
            self.review = None
        await self.uploader.drain()

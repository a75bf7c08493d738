"""Camera and microphone acquisition."""

import asyncio
import errno
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Set

import cv2
import pyaudio

from ..errors import (
    AcquisitionError,
    AcquisitionTimeout,
    AcquisitionUnknown,
    DeviceNotFound,
    PermissionDenied,
    StreamNotActive,
    UnsupportedBrowser,
)
from ..models.capture import QualityPreset
from .stream import LIVE, MediaStream, MediaTrack

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MediaConstraints:
    """Ideal capture hints. Devices may negotiate different values."""
    width: int
    height: int
    frame_rate: int
    audio: bool = True
    video: bool = True

    @classmethod
    def for_preset(cls, preset: QualityPreset) -> "MediaConstraints":
        return cls(width=preset.width, height=preset.height, frame_rate=preset.frame_rate)


class MediaDevicesBackend(ABC):
    """Platform boundary for capture devices."""

    @abstractmethod
    async def get_user_media(self, constraints: MediaConstraints) -> MediaStream:
        """Open the requested devices and return a stream of live tracks.

        Raises:
            AcquisitionError: when the platform refuses or cannot find a device
        """


class DeviceTrack(MediaTrack):
    """A track fed by a shared device source."""

    def __init__(self, kind: str, source: "_SharedSource", max_queue: int):
        super().__init__(kind, label=source.name)
        self._source = source
        self._settings = dict(source.settings)
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue)
        self.dropped = 0
        source.attach(self)

    def _push(self, item: Any) -> None:
        if self.ready_state != LIVE:
            return
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(item)

    def _wake(self) -> None:
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(None)

    def _end(self) -> None:
        super()._end()
        self._wake()

    def _on_stop(self) -> None:
        self._source.detach(self)
        self._wake()

    def get_settings(self) -> Dict[str, Any]:
        return dict(self._settings)

    async def read(self) -> Optional[Any]:
        if self.ready_state != LIVE and self._queue.empty():
            return None
        return await self._queue.get()


class _SharedSource:
    """One open device fanned out to every live track cloned from it.

    The device stays open while at least one track is attached and is closed
    once the in-flight read returns after the last track detaches.
    """

    def __init__(
        self,
        name: str,
        constraints: MediaConstraints,
        settings: Dict[str, Any],
        reader: Callable[[], Optional[Any]],
        closer: Callable[[], None],
        on_closed: Callable[["_SharedSource"], None],
    ):
        self.name = name
        self.constraints = constraints
        self.settings = settings
        self._reader = reader
        self._closer = closer
        self._on_closed = on_closed
        self._tracks: Set[DeviceTrack] = set()
        self._pump_task: Optional[asyncio.Task] = None
        self.retiring = False
        self.closed = asyncio.Event()

    @property
    def in_use(self) -> bool:
        return bool(self._tracks)

    def attach(self, track: DeviceTrack) -> None:
        self._tracks.add(track)
        if self._pump_task is None:
            self._pump_task = asyncio.get_running_loop().create_task(self._pump())

    def detach(self, track: DeviceTrack) -> None:
        self._tracks.discard(track)
        if not self._tracks:
            logger.debug(f"Last track detached from {self.name}")

    async def _pump(self) -> None:
        try:
            while self._tracks:
                item = await asyncio.to_thread(self._reader)
                if item is None:
                    logger.warning(f"{self.name} stopped producing data")
                    for track in list(self._tracks):
                        track._end()
                    break
                for track in list(self._tracks):
                    track._push(item)
        except Exception as e:
            logger.error(f"Error reading from {self.name}: {e}")
            for track in list(self._tracks):
                track._end()
        finally:
            self.retiring = True
            try:
                await asyncio.to_thread(self._closer)
                logger.info(f"Released {self.name}")
            except Exception as e:
                logger.warning(f"Error releasing {self.name}: {e}")
            finally:
                self.closed.set()
                self._on_closed(self)


def _classify_os_error(error: OSError, device: str) -> AcquisitionError:
    if error.errno in (errno.EACCES, errno.EPERM):
        return PermissionDenied(f"Access to {device} was denied: {error}", cause=error)
    return DeviceNotFound(f"{device} is not available: {error}", cause=error)


class OpenCVMediaDevices(MediaDevicesBackend):
    """Camera via OpenCV and microphone via PyAudio."""

    def __init__(
        self,
        camera_index: int = 0,
        audio_device_index: Optional[int] = None,
        sample_rate: int = 48000,
        channels: int = 1,
        chunk_size: int = 960,
    ):
        self.camera_index = camera_index
        self.audio_device_index = audio_device_index
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_size = chunk_size
        self._sources: Dict[str, _SharedSource] = {}

    async def get_user_media(self, constraints: MediaConstraints) -> MediaStream:
        if not cv2.videoio_registry.getCameraBackends():
            raise UnsupportedBrowser("OpenCV was built without camera support")

        tracks = []
        try:
            if constraints.video:
                source = await self._source(f"camera:{self.camera_index}", constraints, self._open_camera)
                tracks.append(DeviceTrack("video", source, max_queue=2))
            if constraints.audio:
                source = await self._source(f"microphone:{self.audio_device_index}", constraints, self._open_microphone)
                tracks.append(DeviceTrack("audio", source, max_queue=256))
        except BaseException:
            for track in tracks:
                track.stop()
            raise
        return MediaStream(tracks)

    async def _source(self, name: str, constraints: MediaConstraints, opener) -> _SharedSource:
        existing = self._sources.get(name)
        if existing is not None:
            if not existing.retiring and (existing.constraints == constraints or existing.in_use):
                if existing.constraints != constraints:
                    logger.warning(f"{name} already open with {existing.constraints}; sharing it")
                return existing
            await existing.closed.wait()

        settings, reader, closer = await asyncio.to_thread(opener, constraints)
        source = _SharedSource(name, constraints, settings, reader, closer, self._forget)
        self._sources[name] = source
        logger.info(f"Opened {name} with settings {settings}")
        return source

    def _forget(self, source: _SharedSource) -> None:
        if self._sources.get(source.name) is source:
            del self._sources[source.name]

    def _open_camera(self, constraints: MediaConstraints):
        capture = cv2.VideoCapture(self.camera_index)
        if not capture.isOpened():
            capture.release()
            raise DeviceNotFound(f"Camera {self.camera_index} could not be opened")

        capture.set(cv2.CAP_PROP_FRAME_WIDTH, constraints.width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, constraints.height)
        capture.set(cv2.CAP_PROP_FPS, constraints.frame_rate)

        ok, _ = capture.read()
        if not ok:
            capture.release()
            raise DeviceNotFound(f"Camera {self.camera_index} returned no frames")

        settings = {
            "width": int(capture.get(cv2.CAP_PROP_FRAME_WIDTH)),
            "height": int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            "frame_rate": capture.get(cv2.CAP_PROP_FPS) or constraints.frame_rate,
            "device_index": self.camera_index,
        }

        def read_frame():
            ok, frame = capture.read()
            return frame if ok else None

        return settings, read_frame, capture.release

    def _open_microphone(self, constraints: MediaConstraints):
        pa = pyaudio.PyAudio()
        try:
            if self.audio_device_index is None:
                pa.get_default_input_device_info()
            stream = pa.open(
                format=pyaudio.paInt16,
                channels=self.channels,
                rate=self.sample_rate,
                input=True,
                input_device_index=self.audio_device_index,
                frames_per_buffer=self.chunk_size,
            )
        except OSError as e:
            pa.terminate()
            raise _classify_os_error(e, "microphone")

        settings = {
            "sample_rate": self.sample_rate,
            "channels": self.channels,
            "chunk_size": self.chunk_size,
        }

        def read_chunk():
            return stream.read(self.chunk_size, exception_on_overflow=False)

        def close():
            stream.stop_stream()
            stream.close()
            pa.terminate()

        return settings, read_chunk, close


def _release_late_stream(task: asyncio.Future) -> None:
    """Stop a stream that arrived after its request timed out."""
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.debug(f"Late capture request failed: {error}")
        return
    logger.info("Capture request resolved after timeout, releasing its tracks")
    task.result().stop()


class DeviceAcquisition:
    """Requests camera+microphone access with a bounded wait."""

    def __init__(self, backend: Optional[MediaDevicesBackend], timeout: float = 10.0):
        self.backend = backend
        self.timeout = timeout

    async def acquire(self, preset: QualityPreset) -> MediaStream:
        """Acquire a live audio+video stream for ``preset``.

        Raises:
            AcquisitionError: one of the typed acquisition failures; any
                partially acquired tracks have already been stopped
        """
        if self.backend is None:
            raise UnsupportedBrowser("No media capture backend is available")

        constraints = MediaConstraints.for_preset(preset)
        logger.info(f"Requesting camera access: {constraints.width}x{constraints.height}@{constraints.frame_rate}")

        request = asyncio.ensure_future(self.backend.get_user_media(constraints))
        try:
            stream = await asyncio.wait_for(asyncio.shield(request), timeout=self.timeout)
        except asyncio.TimeoutError:
            request.add_done_callback(_release_late_stream)
            raise AcquisitionTimeout(f"No response from capture devices within {self.timeout}s")
        except asyncio.CancelledError:
            request.add_done_callback(_release_late_stream)
            raise
        except AcquisitionError:
            raise
        except PermissionError as e:
            raise PermissionDenied(str(e), cause=e)
        except Exception as e:
            logger.error(f"Unexpected camera access error: {e}", exc_info=True)
            raise AcquisitionUnknown(str(e), cause=e)

        video_tracks = stream.get_video_tracks()
        if not video_tracks or video_tracks[0].ready_state != LIVE:
            stream.stop()
            raise StreamNotActive("Camera stream is not active")

        logger.info(f"Camera access granted: {video_tracks[0].get_settings()}")
        return stream

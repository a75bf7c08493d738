"""Recording of a live stream into a compressed container."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from fractions import Fraction
from typing import Callable, List, Optional

import av
import numpy as np
from av.error import FFmpegError

from ..errors import (
    NoCameraStream,
    RecorderUnavailable,
    RecordingError,
    RecordingInProgress,
)
from ..models.capture import Capture, QualityPreset
from ..models.events import SliceEvent
from .devices import DeviceAcquisition
from .stream import MediaStream, MediaTrack

logger = logging.getLogger(__name__)

VIDEO_TIME_BASE = Fraction(1, 1000)


@dataclass(frozen=True)
class EncoderProfile:
    """Codec, container and rate settings for one recording."""
    width: int
    height: int
    frame_rate: int
    video_bitrate: int
    video_codec: str = "libvpx-vp9"
    audio_codec: Optional[str] = "libopus"
    audio_bitrate: int = 128_000
    container_format: str = "webm"
    mime_type: str = "video/webm"

    @classmethod
    def for_preset(cls, preset: QualityPreset, **overrides) -> "EncoderProfile":
        return cls(
            width=preset.width,
            height=preset.height,
            frame_rate=preset.frame_rate,
            video_bitrate=preset.video_bitrate,
            **overrides,
        )


class MediaEncoder(ABC):
    """Encodes a stream and hands out the container bytes in time slices."""

    def __init__(self, profile: EncoderProfile):
        self.profile = profile
        self.mime_type = profile.mime_type

    @abstractmethod
    def start(self, stream: MediaStream, timeslice: float, on_data: Callable[[bytes], None]) -> None:
        """Begin encoding ``stream``; ``on_data`` receives every non-empty slice."""

    @abstractmethod
    async def stop(self) -> None:
        """Flush the encoder and emit the final slice."""

    def cancel(self) -> None:
        """Stop all periodic work at once, discarding anything not yet emitted."""


class _SliceSink:
    """Non-seekable writable collecting muxer output until drained."""

    def __init__(self):
        self._buffer = bytearray()

    def write(self, data) -> int:
        self._buffer.extend(data)
        return len(data)

    def drain(self) -> bytes:
        data = bytes(self._buffer)
        self._buffer.clear()
        return data


class AvMediaEncoder(MediaEncoder):
    """PyAV encoder muxing into an in-memory sink."""

    def __init__(self, profile: EncoderProfile):
        super().__init__(profile)
        try:
            av.codec.Codec(profile.video_codec, "w")
            if profile.audio_codec:
                av.codec.Codec(profile.audio_codec, "w")
        except (FFmpegError, ValueError) as e:
            raise RecorderUnavailable(f"Codec not available: {e}", cause=e)
        if profile.container_format not in av.formats_available:
            raise RecorderUnavailable(f"Container not available: {profile.container_format}")

        self._sink = _SliceSink()
        self._container = None
        self._video = None
        self._audio = None
        self._tasks: List[asyncio.Task] = []
        self._on_data: Optional[Callable[[bytes], None]] = None
        self._running = False
        self._started_at = 0.0

    def start(self, stream: MediaStream, timeslice: float, on_data: Callable[[bytes], None]) -> None:
        video_tracks = stream.get_video_tracks()
        if not video_tracks:
            raise RecordingError("Recording stream has no video track")

        self._on_data = on_data
        self._container = av.open(self._sink, mode="w", format=self.profile.container_format)

        settings = video_tracks[0].get_settings()
        frame_rate = int(round(settings.get("frame_rate") or self.profile.frame_rate))
        self._video = self._container.add_stream(self.profile.video_codec, rate=frame_rate)
        # Frames are stamped with wall-clock milliseconds, not their index
        self._video.time_base = VIDEO_TIME_BASE
        self._video.codec_context.time_base = VIDEO_TIME_BASE
        self._video.width = int(settings.get("width", self.profile.width)) // 2 * 2
        self._video.height = int(settings.get("height", self.profile.height)) // 2 * 2
        self._video.pix_fmt = "yuv420p"
        self._video.codec_context.bit_rate = self.profile.video_bitrate

        audio_tracks = stream.get_audio_tracks()
        if self.profile.audio_codec and audio_tracks:
            audio_settings = audio_tracks[0].get_settings()
            self._audio = self._container.add_stream(
                self.profile.audio_codec, rate=int(audio_settings.get("sample_rate", 48000))
            )
            self._audio.codec_context.layout = "stereo" if audio_settings.get("channels", 1) == 2 else "mono"
            self._audio.codec_context.bit_rate = self.profile.audio_bitrate

        self._running = True
        self._started_at = time.monotonic()
        loop = asyncio.get_running_loop()
        self._tasks = [
            loop.create_task(self._encode_video(video_tracks[0])),
            loop.create_task(self._slice(timeslice)),
        ]
        if self._audio is not None:
            self._tasks.append(loop.create_task(self._encode_audio(audio_tracks[0])))
        logger.info(
            f"Encoder started: {self.profile.video_codec} {self._video.width}x{self._video.height}"
            f"@{frame_rate} {self.profile.video_bitrate} bps"
        )

    def _mux(self, packets) -> None:
        for packet in packets:
            self._container.mux(packet)

    async def _encode_video(self, track: MediaTrack) -> None:
        last_pts = -1
        while self._running:
            array = await track.read()
            if array is None:
                break
            pts = round((time.monotonic() - self._started_at) / VIDEO_TIME_BASE)
            if pts <= last_pts:
                continue
            frame = av.VideoFrame.from_ndarray(array, format="bgr24")
            frame = frame.reformat(width=self._video.width, height=self._video.height, format="yuv420p")
            frame.pts = pts
            frame.time_base = VIDEO_TIME_BASE
            last_pts = pts
            self._mux(self._video.encode(frame))

    async def _encode_audio(self, track: MediaTrack) -> None:
        settings = track.get_settings()
        sample_rate = int(settings.get("sample_rate", 48000))
        channels = int(settings.get("channels", 1))
        layout = "stereo" if channels == 2 else "mono"
        pts = 0
        while self._running:
            chunk = await track.read()
            if chunk is None:
                break
            samples = np.frombuffer(chunk, dtype=np.int16).reshape(1, -1)
            frame = av.AudioFrame.from_ndarray(samples, format="s16", layout=layout)
            frame.sample_rate = sample_rate
            frame.pts = pts
            frame.time_base = Fraction(1, sample_rate)
            pts += samples.shape[1] // channels
            self._mux(self._audio.encode(frame))

    async def _slice(self, timeslice: float) -> None:
        while self._running:
            await asyncio.sleep(timeslice)
            self._emit()

    def _emit(self) -> None:
        data = self._sink.drain()
        if data:
            self._on_data(data)

    async def stop(self) -> None:
        self._running = False
        for task in self._tasks:
            task.cancel()
        results = await asyncio.gather(*self._tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error(f"Encoder task failed: {result}")
        self._tasks = []

        if self._container is None:
            return
        try:
            self._mux(self._video.encode())
            if self._audio is not None:
                self._mux(self._audio.encode())
        finally:
            self._container.close()
            self._container = None
        self._emit()
        logger.info("Encoder stopped")

    def cancel(self) -> None:
        self._running = False
        for task in self._tasks:
            task.cancel()
        self._tasks = []
        if self._container is not None:
            try:
                self._container.close()
            except FFmpegError as e:
                logger.warning(f"Error closing cancelled encoder: {e}")
            self._container = None
        self._sink.drain()
        logger.info("Encoder cancelled")


class RecorderHandle:
    """One active recording: its encoder, its private stream and its slices."""

    def __init__(
        self,
        encoder: MediaEncoder,
        stream: MediaStream,
        preset: QualityPreset,
        on_slice: Optional[Callable[[SliceEvent], None]] = None,
    ):
        self.encoder = encoder
        self.stream = stream
        self.preset = preset
        self.on_slice = on_slice
        self.slices: List[bytes] = []
        self.started_at = time.time()
        self.stopped = False

    def _on_data(self, data: bytes) -> None:
        if self.stopped or not data:
            return
        self.slices.append(data)
        if self.on_slice:
            self.on_slice(SliceEvent(
                sequence_number=len(self.slices),
                size=len(data),
                timestamp=time.time(),
                mime_type=self.encoder.mime_type,
            ))

    @property
    def bytes_recorded(self) -> int:
        return sum(len(s) for s in self.slices)

    @property
    def duration_seconds(self) -> float:
        return time.time() - self.started_at


class Recorder:
    """Records a live stream through an independent second capture."""

    def __init__(
        self,
        acquisition: DeviceAcquisition,
        encoder_factory: Callable[[EncoderProfile], MediaEncoder] = AvMediaEncoder,
        timeslice: float = 0.1,
        on_slice: Optional[Callable[[SliceEvent], None]] = None,
        **profile_overrides,
    ):
        self.acquisition = acquisition
        self.encoder_factory = encoder_factory
        self.timeslice = timeslice
        self.on_slice = on_slice
        self.profile_overrides = profile_overrides
        self.active: Optional[RecorderHandle] = None

    async def start(self, stream: Optional[MediaStream], preset: QualityPreset) -> RecorderHandle:
        """Start recording.

        Args:
            stream: the live preview stream; proves camera access was granted
            preset: quality preset for the recording capture and bitrate

        Raises:
            NoCameraStream: no live stream was acquired beforehand
            RecordingInProgress: another recording is active
            RecorderUnavailable: the encoder cannot be constructed
            AcquisitionError: the second capture could not be acquired
        """
        if stream is None or not stream.active:
            raise NoCameraStream("Recording requires a live camera stream")
        if self.active is not None:
            raise RecordingInProgress("Recorder already has an active recording")

        encoder = self.encoder_factory(EncoderProfile.for_preset(preset, **self.profile_overrides))

        recording_stream = await self.acquisition.acquire(preset)
        handle = RecorderHandle(encoder, recording_stream, preset, self.on_slice)
        try:
            encoder.start(recording_stream, self.timeslice, handle._on_data)
        except RecordingError:
            recording_stream.stop()
            raise
        except Exception as e:
            recording_stream.stop()
            raise RecordingError(f"Encoder failed to start: {e}", cause=e)

        self.active = handle
        logger.info(f"Recording started ({preset.value}, timeslice {self.timeslice * 1000:.0f}ms)")
        return handle

    async def stop(self, handle: RecorderHandle) -> Capture:
        """Stop ``handle`` and assemble its slices into one Capture."""
        try:
            await handle.encoder.stop()
        except Exception as e:
            logger.error(f"Error flushing encoder: {e}")
        finally:
            handle.stopped = True
            handle.stream.stop()
            if self.active is handle:
                self.active = None

        capture = Capture.from_slices(handle.slices, mime_type=handle.encoder.mime_type)
        logger.info(
            f"Recording stopped: {capture.slice_count} slices, {capture.size} bytes, "
            f"{handle.duration_seconds:.1f}s"
        )
        return capture

    def cancel(self) -> None:
        """Synchronously tear down the active recording, dropping its slices."""
        handle = self.active
        if handle is None:
            return
        self.active = None
        handle.stopped = True
        try:
            handle.encoder.cancel()
        finally:
            handle.stream.stop()
        logger.info("Active recording cancelled")

    async def abort(self) -> None:
        """Discard the active recording without producing a Capture."""
        handle = self.active
        if handle is None:
            return
        await self.stop(handle)
        logger.info("Active recording discarded")

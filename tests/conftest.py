"""Pytest configuration and fixtures for IntroCam tests."""

import asyncio
import logging
import tempfile
from typing import Any, Dict, List, Optional

import numpy as np
import pytest

from introcam.errors import PlaybackError, StorageError
from introcam.media.devices import MediaConstraints, MediaDevicesBackend
from introcam.media.preview import PreviewSurface
from introcam.media.recorder import EncoderProfile, MediaEncoder
from introcam.media.stream import MediaStream, MediaTrack
from introcam.storage.object_store import ObjectStorage, SignedUpload
from introcam.storage.records import RecordStore


# Configure logging for tests
logging.basicConfig(level=logging.INFO)


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without devices or network")
    config.addinivalue_line("markers", "integration: multi-component tests with fakes")
    config.addinivalue_line("markers", "hardware: requires a real camera and microphone")


class FakeTrack(MediaTrack):
    """Track producing a constant frame until stopped."""

    def __init__(self, kind: str, settings: Optional[Dict[str, Any]] = None):
        super().__init__(kind, label=f"fake-{kind}")
        self.settings = settings or (
            {"width": 64, "height": 48, "frame_rate": 30} if kind == "video"
            else {"sample_rate": 48000, "channels": 1}
        )
        self.stop_calls = 0

    def _on_stop(self) -> None:
        self.stop_calls += 1

    def get_settings(self) -> Dict[str, Any]:
        return dict(self.settings)

    async def read(self) -> Optional[Any]:
        await asyncio.sleep(0.001)
        if self.ready_state != "live":
            return None
        if self.kind == "video":
            return np.zeros((self.settings["height"], self.settings["width"], 3), dtype=np.uint8)
        return b"\x00\x00" * 960


def make_stream(video: bool = True, audio: bool = True) -> MediaStream:
    tracks = []
    if video:
        tracks.append(FakeTrack("video"))
    if audio:
        tracks.append(FakeTrack("audio"))
    return MediaStream(tracks)


class FakeBackend(MediaDevicesBackend):
    """Scriptable capture backend.

    ``errors`` is consumed one per request; ``delay`` postpones every answer.
    """

    def __init__(self):
        self.requests: List[MediaConstraints] = []
        self.streams: List[MediaStream] = []
        self.errors: List[BaseException] = []
        self.delay = 0.0
        self.dead_video = False

    async def get_user_media(self, constraints: MediaConstraints) -> MediaStream:
        self.requests.append(constraints)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.errors:
            raise self.errors.pop(0)
        stream = make_stream()
        if self.dead_video:
            stream.get_video_tracks()[0]._end()
        self.streams.append(stream)
        return stream


class FakeSurface(PreviewSurface):
    """Preview surface that records calls and can be told to fail ``play``."""

    def __init__(self, ready: bool = True):
        super().__init__()
        self._ready = ready
        self.play_calls = 0
        self.fail_plays = 0
        self.src_assignments = 0

    @property
    def ready(self) -> bool:
        return self._ready

    def _on_src_changed(self, stream: Optional[MediaStream]) -> None:
        self.src_assignments += 1

    async def play(self) -> None:
        self.play_calls += 1
        if self.fail_plays:
            self.fail_plays -= 1
            raise PlaybackError("play rejected")
        self.paused = False
        self._emit("play")

    def pause(self) -> None:
        self.paused = True
        self._emit("pause")

    async def next_frame(self) -> None:
        await asyncio.sleep(0.005)


class FakeEncoder(MediaEncoder):
    """Encoder that emits scripted slices."""

    def __init__(self, profile: EncoderProfile, final_slice: bytes = b"tail"):
        super().__init__(profile)
        self.final_slice = final_slice
        self.stream: Optional[MediaStream] = None
        self.timeslice: Optional[float] = None
        self._on_data = None
        self.stopped = False
        self.cancelled = False

    def start(self, stream, timeslice, on_data) -> None:
        self.stream = stream
        self.timeslice = timeslice
        self._on_data = on_data

    def emit(self, data: bytes) -> None:
        self._on_data(data)

    async def stop(self) -> None:
        self.stopped = True
        if self.final_slice:
            self._on_data(self.final_slice)

    def cancel(self) -> None:
        self.cancelled = True


class EncoderFactory:
    """Callable encoder factory remembering every encoder it built."""

    def __init__(self):
        self.encoders: List[FakeEncoder] = []
        self.error: Optional[Exception] = None

    def __call__(self, profile: EncoderProfile) -> FakeEncoder:
        if self.error is not None:
            raise self.error
        encoder = FakeEncoder(profile)
        self.encoders.append(encoder)
        return encoder


class FakeStorage(ObjectStorage):
    """In-memory object storage."""

    def __init__(self, chunk_size: int = 1000):
        self.chunk_size = chunk_size
        self.objects: Dict[str, bytes] = {}
        self.removed: List[str] = []
        self.fail_sign = False
        self.fail_upload = False
        self.fail_remove = False

    async def create_signed_upload_url(self, object_name: str) -> SignedUpload:
        if self.fail_sign:
            raise StorageError("sign refused", status=400)
        return SignedUpload(signed_url=f"memory://{object_name}?token=t", path=object_name, token="t")

    async def upload_to_signed_url(self, signed, data, content_type, on_progress=None) -> None:
        total = len(data)
        sent = 0
        for offset in range(0, total, self.chunk_size):
            await asyncio.sleep(0)
            sent += len(data[offset:offset + self.chunk_size])
            if on_progress:
                on_progress(sent, total)
        if self.fail_upload:
            raise StorageError("upload rejected", status=500)
        self.objects[signed.path] = bytes(data)

    def get_public_url(self, object_name: str) -> str:
        return f"https://storage.test/video/{object_name}"

    async def remove(self, object_names: List[str]) -> None:
        if self.fail_remove:
            raise StorageError("remove failed", status=500)
        for name in object_names:
            self.objects.pop(name, None)
            self.removed.append(name)


class FakeRecords(RecordStore):
    def __init__(self):
        self.updates: List[tuple] = []
        self.fail = False

    async def update_record(self, record_id, fields):
        if self.fail:
            raise StorageError("record update failed", status=422)
        self.updates.append((record_id, fields))
        return {"id": record_id, "fields": fields}


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def fake_surface():
    return FakeSurface()


@pytest.fixture
def stream_factory():
    """Factory building live fake streams."""
    return make_stream


@pytest.fixture
def encoder_factory():
    return EncoderFactory()


@pytest.fixture
def fake_storage():
    return FakeStorage()


@pytest.fixture
def fake_records():
    return FakeRecords()


@pytest.fixture
def sample_video_bytes():
    """Bytes standing in for an encoded recording."""
    return bytes(range(256)) * 40

"""Live preview surfaces and the binder that keeps them playing."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Set

import cv2

from ..errors import PlaybackError, PlaybackFailed, StreamDisconnected
from .stream import MediaStream

logger = logging.getLogger(__name__)

SURFACE_EVENTS = ("play", "pause", "error", "canplay")


class PreviewSurface(ABC):
    """A visual surface a stream can be attached to.

    Listeners registered with ``on`` are called synchronously, in registration
    order, for the events in ``SURFACE_EVENTS``.
    """

    def __init__(self):
        self._listeners: Dict[str, List[Callable[..., None]]] = {e: [] for e in SURFACE_EVENTS}
        self._src: Optional[MediaStream] = None
        self.paused = True

    @property
    def src(self) -> Optional[MediaStream]:
        return self._src

    @src.setter
    def src(self, stream: Optional[MediaStream]) -> None:
        self._src = stream
        self._on_src_changed(stream)

    def on(self, event: str, listener: Callable[..., None]) -> None:
        self._listeners[event].append(listener)

    def off(self, event: str, listener: Callable[..., None]) -> None:
        if listener in self._listeners[event]:
            self._listeners[event].remove(listener)

    def listener_count(self, event: Optional[str] = None) -> int:
        if event is not None:
            return len(self._listeners[event])
        return sum(len(listeners) for listeners in self._listeners.values())

    def _emit(self, event: str, *args: Any) -> None:
        for listener in list(self._listeners[event]):
            listener(*args)

    def _on_src_changed(self, stream: Optional[MediaStream]) -> None:
        """Hook for subclasses; called after ``src`` is assigned."""

    @property
    @abstractmethod
    def ready(self) -> bool:
        """True once the surface has a frame it can present."""

    @abstractmethod
    async def play(self) -> None:
        """Start or resume presenting frames. Raises on failure."""

    @abstractmethod
    def pause(self) -> None:
        """Stop presenting frames."""

    @abstractmethod
    async def next_frame(self) -> None:
        """Wait until the surface's next display refresh."""


class OpenCVPreviewSurface(PreviewSurface):
    """Mirrored preview in an OpenCV window."""

    def __init__(self, window_name: str = "IntroCam", refresh_rate: float = 60.0, mirror: bool = True):
        super().__init__()
        self.window_name = window_name
        self.refresh_rate = refresh_rate
        self.mirror = mirror
        self._frame = None
        self._render_task: Optional[asyncio.Task] = None
        self._window_open = False

    @property
    def ready(self) -> bool:
        return self._frame is not None

    def _on_src_changed(self, stream: Optional[MediaStream]) -> None:
        self._stop_render()
        self._frame = None

    async def play(self) -> None:
        if self.src is None or not self.src.active:
            raise PlaybackError("No active stream attached to the preview")
        if self._render_task is None or self._render_task.done():
            self._render_task = asyncio.get_running_loop().create_task(self._render(self.src))
        self.paused = False
        self._emit("play")

    def pause(self) -> None:
        if self.paused:
            return
        self.paused = True
        self._emit("pause")

    async def next_frame(self) -> None:
        await asyncio.sleep(1.0 / self.refresh_rate)

    async def _render(self, stream: MediaStream) -> None:
        video_tracks = stream.get_video_tracks()
        if not video_tracks:
            self._emit("error", "stream has no video track")
            return
        track = video_tracks[0]
        first = True
        while True:
            frame = await track.read()
            if frame is None:
                logger.info("Preview track ended")
                self.pause()
                return
            self._frame = frame
            if first:
                first = False
                self._emit("canplay")
            if not self.paused:
                self._show(frame)

    def _show(self, frame) -> None:
        image = cv2.flip(frame, 1) if self.mirror else frame
        cv2.imshow(self.window_name, image)
        self._window_open = True
        cv2.waitKey(1)
        if cv2.getWindowProperty(self.window_name, cv2.WND_PROP_VISIBLE) < 1:
            # Window closed by the user
            self._window_open = False
            self.pause()

    async def replay(self, path: str, frame_rate: float = 30.0) -> None:
        """Play a recorded file in the preview window."""
        self._stop_render()
        capture = await asyncio.to_thread(cv2.VideoCapture, path)
        try:
            delay = 1.0 / (capture.get(cv2.CAP_PROP_FPS) or frame_rate)
            while True:
                ok, frame = await asyncio.to_thread(capture.read)
                if not ok:
                    break
                cv2.imshow(self.window_name, frame)
                self._window_open = True
                cv2.waitKey(1)
                await asyncio.sleep(delay)
        finally:
            capture.release()

    def _stop_render(self) -> None:
        if self._render_task is not None and not self._render_task.done():
            self._render_task.cancel()
        self._render_task = None

    def close(self) -> None:
        self._stop_render()
        self.paused = True
        if self._window_open:
            cv2.destroyWindow(self.window_name)
            self._window_open = False


class _PreviewBinding:
    """Listener and monitor state for one stream bound to one surface."""

    def __init__(
        self,
        surface: PreviewSurface,
        stream: MediaStream,
        recording: bool,
        on_error: Callable[[PlaybackError], None],
        retry_interval: float,
        clock: Callable[[], float],
    ):
        self.surface = surface
        self.stream = stream
        self.recording = recording
        self.on_error = on_error
        self.retry_interval = retry_interval
        self.clock = clock
        self.recoveries = 0
        self._last_play_attempt = float("-inf")
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False
        self._halted = False
        self._handlers = {
            "play": self._handle_play,
            "pause": self._handle_pause,
            "error": self._handle_error,
            "canplay": self._handle_canplay,
        }

    @property
    def inactive(self) -> bool:
        return self._closed or self._halted

    def start(self) -> None:
        if self.surface.src is not self.stream:
            self.surface.src = self.stream
            logger.info(f"Preview surface bound to stream {self.stream.id[:8]}")
        for event, handler in self._handlers.items():
            self.surface.on(event, handler)
        self._spawn(self._start_playback())
        if self.recording:
            self._spawn(self._monitor())

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for task in list(self._tasks):
            task.cancel()
        for event, handler in self._handlers.items():
            self.surface.off(event, handler)
        logger.debug(f"Preview binding for stream {self.stream.id[:8]} released")

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Preview task failed: {task.exception()}")

    def _fail(self, error: PlaybackError) -> None:
        if self.inactive:
            return
        self._halted = True
        logger.error(f"Preview failure: {error}")
        self.on_error(error)

    async def _start_playback(self) -> None:
        if self.inactive or not self.surface.paused:
            return
        try:
            await self.surface.play()
        except Exception as e:
            logger.warning(f"Initial preview playback failed: {e}")
            await self._recover()

    async def _ensure_playing(self) -> None:
        if self.inactive or not self.surface.paused:
            return
        now = self.clock()
        if now - self._last_play_attempt < self.retry_interval:
            return
        self._last_play_attempt = now

        if not self.stream.active:
            self._fail(StreamDisconnected("Preview stream is no longer active"))
            return
        if not self.surface.ready:
            logger.debug("Surface not ready, waiting")
            return

        try:
            await self.surface.play()
            logger.debug("Preview playback maintained")
        except Exception as e:
            logger.warning(f"Failed to maintain preview playback: {e}")
            await self._recover()

    async def _recover(self) -> None:
        """Single recovery attempt: rebind and replay."""
        if self.inactive:
            return
        self.recoveries += 1
        if not self.stream.active:
            self._fail(StreamDisconnected("Preview stream is no longer active"))
            return
        self.surface.src = self.stream
        try:
            await self.surface.play()
            logger.info("Preview playback recovered")
        except Exception as e:
            self._fail(PlaybackFailed(f"Preview recovery failed: {e}", cause=e))

    async def _monitor(self) -> None:
        while not self.inactive:
            await self._ensure_playing()
            await self.surface.next_frame()

    def _handle_play(self, *args: Any) -> None:
        logger.debug("Preview surface playing")

    def _handle_pause(self, *args: Any) -> None:
        if self.inactive:
            return
        if not self.recording:
            logger.debug("Preview surface paused")
            return
        logger.info("Pause during recording suppressed, recovering playback")
        self._spawn(self._recover())

    def _handle_error(self, *args: Any) -> None:
        detail = args[0] if args else "surface error"
        self._fail(PlaybackFailed(f"Preview surface error: {detail}"))

    def _handle_canplay(self, *args: Any) -> None:
        if self.recording and not self.inactive:
            self._spawn(self._ensure_playing())


class PreviewBinder:
    """Keeps a surface rendering a live stream during preview and recording."""

    def __init__(
        self,
        surface: PreviewSurface,
        on_error: Callable[[PlaybackError], None],
        retry_interval: float = 0.1,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.surface = surface
        self.on_error = on_error
        self.retry_interval = retry_interval
        self.clock = clock

    def bind(self, stream: MediaStream, recording: bool = False) -> Callable[[], None]:
        """Bind ``stream`` to the surface.

        Must be called from a running event loop. Returns the cleanup function
        that cancels monitoring and removes every listener.
        """
        binding = _PreviewBinding(
            self.surface, stream, recording, self.on_error, self.retry_interval, self.clock
        )
        binding.start()
        return binding.close

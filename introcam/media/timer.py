"""Recording timer with a warning threshold and a hard cap."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class RecordingTimer:
    """Counts whole seconds while a recording runs.

    ``on_tick`` is called once per elapsed second, ``on_warning`` once when
    the warning threshold is reached and ``on_cap`` exactly once when the cap
    is reached, after which the timer stops ticking. The callbacks run inside
    the timer task and must not await the timer itself.
    """

    def __init__(
        self,
        on_tick: Optional[Callable[[int], None]] = None,
        on_warning: Optional[Callable[[int], None]] = None,
        on_cap: Optional[Callable[[int], None]] = None,
        warning_seconds: int = 90,
        max_seconds: int = 120,
        interval: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.on_tick = on_tick
        self.on_warning = on_warning
        self.on_cap = on_cap
        self.warning_seconds = warning_seconds
        self.max_seconds = max_seconds
        self.interval = interval
        self._sleep = sleep
        self.elapsed = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def warning(self) -> bool:
        return self.elapsed >= self.warning_seconds

    def start(self) -> None:
        if self.running:
            logger.warning("Recording timer already running")
            return
        self.elapsed = 0
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        """Cancel ticking and reset to zero."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self.elapsed = 0

    async def wait(self) -> None:
        """Wait for the timer task to finish (cap reached or stopped)."""
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def _run(self) -> None:
        while True:
            await self._sleep(self.interval)
            self.elapsed += 1
            if self.on_tick:
                self.on_tick(self.elapsed)
            if self.elapsed == self.warning_seconds:
                logger.info(f"Recording reached {self.elapsed}s warning threshold")
                if self.on_warning:
                    self.on_warning(self.elapsed)
            if self.elapsed >= self.max_seconds:
                logger.info(f"Recording reached {self.max_seconds}s limit")
                if self.on_cap:
                    self.on_cap(self.elapsed)
                return

    @staticmethod
    def format(seconds: int) -> str:
        """Format as m:ss."""
        return f"{seconds // 60}:{seconds % 60:02d}"

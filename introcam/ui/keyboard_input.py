"""Single-key terminal input for the capture screen."""

import sys
import threading
from typing import Optional, Callable
import logging

logger = logging.getLogger(__name__)

ESC = "\x1b"
CTRL_C = "\x03"


class KeyboardInputHandler:
    """Reads single keypresses on a background thread.

    The callback runs on the input thread; it returns False to stop reading.
    """

    def __init__(self, callback: Callable[[str], bool], poll_interval: float = 0.1):
        """Initialize keyboard handler.

        Args:
            callback: Function that takes a key and returns True to continue, False to quit
            poll_interval: Seconds to wait for input before re-checking ``running``
        """
        self.callback = callback
        self.poll_interval = poll_interval
        self.running = False
        self.thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self.running:
            return

        self.running = True
        self.thread = threading.Thread(target=self._input_loop, daemon=True)
        self.thread.start()
        logger.info("Keyboard input handler started")

    def stop(self) -> None:
        self.running = False
        if self.thread and self.thread is not threading.current_thread():
            self.thread.join(timeout=1.0)
        logger.info("Keyboard input handler stopped")

    def _input_loop(self) -> None:
        while self.running:
            try:
                key = self._get_key()
            except Exception as e:
                logger.error(f"Error reading key: {e}")
                break
            if key is None:
                continue
            logger.debug(f"Key pressed: {key!r}")
            if not self.callback(key):
                break
        self.running = False
        logger.info("Keyboard input loop ended")

    def _get_key(self) -> Optional[str]:
        if sys.platform == "win32":
            return self._get_key_windows()
        return self._get_key_unix()

    def _get_key_windows(self) -> Optional[str]:
        import msvcrt
        import time

        if msvcrt.kbhit():
            return msvcrt.getwch().lower()
        time.sleep(self.poll_interval)
        return None

    def _get_key_unix(self) -> Optional[str]:
        import select
        import termios
        import tty

        if not select.select([sys.stdin], [], [], self.poll_interval)[0]:
            return None
        old_settings = termios.tcgetattr(sys.stdin)
        try:
            # Raw mode delivers Ctrl-C as a key instead of SIGINT
            tty.setraw(sys.stdin.fileno())
            return sys.stdin.read(1).lower()
        finally:
            termios.tcsetattr(sys.stdin, termios.TCSADRAIN, old_settings)

"""Terminal user interface for IntroCam."""

from .capture_screen import CaptureScreen
from .keyboard_input import KeyboardInputHandler

__all__ = ["CaptureScreen", "KeyboardInputHandler"]

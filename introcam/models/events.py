"""Event models published on the workflow's pub/sub topics."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .capture import Phase


@dataclass
class PhaseEvent:
    """Workflow phase change."""
    record_id: str
    previous: Phase
    current: Phase
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class ErrorEvent:
    """A user-facing error surfaced by the workflow."""
    record_id: str
    kind: str
    message: str
    phase: Phase
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class ProgressEvent:
    """Upload progress in whole percent."""
    object_name: str
    percent: int
    bytes_sent: int
    total_bytes: int


@dataclass
class TimerEvent:
    """Recording timer tick."""
    elapsed_seconds: int
    warning: bool = False
    capped: bool = False


@dataclass
class SliceEvent:
    """A chunk of encoded data emitted by the recorder."""
    sequence_number: int
    size: int
    timestamp: float
    final: bool = False
    mime_type: Optional[str] = None

"""Publishers for workflow and recorder events (pypubsub)."""

import logging
from typing import Callable

from pubsub import pub

from ..models.events import ErrorEvent, PhaseEvent, ProgressEvent, SliceEvent, TimerEvent

logger = logging.getLogger(__name__)


class WorkflowPublisher:
    """Publishes workflow events on ``<prefix>.phase|error|progress|timer``."""

    def __init__(self, prefix: str = "workflow"):
        self.prefix = prefix
        self.phase_topic = f"{prefix}.phase"
        self.error_topic = f"{prefix}.error"
        self.progress_topic = f"{prefix}.progress"
        self.timer_topic = f"{prefix}.timer"
        logger.info(f"WorkflowPublisher initialized with prefix: {prefix}")

    def publish_phase(self, event: PhaseEvent) -> None:
        pub.sendMessage(self.phase_topic, event=event)
        logger.debug(f"Published phase: {event.previous.value} -> {event.current.value}")

    def publish_error(self, event: ErrorEvent) -> None:
        pub.sendMessage(self.error_topic, event=event)
        logger.debug(f"Published error: {event.kind}")

    def publish_progress(self, event: ProgressEvent) -> None:
        pub.sendMessage(self.progress_topic, event=event)

    def publish_timer(self, event: TimerEvent) -> None:
        pub.sendMessage(self.timer_topic, event=event)


class SlicePublisher:
    """Publishes recorder slice events."""

    def __init__(self, topic: str = "recorder.slice"):
        self.topic = topic
        logger.info(f"SlicePublisher initialized with topic: {topic}")

    def publish_slice_event(self, event: SliceEvent) -> None:
        pub.sendMessage(self.topic, event=event)

    def get_callback(self) -> Callable[[SliceEvent], None]:
        """Callback for the Recorder's ``on_slice``."""
        return self.publish_slice_event

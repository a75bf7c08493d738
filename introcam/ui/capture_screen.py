"""Console status screen for the capture workflow."""

import logging
from typing import Optional

from pubsub import pub
from rich.console import Console
from rich.panel import Panel
from rich.progress_bar import ProgressBar
from rich.table import Table

from ..media.timer import RecordingTimer
from ..models.capture import Phase
from ..models.events import ErrorEvent, PhaseEvent, ProgressEvent, TimerEvent
from ..services.workflow import CaptureWorkflow

logger = logging.getLogger(__name__)

BEST_PRACTICES = [
    "Find a quiet, well-lit location",
    "Position yourself in the center of the frame",
    "Look directly at the camera",
    "Speak clearly and at a moderate pace",
    "Keep your video to 2 minutes or less",
]

COMMANDS = {
    Phase.INSTRUCTIONS: [("c", "Start camera"), ("q/h", "Standard / high quality")],
    Phase.CAMERA_PREVIEW: [("r", "Start recording"), ("c", "Restart camera"), ("q/h", "Standard / high quality")],
    Phase.RECORDING: [("s", "Stop recording")],
    Phase.REVIEW: [("a", "Accept & upload"), ("x", "Record again"), ("d", "Download")],
    Phase.UPLOADING: [],
    Phase.SUCCESS: [("n", "Record another video")],
}


class CaptureScreen:
    """Redraws the workflow status whenever a workflow event is published."""

    def __init__(self, workflow: CaptureWorkflow, prefix: str = "workflow", console: Optional[Console] = None):
        self.workflow = workflow
        self.prefix = prefix
        self.console = console or Console()
        self.elapsed = 0
        self.warning = False
        self.progress = 0
        self.notice: Optional[str] = None
        self._subscribed = False

    def subscribe(self) -> None:
        pub.subscribe(self._on_phase, f"{self.prefix}.phase")
        pub.subscribe(self._on_error, f"{self.prefix}.error")
        pub.subscribe(self._on_progress, f"{self.prefix}.progress")
        pub.subscribe(self._on_timer, f"{self.prefix}.timer")
        self._subscribed = True
        logger.info(f"CaptureScreen subscribed to {self.prefix}.*")

    def unsubscribe(self) -> None:
        if not self._subscribed:
            return
        try:
            pub.unsubscribe(self._on_phase, f"{self.prefix}.phase")
            pub.unsubscribe(self._on_error, f"{self.prefix}.error")
            pub.unsubscribe(self._on_progress, f"{self.prefix}.progress")
            pub.unsubscribe(self._on_timer, f"{self.prefix}.timer")
        except Exception as e:
            logger.warning(f"Error during unsubscribe: {e}")
        self._subscribed = False

    def _on_phase(self, event: PhaseEvent) -> None:
        if event.current is Phase.RECORDING:
            self.elapsed = 0
            self.warning = False
        if event.current is Phase.UPLOADING:
            self.progress = 0
        self.notice = None
        self.render()

    def _on_error(self, event: ErrorEvent) -> None:
        self.render()

    def _on_progress(self, event: ProgressEvent) -> None:
        self.progress = event.percent
        self.render()

    def _on_timer(self, event: TimerEvent) -> None:
        self.elapsed = event.elapsed_seconds
        self.warning = event.warning
        if event.capped:
            self.notice = "Maximum recording length reached."
        self.render()

    def show_notice(self, message: str) -> None:
        self.notice = message
        self.render()

    def render(self) -> None:
        phase = self.workflow.phase
        self.console.clear()
        self.console.print("🎥  IntroCam - Video Introduction", style="bold blue")
        self.console.print(f"Record: {self.workflow.session.record_id}   "
                           f"Quality: {self.workflow.session.quality.value}")
        self.console.print()
        self.console.print(self._body(phase))

        if self.workflow.error_message:
            self.console.print(f"❌ {self.workflow.error_message}", style="bold red")
        if self.notice:
            self.console.print(self.notice, style="yellow")

        commands = Table.grid(padding=(0, 2))
        for key, label in COMMANDS[phase] + [("esc", "Quit")]:
            commands.add_row(f"[bold]{key}[/bold]", label)
        self.console.print(Panel(commands, title="Commands", expand=False))

    def _body(self, phase: Phase):
        if phase is Phase.INSTRUCTIONS:
            practices = "\n".join(f"  • {p}" for p in BEST_PRACTICES)
            return Panel(practices, title="Before You Record", expand=False)

        if phase is Phase.CAMERA_PREVIEW:
            return Panel("Camera ready. Check your framing in the preview window.", expand=False)

        if phase is Phase.RECORDING:
            clock = RecordingTimer.format(self.elapsed)
            limit = RecordingTimer.format(self.workflow.timer.max_seconds)
            style = "bold yellow" if self.warning else "bold red"
            text = f"[{style}]🔴 REC {clock} / {limit}[/{style}]"
            if self.warning:
                text += "\nApproaching the time limit."
            return Panel(text, expand=False)

        if phase is Phase.REVIEW:
            capture = self.workflow.capture
            size = f"{capture.size / (1024 * 1024):.1f} MB" if capture else "-"
            return Panel(f"Review your recording ({size}).", expand=False)

        if phase is Phase.UPLOADING:
            table = Table.grid(padding=(0, 1))
            table.add_row(ProgressBar(total=100, completed=self.progress, width=40), f"{self.progress}%")
            return Panel(table, title="Uploading", expand=False)

        return Panel(
            "[bold green]Thank You![/bold green]\n"
            "Thank you for submitting your video interview! "
            "Our team will review it and get back to you shortly.",
            expand=False,
        )

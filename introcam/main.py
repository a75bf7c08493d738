"""Main application entry point for IntroCam."""

import sys
import asyncio
import argparse
import logging
from pathlib import Path
from typing import Optional

from introcam import __version__
from introcam.media.devices import DeviceAcquisition, OpenCVMediaDevices
from introcam.media.preview import OpenCVPreviewSurface
from introcam.media.recorder import Recorder
from introcam.media.timer import RecordingTimer
from introcam.models.capture import Phase, QualityPreset
from introcam.services.publisher import SlicePublisher, WorkflowPublisher
from introcam.services.uploader import Uploader
from introcam.services.workflow import CaptureWorkflow
from introcam.storage.file_manager import FileManager
from introcam.storage.object_store import SupabaseStorage
from introcam.storage.records import AirtableRecordStore
from introcam.ui.capture_screen import CaptureScreen
from introcam.ui.keyboard_input import CTRL_C, ESC, KeyboardInputHandler

from .config import IntroCamConfig

logger = logging.getLogger(__name__)

QUIT_KEYS = (ESC, CTRL_C)


class Server:

    def __init__(self, config_path: str, log_level: Optional[str] = None):
        self.config = IntroCamConfig(config_path)
        # Command line level overrides the config
        level = log_level or self.config.get('logging.level', 'INFO')
        setup_logging(self.config, level)
        self.workflow: Optional[CaptureWorkflow] = None
        self.screen: Optional[CaptureScreen] = None
        self.surface: Optional[OpenCVPreviewSurface] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._quit: Optional[asyncio.Event] = None
        self._tasks = set()

    def init(self, record_id: str, quality: Optional[str] = None) -> CaptureWorkflow:
        """Build the workflow and its collaborators. Must run inside the event loop."""
        logger.info("Initializing services...")

        preset = QualityPreset.parse(quality or self.config.get('capture.quality', 'standard'))
        acquisition = DeviceAcquisition(
            OpenCVMediaDevices(
                camera_index=self.config.get('capture.camera_index', 0),
                audio_device_index=self.config.get('capture.audio_device_index'),
                sample_rate=self.config.get('capture.sample_rate', 48000),
                channels=self.config.get('capture.channels', 1),
            ),
            timeout=self.config.get('capture.acquire_timeout', 10.0),
        )
        recorder = Recorder(
            acquisition,
            timeslice=self.config.get('capture.timeslice_ms', 100) / 1000,
            on_slice=SlicePublisher("recorder.slice").get_callback(),
        )

        supabase = self.config.get_supabase_settings()
        airtable = self.config.get_airtable_settings()
        publisher = WorkflowPublisher("workflow")
        uploader = Uploader(
            SupabaseStorage(
                supabase["url"],
                supabase["service_key"],
                bucket=supabase["bucket"],
                chunk_size=self.config.get('upload.chunk_size', 64 * 1024),
            ),
            AirtableRecordStore(airtable["api_key"], airtable["base_id"], airtable["table"]),
            field_name=airtable["field"],
            cleanup_delay=self.config.get('upload.cleanup_delay', 1.0),
            on_progress=publisher.publish_progress,
        )

        file_manager = FileManager(self.config.get_data_directory())
        file_manager.clear_playback()

        self.surface = OpenCVPreviewSurface(
            window_name=self.config.get('preview.window_name', 'IntroCam'),
            mirror=self.config.get('preview.mirror', True),
        )
        timer = RecordingTimer(
            warning_seconds=self.config.get('capture.warning_seconds', 90),
            max_seconds=self.config.get('capture.max_seconds', 120),
        )
        self.workflow = CaptureWorkflow(
            record_id,
            acquisition,
            self.surface,
            recorder,
            uploader,
            file_manager,
            publisher=publisher,
            quality=preset,
            timer=timer,
            retry_interval=self.config.get('preview.retry_interval_ms', 100) / 1000,
        )
        logger.info(f"Workflow ready for record {record_id} ({preset.value})")
        return self.workflow

    async def run_interactive(self, record_id: str, quality: Optional[str] = None) -> None:
        self._loop = asyncio.get_running_loop()
        self._quit = asyncio.Event()
        self.init(record_id, quality)
        self.screen = CaptureScreen(self.workflow)
        self.screen.subscribe()
        handler = KeyboardInputHandler(self._on_key)
        try:
            self.screen.render()
            handler.start()
            await self._quit.wait()
        finally:
            handler.stop()
            await self.cleanup()

    def _on_key(self, key: str) -> bool:
        """Runs on the input thread; hands the key to the event loop."""
        if key in QUIT_KEYS:
            self._loop.call_soon_threadsafe(self._quit.set)
            return False
        self._loop.call_soon_threadsafe(self._dispatch, key)
        return True

    def _dispatch(self, key: str) -> None:
        workflow = self.workflow
        actions = {
            'c': workflow.start_camera,
            'q': lambda: workflow.change_quality(QualityPreset.STANDARD),
            'h': lambda: workflow.change_quality(QualityPreset.HIGH),
            'r': workflow.start_recording,
            's': workflow.stop_recording,
            'a': workflow.accept,
            'x': workflow.retry,
            'n': workflow.record_another,
            'p': self._replay,
        }
        if key == 'd':
            path = workflow.export_capture(self.config.get('storage.downloads_directory'))
            if path:
                self.screen.show_notice(f"Saved to {path}")
            else:
                self.screen.render()
            return
        action = actions.get(key)
        if action is None:
            return
        task = self._loop.create_task(self._run_action(action))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_action(self, action) -> None:
        try:
            await action()
        except Exception as e:
            logger.error(f"Command failed: {e}", exc_info=True)
        self.screen.render()

    async def _replay(self) -> None:
        review = self.workflow.review
        if self.workflow.phase is not Phase.REVIEW or review is None:
            return
        await self.surface.replay(review.playback_path())

    async def cleanup(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self.screen:
            self.screen.unsubscribe()
        if self.workflow:
            await self.workflow.aclose()
        if self.surface:
            self.surface.close()
        logger.info("IntroCam shut down")


def setup_logging(config, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path', 'data/logs/introcam.log')
    console_output = config.get('logging.console_output', True)

    Path(log_file_path).parent.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    ))
    handlers.append(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.WARNING)  # Keep the status screen readable
        console_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("=" * 50)
    logger.info("IntroCam application starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


def main() -> None:
    """Main entry point for IntroCam."""
    parser = argparse.ArgumentParser(
        description="IntroCam - record and submit a video introduction",
        epilog="Keys: c=camera, q/h=quality, r=record, s=stop, a=accept, x=record again, "
               "d=download, p=play back, n=record another, Esc=quit"
    )

    parser.add_argument(
        "--config",
        type=str,
        default="introcam.yaml",
        help="Path to configuration YAML file (default: introcam.yaml)"
    )

    parser.add_argument(
        "--record-id",
        type=str,
        required=True,
        help="Applicant record the video is attached to"
    )

    parser.add_argument(
        "--quality",
        type=str,
        choices=["standard", "high", "720p", "1080p"],
        help="Recording quality (overrides config)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (overrides config)"
    )

    parser.add_argument(
        "--auto",
        action="store_true",
        help="Run in automatic mode: record for the given duration, upload, then exit"
    )

    parser.add_argument(
        "--duration",
        type=int,
        default=10,
        help="Duration in seconds for auto mode recording (default: 10)"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"IntroCam v{__version__}"
    )

    args = parser.parse_args()
    if not args.record_id.strip():
        parser.error("Missing record_id")

    try:
        server = Server(args.config, args.log_level)
        if args.auto:
            from .auto_mode import run_auto_mode
            ok = asyncio.run(run_auto_mode(server, args.record_id, args.duration, args.quality))
            sys.exit(0 if ok else 1)
        else:
            asyncio.run(server.run_interactive(args.record_id, args.quality))
        print("\n👋 Goodbye!")
    except KeyboardInterrupt:
        print("\n👋 Goodbye!")
    except Exception as e:
        print(f"❌ Error: {e}")
        logging.error(f"Application error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

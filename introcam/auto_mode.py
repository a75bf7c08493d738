"""Auto mode: record, upload and report without keyboard interaction."""

import asyncio
import logging
import time
from typing import Optional

from .models.capture import Phase

logger = logging.getLogger(__name__)


async def run_auto_mode(server, record_id: str, duration_seconds: int = 10, quality: Optional[str] = None) -> bool:
    """Run one full capture unattended.

    This mode:
    1. Acquires the camera
    2. Records for the requested duration (never past the recording limit)
    3. Accepts the recording and uploads it
    4. Reports the result

    Args:
        server: initialised ``Server`` (config and logging already set up)
        record_id: record the video is attached to
        duration_seconds: how long to record
        quality: optional quality override

    Returns:
        True when the video was uploaded and attached
    """
    logger.info(f"🤖 Starting auto mode: {duration_seconds}s recording")
    workflow = server.init(record_id, quality)
    print("📋 Auto mode initialized")
    print(f"   Record: {record_id}")
    print(f"   Quality: {workflow.session.quality.value}")
    print(f"   Duration: {duration_seconds} seconds")
    print()

    try:
        if not await workflow.start_camera():
            print(f"❌ Camera: {workflow.error_message}")
            return False
        print("✅ Camera ready")

        if not await workflow.start_recording():
            print(f"❌ Recording: {workflow.error_message}")
            return False

        start_time = time.time()
        print("🔴 Recording in progress...")
        target = min(duration_seconds, workflow.timer.max_seconds)
        while workflow.phase is Phase.RECORDING and time.time() - start_time < target:
            await asyncio.sleep(0.5)

        if workflow.phase is Phase.RECORDING:
            await workflow.stop_recording()
        capture = workflow.capture
        if capture is None:
            print(f"❌ Recording failed: {workflow.error_message}")
            return False
        print(f"⏹️  Recorded {time.time() - start_time:.1f}s, {capture.size} bytes")

        print("☁️  Uploading...")
        if not await workflow.accept():
            print(f"❌ Upload: {workflow.error_message}")
            path = workflow.export_capture()
            if path:
                print(f"💾 Recording kept locally: {path}")
            return False

        print(f"✅ Uploaded: {workflow.session.public_url}")
        logger.info(f"Auto mode completed for {record_id}: {workflow.session.public_url}")
        return True

    except asyncio.CancelledError:
        print("\n🛑 Auto mode interrupted")
        raise
    finally:
        print("🧹 Cleaning up...")
        await server.cleanup()

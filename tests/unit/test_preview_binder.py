"""Unit tests for the preview binder."""

import asyncio
from unittest.mock import Mock

import pytest

from introcam.errors import PlaybackFailed, StreamDisconnected
from introcam.media.preview import PreviewBinder, _PreviewBinding


async def settle(seconds: float = 0.02):
    await asyncio.sleep(seconds)


@pytest.mark.unit
class TestPreviewBinder:

    def test_bind_attaches_stream_and_plays(self, fake_surface, stream_factory):
        on_error = Mock()
        stream = stream_factory()

        async def scenario():
            cleanup = PreviewBinder(fake_surface, on_error).bind(stream)
            await settle()
            cleanup()

        asyncio.run(scenario())

        assert fake_surface.src is stream
        assert fake_surface.play_calls == 1
        assert not fake_surface.paused
        on_error.assert_not_called()

    def test_rebinding_same_stream_keeps_source(self, fake_surface, stream_factory):
        stream = stream_factory()
        binder = PreviewBinder(fake_surface, Mock())

        async def scenario():
            binder.bind(stream)()
            binder.bind(stream, recording=True)()

        asyncio.run(scenario())
        assert fake_surface.src_assignments == 1

    def test_cleanup_removes_every_listener(self, fake_surface, stream_factory):
        binder = PreviewBinder(fake_surface, Mock())

        async def scenario():
            cleanup = binder.bind(stream_factory(), recording=True)
            await settle()
            assert fake_surface.listener_count() == 4
            cleanup()

        asyncio.run(scenario())
        assert fake_surface.listener_count() == 0

    def test_no_callbacks_after_cleanup(self, fake_surface, stream_factory):
        on_error = Mock()
        stream = stream_factory()

        async def scenario():
            cleanup = PreviewBinder(fake_surface, on_error).bind(stream, recording=True)
            await settle()
            cleanup()
            stream.stop()
            fake_surface.pause()
            fake_surface._emit("error", "late")
            await settle()

        asyncio.run(scenario())
        on_error.assert_not_called()

    def test_pause_during_preview_is_left_alone(self, fake_surface, stream_factory):
        async def scenario():
            cleanup = PreviewBinder(fake_surface, Mock()).bind(stream_factory())
            await settle()
            fake_surface.pause()
            await settle()
            cleanup()

        asyncio.run(scenario())
        assert fake_surface.play_calls == 1
        assert fake_surface.paused

    def test_pause_during_recording_recovers_once(self, fake_surface, stream_factory):
        on_error = Mock()

        async def scenario():
            cleanup = PreviewBinder(fake_surface, on_error).bind(stream_factory(), recording=True)
            await settle()
            fake_surface.pause()
            await settle()
            cleanup()

        asyncio.run(scenario())
        assert fake_surface.play_calls == 2
        assert not fake_surface.paused
        on_error.assert_not_called()

    def test_failed_recovery_reports_playback_failed(self, fake_surface, stream_factory):
        on_error = Mock()

        async def scenario():
            cleanup = PreviewBinder(fake_surface, on_error).bind(stream_factory(), recording=True)
            await settle()
            fake_surface.fail_plays = 1
            fake_surface.pause()
            await settle(0.05)
            cleanup()

        asyncio.run(scenario())
        on_error.assert_called_once()
        error = on_error.call_args[0][0]
        assert isinstance(error, PlaybackFailed)
        assert error.user_message == "Video playback failed. Please restart the camera."

    def test_initial_play_failure_gets_one_recovery(self, fake_surface, stream_factory):
        on_error = Mock()
        fake_surface.fail_plays = 1

        async def scenario():
            cleanup = PreviewBinder(fake_surface, on_error).bind(stream_factory())
            await settle()
            cleanup()

        asyncio.run(scenario())
        assert fake_surface.play_calls == 2
        on_error.assert_not_called()

    def test_initial_play_failing_twice_fails(self, fake_surface, stream_factory):
        on_error = Mock()
        fake_surface.fail_plays = 2

        async def scenario():
            cleanup = PreviewBinder(fake_surface, on_error).bind(stream_factory())
            await settle()
            cleanup()

        asyncio.run(scenario())
        on_error.assert_called_once()
        assert isinstance(on_error.call_args[0][0], PlaybackFailed)

    def test_monitor_detects_disconnected_stream(self, fake_surface, stream_factory):
        on_error = Mock()
        stream = stream_factory()

        async def scenario():
            cleanup = PreviewBinder(fake_surface, on_error).bind(stream, recording=True)
            await settle()
            stream.stop()
            fake_surface.paused = True
            await settle(0.05)
            cleanup()

        asyncio.run(scenario())
        on_error.assert_called_once()
        assert isinstance(on_error.call_args[0][0], StreamDisconnected)

    def test_surface_error_event_fails_once(self, fake_surface, stream_factory):
        on_error = Mock()

        async def scenario():
            cleanup = PreviewBinder(fake_surface, on_error).bind(stream_factory(), recording=True)
            await settle()
            fake_surface._emit("error", "decoder crashed")
            fake_surface._emit("error", "decoder crashed again")
            await settle()
            cleanup()

        asyncio.run(scenario())
        on_error.assert_called_once()
        assert isinstance(on_error.call_args[0][0], PlaybackFailed)


@pytest.mark.unit
class TestPlaybackMaintenance:

    def make_binding(self, surface, stream, now):
        return _PreviewBinding(surface, stream, True, Mock(), 0.1, lambda: now[0])

    def test_play_attempts_are_throttled(self, fake_surface, stream_factory):
        now = [10.0]
        binding = self.make_binding(fake_surface, stream_factory(), now)

        async def scenario():
            fake_surface.paused = True
            await binding._ensure_playing()
            fake_surface.paused = True
            now[0] += 0.05
            await binding._ensure_playing()
            assert fake_surface.play_calls == 1
            now[0] += 0.1
            await binding._ensure_playing()

        asyncio.run(scenario())
        assert fake_surface.play_calls == 2

    def test_surface_not_ready_waits(self, fake_surface, stream_factory):
        surface = type(fake_surface)(ready=False)
        binding = self.make_binding(surface, stream_factory(), [0.0])

        asyncio.run(binding._ensure_playing())

        assert surface.play_calls == 0
        binding.on_error.assert_not_called()

    def test_inactive_stream_halts_monitoring(self, fake_surface, stream_factory):
        stream = stream_factory()
        binding = self.make_binding(fake_surface, stream, [0.0])
        stream.stop()
        fake_surface.paused = True

        async def scenario():
            await binding._ensure_playing()
            await binding._ensure_playing()

        asyncio.run(scenario())
        assert binding.inactive
        binding.on_error.assert_called_once()
        assert fake_surface.play_calls == 0

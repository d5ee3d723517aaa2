"""
Speech Render Port Tests

Tests for SpeechRenderPort including:
- Completion signalling
- Last-call-wins interruption
- Idempotent stop()
- Backend error mapping
"""
import asyncio

import pytest

from turnkeeper.interview.errors import RenderError, RenderCancelledError
from turnkeeper.interview.models import VoiceOptions
from turnkeeper.interview.services import SpeechRenderPort
from turnkeeper.interview.testing import MockRenderBackend


class TestSpeak:
    """Test speak() completion."""

    async def test_speak_returns_after_playback(self):
        backend = MockRenderBackend(duration=0.02)
        port = SpeechRenderPort(backend)

        await port.speak("Tell me about yourself.")

        assert backend.completed == ["Tell me about yourself."]
        assert not port.is_speaking

    async def test_default_and_explicit_options(self):
        backend = MockRenderBackend()
        port = SpeechRenderPort(backend, default_options=VoiceOptions(rate=1.2))

        await port.speak("one")
        await port.speak("two", VoiceOptions(volume=0.5))

        assert backend.options[0].rate == 1.2
        assert backend.options[1].volume == 0.5

    async def test_empty_text_is_not_rendered(self):
        backend = MockRenderBackend()
        port = SpeechRenderPort(backend)

        await port.speak("   ")

        assert backend.rendered == []


class TestInterruption:
    """Test last-call-wins and stop()."""

    async def test_new_speak_interrupts_previous(self):
        """Test that a second speak() cancels the first, whose caller sees a cancellation."""
        backend = MockRenderBackend(duration=0.1)
        port = SpeechRenderPort(backend)

        first = asyncio.ensure_future(port.speak("first"))
        await asyncio.sleep(0.01)
        await port.speak("second")

        with pytest.raises(RenderCancelledError):
            await first
        assert backend.rendered == ["first", "second"]
        assert backend.completed == ["second"]

    async def test_stop_interrupts_playback(self):
        backend = MockRenderBackend(duration=1.0)
        port = SpeechRenderPort(backend)

        task = asyncio.ensure_future(port.speak("long answer"))
        await asyncio.sleep(0.01)
        assert port.is_speaking

        port.stop()
        port.stop()

        with pytest.raises(RenderCancelledError):
            await task
        assert not port.is_speaking
        assert backend.completed == []

    async def test_stop_when_idle_is_noop(self):
        port = SpeechRenderPort(MockRenderBackend())
        port.stop()
        assert not port.is_speaking

    async def test_cancelling_the_caller_stops_playback(self):
        backend = MockRenderBackend(duration=1.0)
        port = SpeechRenderPort(backend)

        task = asyncio.ensure_future(port.speak("hello"))
        await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        await asyncio.sleep(0)
        assert not port.is_speaking


class TestRenderErrors:
    """Test backend error mapping."""

    async def test_backend_exception_becomes_render_error(self):
        backend = MockRenderBackend(failures=[OSError("no audio device")])
        port = SpeechRenderPort(backend)

        with pytest.raises(RenderError) as exc_info:
            await port.speak("hello")

        assert not isinstance(exc_info.value, RenderCancelledError)
        assert "no audio device" in str(exc_info.value)

    async def test_render_error_passes_through(self):
        backend = MockRenderBackend(failures=[RenderError("player exited")])
        port = SpeechRenderPort(backend)

        with pytest.raises(RenderError, match="player exited"):
            await port.speak("hello")

    async def test_port_recovers_after_failure(self):
        backend = MockRenderBackend(failures=[OSError("glitch")])
        port = SpeechRenderPort(backend)

        with pytest.raises(RenderError):
            await port.speak("first")
        await port.speak("second")

        assert backend.completed == ["second"]

"""
Speech Backend Tests

Tests for audio conditioning, the Google TTS option mapping, the subprocess
audio player and the keyboard speech stream.
"""
import asyncio
import io
import sys
import threading
import time

import numpy as np
import pytest

from turnkeeper.infrastructure.audio.processing import stereo_to_mono, remove_dc, resample, to_pcm16
from turnkeeper.infrastructure.audio.speech import (
    GoogleTTSBackend, SubprocessAudioPlayer, ConsoleRenderBackend, KeyboardSpeechStream,
    GoogleStreamingSpeechStream
)
from turnkeeper.interview.errors import CaptureError, RenderError
from turnkeeper.interview.models import VoiceOptions
from turnkeeper.interview.schemas import SilenceArmPolicy
from turnkeeper.interview.services import SpeechCapturePort


class TestProcessing:
    """Test signal conditioning."""

    def test_stereo_to_mono_averages_channels(self):
        frame = np.array([[1.0, 0.0], [0.5, 0.5]], dtype=np.float32)
        assert np.allclose(stereo_to_mono(frame), [0.5, 0.5])

    def test_remove_dc(self):
        assert abs(float(np.mean(remove_dc(np.full(100, 0.3))))) < 1e-9

    def test_resample_48k_to_16k_length(self):
        assert len(resample(np.zeros(4800, dtype=np.float32), 48000, 16000)) == 1600

    def test_to_pcm16_clips(self):
        samples = np.frombuffer(to_pcm16(np.array([2.0, -2.0, 0.0])), dtype="<i2")
        assert list(samples) == [32767, -32768, 0]


class TestGoogleTTSOptions:
    """Test VoiceOptions -> Google AudioConfig mapping."""

    def test_neutral_options(self):
        config = GoogleTTSBackend.audio_config(VoiceOptions())
        assert config.speaking_rate == pytest.approx(1.0)
        assert config.pitch == pytest.approx(0.0)
        assert config.volume_gain_db == pytest.approx(0.0)

    def test_scaled_options(self):
        config = GoogleTTSBackend.audio_config(VoiceOptions(rate=1.5, pitch=2.0, volume=0.5))
        assert config.speaking_rate == pytest.approx(1.5)
        assert config.pitch == pytest.approx(12.0)
        assert config.volume_gain_db == pytest.approx(-6.0206, abs=1e-3)


class TestSubprocessAudioPlayer:
    """Test external player handling."""

    async def test_successful_playback(self):
        player = SubprocessAudioPlayer([sys.executable, "-c", "pass"])
        await player.play(b"RIFF")

    async def test_player_failure_raises_render_error(self):
        player = SubprocessAudioPlayer([sys.executable, "-c", "import sys; sys.exit(3)"])
        with pytest.raises(RenderError, match="3"):
            await player.play(b"RIFF")

    async def test_missing_player_raises_render_error(self, monkeypatch):
        monkeypatch.setattr("shutil.which", lambda name: None)
        with pytest.raises(RenderError):
            await SubprocessAudioPlayer().play(b"RIFF")

    async def test_cancel_terminates_player(self):
        player = SubprocessAudioPlayer([sys.executable, "-c", "import time; time.sleep(30)"])
        task = asyncio.ensure_future(player.play(b"RIFF"))
        await asyncio.sleep(0.3)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await asyncio.wait_for(task, 5)


class TestConsoleRenderBackend:
    async def test_prints_utterance(self, capsys):
        await ConsoleRenderBackend().render("Hello there", VoiceOptions())
        assert "🤖 Hello there" in capsys.readouterr().out


class TestKeyboardSpeechStream:
    """Test typed answers through the capture port."""

    async def test_typed_line_is_speech(self):
        port = SpeechCapturePort(KeyboardSpeechStream(stream=io.StringIO("I like Rust\n")),
                                 SilenceArmPolicy.ON_ACTIVITY)
        result = await asyncio.wait_for(port.listen(50), 2)
        assert result.is_speech
        assert result.text == "I like Rust"

    async def test_empty_line_is_silence(self):
        port = SpeechCapturePort(KeyboardSpeechStream(stream=io.StringIO("\n")),
                                 SilenceArmPolicy.ON_ACTIVITY)
        result = await asyncio.wait_for(port.listen(50), 2)
        assert result.kind == "silence"

    async def test_closed_input_is_capture_error(self):
        port = SpeechCapturePort(KeyboardSpeechStream(stream=io.StringIO("")),
                                 SilenceArmPolicy.ON_ACTIVITY)
        with pytest.raises(CaptureError):
            await asyncio.wait_for(port.listen(50), 2)

    async def test_bracketed_input_is_not_speech(self):
        port = SpeechCapturePort(KeyboardSpeechStream(stream=io.StringIO("[SILENCE_DETECTED]\n")),
                                 SilenceArmPolicy.ON_ACTIVITY)
        result = await asyncio.wait_for(port.listen(50), 2)
        assert result.kind == "silence"


class FakeMicrophone:
    """Microphone stand-in recording which thread opened and closed it."""

    def __init__(self):
        self.events = []
        self.closed_by = []
        self.is_open = False

    def open(self):
        self.events.append("open")
        self.is_open = True

    def chunks(self, stop_event):
        while not stop_event.is_set() and self.is_open:
            yield b"\x00\x00"
            time.sleep(0.005)

    def close(self):
        if self.is_open:
            self.events.append("close")
            self.closed_by.append(threading.current_thread())
        self.is_open = False


class SlowCloseSpeechClient:
    """Drains the request stream, then holds the response open until released."""

    def __init__(self):
        self.releases = []

    def streaming_recognize(self, config, requests):
        release = threading.Event()
        self.releases.append(release)
        for _ in requests:
            pass
        release.wait(5)
        return iter([])


async def wait_until(condition, timeout: float = 2.0) -> None:
    async def poll():
        while not condition():
            await asyncio.sleep(0.005)
    await asyncio.wait_for(poll(), timeout)


class TestGoogleStreamingSpeechStream:
    """Test worker lifecycle across listen attempts."""

    async def test_stop_leaves_device_release_to_the_worker(self):
        source, client = FakeMicrophone(), SlowCloseSpeechClient()
        stream = GoogleStreamingSpeechStream(source=source, client=client)

        stream.start(lambda text, is_final: None, lambda: None, lambda exc: None)
        await wait_until(lambda: client.releases)
        stream.stop()

        assert source.events == ["open"]
        client.releases[0].set()
        await wait_until(lambda: not source.is_open)
        assert source.closed_by[0] is not threading.main_thread()

    async def test_next_attempt_waits_for_previous_worker(self):
        """Test that a lingering worker cannot close the microphone of the next attempt."""
        source, client = FakeMicrophone(), SlowCloseSpeechClient()
        stream = GoogleStreamingSpeechStream(source=source, client=client)
        ended, errors = [], []

        stream.start(lambda text, is_final: None, lambda: None, lambda exc: None)
        await wait_until(lambda: client.releases)
        stream.stop()
        stream.start(lambda text, is_final: None, lambda: ended.append(True), errors.append)
        await asyncio.sleep(0.05)
        assert source.events == ["open"]

        client.releases[0].set()
        await wait_until(lambda: len(client.releases) == 2)
        await asyncio.sleep(0.05)

        assert source.events == ["open", "close", "open"]
        assert source.is_open
        assert ended == []
        assert errors == []

        stream.stop()
        client.releases[1].set()
        await wait_until(lambda: not source.is_open)

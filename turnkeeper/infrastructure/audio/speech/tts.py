"""
Text-to-speech backends: Google Cloud TTS through a local audio player,
or plain console output.
"""
import asyncio
import logging
import math
import os
import shutil
import tempfile
from typing import Optional, Sequence, Tuple

from google.cloud import texttospeech

from ....config import TTS_VOICE, LANGUAGE_CODE, PLAYER_COMMANDS
from ....interview.errors import RenderError
from ....interview.models import VoiceOptions
from ....interview.services import RenderBackend

logger = logging.getLogger("speech_tts")


def find_player(commands: Sequence[Tuple[str, ...]] = PLAYER_COMMANDS) -> Optional[Tuple[str, ...]]:
    """First available command-line WAV player (afplay on macOS, aplay on Linux)."""
    for command in commands:
        if shutil.which(command[0]):
            return tuple(command)
    return None


class SubprocessAudioPlayer:
    """Plays WAV bytes through an external player process."""

    def __init__(self, command: Optional[Sequence[str]] = None):
        self.command = tuple(command) if command else find_player()

    async def play(self, wav_bytes: bytes) -> None:
        """
        Play audio and return once the player exits.

        Cancelling the caller terminates the player process.
        """
        if not self.command:
            raise RenderError("No audio player found (tried afplay, aplay)")

        fd, wav_path = tempfile.mkstemp(suffix=".wav")
        try:
            with os.fdopen(fd, "wb") as tmp_file:
                tmp_file.write(wav_bytes)

            process = await asyncio.create_subprocess_exec(
                *self.command, wav_path,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
            try:
                _, stderr = await process.communicate()
            except asyncio.CancelledError:
                if process.returncode is None:
                    process.terminate()
                    await process.wait()
                raise
            if process.returncode != 0:
                message = stderr.decode(errors="replace").strip() if stderr else ""
                raise RenderError(f"{self.command[0]} exited with {process.returncode}: {message}")
        finally:
            try:
                os.unlink(wav_path)
            except OSError:
                pass


class GoogleTTSBackend(RenderBackend):
    """High-quality Google Cloud Text-to-Speech."""

    def __init__(self,
                 voice: str = TTS_VOICE,
                 language_code: str = LANGUAGE_CODE,
                 player: Optional[SubprocessAudioPlayer] = None,
                 client: Optional[texttospeech.TextToSpeechClient] = None):
        self.voice = voice
        self.language_code = language_code
        self.player = player or SubprocessAudioPlayer()
        self._client = client

    @staticmethod
    def audio_config(options: VoiceOptions) -> texttospeech.AudioConfig:
        """
        Map engine voice options onto Google's audio settings.

        rate is a speaking-rate multiplier, pitch is a multiplier expressed
        in semitones (x2 = +12), and volume is a linear gain converted to dB.
        """
        rate = min(4.0, max(0.25, options.rate))
        pitch = min(20.0, max(-20.0, 12.0 * math.log2(options.pitch))) if options.pitch > 0 else 0.0
        if options.volume > 0:
            gain_db = min(16.0, max(-96.0, 20.0 * math.log10(options.volume)))
        else:
            gain_db = -96.0
        return texttospeech.AudioConfig(
            audio_encoding=texttospeech.AudioEncoding.LINEAR16,
            sample_rate_hertz=16000,
            speaking_rate=rate,
            pitch=pitch,
            volume_gain_db=gain_db,
        )

    def _synthesize(self, text: str, options: VoiceOptions) -> bytes:
        if self._client is None:
            self._client = texttospeech.TextToSpeechClient()
        response = self._client.synthesize_speech(
            input=texttospeech.SynthesisInput(text=text),
            voice=texttospeech.VoiceSelectionParams(language_code=self.language_code, name=self.voice),
            audio_config=self.audio_config(options),
        )
        return response.audio_content

    async def render(self, text: str, options: VoiceOptions) -> None:
        try:
            audio = await asyncio.to_thread(self._synthesize, text, options)
        except Exception as e:
            logger.error(f"Google TTS failed: {e}")
            raise RenderError(f"Google TTS failed: {e}") from e
        await self.player.play(audio)


class ConsoleRenderBackend(RenderBackend):
    """Prints the utterance instead of speaking it."""

    def __init__(self, prefix: str = "🤖"):
        self.prefix = prefix

    async def render(self, text: str, options: VoiceOptions) -> None:
        print(f"{self.prefix} {text}")

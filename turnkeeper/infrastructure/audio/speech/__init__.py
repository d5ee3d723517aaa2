"""Speech-to-text streams and text-to-speech backends."""

from .tts import GoogleTTSBackend, ConsoleRenderBackend, SubprocessAudioPlayer, find_player
from .stt import GoogleStreamingSpeechStream, KeyboardSpeechStream

__all__ = [
    "GoogleTTSBackend", "ConsoleRenderBackend", "SubprocessAudioPlayer", "find_player",
    "GoogleStreamingSpeechStream", "KeyboardSpeechStream"
]

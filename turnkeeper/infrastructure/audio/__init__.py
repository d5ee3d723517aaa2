"""
Audio capture and speech services.

- processing: Microphone capture and signal conditioning
- speech: Streaming speech-to-text and text-to-speech backends
"""

from .processing import MicrophoneSource
from .speech import (
    GoogleStreamingSpeechStream, KeyboardSpeechStream,
    GoogleTTSBackend, ConsoleRenderBackend, SubprocessAudioPlayer
)

__all__ = [
    "MicrophoneSource",
    "GoogleStreamingSpeechStream",
    "KeyboardSpeechStream",
    "GoogleTTSBackend",
    "ConsoleRenderBackend",
    "SubprocessAudioPlayer"
]

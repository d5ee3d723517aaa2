"""
Microphone capture feeding the streaming speech recognizer.
"""
import logging
import threading
from typing import Iterator, Optional

import numpy as np

from ....config import CHANNELS, SAMPLE_RATE_CAPTURE, SAMPLE_RATE_TARGET, FRAME_MS, MIC_GAIN
from ....utils import with_suppressed_audio_warnings
from .processing import condition_frame

logger = logging.getLogger("audio_capture")


class MicrophoneSource:
    """
    Blocking PCM16 chunk source backed by PyAudio.

    pyaudio is imported lazily so the rest of the package works on machines
    without PortAudio (keyboard mode, tests).
    """

    def __init__(self,
                 input_device: Optional[int] = None,
                 num_channels: int = CHANNELS,
                 sr_capture: int = SAMPLE_RATE_CAPTURE,
                 sr_target: int = SAMPLE_RATE_TARGET,
                 frame_ms: int = FRAME_MS,
                 mic_gain: float = MIC_GAIN):
        self.input_device = input_device
        self.num_channels = num_channels
        self.sr_capture = sr_capture
        self.sr_target = sr_target
        self.frame_size = int(sr_capture * frame_ms / 1000)
        self.mic_gain = mic_gain
        self._pa = None
        self._stream = None
        self._lock = threading.Lock()

    @with_suppressed_audio_warnings
    def open(self) -> None:
        """Open the input device."""
        import pyaudio

        with self._lock:
            if self._stream is not None:
                return
            self._pa = pyaudio.PyAudio()
            try:
                self._stream = self._pa.open(
                    format=pyaudio.paFloat32,
                    channels=self.num_channels,
                    rate=self.sr_capture,
                    input=True,
                    input_device_index=self.input_device,
                    frames_per_buffer=self.frame_size,
                )
            except Exception:
                self._pa.terminate()
                self._pa = None
                raise
        logger.info(f"Microphone opened: device={self.input_device}, channels={self.num_channels}, "
                    f"rate={self.sr_capture}, frame={self.frame_size}")

    def chunks(self, stop_event: threading.Event) -> Iterator[bytes]:
        """Yield conditioned 16 kHz PCM16 chunks until stop_event is set."""
        while not stop_event.is_set():
            with self._lock:
                stream = self._stream
                if stream is None:
                    return
                raw = stream.read(self.frame_size, exception_on_overflow=False)
            frame = np.frombuffer(raw, dtype=np.float32)
            if self.num_channels > 1:
                frame = frame.reshape(-1, self.num_channels)
            yield condition_frame(frame, self.sr_capture, self.sr_target, self.mic_gain)

    def close(self) -> None:
        """Release the device. Safe to call more than once."""
        with self._lock:
            stream, pa = self._stream, self._pa
            self._stream = None
            self._pa = None
        if stream is not None:
            try:
                stream.stop_stream()
                stream.close()
            except Exception as e:
                logger.warning(f"Error closing microphone stream: {e}")
        if pa is not None:
            pa.terminate()
            logger.info("Microphone closed")

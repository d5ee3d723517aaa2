"""
Speech-to-text streams using Google Cloud Speech, plus a keyboard stand-in.
"""
import asyncio
import logging
import sys
import threading
from typing import Callable, Optional

from google.cloud import speech

from ....config import LANGUAGE_CODE, SAMPLE_RATE_TARGET
from ....interview.errors import CaptureError
from ....interview.services import SpeechStream, FragmentCallback, EndCallback, ErrorCallback
from ..processing.capture import MicrophoneSource

logger = logging.getLogger("speech_stt")


class _ThreadedStream(SpeechStream):
    """
    Runs a blocking recognizer in a worker thread.

    Callbacks are marshalled onto the event loop that called start(). Once
    stop() has been called the worker drops everything it would still report
    and releases its resources itself, so stop() never blocks the loop. A new
    worker waits for the previous one to exit before it starts recognizing.
    """

    def __init__(self):
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None

    def start(self, on_fragment: FragmentCallback, on_end: EndCallback, on_error: ErrorCallback) -> None:
        if self._thread is not None and self._thread.is_alive() and not self._stop_event.is_set():
            raise CaptureError(f"{type(self).__name__} is already running")
        loop = asyncio.get_running_loop()
        stop_event = threading.Event()
        previous = self._thread
        self._stop_event = stop_event

        def post(callback: Callable, *args) -> None:
            if not stop_event.is_set() and not loop.is_closed():
                loop.call_soon_threadsafe(callback, *args)

        def run() -> None:
            if previous is not None and previous.is_alive():
                logger.debug("Waiting for previous recognizer to exit")
                previous.join()
            if stop_event.is_set():
                return
            try:
                self._recognize(stop_event, lambda text, is_final: post(on_fragment, text, is_final))
                post(on_end)
            except Exception as e:
                logger.error(f"Recognition failed: {e}")
                post(on_error, e)

        self._thread = threading.Thread(target=run, name=type(self).__name__, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()

    def _recognize(self, stop_event: threading.Event, emit: FragmentCallback) -> None:
        raise NotImplementedError


class GoogleStreamingSpeechStream(_ThreadedStream):
    """Continuous microphone recognition with interim results."""

    def __init__(self,
                 source: Optional[MicrophoneSource] = None,
                 language_code: str = LANGUAGE_CODE,
                 sample_rate: int = SAMPLE_RATE_TARGET,
                 client: Optional[speech.SpeechClient] = None):
        super().__init__()
        self.source = source or MicrophoneSource(sr_target=sample_rate)
        self.language_code = language_code
        self.sample_rate = sample_rate
        self._client = client

    def _streaming_config(self) -> speech.StreamingRecognitionConfig:
        return speech.StreamingRecognitionConfig(
            config=speech.RecognitionConfig(
                encoding=speech.RecognitionConfig.AudioEncoding.LINEAR16,
                sample_rate_hertz=self.sample_rate,
                language_code=self.language_code,
                enable_automatic_punctuation=True,
            ),
            interim_results=True,
        )

    def _recognize(self, stop_event: threading.Event, emit: FragmentCallback) -> None:
        if self._client is None:
            self._client = speech.SpeechClient()
        self.source.open()
        try:
            requests = (
                speech.StreamingRecognizeRequest(audio_content=chunk)
                for chunk in self.source.chunks(stop_event)
            )
            responses = self._client.streaming_recognize(config=self._streaming_config(), requests=requests)
            for response in responses:
                if stop_event.is_set():
                    break
                for result in response.results:
                    if not result.alternatives:
                        continue
                    text = result.alternatives[0].transcript
                    logger.debug(f"{'final' if result.is_final else 'interim'}: {text}")
                    emit(text, result.is_final)
        finally:
            self.source.close()


class KeyboardSpeechStream(_ThreadedStream):
    """
    Reads typed answers from stdin, one line per utterance.

    An empty line ends the utterance without speech, which the capture port
    reports as silence. Lines starting with "[" are dropped the same way,
    since bracketed tokens are reserved for engine markers.
    """

    def __init__(self, prompt: str = "   🗣️  You: ", stream=None):
        super().__init__()
        self.prompt = prompt
        self.stream = stream or sys.stdin

    def _recognize(self, stop_event: threading.Event, emit: FragmentCallback) -> None:
        print(self.prompt, end="", flush=True)
        line = self.stream.readline()
        if not line:
            raise EOFError("stdin closed")
        text = line.strip()
        if text.startswith("["):
            logger.info(f"Ignoring reserved input: {text}")
            return
        if not stop_event.is_set() and text:
            emit(text, True)

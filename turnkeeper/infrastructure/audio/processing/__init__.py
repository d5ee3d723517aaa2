"""Audio processing and capture modules."""

# Import processing functions immediately (numpy/scipy only)
from .processing import (
    stereo_to_mono,
    remove_dc,
    resample,
    to_pcm16,
    condition_frame
)

from .capture import MicrophoneSource

__all__ = [
    "MicrophoneSource",
    "stereo_to_mono",
    "remove_dc",
    "resample",
    "to_pcm16",
    "condition_frame"
]

"""
Basic audio conditioning for speech recognition input.
"""
from math import gcd

import numpy as np
from scipy.signal import resample_poly


def stereo_to_mono(x: np.ndarray) -> np.ndarray:
    """Convert multi-channel audio to mono by averaging channels."""
    if x.ndim == 1:
        return x
    return np.mean(x, axis=1)


def remove_dc(x: np.ndarray) -> np.ndarray:
    """Remove DC offset from audio signal."""
    if x.size == 0:
        return x
    return x - np.mean(x)


def resample(x: np.ndarray, sr_in: int, sr_out: int) -> np.ndarray:
    """Resample audio between arbitrary integer rates."""
    if sr_in == sr_out:
        return x.astype(np.float32)
    g = gcd(sr_in, sr_out)
    return resample_poly(x, up=sr_out // g, down=sr_in // g).astype(np.float32)


def to_pcm16(x: np.ndarray, gain: float = 1.0) -> bytes:
    """Convert float audio in [-1, 1] to little-endian PCM16 bytes."""
    return np.clip(x * gain * 32767, -32768, 32767).astype("<i2").tobytes()


def condition_frame(frame: np.ndarray, sr_in: int, sr_out: int, gain: float = 1.0) -> bytes:
    """Mono, DC-free, resampled PCM16 for a single captured frame."""
    mono = remove_dc(stereo_to_mono(frame))
    return to_pcm16(resample(mono, sr_in, sr_out), gain)

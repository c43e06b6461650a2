"""Shared utilities: the standard buffer format, WAV I/O and unit conversion.

Every buffer flowing through slicebot is mono 16-bit PCM at 44.1 kHz.
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass
from fractions import Fraction

import numpy as np
import soundfile as sf

SAMPLE_RATE = 44100
INT16_MAX = 32767
INT16_MIN = -32768


@dataclass
class StandardBuffer:
    """Mono int16 samples at SAMPLE_RATE.

    The frame count is always the length of the sample array, so there is
    no separate bookkeeping that could drift out of sync with the data.
    """
    samples: np.ndarray

    def __post_init__(self):
        samples = np.asarray(self.samples)
        if samples.ndim != 1:
            raise ValueError(f"StandardBuffer must be mono (1-D), got shape {samples.shape}")
        if samples.dtype != np.int16:
            raise ValueError(f"StandardBuffer must hold int16 samples, got {samples.dtype}")
        self.samples = samples

    @property
    def frames(self) -> int:
        return int(self.samples.shape[0])

    @property
    def duration_s(self) -> float:
        return self.frames / SAMPLE_RATE

    def copy(self) -> StandardBuffer:
        return StandardBuffer(self.samples.copy())

    @classmethod
    def silence(cls, frames: int) -> StandardBuffer:
        return cls(np.zeros(max(0, frames), dtype=np.int16))

    @classmethod
    def from_float(cls, audio: np.ndarray) -> StandardBuffer:
        """Build from float samples already scaled to the int16 range.

        Values are rounded to the nearest integer and clamped.
        """
        return cls(to_int16(np.rint(audio)))


def to_int16(values: np.ndarray) -> np.ndarray:
    """Clamp to the int16 range and cast (truncating toward zero)."""
    return np.clip(values, INT16_MIN, INT16_MAX).astype(np.int16)


def save_standard(path: str, buf: StandardBuffer) -> str:
    """Write a buffer as a 16-bit mono WAV, replacing any existing file."""
    if os.path.exists(path):
        os.remove(path)
    sf.write(path, buf.samples, SAMPLE_RATE, subtype="PCM_16")
    return path


def as_fraction(value) -> Fraction:
    """Exact rational view of a time value given in seconds."""
    if isinstance(value, Fraction):
        return value
    return Fraction(value)


def seconds_to_frames(seconds) -> int:
    """Frame count for a duration, rounding halves up (not to even)."""
    return math.floor(as_fraction(seconds) * SAMPLE_RATE + Fraction(1, 2))


def ms_to_samples(ms: float, sr: int = SAMPLE_RATE) -> int:
    """Convert milliseconds to sample count."""
    return int(round(ms * sr / 1000.0))


def samples_to_ms(samples: int, sr: int = SAMPLE_RATE) -> float:
    """Convert sample count to milliseconds."""
    return samples * 1000.0 / sr

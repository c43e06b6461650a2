"""Decode a time range of any supported source into a StandardBuffer.

Uncompressed formats are read through soundfile. Anything libsndfile cannot
open (mp3, m4a, ...) falls back to librosa. Float sources are scaled by
32767; integer sources are taken as int16 directly. Multi-channel material
is averaged down to mono and non-44.1 kHz material is resampled.
"""

from __future__ import annotations

import asyncio
from fractions import Fraction
from math import gcd

import librosa
import numpy as np
import soundfile as sf
from loguru import logger
from scipy.signal import resample_poly

from slicebot.core import (
    INT16_MAX,
    SAMPLE_RATE,
    StandardBuffer,
    as_fraction,
    seconds_to_frames,
)
from slicebot.effects import trim_to_length
from slicebot.errors import DecodeError, RangeError

_FLOAT_SUBTYPES = {"FLOAT", "DOUBLE"}


class AudioAsset:
    """Handle to a source file with a lazily probed, cached duration."""

    def __init__(self, path, duration: float | None = None):
        self.path = str(path)
        self._duration = duration

    @property
    def duration(self) -> float:
        """Duration in seconds. Raises DecodeError if the file cannot be probed."""
        if self._duration is None:
            self._duration = probe_duration(self.path)
        return self._duration

    def __eq__(self, other):
        if not isinstance(other, AudioAsset):
            return NotImplemented
        return self.path == other.path

    def __hash__(self):
        return hash(self.path)

    def __repr__(self):
        return f"AudioAsset({self.path!r}, duration={self._duration!r})"


def probe_duration(path: str) -> float:
    try:
        info = sf.info(path)
        return info.frames / info.samplerate
    except (RuntimeError, OSError) as exc:
        logger.debug("soundfile cannot probe {}: {}", path, exc)
    try:
        return float(librosa.get_duration(path=path))
    except Exception as exc:
        raise DecodeError(f"Unable to read duration of {path}: {exc}") from exc


def _to_mono(data: np.ndarray) -> np.ndarray:
    if data.ndim == 2:
        return data.mean(axis=1)
    return data


def _resample(mono: np.ndarray, native_sr: int) -> np.ndarray:
    if native_sr == SAMPLE_RATE:
        return mono
    g = gcd(SAMPLE_RATE, native_sr)
    return resample_poly(mono, SAMPLE_RATE // g, native_sr // g)


def _read_soundfile(path: str, start: Fraction, duration: Fraction | None) -> np.ndarray:
    """Read a range through libsndfile, returning mono float64 in int16 scale."""
    with sf.SoundFile(path) as f:
        native_sr = f.samplerate
        start_frame = int(start * native_sr)
        if duration is None:
            frames = f.frames - start_frame
        else:
            frames = int(duration * native_sr)
        f.seek(start_frame)
        if f.subtype in _FLOAT_SUBTYPES:
            data = f.read(frames, dtype="float64", always_2d=True) * INT16_MAX
        else:
            data = f.read(frames, dtype="int16", always_2d=True).astype(np.float64)
    return _resample(_to_mono(data), native_sr)


def _read_librosa(path: str, start: Fraction, duration: Fraction | None) -> np.ndarray:
    audio, _ = librosa.load(
        path,
        sr=SAMPLE_RATE,
        mono=True,
        offset=float(start),
        duration=None if duration is None else float(duration),
    )
    return audio.astype(np.float64) * INT16_MAX


def _decode(path: str, start: Fraction, duration: Fraction | None) -> np.ndarray:
    try:
        return _read_soundfile(path, start, duration)
    except (RuntimeError, OSError) as exc:
        logger.debug("soundfile cannot read {}, trying librosa: {}", path, exc)
    try:
        return _read_librosa(path, start, duration)
    except Exception as exc:
        raise DecodeError(f"Unable to decode {path}: {exc}") from exc


def check_range(asset: AudioAsset, start, duration) -> None:
    """Raise RangeError unless the range lies inside the asset. Never clamps."""
    start = as_fraction(start)
    duration = as_fraction(duration)
    total = as_fraction(asset.duration)
    if start < 0 or duration <= 0 or start + duration > total:
        raise RangeError(
            f"Requested range (start {float(start):.4f}s, duration {float(duration):.4f}s) "
            f"exceeds {asset.path} ({float(total):.4f}s)"
        )


def decode_range(asset: AudioAsset, start, duration) -> StandardBuffer:
    """Decode `duration` seconds of `asset` starting at `start`.

    Args:
        asset: Source file handle.
        start: Start in seconds (Fraction, int or float).
        duration: Length in seconds.

    Returns:
        A StandardBuffer of exactly round(duration * 44100) frames.

    Raises:
        RangeError: start < 0, duration <= 0 or the range runs past the end.
        DecodeError: the file cannot be opened or converted.
    """
    start = as_fraction(start)
    duration = as_fraction(duration)
    check_range(asset, start, duration)
    mono = _decode(asset.path, start, duration)
    buf = StandardBuffer.from_float(mono)
    return trim_to_length(buf, seconds_to_frames(duration))


async def decode_range_async(asset: AudioAsset, start, duration) -> StandardBuffer:
    return await asyncio.to_thread(decode_range, asset, start, duration)


def read_standard(path) -> StandardBuffer:
    """Decode a whole file into the standard format."""
    return StandardBuffer.from_float(_decode(str(path), Fraction(0), None))

"""Buffer effects: trim, fade, normalize, reverse, volume.

Each function takes a StandardBuffer and returns a new one; the input is
never modified.
"""

import numpy as np

from slicebot.core import INT16_MAX, StandardBuffer, ms_to_samples, to_int16


def trim_to_length(buf: StandardBuffer, frames: int) -> StandardBuffer:
    """Copy up to `frames` frames and zero-pad the rest."""
    frames = max(0, int(frames))
    result = buf.samples[:frames]
    if len(result) < frames:
        result = np.pad(result, (0, frames - len(result)))
    return StandardBuffer(result.astype(np.int16, copy=True))


def fade(buf: StandardBuffer, ms: float = 10.0) -> StandardBuffer:
    """Quarter-sine fade in and out.

    The fade length is capped at half the buffer so the two ramps never
    overlap. Scaled samples are truncated back to int16.
    """
    total = buf.frames
    fade_len = min(ms_to_samples(ms), total // 2)
    if fade_len <= 0:
        return buf.copy()

    result = buf.samples.astype(np.float64)
    ramp = np.sin(np.arange(fade_len) / fade_len * (np.pi / 2))
    result[:fade_len] *= ramp
    # Fade-out reaches (total - i) / fade_len for i in the last fade_len frames
    tail = np.sin(np.arange(fade_len, 0, -1) / fade_len * (np.pi / 2))
    result[total - fade_len:] *= tail
    return StandardBuffer(to_int16(result))


def normalize(buf: StandardBuffer) -> StandardBuffer:
    """Peak normalize so the loudest sample reaches full scale."""
    peak = int(np.max(np.abs(buf.samples.astype(np.int32)))) if buf.frames else 0
    if peak == 0:
        return buf.copy()
    scaled = np.rint(buf.samples.astype(np.float64) * (INT16_MAX / peak))
    return StandardBuffer(to_int16(scaled))


def reverse(buf: StandardBuffer) -> StandardBuffer:
    return StandardBuffer(buf.samples[::-1].copy())


def scale_volume(buf: StandardBuffer, multiplier: float) -> StandardBuffer:
    """Multiply every sample, clamping to the int16 range."""
    if multiplier == 1.0:
        return buf.copy()
    return StandardBuffer(to_int16(buf.samples.astype(np.float64) * multiplier))


def boundary_fade(buf: StandardBuffer, ms: float = 5.0) -> StandardBuffer:
    """Short linear fade on both ends to avoid clicks between segments.

    Skipped entirely when the fade would not fit in half the buffer.
    """
    total = buf.frames
    fade_len = ms_to_samples(ms)
    if fade_len <= 0 or fade_len >= total / 2:
        return buf.copy()

    result = buf.samples.astype(np.float64)
    result[:fade_len] *= np.arange(fade_len) / fade_len
    result[total - fade_len:] *= np.arange(fade_len, 0, -1) / fade_len
    return StandardBuffer(to_int16(result))

"""Stutter effect: repeat one segment of a slice with decaying volume and rising pitch."""

from __future__ import annotations

import os
import uuid
from dataclasses import dataclass

import numpy as np
from loguru import logger

from slicebot.core import StandardBuffer, save_standard, to_int16
from slicebot.effects import boundary_fade, scale_volume, trim_to_length
from slicebot.errors import DecodeError, StutterError
from slicebot.normalizer import read_standard

# Applying a stutter and previewing one use different pitch curves for the
# same semitone setting. Both are kept as observed in the product.
COMMIT_PITCH_DIVISOR = 8.0
PREVIEW_PITCH_DIVISOR = 12.0

PACHINKO_COUNTS = [2, 3, 4, 6, 8]


@dataclass
class StutterConfig:
    count: int = 4
    volume_step: float = 0.2      # volume drop per repeat
    pitch_semitones: float = 1.0  # pitch amount per repeat
    truncate: bool = False        # shorten later repeats, padding with silence


def _resample_segment(segment: np.ndarray, factor: float) -> np.ndarray:
    """Pitch a segment by `factor`, keeping its length (linear interpolation)."""
    n = len(segment)
    if n == 0 or factor == 1.0:
        return segment.copy()
    src = np.arange(n) / factor
    idx = np.minimum(np.floor(src).astype(np.int64), n - 1)
    nxt = np.minimum(idx + 1, n - 1)
    frac = src - np.floor(src)
    values = segment.astype(np.float64)
    return to_int16(values[idx] * (1 - frac) + values[nxt] * frac)


def stutter(
    buf: StandardBuffer,
    config: StutterConfig,
    start_fraction: float = 0.0,
    pitch_divisor: float = COMMIT_PITCH_DIVISOR,
    fade_ms: float = 5.0,
) -> StandardBuffer:
    """Replace a slice with `count` processed copies of one of its segments.

    Args:
        buf: Source slice.
        config: Stutter parameters.
        start_fraction: Where in the slice (0.0-1.0) the repeated segment starts.
        pitch_divisor: COMMIT_PITCH_DIVISOR or PREVIEW_PITCH_DIVISOR.
        fade_ms: Boundary fade applied to each repeat.

    Returns:
        A buffer with exactly as many frames as `buf`.
    """
    total = buf.frames
    if config.count < 1:
        raise StutterError(f"Stutter count must be at least 1, got {config.count}")
    if total == 0:
        raise StutterError("Cannot stutter an empty slice")
    segment_len = total // config.count
    if segment_len < 1:
        raise StutterError(f"Slice of {total} frames is too short for {config.count} repeats")

    fraction = min(max(float(start_fraction), 0.0), 1.0)
    start = min(int(fraction * total), total - segment_len)
    base = StandardBuffer(buf.samples[start:start + segment_len].copy())

    pieces = []
    for i in range(config.count):
        part = scale_volume(base, max(0.0, 1.0 - config.volume_step * i))
        factor = 2.0 ** (i * config.pitch_semitones / pitch_divisor)
        samples = _resample_segment(part.samples, factor)
        if config.truncate:
            keep = int(segment_len * (1 - i / config.count))
            samples[keep:] = 0
        pieces.append(boundary_fade(StandardBuffer(samples), fade_ms).samples)

    result = StandardBuffer(np.concatenate(pieces))
    return trim_to_length(result, total)


def stutter_file(
    path: str,
    config: StutterConfig,
    start_fraction: float,
    out_dir: str,
    prefix: str = "slice",
    preview: bool = False,
    fade_ms: float = 5.0,
) -> str:
    """Stutter a slice file and write the result next to the other scratch files."""
    try:
        buf = read_standard(path)
    except DecodeError as exc:
        raise StutterError(f"Failed to read slice {path}: {exc}") from exc
    divisor = PREVIEW_PITCH_DIVISOR if preview else COMMIT_PITCH_DIVISOR
    result = stutter(buf, config, start_fraction, pitch_divisor=divisor, fade_ms=fade_ms)
    tag = "stutter_preview" if preview else "stutter"
    out_path = os.path.join(out_dir, f"{prefix}_{tag}_{uuid.uuid4().hex}.wav")
    try:
        save_standard(out_path, result)
    except (RuntimeError, OSError) as exc:
        raise StutterError(f"Failed to write {out_path}: {exc}") from exc
    logger.debug("Stutter x{} on {} -> {}", config.count, path, out_path)
    return out_path


def random_stutter_config(rng: np.random.Generator) -> StutterConfig:
    """Randomized parameters for pachinko stutter."""
    return StutterConfig(
        count=int(rng.choice(PACHINKO_COUNTS)),
        volume_step=float(rng.uniform(0.1, 0.4)),
        pitch_semitones=float(rng.uniform(0.5, 4.0)),
        truncate=bool(rng.random() < 0.5),
    )

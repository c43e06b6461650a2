"""Pairwise layering of two slices into one."""

from __future__ import annotations

import os
import uuid
from enum import Enum

import numpy as np
from loguru import logger

from slicebot.core import INT16_MAX, StandardBuffer, save_standard
from slicebot.errors import ConfigError
from slicebot.normalizer import read_standard

BLEND_FRAMES = 5


class MergeMode(str, Enum):
    NONE = "none"                        # additive
    CROSSFADE = "crossfade"
    CROSSFADE_REVERSE = "crossfade_reverse"
    FIFTY_FIFTY = "fifty_fifty"
    QUARTER_CUTS = "quarter_cuts"
    PACHINKO = "pachinko"                # resolves to one of the above

    @classmethod
    def parse(cls, value) -> MergeMode:
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace("-", "_").replace(" ", "_")
        key = _ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError as exc:
            raise ConfigError(f"Unknown merge mode: {value!r}") from exc


_ALIASES = {
    "off": "none",
    "additive": "none",
    "reverse_crossfade": "crossfade_reverse",
    "50/50": "fifty_fifty",
    "50_50": "fifty_fifty",
    "quarter": "quarter_cuts",
    "random": "pachinko",
    "randomized": "pachinko",
}

CONCRETE_MODES = [
    MergeMode.NONE,
    MergeMode.CROSSFADE,
    MergeMode.CROSSFADE_REVERSE,
    MergeMode.FIFTY_FIFTY,
    MergeMode.QUARTER_CUTS,
]


def resolve_merge_mode(mode, rng: np.random.Generator) -> MergeMode:
    """Turn the randomized mode into a concrete one; other modes pass through."""
    mode = MergeMode.parse(mode)
    if mode is MergeMode.PACHINKO:
        return CONCRETE_MODES[int(rng.integers(len(CONCRETE_MODES)))]
    return mode


def _clamp(values: np.ndarray) -> np.ndarray:
    return np.clip(values, -INT16_MAX, INT16_MAX).astype(np.int16)


def _crossfade(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    length = len(a)
    x = np.arange(length) / max(1, length - 1)
    gain_a = np.sin(np.pi / 2 * (1 - x)) ** 2
    gain_b = np.sin(np.pi / 2 * x) ** 2
    return a * gain_a + b * gain_b


def _blend_at(out: np.ndarray, prev: np.ndarray, nxt: np.ndarray, boundary: int, width: int) -> None:
    """Linear blend from `prev` to `nxt` centred on `boundary`."""
    if width <= 0:
        return
    lo = boundary - width // 2
    hi = boundary + width // 2
    idx = np.arange(max(0, lo), min(len(out), hi))
    t = (idx - lo) / width
    out[idx] = prev[idx] * (1 - t) + nxt[idx] * t


def _cuts(a: np.ndarray, b: np.ndarray, boundaries: list[int], width: int) -> np.ndarray:
    """Alternate A and B at each boundary, starting with A."""
    sources = [a, b]
    out = a.copy()
    for n, boundary in enumerate(boundaries):
        current = sources[(n + 1) % 2]
        out[boundary:] = current[boundary:]
    for n, boundary in enumerate(boundaries):
        _blend_at(out, sources[n % 2], sources[(n + 1) % 2], boundary, width)
    return out


def merge(
    a: StandardBuffer,
    b: StandardBuffer,
    mode=MergeMode.CROSSFADE,
    rng: np.random.Generator | None = None,
) -> tuple[StandardBuffer, MergeMode]:
    """Layer two slices.

    Args:
        a: First slice.
        b: Second slice.
        mode: MergeMode (or its name). PACHINKO is resolved with `rng`.
        rng: Random generator used only by PACHINKO.

    Returns:
        (merged buffer of min(len a, len b) frames, concrete mode applied)
    """
    if rng is None:
        rng = np.random.default_rng()
    applied = resolve_merge_mode(mode, rng)

    length = min(a.frames, b.frames)
    sa = a.samples[:length].astype(np.float64)
    sb = b.samples[:length].astype(np.float64)

    if applied is MergeMode.CROSSFADE:
        out = _crossfade(sa, sb)
    elif applied is MergeMode.CROSSFADE_REVERSE:
        out = _crossfade(sa, sb[::-1])
    elif applied is MergeMode.FIFTY_FIFTY:
        half = length // 2
        out = _cuts(sa, sb, [half], min(BLEND_FRAMES, half // 2))
    elif applied is MergeMode.QUARTER_CUTS:
        quarter = length // 4
        out = _cuts(sa, sb, [quarter, 2 * quarter, 3 * quarter], min(BLEND_FRAMES, quarter // 2))
    else:
        out = sa + sb

    return StandardBuffer(_clamp(out)), applied


def merge_files(
    path_a: str,
    path_b: str,
    out_dir: str,
    mode=MergeMode.CROSSFADE,
    rng: np.random.Generator | None = None,
) -> tuple[str, MergeMode]:
    """Merge two slice files into `out_dir/layered_<id>.wav`.

    Raises:
        DecodeError: either input cannot be read. Merging never proceeds
            with a missing half.
    """
    a = read_standard(path_a)
    b = read_standard(path_b)
    merged, applied = merge(a, b, mode, rng)
    out_path = os.path.join(out_dir, f"layered_{uuid.uuid4().hex}.wav")
    save_standard(out_path, merged)
    logger.debug("Merged {} + {} ({}) -> {}", path_a, path_b, applied.value, out_path)
    return out_path, applied

"""Beat timing, legal start windows and start-point selection.

All times are seconds held as Fractions so frame counts derived from them are
exact. Chosen starts are snapped down to whole frames.
"""

from __future__ import annotations

import math
from enum import IntEnum
from fractions import Fraction

import numpy as np

from slicebot.core import SAMPLE_RATE, as_fraction, ms_to_samples, seconds_to_frames
from slicebot.errors import ConfigError, DetectionRejected, ExhaustionError, RangeError
from slicebot.normalizer import AudioAsset, decode_range

CANDIDATE_MIN_BEATS = 32
NO_GO_BEATS = 8
TRANSIENT_MIN_BEATS = 4
TRANSIENT_USABLE_BEATS = 16
BAR_BEATS = 4


class Subdivision(IntEnum):
    """Slice length in 16th-note steps."""
    HALF_BAR = 8
    QUARTER_BAR = 4
    EIGHTH = 2
    SIXTEENTH = 1

    @property
    def label(self) -> str:
        return _LABELS[self]

    @classmethod
    def parse(cls, value) -> Subdivision:
        """Accept a member, a step count, a name ("eighth") or a label ("8th note")."""
        if isinstance(value, cls):
            return value
        if isinstance(value, int):
            return cls(value)
        text = str(value).strip()
        for member, label in _LABELS.items():
            if text == label:
                return member
        key = text.upper().replace("-", "_").replace(" ", "_")
        if key in cls.__members__:
            return cls.__members__[key]
        if text.isdigit():
            return cls(int(text))
        raise ConfigError(f"Unknown subdivision: {value!r}")


_LABELS = {
    Subdivision.HALF_BAR: "1/2 bar",
    Subdivision.QUARTER_BAR: "1/4 bar",
    Subdivision.EIGHTH: "8th note",
    Subdivision.SIXTEENTH: "16th note",
}


def validate_bpm(bpm) -> Fraction:
    try:
        value = float(bpm)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"BPM must be a number, got {bpm!r}") from exc
    if not math.isfinite(value) or value <= 0:
        raise ConfigError(f"BPM must be positive and finite, got {bpm!r}")
    return as_fraction(value)


def beat_seconds(bpm) -> Fraction:
    return Fraction(60) / validate_bpm(bpm)


def slice_seconds(bpm, steps: int) -> Fraction:
    """Duration of a slice `steps` 16th notes long."""
    return beat_seconds(bpm) * Fraction(int(steps), 4)


def slice_frames(bpm, steps: int) -> int:
    return seconds_to_frames(slice_seconds(bpm, steps))


def no_go_zone(bpm) -> int:
    """Seconds at the end of a file where no slice may start (8 beats, rounded up)."""
    return math.ceil(beat_seconds(bpm) * NO_GO_BEATS)


def legal_start_window(duration, bpm) -> tuple[Fraction, Fraction] | None:
    upper = as_fraction(duration) - no_go_zone(bpm)
    if upper < 0:
        return None
    return Fraction(0), upper


def validate_start(start, duration, bpm) -> Fraction:
    start = as_fraction(start)
    window = legal_start_window(duration, bpm)
    if window is None or not (window[0] <= start <= window[1]):
        raise RangeError(f"Start {float(start):.4f}s is outside the legal window {window}")
    return start


def is_candidate(duration, bpm) -> bool:
    """Whether a file is long enough (32 beats) to be sliced."""
    return as_fraction(duration) >= beat_seconds(bpm) * CANDIDATE_MIN_BEATS


def snap_to_frame(seconds) -> Fraction:
    return Fraction(math.floor(as_fraction(seconds) * SAMPLE_RATE), SAMPLE_RATE)


def random_start(duration, bpm, rng: np.random.Generator) -> Fraction:
    window = legal_start_window(duration, bpm)
    if window is None:
        raise ExhaustionError(
            f"No legal start window in {float(as_fraction(duration)):.2f}s at {float(bpm)} BPM"
        )
    lower, upper = window
    return snap_to_frame(rng.uniform(float(lower), float(upper)))


def transient_start(
    asset: AudioAsset,
    bpm,
    slice_s,
    rng: np.random.Generator,
    preroll_ms: float = 5.0,
) -> Fraction:
    """Pick a random bar and start just before its loudest sample.

    Args:
        asset: Source file.
        bpm: Tempo.
        slice_s: Length of the slice that will be cut from the start.
        rng: Random generator.
        preroll_ms: How far before the peak the slice starts.

    Raises:
        DetectionRejected: file too short for a transient search.
        DecodeError: the search window could not be decoded.
    """
    duration = as_fraction(asset.duration)
    slice_s = as_fraction(slice_s)
    beat = beat_seconds(bpm)
    usable = duration - no_go_zone(bpm)
    if duration < slice_s or duration < beat * TRANSIENT_MIN_BEATS:
        raise DetectionRejected(f"{asset.path} is shorter than {TRANSIENT_MIN_BEATS} beats")
    if usable < beat * TRANSIENT_USABLE_BEATS:
        raise DetectionRejected(
            f"{asset.path} has less than {TRANSIENT_USABLE_BEATS} beats before the no-go zone"
        )

    candidate = snap_to_frame(rng.uniform(0.0, float(usable)))
    window = min(beat * BAR_BEATS, duration - candidate)
    search = decode_range(asset, candidate, window)
    peak = int(np.argmax(np.abs(search.samples.astype(np.int32)))) if search.frames else 0

    offset = max(0, peak - ms_to_samples(preroll_ms))
    start = candidate + Fraction(offset, SAMPLE_RATE)
    if start + slice_s > duration:
        start = snap_to_frame(duration - slice_s)
    return start


def select_start(
    asset: AudioAsset,
    bpm,
    slice_s,
    rng: np.random.Generator,
    transient: bool = False,
    preroll_ms: float = 5.0,
) -> Fraction:
    if transient:
        return transient_start(asset, bpm, slice_s, rng, preroll_ms=preroll_ms)
    return random_start(asset.duration, bpm, rng)


def random_subdivision(rng: np.random.Generator) -> Subdivision:
    return Subdivision(int(rng.choice([8, 4, 2, 1])))


def choose_subdivisions(
    count: int,
    selected: Subdivision | None,
    rng: np.random.Generator,
    layering: bool = False,
) -> list[Subdivision]:
    """Subdivision for every slot of a generation run.

    With `selected` None each slice draws its own length. In layering mode
    the run has 2 * count slots and the second half mirrors the first so
    merged pairs have matching lengths.
    """
    if selected is None:
        first = [random_subdivision(rng) for _ in range(count)]
    else:
        first = [Subdivision.parse(selected)] * count
    if layering:
        return first + list(first)
    return first

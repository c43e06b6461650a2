"""Where slices come from: candidate pools per source mode and live recordings."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

import numpy as np
from loguru import logger

from slicebot.errors import ConfigError, DecodeError, ExhaustionError
from slicebot.normalizer import AudioAsset
from slicebot.timing import is_candidate


class SourceMode(str, Enum):
    MULTI = "multi"                  # every eligible file
    SINGLE_RANDOM = "single_random"  # one random file for the whole run
    SINGLE_MANUAL = "single_manual"  # one file chosen by the user
    LIVE = "live"                    # finished live recordings


@dataclass
class Recording:
    recorder_id: str
    path: str | None = None
    finished: bool = False


@dataclass
class RecorderRegistry:
    """Tracks capture sessions and the files they have finished writing.

    Passed explicitly to whatever needs to enumerate recordings.
    """
    recordings: dict[str, Recording] = field(default_factory=dict)

    def start(self, recorder_id: str) -> Recording:
        recording = Recording(recorder_id)
        self.recordings[recorder_id] = recording
        return recording

    def finish(self, recorder_id: str, path: str) -> None:
        recording = self.recordings.setdefault(recorder_id, Recording(recorder_id))
        recording.path = str(path)
        recording.finished = True

    def remove(self, recorder_id: str) -> None:
        self.recordings.pop(recorder_id, None)

    def finished_files(self) -> list[AudioAsset]:
        return [AudioAsset(r.path) for r in self.recordings.values() if r.finished and r.path]


def eligible(assets: list[AudioAsset], bpm) -> list[AudioAsset]:
    """Assets at least 32 beats long; unreadable ones are left out."""
    result = []
    for asset in assets:
        try:
            if is_candidate(asset.duration, bpm):
                result.append(asset)
        except DecodeError as exc:
            logger.warning("Excluding {} from candidates: {}", asset.path, exc)
    return result


def candidate_pool(
    mode,
    candidates: list[AudioAsset],
    bpm,
    rng: np.random.Generator,
    manual: AudioAsset | None = None,
    registry: RecorderRegistry | None = None,
) -> list[AudioAsset]:
    """Assets a generation run may draw from.

    Raises:
        ExhaustionError: nothing eligible is available for the mode.
    """
    mode = SourceMode(mode)
    if mode is SourceMode.SINGLE_MANUAL:
        if manual is None:
            raise ConfigError("single_manual mode needs a chosen file")
        pool = eligible([manual], bpm)
    elif mode is SourceMode.LIVE:
        pool = eligible(registry.finished_files() if registry is not None else [], bpm)
    else:
        pool = eligible(candidates, bpm)
        if mode is SourceMode.SINGLE_RANDOM and pool:
            pool = [pool[int(rng.integers(len(pool)))]]

    if not pool:
        raise ExhaustionError(f"No eligible source files for mode {mode.value}")
    return pool

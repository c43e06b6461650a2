"""Per-slice volume and deliverable export."""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass

from loguru import logger

from slicebot.chain import write_chain
from slicebot.core import save_standard
from slicebot.effects import scale_volume
from slicebot.normalizer import read_standard

DEFAULT_VOLUME = 0.75  # slider position for 0 dB


@dataclass
class VolumeSetting:
    volume: float = DEFAULT_VOLUME
    muted: bool = False

    @property
    def multiplier(self) -> float:
        if self.muted:
            return 0.0
        return db_to_linear(slider_to_db(self.volume))

    def to_dict(self) -> dict:
        return {"volume": float(self.volume), "muted": bool(self.muted)}

    @classmethod
    def from_dict(cls, d: dict) -> VolumeSetting:
        return cls(volume=float(d.get("volume", DEFAULT_VOLUME)), muted=bool(d.get("muted", False)))


def slider_to_db(value: float) -> float:
    """Map a 0-1 slider to gain: -40 dB at 0, 0 dB at 0.75, +8 dB at 1."""
    value = min(max(float(value), 0.0), 1.0)
    if value <= DEFAULT_VOLUME:
        return value * 40.0 / DEFAULT_VOLUME - 40.0
    return 32.0 * value - 24.0


def db_to_linear(db: float) -> float:
    return 10.0 ** (db / 20.0)


def next_export_number(prefix: str, directory: str) -> int:
    """One past the largest number already used by `<prefix>_<n>...` files."""
    if not os.path.isdir(directory):
        return 1
    highest = 0
    lead = f"{prefix}_"
    for name in os.listdir(directory):
        if not name.startswith(lead):
            continue
        stem = os.path.splitext(name)[0][len(lead):]
        if stem.endswith("_chain"):
            stem = stem[: -len("_chain")]
        if stem.isdigit():
            highest = max(highest, int(stem))
    return highest + 1


def export_individual_slices(
    paths: list[str],
    dest: str,
    prefix: str,
    volumes: list[VolumeSetting] | None = None,
) -> list[str]:
    """Copy each slice to `dest` as `<prefix>_<n>.wav`, applying volume if given."""
    os.makedirs(dest, exist_ok=True)
    written = []
    for i, path in enumerate(paths):
        out_path = os.path.join(dest, f"{prefix}_{next_export_number(prefix, dest)}.wav")
        if volumes is None:
            shutil.copyfile(path, out_path)
        else:
            buf = scale_volume(read_standard(path), volumes[i].multiplier)
            save_standard(out_path, buf)
        written.append(out_path)
    logger.info("Exported {} slices to {}", len(written), dest)
    return written


def export_chain(
    paths: list[str],
    dest: str,
    prefix: str,
    volumes: list[VolumeSetting] | None = None,
    chain_path: str | None = None,
) -> str:
    """Write `<prefix>_<n>_chain.wav` into `dest`.

    Without volumes an existing preview chain is copied as-is when given.
    """
    os.makedirs(dest, exist_ok=True)
    out_path = os.path.join(dest, f"{prefix}_{next_export_number(prefix, dest)}_chain.wav")
    if volumes is None and chain_path is not None and os.path.exists(chain_path):
        shutil.copyfile(chain_path, out_path)
        logger.info("Chain -> {}", out_path)
        return out_path
    multipliers = None if volumes is None else [v.multiplier for v in volumes]
    return write_chain(paths, out_path, multipliers)


def write_loop_chain(paths: list[str], volumes: list[VolumeSetting], out_path: str) -> str:
    """Volume-adjusted chain used for looping playback."""
    return write_chain(paths, out_path, [v.multiplier for v in volumes])

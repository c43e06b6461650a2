"""SliceSpec data model: where each slice of a set came from.

A spec holds no samples. Re-exporting the same spec from the same source
always yields the same standardized slice, so a saved SliceSet is enough to
rebuild a session's slices later.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from fractions import Fraction

from slicebot.core import SAMPLE_RATE
from slicebot.timing import Subdivision


@dataclass
class SliceSpec:
    """A single slice: source path, start frame, length and subdivision."""
    asset_path: str
    start_frame: int           # offset into the source at 44.1 kHz
    frame_count: int           # length of the exported slice
    subdivision: Subdivision

    @property
    def start_s(self) -> Fraction:
        return Fraction(self.start_frame, SAMPLE_RATE)

    @property
    def duration_s(self) -> Fraction:
        return Fraction(self.frame_count, SAMPLE_RATE)

    def identity(self) -> tuple[str, int, int]:
        """Key used to find this slice again after the set is reordered."""
        return self.asset_path, self.start_frame, int(self.subdivision)

    def with_start(self, start_frame: int) -> SliceSpec:
        return SliceSpec(self.asset_path, int(start_frame), self.frame_count, self.subdivision)

    def to_dict(self) -> dict:
        return {
            "asset_path": str(self.asset_path),
            "start_frame": int(self.start_frame),
            "frame_count": int(self.frame_count),
            "subdivision": int(self.subdivision),
        }

    @classmethod
    def from_dict(cls, d: dict) -> SliceSpec:
        return cls(
            asset_path=d["asset_path"],
            start_frame=int(d["start_frame"]),
            frame_count=int(d["frame_count"]),
            subdivision=Subdivision(int(d["subdivision"])),
        )


@dataclass
class SliceSet:
    """Ordered slice specs of one session plus the settings that produced them."""
    specs: list[SliceSpec] = field(default_factory=list)
    bpm: float = 128.0
    layering: bool = False
    seed: int | None = None

    def to_dict(self) -> dict:
        return {
            "specs": [s.to_dict() for s in self.specs],
            "bpm": float(self.bpm),
            "layering": bool(self.layering),
            "seed": self.seed,
        }

    def save(self, path: str) -> None:
        """Serialize to JSON."""
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def from_dict(cls, d: dict) -> SliceSet:
        return cls(
            specs=[SliceSpec.from_dict(s) for s in d["specs"]],
            bpm=d.get("bpm", 128.0),
            layering=d.get("layering", False),
            seed=d.get("seed"),
        )

    @classmethod
    def load(cls, path: str) -> SliceSet:
        """Deserialize from JSON."""
        with open(path) as f:
            return cls.from_dict(json.load(f))

"""Slice export: decode a range, run the effect chain, write a standard WAV.

Pipeline order is fixed: decode -> reverse -> normalize -> trim -> fade ->
write. Writes are retried a bounded number of times; a slice that still fails
is dropped rather than aborting the batch.
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from typing import Callable

import numpy as np
from loguru import logger

from slicebot.core import save_standard, seconds_to_frames
from slicebot.effects import fade, normalize, reverse, trim_to_length
from slicebot.errors import DecodeError, ExportError
from slicebot.normalizer import AudioAsset, check_range, decode_range
from slicebot.settings import Settings, get_settings

StatusCallback = Callable[[str], None]


@dataclass
class EffectFlags:
    """Per-slice effects applied during export."""
    fade: bool = True
    normalize: bool = False
    reverse: bool = False
    pachinko_reverse: bool = False  # reverse on a coin flip per slice


class SliceExporter:
    """Turns (asset, start, duration) into a standardized slice file."""

    def __init__(self, settings: Settings | None = None, rng: np.random.Generator | None = None):
        self.settings = settings or get_settings()
        self.rng = rng if rng is not None else np.random.default_rng()

    def render(self, asset: AudioAsset, start, duration, flags: EffectFlags):
        """Decode and process a slice without writing it."""
        buf = decode_range(asset, start, duration)
        if flags.reverse or (flags.pachinko_reverse and self.rng.random() < 0.5):
            buf = reverse(buf)
        if flags.normalize:
            buf = normalize(buf)
        buf = trim_to_length(buf, seconds_to_frames(duration))
        if flags.fade:
            buf = fade(buf, self.settings.fade_ms)
        return buf

    def export(self, asset: AudioAsset, start, duration, path: str, flags: EffectFlags) -> str:
        """Single export attempt. Any pre-existing file at `path` is replaced."""
        buf = self.render(asset, start, duration, flags)
        try:
            return save_standard(path, buf)
        except (RuntimeError, OSError) as exc:
            raise ExportError(f"Failed to write {path}: {exc}") from exc

    async def export_with_retries(
        self,
        asset: AudioAsset,
        start,
        duration,
        path: str,
        flags: EffectFlags,
        status: StatusCallback | None = None,
    ) -> str | None:
        """Export with bounded retries.

        Returns:
            The written path, or None when every attempt failed.

        Raises:
            RangeError: before any attempt when the range is invalid.
        """
        check_range(asset, start, duration)
        attempts = self.settings.export_attempts
        for attempt in range(1, attempts + 1):
            try:
                return await asyncio.to_thread(self.export, asset, start, duration, path, flags)
            except (DecodeError, ExportError) as exc:
                logger.warning(
                    "Export of {} failed (attempt {} of {}): {}",
                    os.path.basename(path), attempt, attempts, exc,
                )
                if status is not None:
                    status(f"Slice export failed (attempt {attempt} of {attempts}). Retrying...")
                if attempt < attempts:
                    await asyncio.sleep(self.settings.export_retry_delay)
        logger.warning("Dropping slice {} after {} attempts", os.path.basename(path), attempts)
        return None

"""Chain assembly: concatenate slice files into one playable sequence."""

from __future__ import annotations

import numpy as np
from loguru import logger

from slicebot.core import StandardBuffer, save_standard
from slicebot.effects import scale_volume
from slicebot.errors import ChainError, DecodeError
from slicebot.normalizer import read_standard


def assemble_chain(
    paths: list[str],
    multipliers: list[float] | None = None,
) -> StandardBuffer:
    """Concatenate slice files in order.

    Unreadable files are skipped with a warning so one bad slice never costs
    the whole chain.

    Args:
        paths: Ordered slice files.
        multipliers: Optional linear gain per slice (same order as `paths`).

    Returns:
        The concatenated buffer (empty if nothing could be read).
    """
    if multipliers is not None and len(multipliers) != len(paths):
        raise ValueError("multipliers must have one entry per path")

    parts = []
    for i, path in enumerate(paths):
        try:
            buf = read_standard(path)
        except DecodeError as exc:
            logger.warning("Skipping unreadable slice {} in chain: {}", path, exc)
            continue
        if multipliers is not None:
            buf = scale_volume(buf, multipliers[i])
        parts.append(buf.samples)

    if not parts:
        return StandardBuffer.silence(0)
    return StandardBuffer(np.concatenate(parts))


def write_chain(
    paths: list[str],
    out_path: str,
    multipliers: list[float] | None = None,
) -> str:
    """Assemble and write a chain file.

    Raises:
        ChainError: no slice could be read.
    """
    chain = assemble_chain(paths, multipliers)
    if chain.frames == 0:
        raise ChainError(f"No readable slices to assemble into {out_path}")
    save_standard(out_path, chain)
    logger.info("Chain of {} slices ({:.2f}s) -> {}", len(paths), chain.duration_s, out_path)
    return out_path

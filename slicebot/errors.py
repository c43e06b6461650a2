"""Exceptions raised across the slicing pipeline."""

from __future__ import annotations


class SlicebotError(Exception):
    """Base class for expected slicebot failures."""


class DecodeError(SlicebotError):
    """A source could not be opened, read or converted to the standard format."""


class RangeError(SlicebotError, ValueError):
    """A requested start/duration falls outside the source or the legal window."""


class ExportError(SlicebotError):
    """Writing a standardized slice to disk failed."""


class ExhaustionError(SlicebotError):
    """No candidate source or legal start window is available."""


class DetectionRejected(SlicebotError):
    """Transient detection declined a file that is too short to search."""


class StutterError(SlicebotError):
    """The stutter configuration cannot be applied to the given slice."""


class ChainError(SlicebotError):
    """No readable slices were left to assemble a chain from."""


class ConfigError(SlicebotError, ValueError):
    """Invalid run configuration (BPM, subdivision, sample count)."""

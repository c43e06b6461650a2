"""Tests for the merge engine."""

import os

import numpy as np
import pytest

from slicebot.core import StandardBuffer
from slicebot.errors import ConfigError, DecodeError
from slicebot.merge import CONCRETE_MODES, MergeMode, merge, merge_files, resolve_merge_mode
from slicebot.normalizer import read_standard

from conftest import write_slice


def _const(value, n):
    return StandardBuffer(np.full(n, value, dtype=np.int16))


@pytest.fixture
def rng():
    return np.random.default_rng(0)


class TestAdditive:
    def test_length_is_min(self, rng):
        out, applied = merge(_const(100, 300), _const(100, 200), MergeMode.NONE, rng)
        assert out.frames == 200
        assert applied is MergeMode.NONE
        assert (out.samples == 200).all()

    def test_bounded(self, rng):
        loud = np.random.default_rng(1).integers(-32768, 32767, 1000).astype(np.int16)
        out, _ = merge(StandardBuffer(loud), StandardBuffer(loud), MergeMode.NONE, rng)
        assert np.max(np.abs(out.samples.astype(np.int32))) <= 32767

    def test_off_alias(self):
        assert MergeMode.parse("off") is MergeMode.NONE


class TestCrossfade:
    def test_endpoints(self, rng, ramp_buffer):
        b = StandardBuffer(ramp_buffer.samples[::-1].copy())
        out, _ = merge(ramp_buffer, b, MergeMode.CROSSFADE, rng)
        assert out.samples[0] == ramp_buffer.samples[0]
        assert out.samples[-1] == b.samples[-1]

    def test_reverse_reads_b_backwards(self, rng, ramp_buffer):
        b = StandardBuffer(np.arange(1000, dtype=np.int16))
        out, applied = merge(ramp_buffer, b, MergeMode.CROSSFADE_REVERSE, rng)
        assert applied is MergeMode.CROSSFADE_REVERSE
        assert out.samples[0] == ramp_buffer.samples[0]
        assert out.samples[-1] == b.samples[0]

    def test_constant_power_midpoint(self, rng):
        out, _ = merge(_const(1000, 101), _const(1000, 101), MergeMode.CROSSFADE, rng)
        # sin^2 + cos^2 == 1 everywhere
        assert np.all(np.abs(out.samples.astype(np.int32) - 1000) <= 1)


class TestCuts:
    def test_fifty_fifty_centered(self, rng):
        out, _ = merge(_const(1000, 100), _const(-1000, 100), MergeMode.FIFTY_FIFTY, rng)
        samples = out.samples
        assert (samples[:48] == 1000).all()
        assert (samples[52:] == -1000).all()
        blend = np.nonzero((samples != 1000) & (samples != -1000))[0]
        assert len(blend) <= 5
        assert blend.min() >= 45 and blend.max() <= 55
        assert np.all(np.diff(samples[47:53].astype(np.int32)) <= 0)

    def test_quarter_cuts(self, rng):
        out, _ = merge(_const(1000, 100), _const(-1000, 100), MergeMode.QUARTER_CUTS, rng)
        samples = out.samples
        assert (samples[:23] == 1000).all()
        assert (samples[27:48] == -1000).all()
        assert (samples[52:73] == 1000).all()
        assert (samples[77:] == -1000).all()

    def test_tiny_buffers(self, rng):
        out, _ = merge(_const(5, 3), _const(7, 3), MergeMode.QUARTER_CUTS, rng)
        assert out.frames == 3


class TestPachinko:
    def test_resolves_to_concrete(self):
        rng = np.random.default_rng(3)
        seen = {resolve_merge_mode(MergeMode.PACHINKO, rng) for _ in range(200)}
        assert seen == set(CONCRETE_MODES)

    def test_merge_reports_applied(self, ramp_buffer):
        _, applied = merge(ramp_buffer, ramp_buffer, "pachinko", np.random.default_rng(2))
        assert applied in CONCRETE_MODES

    def test_unknown_mode(self):
        with pytest.raises(ConfigError):
            MergeMode.parse("granular")


class TestMergeFiles:
    def test_writes_layered_file(self, tmp_path, rng):
        a = write_slice(tmp_path / "a.wav", np.full(500, 100))
        b = write_slice(tmp_path / "b.wav", np.full(400, 50))
        path, applied = merge_files(a, b, str(tmp_path), MergeMode.NONE, rng)
        assert os.path.basename(path).startswith("layered_")
        assert applied is MergeMode.NONE
        result = read_standard(path)
        assert result.frames == 400
        assert (result.samples == 150).all()

    def test_missing_half_is_fatal(self, tmp_path, rng):
        a = write_slice(tmp_path / "a.wav", np.full(500, 100))
        with pytest.raises(DecodeError):
            merge_files(a, str(tmp_path / "gone.wav"), str(tmp_path), MergeMode.NONE, rng)

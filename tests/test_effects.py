"""Tests for effects module."""

import numpy as np

from slicebot.core import StandardBuffer
from slicebot.effects import (
    boundary_fade,
    fade,
    normalize,
    reverse,
    scale_volume,
    trim_to_length,
)


def _const(value, n):
    return StandardBuffer(np.full(n, value, dtype=np.int16))


class TestTrim:
    def test_pads_with_zeros(self, ramp_buffer):
        result = trim_to_length(ramp_buffer, 1200)
        assert result.frames == 1200
        np.testing.assert_array_equal(result.samples[:1000], ramp_buffer.samples)
        assert not result.samples[1000:].any()

    def test_cuts(self, ramp_buffer):
        result = trim_to_length(ramp_buffer, 300)
        np.testing.assert_array_equal(result.samples, ramp_buffer.samples[:300])

    def test_idempotent(self, ramp_buffer):
        once = trim_to_length(ramp_buffer, 777)
        twice = trim_to_length(once, 777)
        np.testing.assert_array_equal(once.samples, twice.samples)

    def test_input_untouched(self, ramp_buffer):
        before = ramp_buffer.samples.copy()
        trim_to_length(ramp_buffer, 10)
        np.testing.assert_array_equal(ramp_buffer.samples, before)


class TestFade:
    def test_edges_fade(self):
        result = fade(_const(1000, 2000), 10)
        assert result.samples[0] == 0
        assert result.samples[1000] == 1000
        assert 0 <= result.samples[-1] < 10
        assert result.samples[220] < result.samples[440]

    def test_fade_capped_at_half(self):
        result = fade(_const(1000, 10), 10)
        assert result.frames == 10
        assert result.samples[0] == 0
        # fade length is 5: frame 5 starts the fade-out at full (5/5) scale
        assert result.samples[5] == 1000

    def test_empty(self):
        assert fade(StandardBuffer.silence(0)).frames == 0


class TestNormalize:
    def test_peak(self):
        result = normalize(StandardBuffer(np.array([100, -50, 25], dtype=np.int16)))
        assert np.max(np.abs(result.samples)) == 32767
        assert result.samples[0] == 32767

    def test_zero_buffer_unchanged(self):
        result = normalize(StandardBuffer.silence(64))
        assert result.frames == 64
        assert not result.samples.any()

    def test_negative_peak(self):
        result = normalize(StandardBuffer(np.array([-32768, 10], dtype=np.int16)))
        assert result.samples[0] <= -32767


class TestReverse:
    def test_reverse(self, ramp_buffer):
        result = reverse(ramp_buffer)
        np.testing.assert_array_equal(result.samples, ramp_buffer.samples[::-1])

    def test_odd_length(self):
        buf = StandardBuffer(np.array([1, 2, 3], dtype=np.int16))
        np.testing.assert_array_equal(reverse(buf).samples, [3, 2, 1])


class TestVolume:
    def test_mute(self, ramp_buffer):
        assert not scale_volume(ramp_buffer, 0.0).samples.any()

    def test_clamps(self):
        result = scale_volume(_const(20000, 4), 2.0)
        assert (result.samples == 32767).all()

    def test_half(self):
        assert (scale_volume(_const(1000, 4), 0.5).samples == 500).all()


class TestBoundaryFade:
    def test_linear_ends(self):
        result = boundary_fade(_const(1000, 2000), 5)
        assert result.samples[0] == 0
        assert result.samples[110] == 500
        assert result.samples[1000] == 1000

    def test_skipped_when_too_short(self):
        buf = _const(1000, 300)
        np.testing.assert_array_equal(boundary_fade(buf, 5).samples, buf.samples)

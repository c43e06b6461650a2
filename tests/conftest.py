"""Shared test fixtures: synthetic audio for testing."""

import numpy as np
import pytest
import soundfile as sf

from slicebot.core import StandardBuffer
from slicebot.normalizer import AudioAsset
from slicebot.settings import Settings

# At 240 BPM a beat is 0.25 s: 32 beats = 8 s, no-go zone = 2 s.
TEST_BPM = 240.0
CLICK_SPACING_S = 0.5
CLICK_OFFSET_S = 0.123


def _clicky(duration_s: float, sr: int) -> np.ndarray:
    """Quiet sine with a sharp decaying click every half second."""
    n = int(round(duration_s * sr))
    t = np.arange(n) / sr
    audio = 0.1 * np.sin(2 * np.pi * 220 * t)
    pos = CLICK_OFFSET_S
    while pos < duration_s:
        idx = int(round(pos * sr))
        click_len = min(200, n - idx)
        audio[idx: idx + click_len] += 0.85 * np.exp(-np.linspace(0, 10, click_len))
        pos += CLICK_SPACING_S
    return np.clip(audio, -1.0, 1.0)


def click_positions(duration_s: float, sr: int = 44100) -> list[int]:
    positions = []
    pos = CLICK_OFFSET_S
    while pos < duration_s:
        positions.append(int(round(pos * sr)))
        pos += CLICK_SPACING_S
    return positions


@pytest.fixture
def sr():
    return 44100


@pytest.fixture
def bpm():
    return TEST_BPM


@pytest.fixture
def source_audio(sr):
    """10 seconds of clicky audio, long enough to slice at 240 BPM."""
    return _clicky(10.0, sr)


@pytest.fixture
def source_wav(source_audio, sr, tmp_path):
    path = str(tmp_path / "source.wav")
    sf.write(path, source_audio, sr, subtype="PCM_16")
    return path


@pytest.fixture
def second_source_wav(sr, tmp_path):
    path = str(tmp_path / "source_b.wav")
    sf.write(path, _clicky(12.0, sr) * 0.5, sr, subtype="PCM_16")
    return path


@pytest.fixture
def short_wav(sr, tmp_path):
    """3 seconds: too short to be a slicing candidate at 240 BPM."""
    path = str(tmp_path / "short.wav")
    sf.write(path, _clicky(3.0, sr), sr, subtype="PCM_16")
    return path


@pytest.fixture
def stereo_wav(sr, tmp_path):
    """Constant stereo int16 file: left 1000, right 3000."""
    n = sr * 2
    data = np.column_stack([np.full(n, 1000, dtype=np.int16), np.full(n, 3000, dtype=np.int16)])
    path = str(tmp_path / "stereo.wav")
    sf.write(path, data, sr, subtype="PCM_16")
    return path


@pytest.fixture
def float_wav(sr, tmp_path):
    """Constant 32-bit float file at 0.25 full scale."""
    path = str(tmp_path / "float.wav")
    sf.write(path, np.full(sr * 2, 0.25, dtype=np.float32), sr, subtype="FLOAT")
    return path


@pytest.fixture
def wav_48k(tmp_path):
    path = str(tmp_path / "rate48k.wav")
    t = np.arange(48000 * 2) / 48000
    sf.write(path, 0.5 * np.sin(2 * np.pi * 440 * t), 48000, subtype="PCM_16")
    return path


@pytest.fixture
def corrupt_wav(tmp_path):
    path = tmp_path / "corrupt.wav"
    path.write_text("this is not audio")
    return str(path)


@pytest.fixture
def source_asset(source_wav):
    return AudioAsset(source_wav)


@pytest.fixture
def ramp_buffer():
    """1000-frame buffer of distinct values."""
    return StandardBuffer(np.arange(-500, 500, dtype=np.int16) * 10)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        scratch_dir=tmp_path / "scratch",
        export_attempts=3,
        export_retry_delay=0.0,
        export_throttle=0.0,
    )


def write_slice(path, samples) -> str:
    sf.write(str(path), np.asarray(samples, dtype=np.int16), 44100, subtype="PCM_16")
    return str(path)

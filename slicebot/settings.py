from __future__ import annotations

import tempfile
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_scratch_dir() -> Path:
    return Path(tempfile.gettempdir()) / "slicebot"


class Settings(BaseSettings):
    """Runtime configuration for slice generation and export."""

    model_config = SettingsConfigDict(
        env_prefix="SLICEBOT_",
        extra="ignore",
    )

    scratch_dir: Path = Field(default_factory=_default_scratch_dir)
    default_bpm: float = Field(default=128.0, gt=0.0, le=999.0)
    default_sample_count: int = Field(default=8, ge=1, le=128)
    export_attempts: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Attempts per slice export before the slice is dropped.",
    )
    export_retry_delay: float = Field(
        default=0.5,
        ge=0.0,
        le=10.0,
        description="Seconds to wait between slice export attempts.",
    )
    export_throttle: float = Field(
        default=0.005,
        ge=0.0,
        le=1.0,
        description="Seconds to pause between consecutive slices during generation.",
    )
    fade_ms: float = Field(default=10.0, ge=0.0, le=1000.0)
    stutter_fade_ms: float = Field(default=5.0, ge=0.0, le=1000.0)
    transient_preroll_ms: float = Field(default=5.0, ge=0.0, le=1000.0)
    default_prefix: str = Field(default="export", min_length=1, max_length=64)
    log_level: str = Field(default="INFO", max_length=16)

    def ensure_directories(self) -> None:
        self.scratch_dir.mkdir(parents=True, exist_ok=True)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    settings = Settings()
    settings.ensure_directories()
    return settings

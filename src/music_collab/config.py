"""Runtime settings read from ``MUSIC_COLLAB_*`` environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass

_ENV_PREFIX = "MUSIC_COLLAB_"


@dataclass(frozen=True, slots=True)
class Settings:
    env: str = "development"
    log_level: str = "INFO"
    sample_rate: int = 44_100
    step_seconds: float = 0.25
    grid_steps: int = 16
    max_render_sec: float = 600.0

    @property
    def is_production(self) -> bool:
        return self.env in {"production", "prod", "staging"}

    @staticmethod
    def from_env() -> Settings:
        defaults = Settings()
        return Settings(
            env=_env_str("ENV", defaults.env).lower(),
            log_level=_env_str("LOG_LEVEL", defaults.log_level).upper(),
            sample_rate=max(_env_int("SAMPLE_RATE", defaults.sample_rate), 8_000),
            step_seconds=max(_env_float("STEP_SECONDS", defaults.step_seconds), 0.01),
            grid_steps=max(_env_int("GRID_STEPS", defaults.grid_steps), 1),
            max_render_sec=max(_env_float("MAX_RENDER_SEC", defaults.max_render_sec), 1.0),
        )


def _env_str(name: str, default: str) -> str:
    value = os.getenv(_ENV_PREFIX + name, "").strip()
    return value or default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(_ENV_PREFIX + name, "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(_ENV_PREFIX + name, "").strip()
    try:
        return float(raw) if raw else default
    except ValueError:
        return default

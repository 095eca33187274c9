"""
Application settings for tickstream.

This module defines all configuration settings for tickstream using Pydantic BaseSettings.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Main application settings using Pydantic BaseSettings."""

    # HTTP listener
    host: str = Field(default="127.0.0.1", alias="TICKSTREAM_HOST")
    port: int = Field(default=3000, alias="TICKSTREAM_PORT")

    # Runtime
    pace_hz: float = Field(default=50.0, alias="TICKSTREAM_PACE_HZ", gt=0)
    sink_max_bytes: int = Field(default=1_048_576, alias="TICKSTREAM_SINK_MAX_BYTES", gt=0)
    recipes_file: str | None = Field(default=None, alias="TICKSTREAM_RECIPES_FILE")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    env: str = Field(default="dev", alias="ENV")  # dev|prod|test

    model_config: SettingsConfigDict = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",  # Ignore unrelated keys in a shared .env
    )


def _resolve_env_file() -> str | None:
    # 1) Explicit override
    explicit = os.getenv("TICKSTREAM_ENV_FILE")
    if explicit and Path(explicit).is_file():
        return explicit

    # 2) CWD .env
    cwd_env = Path.cwd() / ".env"
    if cwd_env.is_file():
        return str(cwd_env)

    # 3) Walk up from this file to find nearest .env
    here = Path(__file__).resolve()
    for parent in here.parents:
        candidate = parent / ".env"
        if candidate.is_file():
            return str(candidate)
    return None


# Global settings instance (load from best-effort .env discovery)
_env_file = _resolve_env_file()
settings = Settings(_env_file=_env_file) if _env_file else Settings()  # type: ignore[call-arg]

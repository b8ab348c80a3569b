# Sidecar configuration - environment-driven settings via pydantic-settings.
# Created: 2026-10-16
#
# Settings are read once at process start (LOCAL_API_* variables) and frozen
# afterwards; get_settings() hands out the single cached instance.

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_PORT = 46123
DEFAULT_REMOTE_BASE = "https://worldmonitor.app"
DEFAULT_MODE = "desktop-sidecar"


class Settings(BaseSettings):
    """Process-wide gateway configuration."""

    model_config = SettingsConfigDict(env_prefix="LOCAL_API_", frozen=True)

    port: int = DEFAULT_PORT
    remote_base: str = DEFAULT_REMOTE_BASE
    resource_dir: Path = Field(default_factory=Path.cwd)
    mode: str = DEFAULT_MODE

    log_level: str = "INFO"

    # Unset means no deadline, matching the desktop shell's expectations.
    upstream_timeout: float | None = None
    handler_timeout: float | None = None

    @field_validator("remote_base")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v[:-1] if v.endswith("/") else v

    @property
    def api_dir(self) -> Path:
        """Directory holding the local handler modules."""
        return self.resource_dir / "api"

    @property
    def local_origin(self) -> str:
        return f"http://127.0.0.1:{self.port}"


@lru_cache
def get_settings() -> Settings:
    return Settings()

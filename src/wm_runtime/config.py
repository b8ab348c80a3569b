# Client runtime settings (WM_* environment variables).
# Created: 2026-10-16

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_LOCAL_API_BASE = "http://127.0.0.1:46123"
DEFAULT_REMOTE_HOST = "https://worldmonitor.app"
DEFAULT_VARIANT = "world"

# Deployment variant -> cloud origin.
REMOTE_HOSTS: dict[str, str] = {
    "tech": "https://tech.worldmonitor.app",
    "full": "https://worldmonitor.app",
    "world": "https://worldmonitor.app",
}


class RuntimeSettings(BaseSettings):
    """Build/launch-time knobs for the client shim."""

    model_config = SettingsConfigDict(env_prefix="WM_", frozen=True)

    api_base_url: str | None = None
    remote_api_base_url: str | None = None
    variant: str = DEFAULT_VARIANT
    local_timeout: float | None = None


@lru_cache
def get_runtime_settings() -> RuntimeSettings:
    return RuntimeSettings()
